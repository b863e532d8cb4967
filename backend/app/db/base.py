from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from app.core.config import settings

database_url = settings.DATABASE_URL

is_sqlite = database_url.startswith("sqlite")
is_supabase_pooler = "pooler.supabase.com" in database_url or "supabase.co" in database_url

if is_supabase_pooler:
    if "?" not in database_url:
        database_url += "?sslmode=require"
    elif "sslmode" not in database_url:
        database_url += "&sslmode=require"

if is_sqlite:
    pool_config = {
        "echo": False,
        "connect_args": {"check_same_thread": False},
    }
    # In-memory databases only exist for the connection that created them
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        pool_config["poolclass"] = StaticPool
else:
    pool_config = {
        "pool_pre_ping": True,
        "echo": False,
        "connect_args": {
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 30,
            "keepalives_interval": 10,
            "keepalives_count": 5,
        },
    }
    if is_supabase_pooler:
        pool_config.update({
            "pool_size": 5,
            "max_overflow": 2,
            "pool_recycle": 300,
            "pool_timeout": 20,
        })
    else:
        pool_config.update({
            "pool_size": 10,
            "max_overflow": 5,
            "pool_recycle": 3600,
        })

engine = create_engine(database_url, **pool_config)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
