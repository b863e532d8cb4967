"""
Database setup script.
Creates tables if they don't exist. Pass --seed to add a few sample
listings, agencies and agents for local development.
"""
import sys

from app.db.base import Base, SessionLocal, engine
from app.models import Agency, Agent, Property, NeighborhoodRating  # noqa: F401


def seed():
    db = SessionLocal()
    try:
        if db.query(Property).count():
            print("Sample data already present, skipping seed")
            return

        agency = Agency(
            agency_name="Gràcia Homes",
            city="Barcelona",
            influence_neighborhoods=["Vila de Gràcia", "Camp d'en Grassot i Gràcia Nova"],
        )
        agent = Agent(
            email="laura@example.com",
            name="Laura",
            surname="Puig",
            city="Barcelona",
            influence_neighborhoods=["Vila de Gràcia", "La Dreta de l'Eixample"],
            years_of_experience=8,
        )
        db.add_all([agency, agent])
        db.flush()

        db.add_all([
            Property(
                address="Carrer de Verdi 12", city="Barcelona", district="Gràcia",
                neighborhood="Vila de Gràcia", operation_type="Venta", price=350000,
                previous_price=380000, bedrooms=2, bathrooms=1, superficie=70,
                features=["ascensor", "balcon"], agent_id=agent.id, agency_id=agency.id,
            ),
            Property(
                address="Passeig de Gràcia 80", city="Barcelona", district="Eixample",
                neighborhood="La Dreta de l'Eixample", operation_type="Alquiler", price=1800,
                bedrooms=3, bathrooms=2, superficie=110, features=["ascensor", "aire-acondicionado"],
                agent_id=agent.id,
            ),
            Property(
                address="Calle de Fuencarral 45", city="Madrid", district="Centro",
                neighborhood="Universidad", operation_type="Venta", price=420000,
                bedrooms=0, bathrooms=1, superficie=38, features=["exterior"],
            ),
        ])
        db.commit()
        print("Sample data inserted")
    finally:
        db.close()


if __name__ == "__main__":
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created successfully!")
    if "--seed" in sys.argv:
        seed()
