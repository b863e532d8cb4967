from sqlalchemy import Column, String, Integer, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.property import StringArray


class Agent(Base):
    """Real-estate agent and the neighborhoods they cover."""
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=True)
    surname = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    avatar = Column(Text, nullable=True)
    city = Column(String(100), nullable=True, index=True)
    influence_neighborhoods = Column(StringArray, nullable=True)
    years_of_experience = Column(Integer, nullable=True)
    languages_spoken = Column(StringArray, nullable=True)
    agent_type = Column(String(20), nullable=False, default="independent")  # "independent" or "agency"
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # Soft delete
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    properties = relationship("Property", back_populates="agent")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "surname": self.surname,
            "description": self.description,
            "avatar": self.avatar,
            "city": self.city,
            "influence_neighborhoods": list(self.influence_neighborhoods or []),
            "years_of_experience": self.years_of_experience,
            "agent_type": self.agent_type,
            "created_at": self.created_at,
        }
