from sqlalchemy import Column, String, Integer, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.property import StringArray


class Agency(Base):
    """Real-estate agency and the neighborhoods it operates in."""
    __tablename__ = "agencies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    agency_name = Column(String(255), nullable=False, index=True)
    agency_address = Column(String(500), nullable=True)
    agency_description = Column(Text, nullable=True)
    agency_logo = Column(Text, nullable=True)
    agency_phone = Column(String(50), nullable=True)
    agency_website = Column(Text, nullable=True)
    city = Column(String(100), nullable=True, index=True)
    influence_neighborhoods = Column(StringArray, nullable=True)
    supported_languages = Column(StringArray, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # Soft delete
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    properties = relationship("Property", back_populates="agency")

    def to_dict(self):
        return {
            "id": self.id,
            "agency_name": self.agency_name,
            "agency_address": self.agency_address,
            "agency_description": self.agency_description,
            "agency_logo": self.agency_logo,
            "city": self.city,
            "influence_neighborhoods": list(self.influence_neighborhoods or []),
            "created_at": self.created_at,
        }
