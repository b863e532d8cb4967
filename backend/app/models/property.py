"""
Property model - a listing for sale or rent.
"""
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Text, Index, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base

# Postgres stores tag lists as text[]; SQLite (tests, local dev) falls back to JSON
StringArray = ARRAY(String).with_variant(JSON(), "sqlite")


class Property(Base):
    """Real-estate listing."""
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(100), nullable=True)  # Internal reference
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=False, default="")

    # Location
    address = Column(String(500), nullable=False)
    city = Column(String(100), nullable=True, index=True)
    district = Column(String(100), nullable=True, index=True)
    neighborhood = Column(String(255), nullable=False, index=True)
    latitude = Column(String(32), nullable=True)
    longitude = Column(String(32), nullable=True)

    # Listing
    type = Column(String(50), nullable=True)  # piso, casa, atico...
    operation_type = Column(String(20), nullable=False)  # "Venta" or "Alquiler"
    price = Column(Integer, nullable=False)
    previous_price = Column(Integer, nullable=True)  # For price-drop sorting
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Integer, nullable=True)
    superficie = Column(Integer, nullable=True)  # Area in m2
    features = Column(StringArray, nullable=True)  # Feature tag ids
    image_urls = Column(StringArray, nullable=True)
    main_image_index = Column(Integer, default=0)

    # Ownership
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=True, index=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    agent = relationship("Agent", back_populates="properties")
    agency = relationship("Agency", back_populates="properties")

    __table_args__ = (
        Index('idx_properties_operation_price', 'operation_type', 'price'),
        Index('idx_properties_city_neighborhood', 'city', 'neighborhood'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "reference": self.reference,
            "title": self.title,
            "address": self.address,
            "city": self.city,
            "district": self.district,
            "neighborhood": self.neighborhood,
            "type": self.type,
            "operation_type": self.operation_type,
            "price": self.price,
            "previous_price": self.previous_price,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "superficie": self.superficie,
            "features": list(self.features or []),
            "image_urls": list(self.image_urls or []),
            "main_image_index": self.main_image_index,
            "agent_id": self.agent_id,
            "agency_id": self.agency_id,
            "created_at": self.created_at,
        }
