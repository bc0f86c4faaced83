"""SQLAlchemy tables."""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, JSON, String, Text

from cityguide.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Trip(Base):
    __tablename__ = "trips"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    starting_point = Column(Text, nullable=True)
    destination = Column(Text, nullable=False)
    travel_date = Column(Date, nullable=False, index=True)
    duration = Column(Integer, nullable=False)
    interests = Column(JSON, nullable=False, default=list)
    suggested_places = Column(JSON, nullable=False, default=list)
    preferred_travel_mode = Column(String, nullable=False, default="car")
    shortest_route_optimization = Column(Boolean, nullable=False, default=False)
    show_top_rated_places = Column(Boolean, nullable=False, default=False)
    avoid_crowded_places = Column(Boolean, nullable=False, default=False)
    send_email_copy = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
