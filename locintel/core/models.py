"""
SQLAlchemy models for restaurants and stored location reports.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Index, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Restaurant(Base):
    """
    A restaurant whose location can be analyzed.

    Reports are generated for the restaurant's coordinates.
    """
    __tablename__ = "restaurants"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<Restaurant(id={self.id}, name={self.name})>"


class LocationReportRecord(Base):
    """
    Durable copy of a generated location report.

    The full report is stored as JSON; score and radius are broken out
    for querying.
    """
    __tablename__ = "location_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(String(64), nullable=False, index=True)
    location_score = Column(Integer, nullable=False)
    radius_meters = Column(Integer, nullable=False)
    report = Column(JSON, nullable=False)

    generated_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_location_reports_restaurant_generated", "restaurant_id", "generated_at"),
    )

    def __repr__(self):
        return (
            f"<LocationReportRecord(restaurant_id={self.restaurant_id}, "
            f"score={self.location_score})>"
        )
