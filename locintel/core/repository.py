"""
Persistence collaborator for the location intelligence service.

The service only needs to look up a restaurant's coordinates and hand off
finished reports. SQLAlchemy work is synchronous and runs in a worker
thread so it does not block the event loop.
"""
import asyncio
import logging
from typing import Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from locintel.core import database
from locintel.core.models import LocationReportRecord, Restaurant
from locintel.core.schemas import GeoPoint, LocationReport, RestaurantLocation

logger = logging.getLogger(__name__)


class ReportRepository(Protocol):
    """What the orchestrator needs from persistence."""

    async def get_restaurant_by_id(self, restaurant_id: str) -> Optional[RestaurantLocation]:
        ...

    async def store_report(self, report: LocationReport) -> None:
        ...

    async def ping(self) -> bool:
        ...


class SqlAlchemyReportRepository:
    """ReportRepository over the ``restaurants`` and ``location_reports`` tables."""

    def __init__(self, engine: Engine, session_factory: Optional[sessionmaker] = None):
        self.engine = engine
        self.session_factory = session_factory or database.create_session_factory(engine)

    # =========================================================================
    # Restaurants
    # =========================================================================

    def _get_restaurant(self, restaurant_id: str) -> Optional[RestaurantLocation]:
        with database.session_scope(self.session_factory) as db:
            row = db.get(Restaurant, restaurant_id)
            if row is None:
                return None
            return RestaurantLocation(
                id=row.id,
                name=row.name,
                location=GeoPoint(latitude=row.latitude, longitude=row.longitude),
                address=row.address,
            )

    async def get_restaurant_by_id(self, restaurant_id: str) -> Optional[RestaurantLocation]:
        return await asyncio.to_thread(self._get_restaurant, restaurant_id)

    def add_restaurant(
        self,
        restaurant_id: str,
        name: str,
        latitude: float,
        longitude: float,
        address: Optional[str] = None,
    ) -> RestaurantLocation:
        """Insert or update a restaurant. Used for seeding."""
        with database.session_scope(self.session_factory) as db:
            row = db.get(Restaurant, restaurant_id)
            if row is None:
                row = Restaurant(id=restaurant_id)
                db.add(row)
            row.name = name
            row.latitude = latitude
            row.longitude = longitude
            row.address = address
            db.commit()

        logger.info(f"Saved restaurant {restaurant_id} ({name})")
        return RestaurantLocation(
            id=restaurant_id,
            name=name,
            location=GeoPoint(latitude=latitude, longitude=longitude),
            address=address,
        )

    # =========================================================================
    # Reports
    # =========================================================================

    def _store_report(self, report: LocationReport) -> None:
        with database.session_scope(self.session_factory) as db:
            db.add(
                LocationReportRecord(
                    restaurant_id=report.restaurant_id,
                    location_score=report.location_score,
                    radius_meters=report.radius_meters,
                    report=report.model_dump(mode="json"),
                    generated_at=report.generated_at,
                )
            )
            db.commit()

    async def store_report(self, report: LocationReport) -> None:
        await asyncio.to_thread(self._store_report, report)
        logger.debug(f"Stored location report for restaurant {report.restaurant_id}")

    def count_reports(self, restaurant_id: str) -> int:
        with database.session_scope(self.session_factory) as db:
            return (
                db.query(LocationReportRecord)
                .filter(LocationReportRecord.restaurant_id == restaurant_id)
                .count()
            )

    async def ping(self) -> bool:
        return await asyncio.to_thread(database.ping, self.engine)
