"""
Location Intelligence API endpoints.

Thin layer over LocationIntelligenceService:
- Report generation for a stored restaurant
- Area cache invalidation
- Service health
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from locintel.core.api_errors import ConfigurationError, NotFoundError, ValidationError
from locintel.core.schemas import GeoPoint
from locintel.services.location_intelligence import LocationIntelligenceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/location-intelligence", tags=["Location Intelligence"])


# =============================================================================
# REQUEST MODELS
# =============================================================================


class CacheInvalidationRequest(BaseModel):
    """Request model for area cache invalidation."""
    latitude: float = Field(..., ge=-90.0, le=90.0, description="Area center latitude")
    longitude: float = Field(..., ge=-180.0, le=180.0, description="Area center longitude")
    radius_meters: Optional[int] = Field(
        None, gt=0, description="Only entries for this radius (default: all radii)"
    )


def get_service(request: Request) -> LocationIntelligenceService:
    """Dependency for the process-wide location intelligence service."""
    service = getattr(request.app.state, "location_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Location intelligence service not initialized")
    return service


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.get("/reports/{restaurant_id}")
async def get_location_report(
    restaurant_id: str,
    radius: Optional[int] = Query(None, description="Competitor search radius in meters (default 2000)"),
    force_refresh: bool = Query(False, description="Bypass report and section caches"),
    include_events: bool = Query(True, description="Include the local events section"),
    service: LocationIntelligenceService = Depends(get_service),
) -> Dict[str, Any]:
    """
    Generate the location intelligence report for a restaurant.

    **Returns:**
    - Location score (0-100) and recommendations
    - Competitor, traffic and events sections; a section that could not be
      produced is marked `unavailable` with a reason
    """
    options: Dict[str, Any] = {"force_refresh": force_refresh, "include_events": include_events}
    if radius is not None:
        options["radius_meters"] = radius

    try:
        report = await service.generate_report(restaurant_id, options)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConfigurationError as e:
        logger.error(f"Configuration error generating report for {restaurant_id}: {e}")
        raise HTTPException(status_code=500, detail=e.message)

    return report.model_dump(mode="json")


@router.post("/cache/invalidate")
async def invalidate_cache(
    request: CacheInvalidationRequest,
    service: LocationIntelligenceService = Depends(get_service),
) -> Dict[str, Any]:
    """
    Drop cached searches, analyses and reports around a point.

    `invalidated` is false when the cache backend cannot enumerate keys.
    """
    center = GeoPoint(latitude=request.latitude, longitude=request.longitude)
    invalidated = await service.invalidate_area(center, request.radius_meters)
    return {
        "invalidated": invalidated,
        "latitude": request.latitude,
        "longitude": request.longitude,
        "radius_meters": request.radius_meters,
    }


@router.get("/health")
async def health(
    service: LocationIntelligenceService = Depends(get_service),
) -> Dict[str, Any]:
    """Provider, cache and database health."""
    return await service.health_status()
