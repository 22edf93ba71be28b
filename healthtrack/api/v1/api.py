from fastapi import APIRouter

from healthtrack.api.v1.endpoints import activities
from healthtrack.api.v1.endpoints import rollups

api_router = APIRouter()

api_router.include_router(activities.router, prefix="/activities", tags=["activities"])
api_router.include_router(rollups.router, tags=["rollups"])
