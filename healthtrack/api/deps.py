from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from healthtrack.core import security
from healthtrack.core.config import settings
from healthtrack.core.exceptions import Unauthenticated
from healthtrack.crud.base import ActivityStore
from healthtrack.services.activity_service import ActivityService

reusable_bearer = HTTPBearer(auto_error=False)


@lru_cache
def get_activity_store() -> ActivityStore:
    if settings.STORAGE_BACKEND == "memory":
        from healthtrack.crud.memory import InMemoryActivityStore
        return InMemoryActivityStore()
    from healthtrack.crud.activity import SQLActivityStore
    return SQLActivityStore()


@lru_cache
def get_activity_service() -> ActivityService:
    return ActivityService(get_activity_store(), max_retries=settings.ROLLUP_MAX_RETRIES)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(reusable_bearer),
) -> str:
    """Identify the caller from the bearer token's `sub` claim"""
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Not authenticated")
    return security.decode_subject(credentials.credentials)
