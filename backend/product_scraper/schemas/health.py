"""Health check schemas."""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    """Health check response schema."""

    status: str
    engine: str
    cache_backend: str
    queue_pending: int = 0
    services: Dict[str, Optional[Any]] = {}
