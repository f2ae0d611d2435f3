"""
Liveness endpoint.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter

from memospark import __version__
from memospark.db import is_database_configured, ping

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """
    Service liveness, with database reachability when one is configured.

    Always 200; a degraded database is reported in the body.
    """
    database: Dict[str, Any] = {"configured": is_database_configured()}
    if database["configured"]:
        database["connected"] = await ping()

    status = "healthy"
    if database["configured"] and not database["connected"]:
        status = "degraded"
        logger.warning("Health check: database unreachable")

    return {
        "status": status,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": database,
    }
