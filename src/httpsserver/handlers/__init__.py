"""
Request handlers.

    StaticFileHandler   files under the static root (cache, stream, 404)
    HealthHandler       GET /api/health → 200 "OK"
"""

from .static import CachingStream, StaticFileHandler
from .health import HealthHandler, HEALTH_PATH

__all__ = [
    "StaticFileHandler",
    "CachingStream",
    "HealthHandler",
    "HEALTH_PATH",
]
