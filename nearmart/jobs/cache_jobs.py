"""
Cache Management Jobs

Periodic housekeeping for the geocoding cache.
"""

import logging
from datetime import datetime, timezone

from nearmart.services.cache_service import get_cache

logger = logging.getLogger(__name__)


async def cleanup_geocode_cache() -> int:
    """
    Drop expired geocoding entries.

    Redis expires keys natively, so this only does work for the in-memory
    backend. Returns the number of entries removed.
    """
    start_time = datetime.now(timezone.utc)
    try:
        removed = await get_cache().cleanup_expired()
    except Exception as e:
        logger.error(f"Geocode cache cleanup failed: {e}")
        return 0

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Geocode cache cleanup removed {removed} expired entries in {duration:.2f}s")
    return removed
