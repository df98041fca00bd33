"""
Background Jobs Module

Handles scheduled tasks for:
- Geocoding cache cleanup
"""

from nearmart.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from nearmart.jobs.cache_jobs import cleanup_geocode_cache

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "cleanup_geocode_cache",
]
