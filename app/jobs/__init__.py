"""
Background Jobs Module

Handles scheduled tasks for:
- Location cache cleanup
- Popular pincode cache warming
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from app.jobs.cache_jobs import cleanup_location_cache, warm_popular_pincodes

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "cleanup_location_cache",
    "warm_popular_pincodes",
]
