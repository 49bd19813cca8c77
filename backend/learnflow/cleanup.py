from __future__ import annotations
from datetime import datetime, timedelta

from .db import utcnow
from .repositories import TtsCacheRepository
from .settings import settings


def purge_expired_tts_cache(cache: TtsCacheRepository, *, now: datetime | None = None) -> int:
	# Entries past the max age are already ignored on read; this only reclaims space
	threshold = (now or utcnow()) - timedelta(days=settings.tts_cache_max_age_days)
	return cache.purge_older_than(threshold)
