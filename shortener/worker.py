from __future__ import annotations

import asyncio
import logging

from shortener.service import UrlShortenerService

logger = logging.getLogger(__name__)


def sweep_expired_once(service: UrlShortenerService) -> int:
    """
    Remove expired records so their short codes can be reused.
    Returns the number of records removed.
    """
    return service.clear_expired_urls()


async def sweep_forever(service: UrlShortenerService, interval_seconds: float) -> None:
    """
    Periodic sweep, run as a task inside the web app. It shares the app's
    service, so the sweep never writes a stale copy of the store.
    """
    while True:
        try:
            sweep_expired_once(service)
        except Exception:
            logger.exception("Error during expiry sweep")
        await asyncio.sleep(interval_seconds)
