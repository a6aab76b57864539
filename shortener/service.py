from __future__ import annotations

import asyncio
import json
import logging
import secrets
import string
import threading
from datetime import datetime, timedelta
from typing import Callable
from urllib.parse import urlsplit
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from shortener.config import settings
from shortener.errors import (
    CodeGenerationFailed,
    InvalidShortCode,
    InvalidUrl,
    InvalidValidityPeriod,
    QuotaExceeded,
    ShortCodeTaken,
)
from shortener.geolocation import GeolocationResolver
from shortener.schemas import ClickContext, ClickRecord, ShortenedUrlRecord, UrlStatistics
from shortener.storage import Storage, storage_from_url
from shortener.validation import (
    format_expiry_date,
    parse_validity_period,
    utcnow,
    validate_short_code,
    validate_url,
    validate_validity_period,
)

logger = logging.getLogger(__name__)

# Base62: A-Z a-z 0-9
BASE62_ALPHABET = string.ascii_letters + string.digits

DIRECT_ACCESS = "Direct access"
UNKNOWN_REFERRER = "Unknown referrer"

_records_adapter = TypeAdapter(list[ShortenedUrlRecord])


def generate_code(length: int) -> str:
    return "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))


def generate_id() -> str:
    return uuid4().hex


def click_source(referrer: str | None) -> str:
    """Hostname of the referrer, or a marker when there is none or it is unreadable."""
    if not referrer:
        return DIRECT_ACCESS
    try:
        hostname = urlsplit(referrer).hostname
    except ValueError:
        return UNKNOWN_REFERRER
    return hostname or UNKNOWN_REFERRER


class UrlShortenerService:
    """
    Owns the collection of shortened URLs.

    The collection lives in memory and is written back to `storage` as one
    JSON blob after every mutation. Write failures are logged and the
    in-memory state stays authoritative for the rest of the process.
    """

    def __init__(
        self,
        storage: Storage,
        resolver: GeolocationResolver,
        *,
        base_url: str = settings.base_url,
        storage_key: str = settings.storage_key,
        code_length: int = settings.code_length,
        default_validity_minutes: int = settings.default_validity_minutes,
        max_urls: int | None = settings.max_urls,
        max_code_attempts: int = settings.max_code_attempts,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.resolver = resolver
        self.base_url = base_url.rstrip("/")
        self.storage_key = storage_key
        self.code_length = code_length
        self.default_validity_minutes = default_validity_minutes
        self.max_urls = max_urls or None
        self.max_code_attempts = max_code_attempts
        self.clock = clock

        self._urls: list[ShortenedUrlRecord] = []
        self._used_codes: set[str] = set()
        self._pending: set[asyncio.Task] = set()
        self._lock = threading.RLock()

        self._load()

    # persistence

    def _load(self) -> None:
        try:
            raw = self.storage.get(self.storage_key)
        except Exception:
            logger.exception("Error loading URLs from storage")
            return
        if not raw:
            return

        try:
            records = _records_adapter.validate_python(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.error("Discarding unreadable URL collection under %r: %s", self.storage_key, e)
            return

        seen: set[str] = set()
        for record in records:
            if record.id in seen:
                logger.warning("Skipping duplicate record id %s", record.id)
                continue
            seen.add(record.id)
            self._urls.append(record)
        self._rebuild_used_codes()
        logger.info("Loaded %d shortened URLs", len(self._urls))

    def _save(self) -> None:
        payload = json.dumps([r.model_dump(mode="json", by_alias=True) for r in self._urls])
        try:
            self.storage.set(self.storage_key, payload)
        except Exception:
            logger.exception("Error saving URLs to storage")

    def _rebuild_used_codes(self) -> None:
        self._used_codes = {r.short_code.lower() for r in self._urls}

    # lookups

    def _find_by_code(self, short_code: str) -> ShortenedUrlRecord | None:
        folded = short_code.lower()
        return next((r for r in self._urls if r.short_code.lower() == folded), None)

    def _index_of(self, url_id: str) -> int | None:
        return next((i for i, r in enumerate(self._urls) if r.id == url_id), None)

    def is_code_reserved(self, short_code: str) -> bool:
        return short_code.lower() in self._used_codes

    # creation

    def _new_code(self) -> str:
        for _ in range(self.max_code_attempts):
            code = generate_code(self.code_length)
            if not self.is_code_reserved(code):
                return code
        raise CodeGenerationFailed(self.max_code_attempts)

    async def create_short_url(
        self,
        original_url: str,
        validity_period: str = "",
        preferred_short_code: str = "",
    ) -> ShortenedUrlRecord:
        """
        Validate the request, reserve a short code and persist the new record.

        Raises InvalidUrl, InvalidValidityPeriod, InvalidShortCode,
        ShortCodeTaken, QuotaExceeded or CodeGenerationFailed. Nothing is
        stored when a check fails.
        """
        if not validate_url(original_url):
            raise InvalidUrl()

        if validity_period:
            if not validate_validity_period(validity_period):
                raise InvalidValidityPeriod()
            minutes = parse_validity_period(validity_period)
        else:
            minutes = self.default_validity_minutes

        short_code = (preferred_short_code or "").strip()
        if short_code and not validate_short_code(short_code):
            raise InvalidShortCode()

        with self._lock:
            now = self.clock()
            if self.max_urls is not None:
                live = sum(1 for r in self._urls if r.is_live(now))
                if live >= self.max_urls:
                    raise QuotaExceeded(self.max_urls)

            if short_code:
                if self.is_code_reserved(short_code):
                    raise ShortCodeTaken()
            else:
                short_code = self._new_code()

            record = ShortenedUrlRecord(
                id=generate_id(),
                original_url=original_url,
                short_code=short_code,
                short_url=f"{self.base_url}/{short_code}",
                validity_period=minutes,
                created_at=now,
                expiry_date=now + timedelta(minutes=minutes),
            )
            self._urls.append(record)
            self._used_codes.add(short_code.lower())
            self._save()

        logger.info("Created %s -> %s (expires %s)", record.short_code, record.original_url, format_expiry_date(record.expiry_date))
        return record

    # redirects and click tracking

    async def get_original_url(
        self,
        short_code: str,
        track_click: bool = True,
        context: ClickContext | None = None,
    ) -> str | None:
        """
        Destination for a live short code, or None when unknown or expired.

        The click is recorded by a background task that the caller does not
        wait for.
        """
        record = self._find_by_code(short_code)
        if record is None or not record.is_live(self.clock()):
            logger.info("No live URL for short code %r", short_code)
            return None

        if track_click:
            task = asyncio.create_task(self._track_click(record.id, context or ClickContext()))
            self._pending.add(task)
            task.add_done_callback(self._click_task_done)

        return record.original_url

    def _click_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Failed to track click: %s", task.exception())

    async def _track_click(self, url_id: str, context: ClickContext) -> None:
        if self._index_of(url_id) is None:
            return

        location = await self.resolver.resolve(context)
        click = ClickRecord(
            id=generate_id(),
            timestamp=self.clock(),
            source=click_source(context.referrer),
            user_agent=context.user_agent,
            location=location,
        )

        with self._lock:
            # the record may have been deleted while the location was resolving
            index = self._index_of(url_id)
            if index is None:
                return
            self._urls[index] = self._urls[index].with_click(click)
            self._save()

    async def wait_for_clicks(self) -> None:
        """Wait until every in-flight click tracking task has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # reads

    def get_shortened_urls(self) -> tuple[ShortenedUrlRecord, ...]:
        return tuple(self._urls)

    def get_url(self, short_code: str) -> ShortenedUrlRecord | None:
        return self._find_by_code(short_code)

    def get_statistics(self) -> UrlStatistics:
        now = self.clock()
        urls = tuple(self._urls)

        active = sum(1 for r in urls if r.is_live(now))
        total_clicks = sum(r.click_count for r in urls)

        # first record wins a tie; a record with no clicks is never "most clicked"
        most_clicked = None
        for r in urls:
            if r.click_count > (most_clicked.click_count if most_clicked else 0):
                most_clicked = r

        return UrlStatistics(
            total_urls=len(urls),
            active_urls=active,
            expired_urls=len(urls) - active,
            total_clicks=total_clicks,
            average_clicks_per_url=total_clicks / len(urls) if urls else 0,
            most_clicked_url=most_clicked,
        )

    # removal

    def clear_expired_urls(self) -> int:
        """Drop expired records and release their short codes. Returns how many were removed."""
        with self._lock:
            now = self.clock()
            before = len(self._urls)
            survivors = [r for r in self._urls if r.is_live(now)]
            removed = before - len(survivors)
            # nothing to drop, so leave the stored blob alone
            if removed:
                self._urls = survivors
                self._rebuild_used_codes()
                self._save()

        if removed:
            logger.info("Cleared %d expired URLs", removed)
        return removed

    def delete_url(self, url_id: str) -> None:
        with self._lock:
            index = self._index_of(url_id)
            if index is None:
                return
            record = self._urls.pop(index)
            self._used_codes.discard(record.short_code.lower())
            self._save()

        logger.info("Deleted %s (%s)", record.short_code, record.id)


def build_service(config=settings) -> UrlShortenerService:
    """Wire a service from settings: storage backend, geolocation resolver, limits."""
    return UrlShortenerService(
        storage_from_url(config.storage_url),
        GeolocationResolver(
            ip_lookup_url=config.ip_geolocation_url,
            client_ip_lookup_url=config.ip_geolocation_client_url,
            reverse_geocode_url=config.reverse_geocode_url,
            timeout=config.geolocation_timeout_seconds,
        ),
        base_url=config.base_url,
        storage_key=config.storage_key,
        code_length=config.code_length,
        default_validity_minutes=config.default_validity_minutes,
        max_urls=config.max_urls,
        max_code_attempts=config.max_code_attempts,
    )
