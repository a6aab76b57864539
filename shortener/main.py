from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from shortener.config import settings
from shortener.errors import ShortenerError
from shortener.schemas import ClickContext, ShortenedUrlRecord, ShortenRequest, SweepResponse, UrlStatistics
from shortener.service import UrlShortenerService, build_service
from shortener.telemetry import configure_logging, shutdown_logging
from shortener.worker import sweep_forever

logger = logging.getLogger(__name__)


def click_context(request: Request) -> ClickContext:
    """
    Who is following the link. Device coordinates are only known when the
    client chose to send them (X-Geo-Latitude / X-Geo-Longitude).
    """
    coordinates = None
    lat = request.headers.get("x-geo-latitude")
    lon = request.headers.get("x-geo-longitude")
    if lat and lon:
        try:
            coordinates = (float(lat), float(lon))
        except ValueError:
            logger.warning("Ignoring malformed coordinates %r, %r", lat, lon)

    return ClickContext(
        referrer=request.headers.get("referer"),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
        coordinates=coordinates,
    )


def get_service(request: Request) -> UrlShortenerService:
    return request.app.state.service


def create_app(
    service: UrlShortenerService | None = None,
    sweep_interval_seconds: float = settings.sweep_interval_seconds,
) -> FastAPI:
    """
    Build the web app. Without an explicit service one is built from
    settings when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, settings.telemetry_url)
        if getattr(app.state, "service", None) is None:
            app.state.service = build_service(settings)
        svc: UrlShortenerService = app.state.service

        sweeper = None
        if sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(sweep_forever(svc, sweep_interval_seconds))
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper
            await svc.wait_for_clicks()
            await svc.resolver.aclose()
            shutdown_logging()

    app = FastAPI(title="URL Shortener", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(ShortenerError)
    async def shortener_error(request: Request, exc: ShortenerError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "ok",
            "service": "url-shortener",
            "base_url": settings.base_url,
        }

    @app.post("/shorten", response_model=ShortenedUrlRecord, status_code=201)
    async def create_short_url(
        payload: ShortenRequest,
        service: UrlShortenerService = Depends(get_service),
    ) -> ShortenedUrlRecord:
        return await service.create_short_url(
            payload.original_url,
            payload.validity_period,
            payload.preferred_short_code,
        )

    @app.get("/urls", response_model=list[ShortenedUrlRecord])
    async def list_urls(service: UrlShortenerService = Depends(get_service)) -> list[ShortenedUrlRecord]:
        return list(service.get_shortened_urls())

    @app.post("/urls/clear-expired", response_model=SweepResponse)
    async def clear_expired(service: UrlShortenerService = Depends(get_service)) -> SweepResponse:
        return SweepResponse(removed=service.clear_expired_urls())

    @app.get("/urls/{code}", response_model=ShortenedUrlRecord)
    async def get_url(code: str, service: UrlShortenerService = Depends(get_service)) -> ShortenedUrlRecord:
        record = service.get_url(code)
        if record is None:
            raise HTTPException(status_code=404, detail="Short code not found")
        return record

    @app.delete("/urls/{url_id}", status_code=204)
    async def delete_url(url_id: str, service: UrlShortenerService = Depends(get_service)) -> Response:
        service.delete_url(url_id)
        return Response(status_code=204)

    @app.get("/statistics", response_model=UrlStatistics)
    async def statistics(service: UrlShortenerService = Depends(get_service)) -> UrlStatistics:
        return service.get_statistics()

    @app.get("/{code}")
    async def redirect(
        code: str,
        request: Request,
        service: UrlShortenerService = Depends(get_service),
    ) -> RedirectResponse:
        """
        Redirect hot path:
        - resolve the destination (unknown and expired codes are a 404)
        - record the click in the background
        """
        original_url = await service.get_original_url(code, context=click_context(request))
        if original_url is None:
            raise HTTPException(status_code=404, detail="URL not found or expired")

        logger.info("Redirecting %s -> %s", code, original_url)
        return RedirectResponse(url=original_url, status_code=302)

    return app


app = create_app()
