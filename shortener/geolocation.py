"""
Best-effort approximate location of a click.

Lookup order:
  1) IP geolocation service (client IP when it is public, else our own)
  2) device coordinates shared by the client, reverse geocoded
  3) all fields "Unknown"

resolve() always returns a Location; every step's failure is logged and
contained.
"""
from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import Awaitable, Callable

import httpx

from shortener.config import settings
from shortener.schemas import UNKNOWN, ClickContext, Location

logger = logging.getLogger(__name__)

Coordinates = tuple[float, float]
CoordinatesProvider = Callable[[ClickContext], Awaitable[Coordinates | None]]

USER_AGENT = "url-shortener/0.1"


async def shared_coordinates(context: ClickContext) -> Coordinates | None:
    return context.coordinates


def is_public_ip(value: str | None) -> bool:
    if not value:
        return False
    try:
        return ipaddress.ip_address(value).is_global
    except ValueError:
        return False


class GeolocationResolver:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        ip_lookup_url: str = settings.ip_geolocation_url,
        client_ip_lookup_url: str = settings.ip_geolocation_client_url,
        reverse_geocode_url: str = settings.reverse_geocode_url,
        timeout: float = settings.geolocation_timeout_seconds,
        coordinates_provider: CoordinatesProvider = shared_coordinates,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, headers={"User-Agent": USER_AGENT})
        self.ip_lookup_url = ip_lookup_url
        self.client_ip_lookup_url = client_ip_lookup_url
        self.reverse_geocode_url = reverse_geocode_url
        self.timeout = timeout
        self.coordinates_provider = coordinates_provider

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def resolve(self, context: ClickContext | None = None) -> Location:
        context = context or ClickContext()

        try:
            location = await self.lookup_ip(context.client_ip)
            if location is not None:
                return location
        except Exception as e:
            logger.warning("Failed to fetch IP geolocation: %s", e)

        try:
            position = await asyncio.wait_for(self.coordinates_provider(context), timeout=self.timeout)
            if position is not None:
                return await self.reverse_geocode(*position)
        except asyncio.TimeoutError:
            logger.warning("Device geolocation timed out after %ss", self.timeout)
        except Exception as e:
            logger.warning("Failed to get device geolocation: %s", e)

        return Location()

    async def lookup_ip(self, client_ip: str | None = None) -> Location | None:
        if is_public_ip(client_ip):
            url = self.client_ip_lookup_url.format(ip=client_ip)
        else:
            url = self.ip_lookup_url

        response = await self.client.get(url)
        if not response.is_success:
            logger.warning("IP geolocation returned HTTP %s", response.status_code)
            return None

        data = response.json()
        if data.get("error"):
            logger.warning("IP geolocation refused lookup: %s", data.get("reason", "unknown reason"))
            return None

        return Location(
            country=data.get("country_name") or UNKNOWN,
            city=data.get("city") or UNKNOWN,
            region=data.get("region") or UNKNOWN,
        )

    async def reverse_geocode(self, latitude: float, longitude: float) -> Location:
        try:
            response = await self.client.get(
                self.reverse_geocode_url,
                params={"lat": latitude, "lon": longitude, "format": "json", "addressdetails": 1},
            )
            if response.is_success:
                address = response.json().get("address") or {}
                return Location(
                    country=address.get("country") or UNKNOWN,
                    city=address.get("city") or address.get("town") or address.get("village") or UNKNOWN,
                    region=address.get("state") or address.get("region") or UNKNOWN,
                )
            logger.warning("Reverse geocoding returned HTTP %s", response.status_code)
        except Exception as e:
            logger.warning("Reverse geocoding failed: %s", e)

        return Location()
