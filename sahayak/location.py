"""Best-effort device location for emergency alerts."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from sahayak.assistant.errors import GeolocationError

LOGGER = logging.getLogger(__name__)

LAT_LON_PATTERN = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")


@dataclass(slots=True)
class LocationFix:
    latitude: float
    longitude: float
    accuracy: float | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now().astimezone())

    @property
    def maps_url(self) -> str:
        return f"https://www.google.com/maps?q={self.latitude},{self.longitude}"


def parse_lat_lon(raw: str | None) -> tuple[float, float] | None:
    if not raw:
        return None
    match = LAT_LON_PATTERN.match(raw)
    if not match:
        return None
    latitude = float(match.group(1))
    longitude = float(match.group(2))
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        return None
    return latitude, longitude


class Geolocator:
    """Single-attempt location lookup. Raises GeolocationError on failure."""

    async def locate(self, *, timeout: float, high_accuracy: bool = True) -> LocationFix:
        raise GeolocationError(GeolocationError.UNAVAILABLE, "Geolocation is not supported")


class StaticGeolocator(Geolocator):
    """Location configured by the installer ("lat,lon")."""

    def __init__(self, latitude: float, longitude: float, accuracy: float | None = None) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy = accuracy

    async def locate(self, *, timeout: float, high_accuracy: bool = True) -> LocationFix:
        return LocationFix(latitude=self.latitude, longitude=self.longitude, accuracy=self.accuracy)


class IpGeolocator(Geolocator):
    """Approximate location from an IP geolocation service (ip-api.com compatible).

    Each call performs a fresh lookup; fixes are never cached.
    """

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.url = url
        self._client = client
        self._logger = logger or LOGGER

    async def locate(self, *, timeout: float, high_accuracy: bool = True) -> LocationFix:
        try:
            payload = await asyncio.wait_for(self._fetch(timeout), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise GeolocationError(GeolocationError.TIMEOUT, "Location request timed out") from exc
        except httpx.TimeoutException as exc:
            raise GeolocationError(GeolocationError.TIMEOUT, "Location request timed out") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            reason = GeolocationError.DENIED if status in (401, 403) else GeolocationError.UNAVAILABLE
            raise GeolocationError(reason, f"Location service returned HTTP {status}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise GeolocationError(GeolocationError.UNAVAILABLE, f"Location lookup failed: {exc}") from exc
        return self._parse(payload)

    async def _fetch(self, timeout: float) -> dict:
        if self._client is not None:
            response = await self._client.get(self.url, headers={"Cache-Control": "no-cache"})
            response.raise_for_status()
            return response.json()
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(self.url, headers={"Cache-Control": "no-cache"})
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _parse(payload: object) -> LocationFix:
        if not isinstance(payload, dict):
            raise GeolocationError(GeolocationError.UNAVAILABLE, "Location information is unavailable")
        if payload.get("status") not in (None, "success"):
            raise GeolocationError(
                GeolocationError.UNAVAILABLE,
                str(payload.get("message") or "Location information is unavailable"),
            )
        latitude = payload.get("lat", payload.get("latitude"))
        longitude = payload.get("lon", payload.get("longitude"))
        try:
            lat = float(latitude)  # type: ignore[arg-type]
            lon = float(longitude)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise GeolocationError(GeolocationError.UNAVAILABLE, "Location information is unavailable") from exc
        accuracy = payload.get("accuracy")
        try:
            accuracy_value = float(accuracy) if accuracy is not None else None
        except (TypeError, ValueError):
            accuracy_value = None
        return LocationFix(latitude=lat, longitude=lon, accuracy=accuracy_value)


def build_geolocator(
    static_location: str | None,
    geolocation_url: str | None,
    logger: logging.Logger | None = None,
) -> Geolocator:
    coords = parse_lat_lon(static_location)
    if coords:
        return StaticGeolocator(*coords)
    if static_location:
        (logger or LOGGER).warning("[location] Ignoring unparseable SAHAYAK_LOCATION %r", static_location)
    if geolocation_url:
        return IpGeolocator(geolocation_url, logger=logger)
    return Geolocator()
