"""
Emergency contact flow

The emergency button runs outside the conversation's request/response path:

1. trigger(): try once for a location fix (high accuracy, bounded timeout,
   never cached), then always produce the contact list: primary contact,
   secondary contacts, and the configured emergency-service numbers.
2. select_contact(): build the alert text from the message template with the
   contact name and location substituted. With a fix, a maps link and a
   details block are appended; otherwise a fallback line is appended. The
   alert offers three dispatch choices: voice call, chat message, and SMS.
3. dispatch(): launch the chosen platform URI. Failures are logged and
   reported back to the caller, never raised.

Location failures only affect enrichment; the contact list is shown either way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sahayak.location import Geolocator, LocationFix

from .config import EmergencyConfig, EmergencyContact
from .dispatch import DispatchChannel, PlatformLauncher, build_dispatch_uri
from .errors import DispatchError, GeolocationError

LOGGER = logging.getLogger(__name__)

LOCATION_FALLBACK = "Location could not be determined."
UNKNOWN_LOCATION = "an unknown location"

GEOLOCATION_NOTICES = {
    GeolocationError.DENIED: "Location access was denied. Emergency contacts won't receive precise location.",
    GeolocationError.UNAVAILABLE: "Location information is unavailable.",
    GeolocationError.TIMEOUT: "Location request timed out.",
}


@dataclass(frozen=True)
class EmergencyPrompt:
    contacts: tuple[EmergencyContact, ...]
    location: LocationFix | None = None
    notice: str | None = None


@dataclass(frozen=True)
class EmergencyAlert:
    contact: EmergencyContact
    message: str
    channels: tuple[DispatchChannel, ...] = field(
        default=(DispatchChannel.CALL, DispatchChannel.WHATSAPP, DispatchChannel.SMS)
    )

    def uri_for(self, channel: DispatchChannel) -> str:
        return build_dispatch_uri(channel, self.contact.phone, self.message)


def build_contact_list(config: EmergencyConfig) -> tuple[EmergencyContact, ...]:
    contacts = [config.primary_contact, *config.secondary_contacts, *config.services]
    return tuple(contact for contact in contacts if contact.phone)


def build_alert_message(template: str, contact_name: str, location: LocationFix | None) -> str:
    if location is not None:
        coordinates = f"{location.latitude}, {location.longitude}"
    else:
        coordinates = UNKNOWN_LOCATION
    message = template.replace("[NAME]", contact_name).replace("[LOCATION]", coordinates)
    if location is None:
        return f"{message}\n\n{LOCATION_FALLBACK}"
    accuracy = f"{location.accuracy:g} meters" if location.accuracy is not None else "unknown"
    return (
        f"{message}\n\nMy Location:\n{location.maps_url}"
        "\n\nLocation Details:"
        f"\n- Latitude: {location.latitude}"
        f"\n- Longitude: {location.longitude}"
        f"\n- Accuracy: {accuracy}"
        f"\n- Timestamp: {location.timestamp.strftime('%Y-%m-%d %H:%M:%S')}"
    )


class EmergencyService:
    """Runs the emergency trigger/select/dispatch steps."""

    def __init__(
        self,
        config: EmergencyConfig,
        geolocator: Geolocator,
        launcher: PlatformLauncher,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.geolocator = geolocator
        self.launcher = launcher
        self._logger = logger or LOGGER
        self.last_location: LocationFix | None = None

    async def trigger(self) -> EmergencyPrompt:
        self.last_location = None
        notice: str | None = None
        if self.config.attempt_geolocation:
            try:
                self.last_location = await self.geolocator.locate(
                    timeout=self.config.geolocation_timeout,
                    high_accuracy=True,
                )
                self._logger.info(
                    "[emergency] Location obtained: %s,%s",
                    self.last_location.latitude,
                    self.last_location.longitude,
                )
            except GeolocationError as exc:
                self._logger.warning("[emergency] Geolocation error (%s): %s", exc.reason, exc)
                notice = GEOLOCATION_NOTICES.get(exc.reason, GEOLOCATION_NOTICES[GeolocationError.UNAVAILABLE])
        else:
            self._logger.warning("[emergency] Geolocation disabled; alerts will not include location")
        return EmergencyPrompt(
            contacts=build_contact_list(self.config),
            location=self.last_location,
            notice=notice,
        )

    def select_contact(self, contact: EmergencyContact) -> EmergencyAlert:
        message = build_alert_message(self.config.message_template, contact.name, self.last_location)
        return EmergencyAlert(contact=contact, message=message)

    async def dispatch(self, alert: EmergencyAlert, channel: DispatchChannel) -> bool:
        uri = alert.uri_for(channel)
        try:
            await self.launcher.launch(uri)
        except DispatchError as exc:
            self._logger.error("[emergency] Error initiating %s to %s: %s", channel.value, alert.contact.name, exc)
            return False
        self._logger.info("[emergency] %s dispatched to %s", channel.label, alert.contact.name)
        return True
