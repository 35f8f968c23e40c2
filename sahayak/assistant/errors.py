"""Exception hierarchy for the Sahayak assistant."""

from __future__ import annotations


class SahayakError(RuntimeError):
    """Base class for assistant failures."""


class ConfigError(SahayakError):
    """Raised for unrecognized modes or unusable configuration values."""


class CompletionError(SahayakError):
    """The remote completion request failed."""

    @property
    def is_auth_error(self) -> bool:
        return False


class NetworkError(CompletionError):
    """The completion endpoint could not be reached."""


class APIError(CompletionError):
    """The completion endpoint answered with a non-2xx status."""

    def __init__(self, status: int, message: str | None = None) -> None:
        self.status = status
        self.api_message = message or "Unknown error"
        super().__init__(f"API error: {status} - {self.api_message}")

    @property
    def is_auth_error(self) -> bool:
        if self.status in (401, 403):
            return True
        return "api key" in self.api_message.lower()


class CredentialsError(CompletionError):
    """No API key is configured for the selected provider."""

    @property
    def is_auth_error(self) -> bool:
        return True


class ResponseFormatError(CompletionError):
    """The completion response did not carry generated text."""


class SpeechError(SahayakError):
    """Base class for speech capture/synthesis failures."""


class SpeechUnsupportedError(SpeechError):
    """The platform lacks speech capture or synthesis."""


class SpeechRuntimeError(SpeechError):
    """Speech capture or synthesis failed mid-operation."""


class GeolocationError(SahayakError):
    """Location lookup failed; reason is one of denied/unavailable/timeout."""

    DENIED = "denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"

    def __init__(self, reason: str, detail: str | None = None) -> None:
        self.reason = reason
        super().__init__(detail or reason)


class DispatchError(SahayakError):
    """A platform action (call/SMS/chat link) failed to launch."""
