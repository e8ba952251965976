"""Failure taxonomy for the enrichment job orchestrator."""

from __future__ import annotations


class EnrichmentError(Exception):
    """Base class; ``message`` is safe to show to an end user."""

    default_message = "Enrichment request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NoValidTargetsError(EnrichmentError):
    default_message = "No valid leads found to enrich"


class QuotaExceededError(EnrichmentError):
    def __init__(self, needed: int, remaining: int, resets_at: str | None = None, message: str | None = None) -> None:
        self.needed = needed
        self.remaining = remaining
        self.resets_at = resets_at
        super().__init__(message or quota_refusal_message(needed, remaining, resets_at))


class LaunchTransportError(EnrichmentError):
    default_message = "Failed to start enrichment"


class PollTransportError(EnrichmentError):
    default_message = "Failed to fetch enrichment status"


class ControlTransportError(EnrichmentError):
    def __init__(self, action: str, message: str | None = None) -> None:
        self.action = action
        super().__init__(message or f"Failed to {action} enrichment.")


class JobAlreadyActiveError(EnrichmentError):
    default_message = "An enrichment job is already running for this list"


class StoreError(EnrichmentError):
    default_message = "Job store unavailable"


class ApiError(EnrichmentError):
    """Raised by the backend client; ``path`` is the endpoint that failed."""

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"Request to {path} failed")


class ApiTransportError(ApiError):
    """No HTTP response was received (connect error, timeout, protocol error)."""


class ApiStatusError(ApiError):
    def __init__(self, path: str, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(path, f"HTTP {status_code} from {path}")


def quota_refusal_message(needed: int, remaining: int, resets_at: str | None) -> str:
    reset = resets_at or "an unknown time"
    return (
        f"Not enough quota! You need {needed} leads but only have {remaining} remaining. "
        f"Quota resets at {reset}"
    )
