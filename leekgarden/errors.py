"""Exception hierarchy shared by the garden client."""

from __future__ import annotations

from typing import Optional


class GardenError(RuntimeError):
    """Base class for client failures."""


class ConfigError(GardenError, ValueError):
    """Raised when settings or run options are invalid."""


class AuthError(GardenError):
    """Raised when the service refuses the account credentials."""


class HttpError(GardenError):
    """Raised when an API call fails for any reason but rate limiting."""

    def __init__(self, url: str, status: Optional[int] = None, detail: str = "") -> None:
        message = f"{url} failed"
        if status is not None:
            message += f" with status {status}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.url = url
        self.status = status
        self.detail = detail

    @property
    def auth_failure(self) -> bool:
        return self.status in (401, 403)


class HistoryFetchError(GardenError):
    """Raised when the fight history cannot be read."""


class ChannelTransportError(GardenError):
    """Raised when the push channel socket cannot be opened or read."""


class DurableStoreError(GardenError):
    """Raised when the join store cannot be read or written."""


__all__ = [
    "AuthError",
    "ChannelTransportError",
    "ConfigError",
    "DurableStoreError",
    "GardenError",
    "HistoryFetchError",
    "HttpError",
]
