"""Authenticated HTTP session against the LeekWars API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

import httpx

from .config import RATE_LIMIT_COOLDOWN, GardenConfig
from .errors import AuthError, ConfigError, HttpError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class Session:
    """Identity obtained by the last successful login."""

    farmer_id: int
    leeks: List[int]
    token: Optional[str] = None
    farmer: Dict[str, Any] = field(default_factory=dict, repr=False)

    def leek(self, index: int) -> int:
        """Return the leek at the 1-based ``index`` of the sorted leek list."""

        if not 1 <= index <= len(self.leeks):
            raise ConfigError(f"Leek #{index} does not exist, farmer has {len(self.leeks)} leeks")
        return self.leeks[index - 1]


class GardenSession:
    """Cookie based API session with transparent rate-limit retries.

    The session never decides on its own that the credential has expired.
    Callers that see an authentication failure log in again through
    :func:`with_relogin`.
    """

    def __init__(
        self,
        config: GardenConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self._client = client or httpx.AsyncClient(base_url=config.api_url.rstrip("/") + "/")
        self._sleep = sleep
        self.session: Optional[Session] = None

    async def __aenter__(self) -> "GardenSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def farmer_id(self) -> int:
        return self._require_session().farmer_id

    @property
    def leeks(self) -> List[int]:
        return self._require_session().leeks

    async def login(self) -> Session:
        """Log in and replace the current session wholesale."""

        self._client.cookies.clear()
        try:
            body = await self.post(
                "farmer/login-token",
                {"login": self.config.login, "password": self.config.password},
            )
        except HttpError as exc:
            # transport failures and 5xx are not a verdict on the credentials
            if not exc.auth_failure:
                raise
            raise AuthError(f"Login refused: {exc}") from exc
        if not isinstance(body, dict) or body.get("error"):
            detail = body.get("error") if isinstance(body, dict) else body
            raise AuthError(f"Login refused: {detail}")
        if not body.get("token") and not body.get("farmer"):
            raise AuthError("Login answer carries neither a token nor a farmer")

        token = body.get("token")
        if token and self._cookie("token") is None:
            self._client.cookies.set("token", str(token))

        try:
            identity = await self.get("farmer/get-from-token")
            farmer = identity["farmer"]
            farmer_id = int(farmer["id"])
            leeks = _leek_ids(farmer.get("leeks"))
        except HttpError as exc:
            if not exc.auth_failure:
                raise
            raise AuthError(f"Token refused after login: {exc}") from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthError(f"Could not read the logged in farmer: {exc}") from exc

        self.session = Session(
            farmer_id=farmer_id,
            leeks=leeks,
            token=self._cookie("token"),
            farmer=farmer,
        )
        logger.info("Logged in as farmer %s with leeks %s.", farmer_id, ", ".join(map(str, leeks)))
        return self.session

    async def request(
        self, method: str, path: str, data: Optional[Mapping[str, Any]] = None
    ) -> httpx.Response:
        """Issue one API call, waiting out every 429 answer."""

        attempt = 0
        while True:
            try:
                response = await self._client.request(method, path, data=data)
            except httpx.HTTPError as exc:
                raise HttpError(path, detail=str(exc)) from exc
            if response.status_code != 429:
                break
            attempt += 1
            logger.warning(
                "Rate limited on %s (attempt %d), retrying in %.1fs...",
                path,
                attempt,
                RATE_LIMIT_COOLDOWN,
            )
            await self._sleep(RATE_LIMIT_COOLDOWN)
        if response.is_error:
            raise HttpError(path, response.status_code, _error_detail(response))
        return response

    async def get(self, path: str) -> Any:
        return _json(await self.request("GET", path), path)

    async def post(self, path: str, data: Optional[Mapping[str, Any]] = None) -> Any:
        return _json(await self.request("POST", path, data=data), path)

    def cookie_header(self) -> str:
        """Render the cookie jar as a ``Cookie`` header value."""

        return "; ".join(f"{cookie.name}={cookie.value}" for cookie in self._client.cookies.jar)

    def _cookie(self, name: str) -> Optional[str]:
        for cookie in self._client.cookies.jar:
            if cookie.name == name:
                return cookie.value
        return None

    def _require_session(self) -> Session:
        if self.session is None:
            raise AuthError("Not logged in")
        return self.session


async def with_relogin(session: GardenSession, call: Callable[[], Awaitable[T]]) -> T:
    """Run ``call``; on an authentication failure log in again and retry once."""

    try:
        return await call()
    except HttpError as exc:
        if not exc.auth_failure:
            raise
        logger.info('Got "%s", logging in again...', exc)
    await session.login()
    return await call()


def _leek_ids(leeks: Any) -> List[int]:
    if isinstance(leeks, Mapping):
        return sorted(int(key) for key in leeks)
    return sorted(int(leek["id"]) for leek in leeks or [])


def _json(response: httpx.Response, path: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise HttpError(path, response.status_code, "invalid JSON body") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return ""


__all__ = ["GardenSession", "Session", "with_relogin"]
