"""Configuration objects for the garden client and batch runs."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

RATE_LIMIT_COOLDOWN = 2.5  # seconds to wait after a 429 before retrying
POLL_INTERVAL = 1.0  # seconds between fight result polls
ROUND_COOLDOWN = 2.5  # seconds between two fights of a batch run
RECONNECT_DELAY = 1.0
RESUBSCRIBE_INTERVAL = 5 * 60
JOIN_DELAY = 5.0  # leave other farmers a chance to fill the squad first
LUCKY_DELAY = 2.0

JOIN_WINDOW_HOURS = 4
SQUAD_CAPACITY = 8
STORE_TIMEOUT = 5 * 60  # seconds a store operation waits on a lock

DEFAULT_API_URL = "https://leekwars.com/api"
DEFAULT_WS_URL = "wss://leekwars.com/ws"
DEFAULT_BATTLE_ROYALE_ID = 89111


class FightMode(str, Enum):
    """Garden match types a batch run can play."""

    SOLO = "solo"
    FARMER = "farmer"
    TEAM = "team"


@dataclass(frozen=True)
class GardenConfig:
    """Connection settings shared by every command.

    Attributes
    ----------
    login, password:
        Account credentials posted to the login endpoint.  They are never
        written anywhere by the client.
    api_url:
        Base URL of the HTTP API, without trailing slash.
    ws_url:
        URL of the push channel.
    database:
        Path of the SQLite file that records boss squad joins.  Several
        processes may share it.
    boss_id:
        Key of the boss whose squads are watched in roster updates.
    battle_royale_id:
        Identifier sent when registering for battle royale notifications.
    composition_id, team_id:
        Team composition fought with and team whose history seeds the
        record.  Only team runs need them.
    """

    login: str
    password: str
    api_url: str = DEFAULT_API_URL
    ws_url: str = DEFAULT_WS_URL
    database: str = "garden.db"
    boss_id: str = "1"
    battle_royale_id: int = DEFAULT_BATTLE_ROYALE_ID
    composition_id: Optional[int] = None
    team_id: Optional[int] = None

    def validate(self) -> None:
        if not self.login or not self.password:
            raise ConfigError("LEEKWARS_LOGIN and LEEKWARS_PASSWORD must be set")
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigError(f"Invalid API URL: {self.api_url!r}")
        if not self.ws_url.startswith(("ws://", "wss://")):
            raise ConfigError(f"Invalid push channel URL: {self.ws_url!r}")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "GardenConfig":
        """Build the configuration from the process environment.

        A ``.env`` file is loaded first when present; variables already set
        in the environment win over the file.
        """

        load_dotenv(env_file)
        return cls(
            login=os.getenv("LEEKWARS_LOGIN", ""),
            password=os.getenv("LEEKWARS_PASSWORD", ""),
            api_url=os.getenv("LEEKWARS_API_URL", DEFAULT_API_URL).rstrip("/"),
            ws_url=os.getenv("LEEKWARS_WS_URL", DEFAULT_WS_URL),
            database=os.getenv("LEEKGARDEN_DATABASE", "garden.db"),
            boss_id=os.getenv("LEEKGARDEN_BOSS", "1"),
            battle_royale_id=_int_env("LEEKGARDEN_BATTLE_ROYALE", DEFAULT_BATTLE_ROYALE_ID),
            composition_id=_int_env("LEEKGARDEN_COMPOSITION"),
            team_id=_int_env("LEEKGARDEN_TEAM"),
        )


@dataclass(frozen=True)
class RunOptions:
    """Options of one batch of garden fights."""

    leek: int = 1
    fights: int = 10
    type: FightMode = FightMode.SOLO
    max_elo: bool = False
    dry_run: bool = False

    def validate(self, config: Optional[GardenConfig] = None) -> None:
        if self.leek < 1:
            raise ConfigError("Leek index must be positive")
        if self.fights < 0:
            raise ConfigError("Fight budget cannot be negative")
        if not isinstance(self.type, FightMode):
            raise ConfigError(f"Unknown fight type: {self.type!r}")
        if self.type is FightMode.TEAM and config is not None:
            if config.composition_id is None or config.team_id is None:
                raise ConfigError(
                    "Team fights need LEEKGARDEN_COMPOSITION and LEEKGARDEN_TEAM"
                )


def _int_env(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


__all__ = [
    "FightMode",
    "GardenConfig",
    "RunOptions",
]
