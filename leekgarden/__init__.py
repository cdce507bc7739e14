"""Resilient LeekWars garden client.

The package exposes the services a long running process or a batch job
integrates with: the authenticated HTTP session, the boss-join store, the
push channel and the fight runner.
"""

from .channel import ConnectionState, EventChannel
from .config import FightMode, GardenConfig, RunOptions
from .fights import FightOrchestrator, Tally
from .gate import JoinGate
from .ranking import Opponent, OpponentRecord, Outcome, rank
from .session import GardenSession, Session, with_relogin

__version__ = "0.1.0"

__all__ = [
    "ConnectionState",
    "EventChannel",
    "FightMode",
    "FightOrchestrator",
    "GardenConfig",
    "GardenSession",
    "JoinGate",
    "Opponent",
    "OpponentRecord",
    "Outcome",
    "RunOptions",
    "Session",
    "Tally",
    "rank",
    "with_relogin",
]
