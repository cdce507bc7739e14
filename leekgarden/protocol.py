"""Push channel frames.

Every frame is a JSON array ``[type, payload, correlation_id]``; outbound
frames may stop after the type or the payload.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional, Union

from .config import SQUAD_CAPACITY


class MessageType(IntEnum):
    AUTH = 0
    NOTIFICATION_RECEIVE = 6
    CHAT_SEND = 8
    CHAT_RECEIVE = 9
    MP_READ = 11
    FIGHT_LISTEN = 12
    FIGHT_GENERATED = 12
    FIGHT_WAITING_POSITION = 13
    FORUM_CHAT_DISABLE = 19
    READ_ALL_NOTIFICATIONS = 20
    CHAT_REQUEST_MUTE = 21
    CHAT_MUTE_USER = 22
    CHAT_REQUEST_UNMUTE = 23
    CHAT_UNMUTE_USER = 24
    YOU_ARE_MUTED = 25
    LUCKY = 26
    GET_LUCKY = 27
    BATTLE_ROYALE_REGISTER = 28
    BATTLE_ROYALE_UPDATE = 29
    BATTLE_ROYALE_START = 30
    BATTLE_ROYALE_LEAVE = 31
    BATTLE_ROYALE_CHAT_NOTIF = 32
    PONG = 33
    CHAT_ENABLE = 34
    CHAT_RECEIVE_PACK = 35
    GARDEN_QUEUE_REGISTER = 37
    GARDEN_QUEUE = 38
    GARDEN_QUEUE_UNREGISTER = 39
    FIGHT_PROGRESS_REGISTER = 40
    FIGHT_PROGRESS = 41
    FIGHT_PROGRESS_UNREGISTER = 42
    UPDATE_LEEK_TALENT = 45
    UPDATE_FARMER_TALENT = 46
    UPDATE_TEAM_TALENT = 47
    UPDATE_HABS = 48
    UPDATE_LEEK_XP = 49
    CHAT_CENSOR = 50
    CHAT_REACT = 51
    READ_NOTIFICATION = 52
    ADD_RESOURCE = 53
    EDITOR_HOVER = 54
    CHAT_DELETE = 56
    WRONG_TOKEN = 57
    TOURNAMENT_LISTEN = 58
    TOURNAMENT_UNLISTEN = 59
    TOURNAMENT_UPDATE = 60
    FAKE_LUCKY = 61
    EDITOR_COMPLETE = 62
    EDITOR_ANALYZE = 64
    EDITOR_ANALYZE_ERROR = 65
    GARDEN_BOSS_CREATE_SQUAD = 66
    GARDEN_BOSS_JOIN_SQUAD = 67
    GARDEN_BOSS_ADD_LEEK = 68
    GARDEN_BOSS_REMOVE_LEEK = 69
    GARDEN_BOSS_SQUAD_PUBLIC = 70
    GARDEN_BOSS_ATTACK = 71
    GARDEN_BOSS_LISTEN = 72
    GARDEN_BOSS_SQUADS = 73
    GARDEN_BOSS_SQUAD_JOINED = 74
    GARDEN_BOSS_LEAVE_SQUAD = 75
    GARDEN_BOSS_SQUAD = 76
    GARDEN_BOSS_NO_SUCH_SQUAD = 77
    GARDEN_BOSS_STARTED = 78
    GARDEN_BOSS_OPEN = 79
    GARDEN_BOSS_LOCK = 80
    GARDEN_BOSS_UNLISTEN = 81
    GARDEN_BOSS_LEFT = 82


@dataclass(frozen=True)
class Squad:
    """An open boss squad as listed in a roster update."""

    id: Any
    engaged_count: int
    locked: bool

    @property
    def joinable(self) -> bool:
        return self.engaged_count < SQUAD_CAPACITY and self.locked is False

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Squad":
        """Build a squad from a roster entry; raises ``ValueError`` when malformed."""

        if not isinstance(data, dict) or data.get("id") is None:
            raise ValueError(f"Squad entry without an id: {data!r}")
        try:
            engaged_count = int(data.get("engaged_count", 0))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Squad {data['id']!r} has no usable engaged_count") from exc
        return cls(id=data["id"], engaged_count=engaged_count, locked=data.get("locked"))


@dataclass(frozen=True)
class Event:
    """A decoded frame of a known type without dedicated handling."""

    type: MessageType
    payload: Any = None
    correlation_id: Optional[int] = None


@dataclass(frozen=True)
class BossSquadsEvent(Event):
    """Roster of open squads, keyed by boss."""

    def squads(self, boss_id: str) -> List[Squad]:
        if not isinstance(self.payload, dict):
            return []
        roster = self.payload.get(str(boss_id)) or []
        if not isinstance(roster, list):
            raise ValueError(f"Squad roster for boss {boss_id} is not a list")
        return [Squad.from_payload(squad) for squad in roster]


@dataclass(frozen=True)
class LuckyEvent(Event):
    """A lucky notification that can be claimed."""


@dataclass(frozen=True)
class UnrecognizedEvent:
    """A frame whose type is not part of :class:`MessageType`."""

    raw_type: Any
    payload: Any = None
    correlation_id: Optional[int] = None


AnyEvent = Union[Event, UnrecognizedEvent]

_VARIANTS = {
    MessageType.GARDEN_BOSS_SQUADS: BossSquadsEvent,
    MessageType.LUCKY: LuckyEvent,
}


def decode_frame(raw: Union[str, bytes]) -> AnyEvent:
    """Decode one inbound frame; raises ``ValueError`` when malformed."""

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        raise ValueError(f"Frames are text, got {type(raw).__name__}")
    frame = json.loads(raw)
    if not isinstance(frame, list) or not frame:
        raise ValueError(f"Malformed frame: {raw[:200]!r}")
    raw_type = frame[0]
    payload = frame[1] if len(frame) > 1 else None
    correlation_id = frame[2] if len(frame) > 2 else None
    try:
        message_type = MessageType(raw_type)
    except ValueError:
        return UnrecognizedEvent(raw_type, payload, correlation_id)
    variant = _VARIANTS.get(message_type, Event)
    return variant(message_type, payload, correlation_id)


def encode_frame(message_type: MessageType, *args: Any) -> str:
    return json.dumps([int(message_type), *args])


__all__ = [
    "AnyEvent",
    "BossSquadsEvent",
    "Event",
    "LuckyEvent",
    "MessageType",
    "Squad",
    "UnrecognizedEvent",
    "decode_frame",
    "encode_frame",
]
