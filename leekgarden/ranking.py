"""Opponent selection from a running win/loss record."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import FightMode


class Outcome(Enum):
    WIN = 1.0
    LOSS = -1.0
    DRAW = -0.5

    @classmethod
    def from_history(cls, result: Any) -> "Outcome":
        """Map a history ``result`` string; anything unknown counts as a draw."""

        if result == "win":
            return cls.WIN
        if result == "defeat":
            return cls.LOSS
        return cls.DRAW


@dataclass(frozen=True)
class Opponent:
    """A candidate offered by the garden for the next fight."""

    id: Any
    name: str
    talent: float = 0.0
    total_level: Optional[float] = None
    leek_count: Optional[int] = None
    level: Optional[float] = None

    @property
    def level_ratio(self) -> float:
        """Average level of the group; groups of unknown size sort last."""

        if not self.leek_count or self.total_level is None:
            return math.inf
        return self.total_level / self.leek_count

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Opponent":
        return cls(
            id=data["id"],
            name=str(data.get("name", data["id"])),
            talent=float(data.get("talent") or 0),
            total_level=data.get("total_level"),
            leek_count=data.get("leek_count"),
            level=data.get("level"),
        )


class OpponentRecord:
    """Signed score per opponent: wins minus losses minus half the draws.

    Identifiers are compared as strings so that ids read from JSON numbers
    and from JSON object keys land on the same entry.
    """

    def __init__(self, scores: Optional[Dict[Any, float]] = None) -> None:
        self._scores: Dict[str, float] = {}
        for opponent_id, score in (scores or {}).items():
            self._scores[str(opponent_id)] = float(score)

    def score(self, opponent_id: Any) -> float:
        return self._scores.get(str(opponent_id), 0.0)

    def apply(self, opponent_id: Any, outcome: Outcome) -> float:
        key = str(opponent_id)
        self._scores[key] = self._scores.get(key, 0.0) + outcome.value
        return self._scores[key]

    def as_dict(self) -> Dict[str, float]:
        return dict(self._scores)

    def __contains__(self, opponent_id: Any) -> bool:
        return str(opponent_id) in self._scores

    def __iter__(self) -> Iterator[str]:
        return iter(self._scores)

    def __len__(self) -> int:
        return len(self._scores)


def sort_key(
    opponent: Opponent, record: OpponentRecord, mode: FightMode, max_elo: bool = False
) -> Tuple[float, ...]:
    direction = -1 if max_elo else 1
    key: List[float] = [-record.score(opponent.id), direction * opponent.talent]
    if mode in (FightMode.FARMER, FightMode.TEAM):
        key.append(opponent.level_ratio)
    if mode is FightMode.TEAM:
        key.append(direction * float(opponent.level or 0))
    return tuple(key)


def rank(
    candidates: Iterable[Opponent],
    record: OpponentRecord,
    mode: FightMode,
    max_elo: bool = False,
) -> List[Opponent]:
    """Order candidates best first.

    Opponents beaten most often come first; ties fall back to talent
    (weakest first unless ``max_elo``), then to the group's average level and
    finally, for teams, to the team level.  The sort is stable so remaining
    ties keep the order the server sent.
    """

    return sorted(candidates, key=lambda opponent: sort_key(opponent, record, mode, max_elo))


def replay(record: OpponentRecord, results: Sequence[Tuple[Any, Outcome]]) -> OpponentRecord:
    for opponent_id, outcome in results:
        record.apply(opponent_id, outcome)
    return record


__all__ = ["Opponent", "OpponentRecord", "Outcome", "rank", "replay", "sort_key"]
