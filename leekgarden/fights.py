"""Batch runner for garden fights."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Type

from .config import POLL_INTERVAL, ROUND_COOLDOWN, FightMode, GardenConfig, RunOptions
from .errors import HistoryFetchError, HttpError
from .ranking import Opponent, OpponentRecord, Outcome, rank
from .session import GardenSession, Session, Sleep, with_relogin

logger = logging.getLogger(__name__)

PENDING = -1


@dataclass
class FightResult:
    """State of a fight as reported by ``fight/get``."""

    winner: int
    farmers1: Set[str] = field(default_factory=set)
    farmers2: Set[str] = field(default_factory=set)

    @property
    def pending(self) -> bool:
        return self.winner == PENDING

    def side_of(self, farmer_id: Any) -> Optional[int]:
        if str(farmer_id) in self.farmers1:
            return 1
        if str(farmer_id) in self.farmers2:
            return 2
        return None

    def outcome_for(self, farmer_id: Any) -> Outcome:
        us = self.side_of(farmer_id)
        if us is None:
            return Outcome.DRAW
        if self.winner == us:
            return Outcome.WIN
        if self.winner == 3 - us:
            return Outcome.LOSS
        return Outcome.DRAW

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "FightResult":
        if "winner" not in data and isinstance(data.get("fight"), dict):
            data = data["fight"]
        return cls(
            winner=int(data["winner"]),
            farmers1={str(farmer) for farmer in data.get("farmers1") or ()},
            farmers2={str(farmer) for farmer in data.get("farmers2") or ()},
        )


@dataclass
class Tally:
    wins: int = 0
    losses: int = 0
    draws: int = 0

    def add(self, outcome: Outcome) -> None:
        if outcome is Outcome.WIN:
            self.wins += 1
        elif outcome is Outcome.LOSS:
            self.losses += 1
        else:
            self.draws += 1

    def __str__(self) -> str:
        return f"{self.wins} wins, {self.losses} losses, {self.draws} draws."


class FightStrategy:
    """Endpoints and history rules of one garden match type."""

    mode: FightMode
    match_type: int
    start_path: str
    remaining_key = "fights"

    def __init__(self, session: Session, config: GardenConfig, leek: int) -> None:
        self.session = session
        self.config = config
        self.leek = leek

    def opponents_path(self) -> str:
        raise NotImplementedError

    def history_path(self) -> str:
        raise NotImplementedError

    def start_params(self) -> Dict[str, Any]:
        return {}

    def history_opponents(self, fight: Dict[str, Any]) -> List[Any]:
        raise NotImplementedError


class SoloFights(FightStrategy):
    mode = FightMode.SOLO
    match_type = 0
    start_path = "garden/start-solo-fight"

    def opponents_path(self) -> str:
        return f"garden/get-leek-opponents/{self.leek}"

    def history_path(self) -> str:
        return f"history/get-leek-history/{self.leek}"

    def start_params(self) -> Dict[str, Any]:
        return {"leek_id": self.leek}

    def history_opponents(self, fight: Dict[str, Any]) -> List[Any]:
        opponents = []
        for side in (fight.get("leeks1") or [], fight.get("leeks2") or []):
            if all(str(leek["id"]) != str(self.leek) for leek in side):
                opponents.extend(leek["id"] for leek in side)
        return opponents


class FarmerFights(FightStrategy):
    mode = FightMode.FARMER
    match_type = 1
    start_path = "garden/start-farmer-fight"

    def opponents_path(self) -> str:
        return "garden/get-farmer-opponents"

    def history_path(self) -> str:
        return f"history/get-farmer-history/{self.session.farmer_id}"

    def history_opponents(self, fight: Dict[str, Any]) -> List[Any]:
        if str(fight.get("farmer1")) == str(self.session.farmer_id):
            return [fight.get("farmer2")]
        return [fight.get("farmer1")]


class TeamFights(FightStrategy):
    mode = FightMode.TEAM
    match_type = 2
    start_path = "garden/start-team-fight"
    remaining_key = "team_fights"

    def opponents_path(self) -> str:
        return f"garden/get-composition-opponents/{self.config.composition_id}"

    def history_path(self) -> str:
        return f"history/get-team-history/{self.config.team_id}"

    def start_params(self) -> Dict[str, Any]:
        return {"composition_id": self.config.composition_id}

    def history_opponents(self, fight: Dict[str, Any]) -> List[Any]:
        if str(fight.get("team1")) == str(self.config.team_id):
            return [fight.get("team2")]
        return [fight.get("team1")]


STRATEGIES: Dict[FightMode, Type[FightStrategy]] = {
    FightMode.SOLO: SoloFights,
    FightMode.FARMER: FarmerFights,
    FightMode.TEAM: TeamFights,
}


class FightOrchestrator:
    """Plays up to ``options.fights`` garden fights against ranked opponents."""

    def __init__(
        self,
        session: GardenSession,
        config: GardenConfig,
        options: RunOptions,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        options.validate(config)
        self.session = session
        self.config = config
        self.options = options
        self.record = OpponentRecord()
        self.strategy: Optional[FightStrategy] = None
        self._sleep = sleep

    async def run(self) -> Tally:
        logger.info("Logging in...")
        identity = await self.session.login()
        leek = identity.leek(self.options.leek)
        self.strategy = STRATEGIES[self.options.type](identity, self.config, leek)

        logger.info("Getting remaining fights...")
        remaining = await self.remaining_fights()
        logger.info("%d remaining fights.", remaining)
        rounds = min(remaining, self.options.fights)
        logger.info("Using %d fights.", rounds)

        tally = Tally()
        if rounds <= 0:
            return tally

        logger.info("Getting record...")
        self.record = await self.load_record()

        for i in range(rounds):
            opponents = rank(
                await self.fetch_opponents(), self.record, self.options.type, self.options.max_elo
            )
            if not opponents:
                logger.warning("The garden offered no opponents, stopping early.")
                break
            self._log_opponents(opponents)
            opponent = opponents[0]
            logger.info(
                "Fighting %s (%d/%d) [%d/%d/%d]...",
                opponent.name, i + 1, rounds, tally.wins, tally.losses, tally.draws,
            )
            if self.options.dry_run:
                continue

            fight_id = await self.start_fight(opponent)
            result = await self.wait_for_result(fight_id)
            outcome = result.outcome_for(self.session.farmer_id)
            self.record.apply(opponent.id, outcome)
            tally.add(outcome)
            logger.info({Outcome.WIN: "We won!", Outcome.LOSS: "We lost."}.get(outcome, "We drew."))

            await self._sleep(ROUND_COOLDOWN)

        logger.info("%s", tally)
        return tally

    async def remaining_fights(self) -> int:
        body = await with_relogin(self.session, lambda: self.session.get("garden/get"))
        try:
            return int(body["garden"][self._strategy.remaining_key])
        except (KeyError, TypeError, ValueError) as exc:
            raise HttpError("garden/get", detail=f"no remaining fights in {body!r}") from exc

    async def load_record(self) -> OpponentRecord:
        """Replay the fight history; a missing history yields an empty record."""

        try:
            fights = await self._fetch_history()
        except HistoryFetchError as exc:
            logger.warning("%s; ranking without history.", exc)
            return OpponentRecord()

        record = OpponentRecord()
        for fight in fights:
            if fight.get("type") != self._strategy.match_type:
                continue
            outcome = Outcome.from_history(fight.get("result"))
            for opponent_id in self._strategy.history_opponents(fight):
                record.apply(opponent_id, outcome)
        return record

    async def fetch_opponents(self) -> List[Opponent]:
        path = self._strategy.opponents_path()
        body = await with_relogin(self.session, lambda: self.session.get(path))
        return [Opponent.from_payload(opponent) for opponent in (body or {}).get("opponents") or []]

    async def start_fight(self, opponent: Opponent) -> Any:
        strategy = self._strategy
        params = {**strategy.start_params(), "target_id": opponent.id}
        body = await with_relogin(self.session, lambda: self.session.post(strategy.start_path, params))
        if not isinstance(body, dict) or body.get("fight") is None:
            raise HttpError(strategy.start_path, detail=f"no fight id in {body!r}")
        return body["fight"]

    async def fetch_result(self, fight_id: Any) -> Optional[FightResult]:
        try:
            path = f"fight/get/{fight_id}"
            body = await with_relogin(self.session, lambda: self.session.get(path))
            return FightResult.from_payload(body)
        except (HttpError, KeyError, TypeError, ValueError) as exc:
            logger.debug("Fight %s not readable yet: %s", fight_id, exc)
            return None

    async def wait_for_result(self, fight_id: Any) -> FightResult:
        result = await self.fetch_result(fight_id)
        while result is None or result.pending:
            logger.info("Waiting for fight to run...")
            await self._sleep(POLL_INTERVAL)
            result = await self.fetch_result(fight_id)
        return result

    async def _fetch_history(self) -> List[Dict[str, Any]]:
        path = self._strategy.history_path()
        try:
            body = await with_relogin(self.session, lambda: self.session.get(path))
            fights = body["fights"]
        except (HttpError, KeyError, TypeError) as exc:
            raise HistoryFetchError(f"Could not read {path}: {exc}") from exc
        if not isinstance(fights, list):
            raise HistoryFetchError(f"Unexpected history payload from {path}")
        return fights

    @property
    def _strategy(self) -> FightStrategy:
        if self.strategy is None:
            raise RuntimeError("Fight orchestrator has not logged in yet")
        return self.strategy

    def _log_opponents(self, opponents: List[Opponent]) -> None:
        for opponent in opponents:
            ratio = ""
            if opponent.total_level:
                ratio = f"{opponent.total_level} / {opponent.leek_count} ({opponent.level_ratio:.2f})"
            logger.info(
                "%-20s %8s %s %s",
                opponent.name, f"{self.record.score(opponent.id):g}", f"{opponent.talent:g}", ratio,
            )


__all__ = [
    "FarmerFights",
    "FightOrchestrator",
    "FightResult",
    "FightStrategy",
    "SoloFights",
    "STRATEGIES",
    "Tally",
    "TeamFights",
]
