"""Command line front end."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Dict, List, Optional

from .channel import EventChannel
from .config import FightMode, GardenConfig, RunOptions
from .errors import AuthError, ConfigError, DurableStoreError, HttpError
from .fights import FightOrchestrator, Tally
from .gate import JoinGate
from .register import register_battle_royale
from .registers import RegisterValue, fetch_registers
from .session import GardenSession
from .status import create_app, serve

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leekgarden", description="LeekWars garden automation")
    parser.add_argument("--verbose", "-v", action="store_true", help="log debug details")
    parser.add_argument("--env-file", default=None, help="read settings from this .env file")
    commands = parser.add_subparsers(dest="command", required=True)

    fight = commands.add_parser("fight", help="play a batch of garden fights")
    fight.add_argument("--leek", type=int, default=1, help="1-based leek index (default: 1)")
    fight.add_argument("--fights", type=int, default=10, help="maximum number of fights")
    fight.add_argument(
        "--type",
        type=FightMode,
        choices=list(FightMode),
        default=FightMode.SOLO,
        metavar="{solo,farmer,team}",
    )
    fight.add_argument("--max-elo", action="store_true", help="prefer the strongest opponents")
    fight.add_argument("--dry-run", action="store_true", help="rank opponents without fighting")

    connect = commands.add_parser("connect", help="listen to the push channel forever")
    connect.add_argument("--status-port", type=int, default=None, help="serve /health on this port")

    commands.add_parser("register", help="register the first leek for battle royale")

    registers = commands.add_parser("registers", help="print the registers of a leek")
    registers.add_argument("--leek", type=int, default=1, help="1-based leek index (default: 1)")
    return parser


async def run_fights(config: GardenConfig, options: RunOptions) -> Tally:
    async with GardenSession(config) as session:
        return await FightOrchestrator(session, config, options).run()


async def run_channel(config: GardenConfig, status_port: Optional[int] = None) -> None:
    gate = JoinGate(config.database)
    async with GardenSession(config) as session:
        channel = EventChannel(session, gate, config)
        if status_port is None:
            await channel.run()
        else:
            await asyncio.gather(channel.run(), serve(create_app(channel, gate), status_port))


async def run_register(config: GardenConfig) -> bool:
    async with GardenSession(config) as session:
        return await register_battle_royale(session)


async def run_registers(config: GardenConfig, leek_index: int) -> Dict[str, RegisterValue]:
    async with GardenSession(config) as session:
        return await fetch_registers(session, leek_index)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        config = GardenConfig.from_env(args.env_file)
        config.validate()
        if args.command == "fight":
            options = RunOptions(
                leek=args.leek,
                fights=args.fights,
                type=args.type,
                max_elo=args.max_elo,
                dry_run=args.dry_run,
            )
            options.validate(config)
            tally = asyncio.run(run_fights(config, options))
            print(tally)
        elif args.command == "connect":
            asyncio.run(run_channel(config, args.status_port))
        elif args.command == "register":
            return 0 if asyncio.run(run_register(config)) else 1
        elif args.command == "registers":
            if args.leek < 1:
                raise ConfigError(f"--leek must be at least 1, got {args.leek}")
            print(json.dumps(asyncio.run(run_registers(config, args.leek)), indent=2, sort_keys=True))
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    except AuthError as exc:
        logger.error("Failed login: %s", exc)
        return 1
    except DurableStoreError as exc:
        logger.error("Join store unavailable: %s", exc)
        return 1
    except HttpError as exc:
        logger.error("Request failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
