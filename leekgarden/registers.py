"""Dump of the registers a leek's AI keeps between fights."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Union

from .errors import HttpError
from .session import GardenSession, with_relogin

logger = logging.getLogger(__name__)

RegisterValue = Union[int, str, Dict[str, Any]]


def parse_registers(registers: Iterable[Dict[str, Any]]) -> Dict[str, RegisterValue]:
    """Decode register values.

    Values holding a JSON object (anything with a ``:``) become a mapping of
    item id to count, without the zero counts.  Everything else is read as an
    integer and kept as text when it is not one.
    """

    output: Dict[str, RegisterValue] = {}
    for register in registers:
        key = str(register["key"])
        value = str(register.get("value", ""))
        if ":" in value:
            try:
                decoded = json.loads(value)
            except ValueError:
                logger.warning("Register %s does not hold valid JSON", key)
                output[key] = value
                continue
            if isinstance(decoded, dict):
                output[key] = {item: count for item, count in decoded.items() if count != 0}
            else:
                output[key] = decoded
        else:
            try:
                output[key] = int(value)
            except ValueError:
                output[key] = value
    return output


async def fetch_registers(session: GardenSession, leek_index: int = 1) -> Dict[str, RegisterValue]:
    identity = await session.login()
    leek = identity.leek(leek_index)
    path = f"leek/get-registers/{leek}"
    logger.info('Reading registers of "%s"...', leek)
    body = await with_relogin(session, lambda: session.get(path))
    registers = body.get("registers") if isinstance(body, dict) else None
    if not isinstance(registers, list):
        raise HttpError(path, detail=f"no registers in {body!r}")
    try:
        return parse_registers(registers)
    except (KeyError, TypeError, AttributeError) as exc:
        raise HttpError(path, detail=f"malformed register entry: {exc}") from exc


__all__ = ["fetch_registers", "parse_registers"]
