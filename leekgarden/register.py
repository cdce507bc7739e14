"""Battle royale auto registration."""

from __future__ import annotations

import logging

from .errors import HttpError
from .session import GardenSession, with_relogin

logger = logging.getLogger(__name__)


async def register_battle_royale(session: GardenSession) -> bool:
    identity = await session.login()
    # only one leek can be auto-registered; use the first one
    leek = identity.leek(1)
    logger.info('Registering "%s"...', leek)
    try:
        response = await with_relogin(
            session, lambda: session.post("leek/register-auto-br", {"leek_id": leek})
        )
    except HttpError as exc:
        logger.error("Failed to register: %s", exc)
        return False
    logger.info("Success %s", response)
    return True


__all__ = ["register_battle_royale"]
