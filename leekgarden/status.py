"""Health endpoint for the long running channel process."""

from __future__ import annotations

import asyncio

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .channel import EventChannel
from .errors import DurableStoreError
from .gate import JoinGate


def create_app(channel: EventChannel, gate: JoinGate) -> FastAPI:
    app = FastAPI(title="leekgarden")
    app.state.channel = channel
    app.state.gate = gate

    @app.get("/health")
    async def healthcheck() -> JSONResponse:
        """Report the push channel state and the recent join count."""

        try:
            recent_joins = await asyncio.to_thread(app.state.gate.count_recent_joins)
        except DurableStoreError as exc:
            return JSONResponse(
                {"status": "error", "channel": app.state.channel.state.value, "detail": str(exc)},
                status_code=503,
            )
        return JSONResponse(
            {
                "status": "ok",
                "channel": app.state.channel.state.value,
                "recent_joins": recent_joins,
            }
        )

    return app


async def serve(app: FastAPI, port: int, host: str = "127.0.0.1") -> None:
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    await server.serve()


__all__ = ["create_app", "serve"]
