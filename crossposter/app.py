"""FastAPI application factory."""

from __future__ import annotations

import time

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth.connections import ConnectionManager
from .auth.routes import create_auth_router
from .config import get_settings
from .log import configure_logging
from .state.memory import MemorySessionStore


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from .config import CrossPosterSettings
    from .state.base import SessionStore


def create_app(
    settings: CrossPosterSettings | None = None,
    session_store: SessionStore | None = None,
    connections: ConnectionManager | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the CrossPoster backend.

    Parameters
    ----------
    settings : CrossPosterSettings, optional
        Application settings (defaults to :func:`get_settings`).
    session_store : SessionStore, optional
        Server-side session store (defaults to a fresh in-memory store).
    connections : ConnectionManager, optional
        Platform flows (defaults to every enabled platform in ``settings``).
        Must share ``session_store`` when both are given.
    clock : Callable[[], float], optional
        Source of the current time for stores and flows.

    Returns
    -------
    FastAPI
        The configured application.
    """
    settings = settings or get_settings()
    configure_logging(settings.log)

    sessions = session_store or MemorySessionStore(clock=clock)
    manager = connections or ConnectionManager.from_settings(settings, sessions, clock=clock)

    @asynccontextmanager
    async def _lifespan(
        app: FastAPI,  # pylint: disable=unused-argument
    ) -> AsyncIterator[None]:
        yield
        await manager.close()

    app = FastAPI(title="CrossPoster", lifespan=_lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    app.include_router(create_auth_router(manager, sessions, settings))
    app.state.connections = manager
    app.state.session_store = sessions
    return app
