"""
Process-local registry of live match sessions.
Owns one asyncio ticker task per running clock and the WebSocket subscribers
of each match. All access happens on the event loop; sessions themselves are
plain synchronous objects.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
import time
from typing import Any, Callable

from fastapi import WebSocket, WebSocketDisconnect

from handball_stats.live_session import LiveMatchSession, open_session

logger = logging.getLogger(__name__)


class LiveSessionNotFoundError(LookupError):
    """No live session is open for that match."""


class LiveSessionRegistry:
    def __init__(
        self,
        tick_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tick_seconds = tick_seconds
        self.clock = clock
        self._sessions: dict[int, LiveMatchSession] = {}
        self._tickers: dict[int, asyncio.Task] = {}
        self._subscribers: dict[int, list[WebSocket]] = {}

    # ---------- Lookup ----------

    def find_open(self, match_id: int | None) -> LiveMatchSession | None:
        """The not-yet-finalized session of the match, if any."""
        session = self._sessions.get(match_id)
        if session is None or session.finalized:
            return None
        return session

    def register(self, session: LiveMatchSession) -> LiveMatchSession:
        """Adopt a freshly seeded session unless one is already open for its match."""
        existing = self.find_open(session.match_id)
        if existing is not None:
            return existing
        self._sessions[session.match_id] = session
        logger.info(f"Live session opened for match {session.match_id} ({len(session.players)} players)")
        return session

    def open(self, conn: sqlite3.Connection, match_id: int) -> LiveMatchSession:
        """Return the open session for the match, seeding a new one if none is open."""
        session = self.find_open(match_id)
        if session is not None:
            return session
        return self.register(open_session(conn, match_id))

    def get(self, match_id: int) -> LiveMatchSession:
        session = self._sessions.get(match_id)
        if session is None:
            raise LiveSessionNotFoundError(f"No live session for match {match_id}")
        return session

    def is_ticking(self, match_id: int) -> bool:
        task = self._tickers.get(match_id)
        return task is not None and not task.done()

    # ---------- Clock ----------

    async def toggle_clock(self, match_id: int) -> LiveMatchSession:
        """Start or stop the match clock; the ticker task follows the clock state."""
        session = self.get(match_id)
        running = session.toggle_clock(self.clock())
        if running:
            self._tickers[match_id] = asyncio.create_task(self._run_ticker(match_id))
        else:
            await self._cancel_ticker(match_id)
        await self.broadcast(match_id)
        return session

    async def _run_ticker(self, match_id: int) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            session = self._sessions.get(match_id)
            if session is None or not session.running:
                return
            session.tick(self.clock())
            await self.broadcast(match_id)

    async def _cancel_ticker(self, match_id: int) -> None:
        task = self._tickers.pop(match_id, None)
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # ---------- Lifecycle ----------

    async def finalize(self, conn: sqlite3.Connection, match_id: int) -> LiveMatchSession:
        """
        Persist the session. On failure the exception propagates and the session,
        including a running clock, is left as it was.
        """
        session = self.get(match_id)
        session.finalize(conn)
        await self._cancel_ticker(match_id)
        await self.broadcast(match_id)
        return session

    async def discard(self, match_id: int) -> None:
        self.get(match_id)
        await self._cancel_ticker(match_id)
        self._sessions.pop(match_id, None)
        logger.info(f"Live session for match {match_id} discarded")

    async def shutdown(self) -> None:
        """Cancel every ticker (app shutdown). Unsaved sessions are dropped."""
        for match_id in list(self._tickers):
            await self._cancel_ticker(match_id)
        if self._sessions:
            logger.info(f"Dropping {len(self._sessions)} live session(s) on shutdown")
        self._sessions.clear()

    # ---------- Subscribers ----------

    def subscribe(self, match_id: int, websocket: WebSocket) -> None:
        self._subscribers.setdefault(match_id, []).append(websocket)

    def unsubscribe(self, match_id: int, websocket: WebSocket) -> None:
        subs = self._subscribers.get(match_id)
        if not subs:
            return
        self._subscribers[match_id] = [w for w in subs if w is not websocket]
        if not self._subscribers[match_id]:
            del self._subscribers[match_id]

    async def broadcast(self, match_id: int) -> None:
        """Push the current snapshot to every subscriber of the match."""
        session = self._sessions.get(match_id)
        if session is None:
            return
        payload: dict[str, Any] = {"type": "live_update", **session.snapshot()}
        for ws in self._subscribers.get(match_id, [])[:]:
            try:
                await ws.send_json(payload)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.debug(f"Dropping live subscriber for match {match_id}: {e}")
                self.unsubscribe(match_id, ws)
