"""In-memory registry of live call sessions."""

from __future__ import annotations

import asyncio
import logging
import time

from calls.session import CallContext, CallSession

LOGGER = logging.getLogger(__name__)


class CallSessionRegistry:
    """Maps call SIDs to live sessions for a single process.

    The lock is only held for map operations, never across downstream I/O, so
    one slow call cannot stall lookups for the others. For multi-worker
    deployments, calls must be pinned to the worker that owns the stream.
    """

    def __init__(
        self,
        *,
        max_age_seconds: float = 600.0,
        sweep_interval_seconds: float = 300.0,
    ) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, CallSession] = {}
        self._max_age = max_age_seconds
        self._sweep_interval = sweep_interval_seconds
        self._sweeper: asyncio.Task | None = None
        self._pending_removals: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    def ids(self) -> list[str]:
        return list(self._sessions)

    async def get_or_create(
        self,
        call_id: str,
        context: CallContext | None = None,
        *,
        stream_id: str = "",
    ) -> tuple[CallSession, bool]:
        """Return the session for `call_id`, creating it if absent.

        A duplicate start never replaces an existing session; only an empty
        `stream_id` is filled in.
        """

        async with self._lock:
            session = self._sessions.get(call_id)
            if session is not None:
                if stream_id and not session.stream_id:
                    session.stream_id = stream_id
                return session, False

            session = CallSession(
                call_id=call_id,
                context=context or CallContext(),
                stream_id=stream_id,
            )
            self._sessions[call_id] = session
            LOGGER.info("Call session created call_id=%s (live=%d)", call_id, len(self._sessions))
            return session, True

    async def rekey(
        self,
        old_id: str,
        new_id: str,
        context: CallContext | None = None,
        *,
        stream_id: str = "",
    ) -> tuple[CallSession, bool]:
        """Move a provisional session to its real call id.

        Returns `(session, created)` like `get_or_create`; a moved session is
        not new. If `new_id` is already live the provisional one is dropped.
        """

        async with self._lock:
            provisional = self._sessions.pop(old_id, None)
            session = self._sessions.get(new_id)
            if session is None and provisional is not None:
                provisional.call_id = new_id
                if context is not None:
                    provisional.context = context
                if stream_id and not provisional.stream_id:
                    provisional.stream_id = stream_id
                self._sessions[new_id] = provisional
                LOGGER.info("Call session moved call_id=%s -> %s", old_id, new_id)
                return provisional, False

        if provisional is not None:
            provisional.active = False
            provisional.pending_audio.clear()
            LOGGER.warning("Dropping provisional call_id=%s; %s is already live", old_id, new_id)
        if session is not None:
            return session, False
        return await self.get_or_create(new_id, context, stream_id=stream_id)

    async def get(self, call_id: str) -> CallSession | None:
        async with self._lock:
            return self._sessions.get(call_id)

    async def remove(self, call_id: str) -> CallSession | None:
        """Evict a session. Removing an unknown id is a no-op."""

        async with self._lock:
            session = self._sessions.pop(call_id, None)
        if session is None:
            return None
        session.active = False
        session.pending_audio.clear()
        LOGGER.info(
            "Call session removed call_id=%s turns=%d (live=%d)",
            call_id,
            session.turn_count,
            len(self._sessions),
        )
        return session

    def schedule_removal(self, call_id: str, delay: float) -> asyncio.Task:
        """Remove `call_id` after `delay` seconds without blocking the caller."""

        async def _remove_later() -> None:
            await asyncio.sleep(delay)
            await self.remove(call_id)

        task = asyncio.create_task(_remove_later())
        self._pending_removals.add(task)
        task.add_done_callback(self._pending_removals.discard)
        return task

    async def sweep(self, max_age_seconds: float | None = None) -> list[str]:
        """Evict sessions older than the age ceiling; returns evicted ids."""

        limit = self._max_age if max_age_seconds is None else max_age_seconds
        now = time.monotonic()
        async with self._lock:
            stale = [cid for cid, session in self._sessions.items() if session.age(now) > limit]
        for call_id in stale:
            LOGGER.warning("Evicting stale call session call_id=%s", call_id)
            await self.remove(call_id)
        return stale

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep()
            except Exception:
                LOGGER.exception("Session sweep failed")

    async def stop(self) -> None:
        """Cancel background work and drop every live session."""

        tasks = list(self._pending_removals)
        if self._sweeper is not None:
            tasks.append(self._sweeper)
            self._sweeper = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for call_id in self.ids():
            await self.remove(call_id)
