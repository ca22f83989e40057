"""Per-connection driver shared by the WebSocket voice bridges."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from starlette.websockets import WebSocketDisconnect

from calls.errors import MalformedFrameError
from calls.registry import CallSessionRegistry
from calls.session import CallContext, CallSession
from dialogue.policy import DialoguePolicy

LOGGER = logging.getLogger(__name__)

CallEndedHook = Callable[[CallSession], Awaitable[None]]


class TextSocket(Protocol):
    """The subset of a WebSocket the bridges rely on."""

    async def receive_text(self) -> str: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class BaseBridge(ABC):
    """Drives one provider connection.

    The receive loop only enqueues frames; a single consumer task handles them
    strictly in arrival order, so a slow dialogue turn never overlaps the next
    event for the same call.
    """

    def __init__(
        self,
        websocket: TextSocket,
        registry: CallSessionRegistry,
        policy: DialoguePolicy,
        *,
        handshake_params: Mapping[str, str] | None = None,
        default_context: CallContext | None = None,
        hangup_delay: float = 2.0,
        on_call_ended: CallEndedHook | None = None,
    ) -> None:
        self._ws = websocket
        self._registry = registry
        self._policy = policy
        self._handshake_params = dict(handshake_params or {})
        self._default_context = default_context or CallContext()
        self._hangup_delay = hangup_delay
        self._on_call_ended = on_call_ended
        self._hangup_task: asyncio.Task | None = None
        self._finished = False
        self.call_id: str | None = None
        self._provisional_id: str | None = None

    @property
    def hanging_up(self) -> bool:
        return self._hangup_task is not None

    @abstractmethod
    async def handle_message(self, message: str) -> None:
        """Parse and dispatch one inbound frame."""

    async def send_end(self) -> None:
        """Protocol-specific goodbye frame sent right before closing."""

    async def run(self) -> None:
        queue: asyncio.Queue[str] = asyncio.Queue()
        consumer = asyncio.create_task(self._consume(queue))
        try:
            while True:
                message = await self._ws.receive_text()
                await queue.put(message)
        except WebSocketDisconnect as exc:
            LOGGER.info("Connection closed call_id=%s code=%s", self.call_id, exc.code)
        except Exception:
            LOGGER.exception("Connection error call_id=%s", self.call_id)
        finally:
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)
            if self._hangup_task is not None:
                await asyncio.gather(self._hangup_task, return_exceptions=True)
            await self.finish()

    async def _consume(self, queue: asyncio.Queue[str]) -> None:
        while True:
            message = await queue.get()
            if self._finished:
                continue
            try:
                await self.handle_message(message)
            except MalformedFrameError as exc:
                LOGGER.warning("Ignoring malformed frame call_id=%s: %s", self.call_id, exc.detail)
            except Exception:
                LOGGER.exception("Event handling failed call_id=%s", self.call_id)

    async def open_session(
        self,
        call_id: str,
        custom_parameters: Mapping[str, str] | None = None,
        *,
        stream_id: str = "",
    ) -> tuple[CallSession, bool]:
        """Create (or fetch) the session for a start/setup event."""

        context = CallContext.from_params(
            self._handshake_params,
            custom_parameters,
            defaults=self._default_context,
        )
        provisional_id, self._provisional_id = self._provisional_id, None
        self.call_id = call_id
        if provisional_id is not None and provisional_id != call_id:
            # Events arrived before start; keep that conversation under the real id.
            session, created = await self._registry.rekey(provisional_id, call_id, context, stream_id=stream_id)
            return session, created or not session.history

        session, created = await self._registry.get_or_create(call_id, context, stream_id=stream_id)
        if not created:
            LOGGER.warning("Duplicate start for call_id=%s ignored", call_id)
        return session, created

    async def current_session(self, fallback_id: str = "") -> CallSession | None:
        """Session for this connection, rebuilt with defaults if it went missing."""

        if self._finished:
            return None
        if self.call_id is None:
            self.call_id = fallback_id or f"anonymous-{uuid.uuid4().hex[:12]}"
            self._provisional_id = self.call_id
            LOGGER.warning("Event before start; using call_id=%s", self.call_id)

        session = await self._registry.get(self.call_id)
        if session is None:
            LOGGER.warning("No session for call_id=%s; reconstructing", self.call_id)
            context = CallContext.from_params(self._handshake_params, defaults=self._default_context)
            session, _ = await self._registry.get_or_create(self.call_id, context)
        return session

    async def send_json(self, payload: dict[str, Any]) -> None:
        await self._ws.send_text(json.dumps(payload))

    def schedule_hangup(self) -> None:
        """Close the connection after the hangup delay so final audio can play out."""

        if self._hangup_task is None:
            self._hangup_task = asyncio.create_task(self._hangup_later())

    async def _hangup_later(self) -> None:
        await asyncio.sleep(self._hangup_delay)
        try:
            await self.send_end()
            await self._ws.close()
        except Exception as exc:
            LOGGER.debug("Close after hangup failed call_id=%s: %s", self.call_id, exc)
        await self.finish()

    async def finish(self) -> None:
        """Evict the session; safe to call any number of times."""

        self._finished = True
        if self.call_id is None:
            return
        session = await self._registry.remove(self.call_id)
        if session is None or self._on_call_ended is None:
            return
        try:
            await self._on_call_ended(session)
        except Exception:
            LOGGER.exception("Call-ended hook failed call_id=%s", self.call_id)
