"""In-memory Server-Sent Events fan-out.

Every open EventSource gets its own asyncio queue. After a mutation the API pushes
an ``invalidate`` event carrying the query key the web client caches that list
under (``["messages", profile_id]``, ``["alumni-applications", profile_id]``,
...), so the client refetches instead of polling.
"""
from __future__ import annotations

import asyncio
import json
from typing import Iterable, Optional, Sequence, Union

import structlog
from structlog.contextvars import get_contextvars

logger = structlog.get_logger(__name__)

QueryKey = Sequence[Optional[str]]


class ConnectionManager:
    def __init__(self):
        # One queue per open EventSource; a profile with two tabs has two
        self.active_connections: dict[str, set[asyncio.Queue]] = {}

    async def connect(self, profile_id: str) -> asyncio.Queue:
        """Registers a new connection for the profile and returns its queue."""
        queue: asyncio.Queue = asyncio.Queue()
        self.active_connections.setdefault(profile_id, set()).add(queue)
        logger.info(
            "SSE connection established",
            profile_id=profile_id,
            connections=len(self.active_connections[profile_id]),
        )
        return queue

    def disconnect(self, profile_id: str, queue: Optional[asyncio.Queue] = None):
        """Removes one connection, or all of the profile's when ``queue`` is None."""
        queues = self.active_connections.get(profile_id)
        if not queues:
            return
        if queue is None:
            queues.clear()
        else:
            queues.discard(queue)
        if not queues:
            del self.active_connections[profile_id]
        logger.info("SSE connection closed", profile_id=profile_id, remaining=len(queues))

    def is_connected(self, profile_id: str) -> bool:
        return bool(self.active_connections.get(profile_id))

    async def send_personal_message(
        self, message: Union[str, dict], profile_id: str, event: str = "message"
    ) -> bool:
        """Queue the event on every open connection of the profile."""
        queues = self.active_connections.get(profile_id)
        if not queues:
            logger.warning("Attempted to send SSE to disconnected profile", profile_id=profile_id, sse_event=event)
            return False

        if isinstance(message, dict):
            if "request_id" not in message:
                req_id = get_contextvars().get("request_id")
                if req_id:
                    message["request_id"] = req_id
            json_data = json.dumps(message, default=str)
        else:
            json_data = message
        for queue in list(queues):
            await queue.put({"event": event, "data": json_data})
        logger.info("Sent SSE event", sse_event=event, profile_id=profile_id, connections=len(queues))
        return True

    async def invalidate(self, query_key: QueryKey, profile_ids: Iterable[Optional[str]]) -> int:
        """Tell each connected profile to drop its cached copy of ``query_key``.

        Returns the number of profiles actually notified.
        """
        sent = 0
        for profile_id in dict.fromkeys(p for p in profile_ids if p):
            if not self.is_connected(profile_id):
                continue
            if await self.send_personal_message(
                {"query_key": list(query_key)}, profile_id, event="invalidate"
            ):
                sent += 1
        return sent


manager = ConnectionManager()
