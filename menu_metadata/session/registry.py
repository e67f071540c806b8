from __future__ import annotations

import uuid
from collections import OrderedDict
from collections.abc import Callable

import structlog

from menu_metadata.core.errors import SessionNotFound
from menu_metadata.session.controller import MenuItemController

logger = structlog.get_logger(__name__)


class SessionRegistry:
    """In-memory controllers keyed by an opaque per-tab id, oldest evicted first."""

    def __init__(self, factory: Callable[[], MenuItemController], max_sessions: int = 256) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self._factory = factory
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, MenuItemController] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self) -> tuple[str, MenuItemController]:
        session_id = uuid.uuid4().hex
        controller = self._factory()
        self._sessions[session_id] = controller
        while len(self._sessions) > self._max_sessions:
            evicted_id, evicted = self._sessions.popitem(last=False)
            evicted.reset()
            logger.info("session_evicted", evicted_session_id=evicted_id)
        return session_id, controller

    def get(self, session_id: str) -> MenuItemController:
        try:
            controller = self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None
        self._sessions.move_to_end(session_id)
        return controller

    def discard(self, session_id: str) -> None:
        controller = self._sessions.pop(session_id, None)
        if controller is not None:
            controller.reset()

    def clear(self) -> None:
        for controller in self._sessions.values():
            controller.reset()
        self._sessions.clear()
