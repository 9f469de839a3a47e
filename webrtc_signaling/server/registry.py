"""Session registry: identifier -> live connection handle."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from ..net import ids


logger = logging.getLogger(__name__)


class ConnectionHandle(Protocol):
    async def send(self, message: str) -> None: ...


class SessionRegistry:
    """Single source of truth for which peers are reachable.

    Every operation holds one coarse lock; peer counts are expected to be
    small and none of the critical sections await.
    """

    def __init__(self, allocator: Callable[[Optional[str]], str] = ids.allocate):
        self._allocator = allocator
        self._lock = threading.Lock()
        self._handles: Dict[str, ConnectionHandle] = {}

    def register(self, handle: ConnectionHandle, seed: Optional[str] = None) -> str:
        with self._lock:
            identifier = self._allocator(seed)
            while identifier in self._handles:
                logger.warning("registry id collision id=%s", identifier)
                identifier = self._allocator(None)
            self._handles[identifier] = handle
            size = len(self._handles)
        logger.debug("registry add id=%s size=%s", identifier, size)
        return identifier

    def lookup(self, identifier: Optional[str]) -> Optional[ConnectionHandle]:
        if not identifier:
            return None
        with self._lock:
            return self._handles.get(identifier)

    def remove(self, identifier: str) -> bool:
        with self._lock:
            removed = self._handles.pop(identifier, None) is not None
            size = len(self._handles)
        if removed:
            logger.debug("registry remove id=%s size=%s", identifier, size)
        return removed

    def identifiers(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def items(self) -> List[Tuple[str, ConnectionHandle]]:
        with self._lock:
            return list(self._handles.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._handles
