"""Relay router.

Pure store-and-forward: the router never keeps negotiation state, it only
rewrites `payload.key` so the receiver knows who sent the envelope.

Sends to other peers are fire-and-forget: each one runs as its own task so a
peer that stops reading never stalls the source or the rest of a fan-out.
Sends to the same target are chained to keep their order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set, Union

from websockets.exceptions import ConnectionClosed

from ..net import protocol
from .registry import ConnectionHandle, SessionRegistry


logger = logging.getLogger(__name__)


class RelayRouter:
    def __init__(self, registry: SessionRegistry):
        self.registry = registry
        self._outbox: Dict[str, Set[asyncio.Task[None]]] = {}
        self._tails: Dict[str, asyncio.Task[None]] = {}

    async def connect(self, handle: ConnectionHandle, seed: Optional[str] = None) -> str:
        """Register a new transport and tell it its identifier."""

        identifier = self.registry.register(handle, seed)
        logger.info("relay socket connect id=%s peers=%s", identifier, len(self.registry))
        try:
            await handle.send(protocol.encode(protocol.make_register(identifier)))
        except ConnectionClosed:
            self.disconnect(identifier)
            raise
        return identifier

    def disconnect(self, identifier: str) -> None:
        if self.registry.remove(identifier):
            logger.info("relay socket close id=%s peers=%s", identifier, len(self.registry))
        for task in self._outbox.pop(identifier, set()):
            task.cancel()
        self._tails.pop(identifier, None)

    async def flush(self) -> None:
        """Wait until every queued send has finished or been cancelled."""

        while self._outbox:
            pending = [task for tasks in self._outbox.values() for task in tasks]
            await asyncio.gather(*pending, return_exceptions=True)

    async def route(self, source: str, raw: Union[str, bytes]) -> List[str]:
        """Handle one inbound frame from `source`.

        Returns the identifiers the envelope was queued for.
        """

        try:
            envelope = protocol.decode(raw)
        except protocol.DecodeError as e:
            logger.warning("relay dropped frame from=%s error=%s", source, e.message)
            return []

        kind = envelope.kind
        payload = envelope.payload

        if kind in (protocol.OFFER, protocol.ANSWER):
            if payload.desc is None:
                logger.debug("relay %s without desc from=%s", kind, source)
                return []
            out = protocol.Envelope(kind, protocol.Payload(key=source, desc=payload.desc))
            return self._forward(source, payload.key, out)

        if kind == protocol.ANSWER_OK:
            return self._forward(source, payload.key, protocol.make_answer_ok(source))

        if kind == protocol.ICE_CANDIDATE:
            if payload.candidate is None:
                logger.debug("relay ice-candidate without candidate from=%s", source)
                return []
            return self._broadcast(source, protocol.make_ice(payload.candidate, key=source))

        if kind == protocol.REGISTER:
            logger.debug("relay ignoring register from client id=%s", source)
        else:
            logger.debug("relay ignoring unknown type=%s from=%s", kind, source)
        return []

    def _forward(self, source: str, target: Optional[str], envelope: protocol.Envelope) -> List[str]:
        handle = self.registry.lookup(target)
        if handle is None:
            logger.info("relay %s target not found from=%s to=%s", envelope.kind, source, target)
            return []
        assert target is not None
        self._deliver(target, handle, envelope)
        logger.debug("relay %s from=%s to=%s", envelope.kind, source, target)
        return [target]

    def _broadcast(self, source: str, envelope: protocol.Envelope) -> List[str]:
        targets: List[str] = []
        for identifier, handle in self.registry.items():
            if identifier == source:
                continue
            self._deliver(identifier, handle, envelope)
            targets.append(identifier)
        logger.debug("relay %s from=%s fanout=%s", envelope.kind, source, len(targets))
        return targets

    def _deliver(self, target: str, handle: ConnectionHandle, envelope: protocol.Envelope) -> None:
        previous = self._tails.get(target)
        task = asyncio.create_task(
            self._send(target, handle, protocol.encode(envelope), previous),
            name=f"relay-send-{target}",
        )
        self._tails[target] = task
        self._outbox.setdefault(target, set()).add(task)
        task.add_done_callback(lambda t: self._settle(target, t))

    def _settle(self, target: str, task: asyncio.Task[None]) -> None:
        tasks = self._outbox.get(target)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                del self._outbox[target]
        if self._tails.get(target) is task:
            del self._tails[target]

    async def _send(
        self,
        target: str,
        handle: ConnectionHandle,
        message: str,
        previous: Optional[asyncio.Task[None]],
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await handle.send(message)
        except ConnectionClosed:
            logger.info("relay send failed, target closed id=%s", target)
        except Exception:
            logger.exception("relay send failed id=%s", target)
