"""Per-peer negotiation bookkeeping.

One `NegotiationSession` per remote identifier. The client's aggregate
`status` and `connected` list are derived from these sessions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional


logger = logging.getLogger(__name__)


# Client status
PENDING = "pending"
READY = "ready"
CONNECTED = "connected"
CLOSED = "closed"

# Session phases
NEW = "new"
OFFER_SENT = "offer-sent"
ANSWER_SENT = "answer-sent"
COMPLETED = "completed"


@dataclass
class NegotiationSession:
    peer_id: str
    phase: str = NEW
    remote_candidates: int = 0

    @property
    def completed(self) -> bool:
        return self.phase == COMPLETED

    def offer_sent(self) -> None:
        if not self.completed:
            self.phase = OFFER_SENT

    def answer_sent(self) -> None:
        if not self.completed:
            self.phase = ANSWER_SENT

    def complete(self) -> bool:
        """Mark the handshake done; False if it already was."""

        if self.completed:
            return False
        self.phase = COMPLETED
        return True


class NegotiationState:
    def __init__(self) -> None:
        self.status = PENDING
        self.sessions: Dict[str, NegotiationSession] = {}
        self._connected: List[str] = []

    @property
    def connected(self) -> List[str]:
        return list(self._connected)

    def session(self, peer_id: str) -> NegotiationSession:
        s = self.sessions.get(peer_id)
        if s is None:
            s = NegotiationSession(peer_id)
            self.sessions[peer_id] = s
        return s

    def get(self, peer_id: Optional[str]) -> Optional[NegotiationSession]:
        if peer_id is None:
            return None
        return self.sessions.get(peer_id)

    def mark_ready(self) -> None:
        if self.status == PENDING:
            self.status = READY

    def complete(self, peer_id: str) -> bool:
        if self.status == CLOSED:
            return False
        if not self.session(peer_id).complete():
            return False
        self._connected.append(peer_id)
        self.status = CONNECTED
        logger.info("rtc negotiation completed peer_id=%s connected=%s", peer_id, len(self._connected))
        return True

    def close(self) -> None:
        self.status = CLOSED
