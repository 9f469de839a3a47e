"""Session identifier allocation.

Identifiers are opaque to clients. They only need to be unique among the
connections a single relay has alive at once.
"""

from __future__ import annotations

import secrets
import time
from typing import Optional


ALPHABET = "useandom-26T198340PX75pxJACKVERYMINDBUSHWOLF_GQZbfghjklqvwyzrict"
SEGMENT_SIZE = 6


def _random_segment(size: int = SEGMENT_SIZE) -> str:
	return "".join(secrets.choice(ALPHABET) for _ in range(size))


def _clock_segment() -> str:
	# last digits of the millisecond clock
	return str(time.time_ns() // 1_000_000)[-SEGMENT_SIZE:]


def allocate(seed: Optional[str] = None) -> str:
	"""Return a new identifier.

	`seed` (usually the client's Sec-WebSocket-Key) contributes its first six
	characters as the last segment; a random segment is used without it.
	"""

	tail = (seed or "")[:SEGMENT_SIZE] or _random_segment()
	return "-".join((_random_segment(), _clock_segment(), _random_segment(), tail))
