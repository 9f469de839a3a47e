from __future__ import annotations

import logging
import os
from typing import Optional


def setup_logging(level: Optional[str] = None, debug: bool = False) -> None:
    """Configure stdlib logging for the server and the demo client.

    `debug` wins over everything else; otherwise the explicit level, then
    WEBRTC_SIGNALING_LOG_LEVEL, then INFO.
    """

    if debug:
        effective_level = "DEBUG"
    else:
        effective_level = (level or os.environ.get("WEBRTC_SIGNALING_LOG_LEVEL") or "INFO").upper()

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=effective_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        root.setLevel(effective_level)
