"""Defaults shared by the relay server and its clients."""

from __future__ import annotations

import os


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 6789
DEFAULT_PATH = "/_web-rtc"


def env_int(name: str, default: int) -> int:
	v = os.environ.get(name)
	if v is None:
		return default
	try:
		return int(v)
	except ValueError:
		return default


def env_flag(name: str) -> bool:
	v = os.environ.get(name, "").strip().casefold()
	return v in {"1", "true", "yes", "on"}


def build_url(host: str, port: int, path: str) -> str:
	if not path.startswith("/"):
		path = "/" + path
	return f"ws://{host}:{port}{path}"
