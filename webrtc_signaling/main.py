from __future__ import annotations

import argparse
import asyncio
import os
import sys

from .logging_config import setup_logging
from .net.config import DEFAULT_HOST, DEFAULT_PATH, DEFAULT_PORT, env_flag, env_int


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="webrtc-signaling", description="WebRTC signaling relay")
	parser.add_argument(
		"--log-level",
		default=None,
		help="Logging level (debug, info, warning, error). Can also use WEBRTC_SIGNALING_LOG_LEVEL.",
	)
	parser.add_argument(
		"--host",
		default=os.environ.get("WEBRTC_SIGNALING_HOST", DEFAULT_HOST),
		help="Relay host to bind or connect to",
	)
	parser.add_argument(
		"--port",
		type=int,
		default=env_int("WEBRTC_SIGNALING_PORT", DEFAULT_PORT),
		help="Relay port",
	)
	parser.add_argument(
		"--path",
		default=os.environ.get("WEBRTC_SIGNALING_PATH", DEFAULT_PATH),
		help="WebSocket path of the relay",
	)
	sub = parser.add_subparsers(dest="command", required=True)

	serve = sub.add_parser("serve", help="Run the relay server")
	serve.add_argument(
		"--debug",
		action="store_true",
		default=env_flag("WEBRTC_SIGNALING_DEBUG"),
		help="Enable diagnostic logging. Can also use WEBRTC_SIGNALING_DEBUG=1.",
	)

	client = sub.add_parser("client", help="Register with a relay and optionally offer a data channel")
	client.add_argument("--connect", default=None, metavar="ID", help="Peer identifier to offer to")
	client.add_argument("--label", default="label", help="Data channel label")
	client.add_argument("--message", default="hello", help="Text sent once the data channel opens")
	client.add_argument("--timeout", type=float, default=10.0, help="Seconds to wait for registration")
	return parser


async def _serve(args: argparse.Namespace) -> int:
	from .server.app import ServerOptions, SignalingServer

	server = SignalingServer(ServerOptions(host=args.host, port=args.port, path=args.path, debug=args.debug))
	await server.serve_forever()
	return 0


async def _client(args: argparse.Namespace) -> int:
	from .rtc.client import ClientOptions, WebRTCClient

	client = WebRTCClient(ClientOptions(host=args.host, port=args.port, path=args.path))

	def on_connection(channel) -> None:
		print(f"incoming channel label={channel.label}")

		@channel.on("message")
		def on_message(message) -> None:
			print(f"[{channel.label}] {message}")

	client.on_connection(on_connection)

	async with client:
		peer_id = await client.wait_ready(timeout=args.timeout)
		print(f"registered as {peer_id}")

		if args.connect:
			channel = await client.connect(args.connect, label=args.label)

			@channel.on("open")
			def on_open() -> None:
				channel.send(args.message)

		await asyncio.Event().wait()
	return 0


def main(argv: list[str] | None = None) -> int:
	parser = build_parser()
	args = parser.parse_args(argv)

	setup_logging(args.log_level, debug=getattr(args, "debug", False))

	runner = _serve if args.command == "serve" else _client
	try:
		return asyncio.run(runner(args))
	except KeyboardInterrupt:
		return 0


if __name__ == "__main__":
	raise SystemExit(main(sys.argv[1:]))
