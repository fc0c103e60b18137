"""
StreamServer - async websocket/HTTP harness around the progressive renderer.

One port serves everything:

- ``/``             viewer page
- ``/ws``           websocket: inbound control messages, outbound PNG frames
- ``/frame.png``    one-shot composed snapshot
- ``/metrics.json`` metrics snapshot
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from typing import Optional
from urllib.parse import urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.datastructures import Headers
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from tracer_stream import __version__
from tracer_stream.server.app.page import render_page
from tracer_stream.server.app.render_worker import RenderWorkerState, start_worker, stop_worker
from tracer_stream.server.config import ServerCtx, load_server_ctx
from tracer_stream.server.control.input_router import route_message
from tracer_stream.server.errors import StartupError
from tracer_stream.server.metrics import Metrics
from tracer_stream.server.pixel.publisher import configure_socket, publish_frames
from tracer_stream.server.rendering.orchestrator import RenderOrchestrator

logger = logging.getLogger(__name__)

WS_PATH = "/ws"


def _http_response(status: int, reason: str, content_type: str, body: bytes) -> Response:
    headers = Headers(
        [
            ("Content-Type", content_type),
            ("Content-Length", str(len(body))),
            ("Cache-Control", "no-store"),
            ("Connection", "close"),
        ]
    )
    return Response(status, reason, headers, body)


class StreamServer:
    def __init__(self, ctx: ServerCtx, *, orchestrator: Optional[RenderOrchestrator] = None,
                 metrics: Optional[Metrics] = None) -> None:
        self._ctx = ctx
        self.metrics = metrics if metrics is not None else Metrics(ctx.metrics_window)
        if orchestrator is None:
            orchestrator = RenderOrchestrator.from_ctx(ctx, metrics=self.metrics)
        self.orchestrator = orchestrator
        self.host = ctx.cfg.host
        self.port = int(ctx.cfg.port)
        self._worker = RenderWorkerState()
        self._clients: set[ServerConnection] = set()
        self._log_input = bool(ctx.debug_policy.logging.log_input)
        self._log_stream = bool(ctx.debug_policy.logging.log_stream)

    @property
    def clients(self) -> frozenset[ServerConnection]:
        return frozenset(self._clients)

    def _update_client_gauges(self) -> None:
        self.metrics.set("tracer_stream_stream_clients", float(len(self._clients)))

    # --- HTTP -----------------------------------------------------------------
    async def process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        path = urlsplit(request.path).path
        if path == WS_PATH:
            return None
        if path in ("/", "/index.html"):
            body = render_page(self.orchestrator.width, self.orchestrator.height).encode("utf-8")
            return _http_response(200, "OK", "text/html; charset=utf-8", body)
        if path == "/frame.png":
            try:
                png = await asyncio.to_thread(self.orchestrator.encode_png)
            except (OSError, ValueError):
                logger.exception("encode for /frame.png failed")
                return _http_response(500, "Internal Server Error", "text/plain", b"encode failed\n")
            return _http_response(200, "OK", "image/png", png)
        if path == "/metrics.json":
            body = json.dumps(self.metrics.snapshot()).encode("utf-8")
            return _http_response(200, "OK", "application/json", body)
        return _http_response(404, "Not Found", "text/plain", b"not found\n")

    # --- websocket ------------------------------------------------------------
    async def handle_ws(self, ws: ServerConnection) -> None:
        configure_socket(ws)
        remote = ws.remote_address
        self._clients.add(ws)
        self._update_client_gauges()
        logger.info("client connected remote=%s clients=%d", remote, len(self._clients))
        publisher = asyncio.create_task(
            publish_frames(
                self.orchestrator,
                ws,
                interval_ms=self._ctx.cfg.stream.interval_ms,
                metrics=self.metrics,
                log_stream=self._log_stream,
            )
        )
        try:
            async for message in ws:
                await route_message(
                    self.orchestrator,
                    message,
                    metrics=self.metrics,
                    log_input=self._log_input,
                )
        except ConnectionClosed as exc:
            logger.info("client read closed remote=%s: %s", remote, exc)
        finally:
            publisher.cancel()
            self._clients.discard(ws)
            self._update_client_gauges()
            logger.info("client disconnected remote=%s clients=%d", remote, len(self._clients))
            try:
                await publisher
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("frame publisher for remote=%s failed", remote)

    # --- lifecycle ------------------------------------------------------------
    def start_worker(self) -> None:
        start_worker(self.orchestrator, self._worker)

    def stop_worker(self) -> None:
        stop_worker(self._worker, orchestrator=self.orchestrator)

    async def listen(self) -> Server:
        """Bind the websocket/HTTP listener; the caller owns closing it."""

        server = await serve(
            self.handle_ws,
            self.host,
            self.port,
            process_request=self.process_request,
            compression=None,
            max_size=2**16,
        )
        bound = [sock.getsockname() for sock in server.sockets]
        logger.info(
            "Listening on %s (ws %s, snapshot /frame.png, metrics /metrics.json)",
            ", ".join(f"http://{addr[0]}:{addr[1]}/" for addr in bound),
            WS_PATH,
        )
        return server

    async def start(self) -> None:
        logger.debug("Resolved ServerConfig: %s", self._ctx.cfg)
        logger.info(
            "Starting tracer-stream %s %dx%d accumulate=%s",
            __version__,
            self.orchestrator.width,
            self.orchestrator.height,
            self._ctx.cfg.render.accumulate,
        )
        self.start_worker()
        try:
            server = await self.listen()
            try:
                await asyncio.Future()
            finally:
                server.close()
                await server.wait_closed()
        finally:
            self.stop_worker()


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.INFO,
                        format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s')
    if debug:
        logging.getLogger("tracer_stream").setLevel(logging.DEBUG)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description='tracer-stream progressive ray tracing server')
    parser.add_argument('--addr', default=None, help='host:port to bind (overrides --host/--port)')
    parser.add_argument('--host', default=None, help='Bind host (default TRACER_STREAM_HOST or 0.0.0.0)')
    parser.add_argument('--port', type=int, default=None, help='Bind port (default TRACER_STREAM_PORT or 8080)')
    parser.add_argument('--width', type=int, default=None, help='Image width in pixels')
    parser.add_argument('--height', type=int, default=None, help='Image height in pixels (default width / (16/9))')
    parser.add_argument('--debug', action='store_true', help='Enable DEBUG for tracer_stream loggers only')
    args = parser.parse_args(argv)

    _configure_logging(bool(args.debug))
    env = dict(os.environ)
    if args.addr:
        host, _, port = args.addr.rpartition(':')
        env['TRACER_STREAM_HOST'] = host or '0.0.0.0'
        env['TRACER_STREAM_PORT'] = port
    if args.host is not None:
        env['TRACER_STREAM_HOST'] = args.host
    if args.port is not None:
        env['TRACER_STREAM_PORT'] = str(args.port)
    if args.width is not None:
        env['TRACER_STREAM_WIDTH'] = str(args.width)
    if args.height is not None:
        env['TRACER_STREAM_HEIGHT'] = str(args.height)
    ctx = load_server_ctx(env)

    try:
        srv = StreamServer(ctx)
    except StartupError as exc:
        logger.error("cannot start: %s", exc)
        raise SystemExit(1) from exc

    try:
        asyncio.run(srv.start())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == '__main__':
    main()
