"""Preview server for Tessera.

Serves the built site with live reload while the site is being edited:
- Every build goes into a staging directory that replaces the output only
  when the build succeeds, so a broken edit never leaves a half-built site.
- Watches the contents and templates directories and the config file, and
  rebuilds when they change.
- Injects a reload script into HTML responses; a websocket broadcast tells
  open pages to reload after each successful rebuild.

Key classes:
- PreviewServer: Builds, watches and serves.
- _ReloadHandler: HTTP request handler that injects the reload script.
- _ChangeHandler: File system event handler that triggers rebuilds.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import shutil
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import build_site
from .config import CONFIG_FILENAME, load_config
from .errors import TesseraError

logger = logging.getLogger(__name__)

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
  ws.onmessage = (event) => {{
    const data = JSON.parse(event.data || '{{}}');
    if (data.type === 'reload') location.reload();
  }};
}})();
</script>
"""


def inject_reload_script(html: str, script: str) -> str:
    """Insert the reload script before ``</body>``, or append it."""
    if "</body>" in html:
        return html.replace("</body>", f"{script}</body>")
    return html + script


class _ReloadHandler(SimpleHTTPRequestHandler):
    """Static file handler that adds the reload script to HTML pages."""

    reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=8081)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        self.send_error(404, "File not found")
        return None

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def send_head(self):
        path = Path(self.translate_path(self.path))
        if path.is_dir():
            path = path / "index.html"
        if not path.is_file():
            self.send_error(404, "File not found")
            return None
        if path.suffix != ".html":
            return super().send_head()
        content = inject_reload_script(path.read_text(encoding="utf-8"), self.reload_script)
        encoded = content.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)
        return None


class PreviewServer:
    """Preview server with live reload.

    Attributes:
        project_root: Root directory of the project.
        config: Site configuration.
        output_dir: Directory the built site is served from.
        http_port: Port for the HTTP server.
        ws_port: Port for websocket connections.
    """

    def __init__(
        self,
        project_root: Path,
        config_file: Path | None = None,
        overrides: dict[str, Any] | None = None,
        http_port: int | None = None,
    ):
        self.project_root = project_root
        self.config_file = config_file
        self.overrides = dict(overrides or {})
        self.config = load_config(project_root, config_file)
        self.config.update({k: v for k, v in self.overrides.items() if v is not None})
        self.output_dir = project_root / self.config.get("output", "build")
        self._staging_dir = self.output_dir.with_name(self.output_dir.name + ".staging")
        self.http_port = int(http_port or self.config.get("port") or 8080)
        self.ws_port = int(self.config.get("ws_port") or self.http_port + 1)
        self._reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=self.ws_port)
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._lock = threading.Lock()
        self._last_rebuild_at = 0.0
        self._last_signature: tuple | None = None
        self._debounce_seconds = 0.05

    def watched_paths(self) -> list[Path]:
        """Directories whose changes trigger a rebuild."""
        paths = [
            self.project_root / self.config.get("contents", "contents"),
            self.project_root / self.config.get("templates", "templates"),
        ]
        return [path for path in paths if path.exists()]

    def start(self) -> None:  # pragma: no cover - integration path
        self.build()
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self._start_watcher()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        if self._httpd:
            self._httpd.shutdown()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def build(self) -> bool:
        """Build into the staging directory and swap it in on success.

        Returns:
            True if the build succeeded. On failure the error is logged and
            the previous output is left untouched.
        """
        staging = self._prepare_staging_dir()
        try:
            build_site(
                self.project_root,
                config_file=self.config_file,
                overrides=self.overrides,
                clean_output=True,
                output_dir_override=staging,
                mode="preview",
            )
        except TesseraError as exc:
            logger.error("Build failed: %s", exc, exc_info=exc)
            shutil.rmtree(staging, ignore_errors=True)
            return False
        self._activate_staging(staging)
        self._last_signature = self._compute_signature()
        return True

    def rebuild(self) -> None:
        """Rebuild after a change, then tell connected pages to reload.

        Calls arriving while a rebuild is running, within the debounce
        window, or when no watched file actually changed are ignored.
        """
        now = time.time()
        if (now - self._last_rebuild_at) < self._debounce_seconds:
            return
        if not self._lock.acquire(blocking=False):
            return
        try:
            signature = self._compute_signature()
            if signature is not None and signature == self._last_signature:
                return
            logger.info("Change detected; rebuilding...")
            if self.build():
                self._broadcast_reload()
        finally:
            self._last_rebuild_at = time.time()
            self._lock.release()

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        self._httpd = ThreadingHTTPServer(("", self.http_port), handler)
        logger.info("Serving %s at http://localhost:%d", self.output_dir, self.http_port)
        self._httpd.serve_forever()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            logger.warning("Websocket server failed to start (port %d): %s", self.ws_port, exc)

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self) -> None:
        if not self._loop.is_running():
            return
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str) -> None:
        stale = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send(message)
            except ConnectionClosed:
                stale.add(ws)
        self._ws_clients -= stale

    def _start_watcher(self) -> None:  # pragma: no cover - integration path
        handler = _ChangeHandler(self)
        observer = Observer()
        for path in self.watched_paths():
            observer.schedule(handler, str(path), recursive=True)
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def _compute_signature(self) -> tuple | None:
        entries: list[tuple] = []
        config_path = self.project_root / (self.config_file or CONFIG_FILENAME)
        files = [config_path] if config_path.exists() else []
        for root in self.watched_paths():
            files.extend(path for path in sorted(root.rglob("*")) if not path.is_dir())
        for path in files:
            try:
                stat = path.stat()
            except OSError:
                continue
            rel = path.relative_to(self.project_root)
            entries.append((str(rel), stat.st_mtime_ns, stat.st_size))
        return tuple(entries) if entries else None

    def _prepare_staging_dir(self) -> Path:
        staging = self._staging_dir
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True, exist_ok=True)
        return staging

    def _activate_staging(self, staging: Path) -> None:
        target = self.output_dir
        if target.exists():
            shutil.rmtree(target)
        os.replace(staging, target)


class _ChangeHandler(FileSystemEventHandler):
    """Triggers a rebuild for changes outside the output directories."""

    def __init__(self, server: PreviewServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(os.fsdecode(event.src_path))
        for ignored in (self.server.output_dir, self.server._staging_dir):
            if path.is_relative_to(ignored):
                return
        self.server.rebuild()
