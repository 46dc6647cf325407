"""Ephemeral loopback HTTP server for transformations that only read URLs.

Only files explicitly registered with :meth:`ContentServer.register` are
served; every other request path gets a 404, so nothing outside the
registered set is reachable.
"""

from __future__ import annotations

import hashlib
import http.server
import threading
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Final, Self
from urllib.parse import quote, unquote, urlsplit

from apiviz._shared.logging import get_logger

if TYPE_CHECKING:
    from types import TracebackType

__all__ = ["ContentServer"]

LOGGER = get_logger(__name__)

_CONTENT_TYPES: Final[dict[str, str]] = {
    ".json": "application/json",
    ".yaml": "application/yaml",
    ".yml": "application/yaml",
}


class _RegisteredFileHandler(http.server.BaseHTTPRequestHandler):
    """Serve bytes of registered files; 404 for anything else."""

    def __init__(self, *args: object, routes: dict[str, Path], **kwargs: object) -> None:
        self._routes = routes
        super().__init__(*args, **kwargs)  # type: ignore[arg-type]

    def do_GET(self) -> None:
        route = unquote(urlsplit(self.path).path)
        target = self._routes.get(route)
        if target is None:
            self.send_error(404, "Not found")
            return
        try:
            body = target.read_bytes()
        except OSError:
            LOGGER.exception("Failed to read served file", extra={"path": target.as_posix()})
            self.send_error(500, "Unreadable file")
            return
        self.send_response(200)
        self.send_header("Content-Type", _CONTENT_TYPES.get(target.suffix.lower(), "text/plain"))
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        LOGGER.debug(format % args, extra={"operation": "serve"})


class ContentServer:
    """Serve registered local files at ``http://127.0.0.1:<port>/...`` URLs.

    The server binds an ephemeral port on the loopback interface and runs on a
    daemon thread. Use it as a context manager so it is always shut down.

    Examples
    --------
    >>> with ContentServer() as server:  # doctest: +SKIP
    ...     url = server.register(Path("petstore.json"))
    """

    def __init__(self, host: str = "127.0.0.1") -> None:
        self._host = host
        self._routes: dict[str, Path] = {}
        self._httpd: http.server.ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """``True`` while the server is accepting requests."""
        return self._httpd is not None

    @property
    def base_url(self) -> str:
        """Root URL of the running server."""
        if self._httpd is None:
            message = "Content server is not running"
            raise RuntimeError(message)
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> Self:
        """Bind the listening socket and start serving on a daemon thread."""
        if self._httpd is not None:
            return self
        handler = partial(_RegisteredFileHandler, routes=self._routes)
        self._httpd = http.server.ThreadingHTTPServer((self._host, 0), handler)
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="apiviz-content-server", daemon=True
        )
        self._thread.start()
        LOGGER.info("Content server started", extra={"operation": "serve", "url": self.base_url})
        return self

    def register(self, path: Path) -> str:
        """Expose ``path`` and return its URL.

        The route embeds a digest of the resolved path so distinct files with
        the same name never collide. Registering the same file twice returns
        the same URL.
        """
        resolved = path.resolve()
        token = hashlib.sha256(resolved.as_posix().encode("utf-8")).hexdigest()[:16]
        route = f"/documents/{token}/{resolved.name}"
        self._routes[route] = resolved
        return f"{self.base_url}{quote(route)}"

    def unregister(self, url: str) -> None:
        """Stop serving the file behind ``url``; unknown URLs are ignored."""
        self._routes.pop(unquote(urlsplit(url).path), None)

    def close(self) -> None:
        """Shut the server down and release the socket."""
        if self._httpd is None:
            return
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join()
        self._httpd = None
        self._thread = None
        self._routes.clear()
        LOGGER.info("Content server stopped", extra={"operation": "serve"})

    def __enter__(self) -> Self:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
