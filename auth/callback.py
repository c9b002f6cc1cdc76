from __future__ import annotations

import secrets
import socket
import threading
import time
import urllib.parse
from dataclasses import dataclass

from auth.errors import (
    InvalidState,
    ListenerBindFailed,
    ListenerClosed,
    ListenerFailed,
    ListenerTimeout,
    MalformedCallbackRequest,
    ProviderAuthorizationError,
)
from auth.urls import CALLBACK_PATH, LOOPBACK_HOST
from spotlogin.constants import LOGGER

MAX_LINE_BYTES = 8192
MAX_HEADER_LINES = 100
READ_TIMEOUT_SECONDS = 5.0
POLL_INTERVAL_SECONDS = 0.25
SUPPORTED_VERSIONS = {"HTTP/1.0", "HTTP/1.1"}

_PAGE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <title>{title}</title>
  </head>
  <body>
    <h1>{title}</h1>
    <p>{message}</p>
  </body>
</html>"""

SUCCESS_PAGE = _PAGE.format(
    title="Success!",
    message="Thank you for authenticating with Spotify! You can close this page now.",
)
DENIED_PAGE = _PAGE.format(
    title="Authorization declined",
    message="Spotify did not grant access. You can close this page now.",
)
FAILURE_PAGE = _PAGE.format(
    title="Authorization failed",
    message="The authorization response could not be verified. Please try again.",
)
NOT_FOUND_PAGE = _PAGE.format(title="Not found", message="Nothing to see here.")


@dataclass(frozen=True)
class RequestLine:
    method: str
    path: str
    query: str
    version: str

    def params(self) -> dict[str, str]:
        return dict(urllib.parse.parse_qsl(self.query, keep_blank_values=True))


def parse_request_line(line: str) -> RequestLine:
    """Split an HTTP request line into method, path, query and version.

    ``GET /callback?code=abc&state=xyz HTTP/1.1`` yields path ``/callback``
    and query ``code=abc&state=xyz``.
    """
    parts = line.rstrip("\r\n").split(" ")
    if len(parts) != 3 or not all(parts):
        raise MalformedCallbackRequest(f"Unparseable request line: {line[:80]!r}")

    method, target, version = parts
    if version not in SUPPORTED_VERSIONS:
        raise MalformedCallbackRequest(f"Unsupported protocol version: {version[:20]!r}")

    path, _, query = target.partition("?")
    return RequestLine(method=method, path=path, query=query, version=version)


def _render(status: int, reason: str, body: str) -> bytes:
    payload = body.encode("utf-8")
    head = (
        f"HTTP/1.1 {status} {reason}\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + payload


def _states_match(received: str | None, expected: str) -> bool:
    if received is None:
        return False
    return secrets.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


class CallbackListener:
    """Single-use loopback HTTP acceptor for the authorization redirect.

    The socket is owned exclusively by this object and is released when
    ``wait_for_code`` returns or raises. Calling ``close`` from another
    thread cancels a pending wait.
    """

    def __init__(
        self,
        port: int,
        *,
        expected_path: str = CALLBACK_PATH,
        host: str = LOOPBACK_HOST,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self.requested_port = port
        self.expected_path = expected_path
        self.host = host
        self.poll_interval = poll_interval

        self._sock: socket.socket | None = None
        self._closed = threading.Event()
        self._lock = threading.Lock()

    def __enter__(self) -> "CallbackListener":
        return self.bind()

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def port(self) -> int:
        sock = self._sock
        if sock is None:
            return self.requested_port
        return sock.getsockname()[1]

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def bind(self) -> "CallbackListener":
        with self._lock:
            if self._closed.is_set():
                raise ListenerClosed()
            if self._sock is not None:
                return self

            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind((self.host, self.requested_port))
                sock.listen(5)
            except OSError as error:
                sock.close()
                raise ListenerBindFailed(
                    self.requested_port, error.strerror or str(error)
                ) from error

            sock.settimeout(self.poll_interval)
            self._sock = sock

        LOGGER.info("Listening for authorization redirect on %s:%s", self.host, self.port)
        return self

    def close(self) -> None:
        self._closed.set()
        with self._lock:
            sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()
            LOGGER.info("Callback listener closed")

    def wait_for_code(self, expected_state: str, *, timeout: float | None = None) -> str:
        """Block until the redirect arrives and return the authorization code.

        Requests for other paths (favicon fetches and the like) and callback
        requests carrying neither ``code`` nor ``error`` are answered and
        ignored. The first callback request that does carry one of them
        ends the wait, successfully or not.
        """
        self.bind()
        deadline = None if timeout is None else time.monotonic() + timeout

        try:
            while True:
                if self._closed.is_set():
                    raise ListenerClosed()
                if deadline is not None and time.monotonic() >= deadline:
                    raise ListenerTimeout(timeout)

                sock = self._sock
                if sock is None:
                    raise ListenerClosed()

                try:
                    conn, _ = sock.accept()
                except socket.timeout:
                    continue
                except OSError as error:
                    if self._closed.is_set():
                        raise ListenerClosed() from None
                    LOGGER.warning("Callback listener accept failed: %s", error)
                    raise ListenerFailed(error.strerror or str(error)) from error

                with conn:
                    code = self._handle_connection(conn, expected_state)
                if code is not None:
                    return code
        finally:
            self.close()

    def _handle_connection(self, conn: socket.socket, expected_state: str) -> str | None:
        conn.settimeout(READ_TIMEOUT_SECONDS)
        try:
            request = self._read_request(conn)
        except MalformedCallbackRequest as error:
            LOGGER.debug("Ignoring malformed request: %s", error)
            self._respond(conn, 400, "Bad Request", FAILURE_PAGE)
            return None

        if request.method != "GET" or request.path != self.expected_path:
            LOGGER.debug("Ignoring %s %s", request.method, request.path)
            self._respond(conn, 404, "Not Found", NOT_FOUND_PAGE)
            return None

        params = request.params()
        code = params.get("code")
        error = params.get("error")
        if not code and not error:
            LOGGER.debug("Ignoring callback request without code or error")
            self._respond(conn, 400, "Bad Request", FAILURE_PAGE)
            return None

        if not _states_match(params.get("state"), expected_state):
            LOGGER.warning("Callback state mismatch; aborting authorization")
            self._respond(conn, 400, "Bad Request", FAILURE_PAGE)
            raise InvalidState()

        if code:
            self._respond(conn, 200, "OK", SUCCESS_PAGE)
            return code

        LOGGER.warning("Provider returned authorization error: %s", error)
        self._respond(conn, 200, "OK", DENIED_PAGE)
        raise ProviderAuthorizationError(error)

    def _read_request(self, conn: socket.socket) -> RequestLine:
        reader = conn.makefile("rb")
        try:
            try:
                raw = reader.readline(MAX_LINE_BYTES + 1)
            except OSError as error:
                raise MalformedCallbackRequest(f"Could not read request: {error}") from error
            if not raw:
                raise MalformedCallbackRequest("Connection closed without a request line")
            self._drain_headers(reader)

            if len(raw) > MAX_LINE_BYTES:
                raise MalformedCallbackRequest("Request line too long")
            try:
                line = raw.decode("ascii")
            except UnicodeDecodeError as error:
                raise MalformedCallbackRequest("Request line is not ASCII") from error
            return parse_request_line(line)
        finally:
            reader.close()

    @staticmethod
    def _drain_headers(reader) -> None:
        # Unread request bytes make the kernel reset the connection on close,
        # which hides the response page from the browser.
        try:
            for _ in range(MAX_HEADER_LINES):
                header = reader.readline(MAX_LINE_BYTES + 1)
                if header in (b"", b"\r\n", b"\n"):
                    return
        except OSError as error:
            LOGGER.debug("Stopped reading request headers: %s", error)

    @staticmethod
    def _respond(conn: socket.socket, status: int, reason: str, body: str) -> None:
        try:
            conn.sendall(_render(status, reason, body))
        except OSError as error:
            LOGGER.debug("Browser disconnected before the response was sent: %s", error)


def listen(
    port: int,
    expected_path: str,
    expected_state: str,
    *,
    timeout: float | None = None,
) -> str:
    """Bind ``127.0.0.1:port`` and wait for one authorization redirect."""
    with CallbackListener(port, expected_path=expected_path) as listener:
        return listener.wait_for_code(expected_state, timeout=timeout)
