import errno
import socket
import threading

import pytest

from auth.callback import CallbackListener, RequestLine, listen, parse_request_line
from auth.errors import (
    InvalidState,
    ListenerBindFailed,
    ListenerClosed,
    ListenerFailed,
    ListenerTimeout,
    MalformedCallbackRequest,
    ProviderAuthorizationError,
)
from tests.oauth_helpers import Waiter, free_port, send_raw, send_request_line, send_when_listening

STATE = "expectedState123"


def _bound_listener() -> CallbackListener:
    return CallbackListener(0, poll_interval=0.05).bind()


def test_parse_request_line_splits_path_and_query() -> None:
    request = parse_request_line("GET /callback?code=ABC&state=xyz HTTP/1.1\r\n")

    assert request == RequestLine(
        method="GET",
        path="/callback",
        query="code=ABC&state=xyz",
        version="HTTP/1.1",
    )
    assert request.params() == {"code": "ABC", "state": "xyz"}


def test_parse_request_line_without_query() -> None:
    request = parse_request_line("GET /favicon.ico HTTP/1.0")

    assert request.path == "/favicon.ico"
    assert request.query == ""
    assert request.params() == {}


def test_parse_request_line_decodes_query_values() -> None:
    request = parse_request_line("GET /callback?error=access%20denied&state=a%2Bb HTTP/1.1")

    assert request.params() == {"error": "access denied", "state": "a+b"}


@pytest.mark.parametrize(
    "line",
    [
        "",
        "GET /callback",
        "GET  /callback HTTP/1.1",
        "GET /callback HTTP/1.1 extra",
        "GET /callback SPDY/3",
        "garbage",
    ],
)
def test_parse_request_line_rejects_malformed_lines(line: str) -> None:
    with pytest.raises(MalformedCallbackRequest):
        parse_request_line(line)


def test_returns_code_for_matching_request() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    response = send_request_line(listener.port, f"GET /callback?code=ABC&state={STATE} HTTP/1.1")

    assert waiter.join() == "ABC"
    assert response.startswith(b"HTTP/1.1 200 OK\r\n")
    assert b"Success!" in response
    assert listener.closed


def test_state_mismatch_is_invalid_state() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    response = send_request_line(listener.port, "GET /callback?code=ABC&state=otherState HTTP/1.1")

    with pytest.raises(InvalidState):
        waiter.join()
    assert response.startswith(b"HTTP/1.1 400 Bad Request")
    assert b"ABC" not in response
    assert listener.closed


def test_missing_state_is_invalid_state() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    send_request_line(listener.port, "GET /callback?code=ABC HTTP/1.1")

    with pytest.raises(InvalidState):
        waiter.join()


def test_provider_error_is_reported() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    response = send_request_line(listener.port, f"GET /callback?error=access_denied&state={STATE} HTTP/1.1")

    with pytest.raises(ProviderAuthorizationError) as excinfo:
        waiter.join()
    assert excinfo.value.code == "access_denied"
    assert response.startswith(b"HTTP/1.1 200 OK")
    assert listener.closed


def test_provider_error_with_wrong_state_is_invalid_state() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    send_request_line(listener.port, "GET /callback?error=access_denied&state=nope HTTP/1.1")

    with pytest.raises(InvalidState):
        waiter.join()


def test_ignores_requests_for_other_paths() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    favicon = send_request_line(listener.port, "GET /favicon.ico HTTP/1.1")
    other = send_request_line(listener.port, f"POST /callback?code=NOPE&state={STATE} HTTP/1.1")
    send_request_line(listener.port, f"GET /callback?code=XYZ&state={STATE} HTTP/1.1")

    assert waiter.join() == "XYZ"
    assert favicon.startswith(b"HTTP/1.1 404 Not Found")
    assert other.startswith(b"HTTP/1.1 404 Not Found")


def test_ignores_malformed_requests() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    garbage = send_raw(listener.port, b"\x00\xffnot http at all\r\n\r\n")
    empty = send_raw(listener.port, b"")
    send_request_line(listener.port, f"GET /callback?code=XYZ&state={STATE} HTTP/1.0")

    assert waiter.join() == "XYZ"
    assert garbage.startswith(b"HTTP/1.1 400 Bad Request")
    assert empty.startswith(b"HTTP/1.1 400 Bad Request")


def test_callback_without_code_or_error_keeps_listening() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    first = send_request_line(listener.port, f"GET /callback?state={STATE} HTTP/1.1")
    send_request_line(listener.port, f"GET /callback?state={STATE}&code=LATE HTTP/1.1")

    assert waiter.join() == "LATE"
    assert first.startswith(b"HTTP/1.1 400 Bad Request")


def test_bind_failure_when_port_in_use() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as occupied:
        occupied.bind(("127.0.0.1", 0))
        occupied.listen(1)
        port = occupied.getsockname()[1]

        with pytest.raises(ListenerBindFailed) as excinfo:
            CallbackListener(port).bind()

    assert excinfo.value.port == port


def test_wait_times_out_and_releases_socket() -> None:
    listener = _bound_listener()
    port = listener.port

    with pytest.raises(ListenerTimeout):
        listener.wait_for_code(STATE, timeout=0.2)

    assert listener.closed
    with pytest.raises(ConnectionRefusedError):
        send_request_line(port, f"GET /callback?code=ABC&state={STATE} HTTP/1.1")


def test_close_from_another_thread_cancels_wait() -> None:
    listener = _bound_listener()
    waiter = Waiter(listener.wait_for_code, STATE).start()

    threading.Timer(0.2, listener.close).start()

    with pytest.raises(ListenerClosed):
        waiter.join()


class _SocketOutOfDescriptors:
    def accept(self):
        raise OSError(errno.EMFILE, "Too many open files")

    def close(self) -> None:
        pass


def test_accept_failure_is_listener_failed() -> None:
    listener = _bound_listener()
    real_sock = listener._sock
    listener._sock = _SocketOutOfDescriptors()

    try:
        with pytest.raises(ListenerFailed, match="Too many open files"):
            listener.wait_for_code(STATE, timeout=5.0)
    finally:
        real_sock.close()

    assert listener.closed


def test_closed_listener_cannot_be_reused() -> None:
    listener = _bound_listener()
    listener.close()

    with pytest.raises(ListenerClosed):
        listener.wait_for_code(STATE)


def test_context_manager_releases_socket() -> None:
    with CallbackListener(0) as listener:
        port = listener.port
        assert port != 0

    assert listener.closed
    with pytest.raises(ConnectionRefusedError):
        send_request_line(port, "GET / HTTP/1.1")


def test_listen_binds_port_and_returns_code() -> None:
    port = free_port()
    waiter = Waiter(listen, port, "/callback", STATE, timeout=5.0).start()

    send_when_listening(port, f"GET /callback?code=FROM-LISTEN&state={STATE} HTTP/1.1")

    assert waiter.join() == "FROM-LISTEN"


def test_listen_honours_custom_path() -> None:
    port = free_port()
    waiter = Waiter(listen, port, "/spotify/redirect", STATE, timeout=5.0).start()

    ignored = send_when_listening(port, f"GET /callback?code=WRONG&state={STATE} HTTP/1.1")
    send_request_line(port, f"GET /spotify/redirect?code=RIGHT&state={STATE} HTTP/1.1")

    assert waiter.join() == "RIGHT"
    assert ignored.startswith(b"HTTP/1.1 404")
