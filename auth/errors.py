from __future__ import annotations


class AuthError(RuntimeError):
    """Base class for every failure raised by the authorization flow."""


class RandomSourceUnavailable(AuthError):
    def __init__(self) -> None:
        super().__init__("System random source is unavailable; refusing to generate PKCE material.")


class InvalidRedirectUri(AuthError):
    def __init__(self, uri: str) -> None:
        super().__init__(f"Redirect URI must be an http loopback URI, got {uri!r}.")
        self.uri = uri


class ListenerBindFailed(AuthError):
    def __init__(self, port: int, reason: str) -> None:
        super().__init__(f"Could not listen on 127.0.0.1:{port}: {reason}")
        self.port = port
        self.reason = reason


class ListenerTimeout(AuthError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"No authorization redirect received within {timeout:g} seconds.")
        self.timeout = timeout


class ListenerClosed(AuthError):
    def __init__(self) -> None:
        super().__init__("Callback listener was closed before a redirect arrived.")


class ListenerFailed(AuthError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Callback listener stopped accepting connections: {reason}")
        self.reason = reason


class MalformedCallbackRequest(AuthError):
    pass


class InvalidState(AuthError):
    def __init__(self) -> None:
        super().__init__("Callback state does not match the pending authorization.")


class ProviderAuthorizationError(AuthError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Authorization was rejected by the provider: {code}")
        self.code = code


class TokenExchangeFailed(AuthError):
    def __init__(self, status: int | None, description: str) -> None:
        if status is None:
            message = f"Token request failed: {description}"
        else:
            message = f"Token request failed with status {status}: {description}"
        super().__init__(message)
        self.status = status
        self.description = description


class AuthenticationError(TokenExchangeFailed):
    """The token endpoint answered with an OAuth error object."""

    def __init__(self, status: int, code: str, description: str) -> None:
        super().__init__(status, f"{code}: {description}" if description else code)
        self.code = code
        self.error_description = description


class RefreshFailed(AuthError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Access token refresh failed; re-authentication required: {reason}")
        self.reason = reason


class NotAuthenticated(AuthError):
    def __init__(self, message: str = "Not authenticated yet.") -> None:
        super().__init__(message)


class NoCredentialsFile(NotAuthenticated):
    def __init__(self, path: str) -> None:
        super().__init__(f"No credentials file at {path}.")
        self.path = path


class CorruptCredentialsFile(NotAuthenticated):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Credentials file {path} is unusable: {reason}")
        self.path = path
        self.reason = reason


class InsufficientScope(AuthError):
    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Granted scope is missing: {' '.join(missing)}")
        self.missing = missing
