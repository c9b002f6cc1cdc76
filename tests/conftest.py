import pytest

from auth.credential_store import StoredCredentials, write_credentials
from auth.scope import Scope
from tests.oauth_helpers import FakeClock, FakeTokenEndpoint


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def credentials_file(tmp_path):
    path = tmp_path / "credentials"
    write_credentials(
        path,
        StoredCredentials(
            client_id="client-123",
            scope=Scope.from_string("user-read-private user-read-email"),
            refresh_token="stored-refresh",
        ),
    )
    return path
