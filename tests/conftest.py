import pytest
from fastapi.testclient import TestClient

from fairflip.main import app
from fairflip.core.archive import flip_archive
from fairflip.core.identity import identity_verifier
from fairflip.core.ledger import ledger
from fairflip.core.matches import match_manager
from fairflip.core.security import create_session_token
from fairflip.core.sequence import sequences


@pytest.fixture(autouse=True)
def clean_state():
    """Every test starts with empty in-memory stores."""
    for store in (ledger, match_manager, flip_archive, sequences, identity_verifier):
        store.reset()
    yield


@pytest.fixture
def client():
    # No context manager: startup hooks would launch the background scheduler
    return TestClient(app)


@pytest.fixture
def auth_headers():
    def _headers(username: str) -> dict:
        token = create_session_token(user_id=username, username=username)
        return {"Authorization": f"Bearer {token}"}

    return _headers
