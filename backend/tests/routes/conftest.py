import pytest
from fastapi.testclient import TestClient

from rentbook.api.dependencies import get_db
from rentbook.main import app


@pytest.fixture
def client(db, org_id):
    """TestClient bound to the test session, sending the tenant header on every call."""
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app, headers={"X-Org-Id": org_id}) as test_client:
        yield test_client
    app.dependency_overrides.clear()
