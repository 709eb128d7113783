import pytest

from observability import metrics
from tests.fixtures import FIXED_TODAY, make_ctx, reset_and_seed


@pytest.fixture
def ctx():
    """Fresh seeded context with the clock pinned to FIXED_TODAY."""
    return make_ctx()


@pytest.fixture
def member(ctx):
    def _get(member_id: str):
        found = ctx.store.get_member(member_id)
        assert found is not None, f"seed member {member_id} missing"
        return found
    return _get


@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield


@pytest.fixture
def api(monkeypatch):
    """TestClient against the app's shared context, reseeded per test."""
    from fastapi.testclient import TestClient
    import main

    reset_and_seed(main.CTX.store)
    monkeypatch.setattr(main.CTX, "clock", lambda: FIXED_TODAY)
    return TestClient(main.app)
