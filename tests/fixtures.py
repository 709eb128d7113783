from datetime import date
from state.context import CoreContext
from state.repository import InMemoryDB
from state.seed import reset_db_state, load_dev_seed, snapshot_hash

FIXED_TODAY = date(2024, 6, 1)


def reset_and_seed(store):
    """Reset the store and load the deterministic seed.
    Returns the snapshot hash for convenience in tests.
    """
    reset_db_state(store)
    load_dev_seed(store)
    return snapshot_hash(store)


def make_ctx(today: date = FIXED_TODAY) -> CoreContext:
    store = InMemoryDB()
    load_dev_seed(store)
    return CoreContext(store=store, clock=lambda: today, correlation_id="test-cid")
