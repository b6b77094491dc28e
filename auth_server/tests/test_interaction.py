"""
Tests for the interaction (error / consent) store: TTL, idempotent get, consume, concurrency.
"""
from concurrent.futures import ThreadPoolExecutor

from auth_server.interaction import ErrorMessage, InteractionStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_create_then_get_is_idempotent():
    store = InteractionStore(ttl_seconds=60, clock=FakeClock())
    msg = ErrorMessage(error="invalid_request", error_description="bad", client_id="c")
    error_id = store.create(msg)
    assert store.get(error_id) == msg
    assert store.get(error_id) == msg


def test_unknown_or_empty_id_returns_none():
    store = InteractionStore(ttl_seconds=60)
    assert store.get("does-not-exist") is None
    assert store.get("") is None
    assert store.get(None) is None


def test_entry_not_read_within_ttl_is_gone():
    clock = FakeClock()
    store = InteractionStore(ttl_seconds=60, clock=clock)
    error_id = store.create(ErrorMessage(error="invalid_scope"))
    clock.now += 61
    assert store.get(error_id) is None
    assert len(store) == 0


def test_ttl_counts_from_creation_not_last_read():
    clock = FakeClock()
    store = InteractionStore(ttl_seconds=60, clock=clock)
    error_id = store.create(ErrorMessage(error="invalid_scope"))
    clock.now += 50
    assert store.get(error_id) is not None
    clock.now += 20
    assert store.get(error_id) is None


def test_pop_consumes_once():
    store = InteractionStore(ttl_seconds=60)
    interaction_id = store.create("pending")
    assert store.pop(interaction_id) == "pending"
    assert store.pop(interaction_id) is None
    assert store.get(interaction_id) is None


def test_pop_expired_returns_none():
    clock = FakeClock()
    store = InteractionStore(ttl_seconds=10, clock=clock)
    interaction_id = store.create("pending")
    clock.now += 11
    assert store.pop(interaction_id) is None


def test_purge_expired_and_create_evicts():
    clock = FakeClock()
    store = InteractionStore(ttl_seconds=10, clock=clock)
    store.create("a")
    store.create("b")
    clock.now += 11
    fresh = store.create("c")
    assert len(store) == 1
    assert store.get(fresh) == "c"
    clock.now += 11
    assert store.purge_expired() == 1


def test_concurrent_creates_do_not_collide():
    store = InteractionStore(ttl_seconds=60)
    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(lambda i: (store.create(i), i), range(200)))
    assert len({interaction_id for interaction_id, _ in ids}) == 200
    for interaction_id, value in ids:
        assert store.get(interaction_id) == value


def test_concurrent_pop_single_winner():
    store = InteractionStore(ttl_seconds=60)
    interaction_id = store.create("consent")
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: store.pop(interaction_id), range(8)))
    assert results.count("consent") == 1
