"""
Tests for the token-keyed ClientPool.
"""

import time
from datetime import timedelta

from chorus.services.pool import CLEANUP_JOB_ID, ClientPool, PoolConfig
from tests.conftest import make_token


class RecordingScheduler:
    """Minimal scheduler double capturing add_job/remove_job calls."""

    def __init__(self):
        self.jobs: dict[str, dict] = {}

    def add_job(self, func, trigger, id, **kwargs):
        self.jobs[id] = {"func": func, "trigger": trigger, **kwargs}

    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def remove_job(self, job_id):
        del self.jobs[job_id]


def test_hit_returns_cached_client(counting_factory):
    pool = ClientPool(counting_factory)
    token = make_token()

    first = pool.get_client(token)
    second = pool.get_client(token)

    assert first is second
    assert len(counting_factory.built) == 1
    assert pool.size == 1
    stats = pool.get_stats()
    assert stats.hits == 1
    assert stats.misses == 1


def test_hit_moves_last_used_forward(counting_factory):
    pool = ClientPool(counting_factory)
    token = make_token()
    pool.get_client(token)
    entry = pool.entries()[0]
    entry.last_used -= 60
    before = entry.last_used

    pool.get_client(token)

    assert entry.last_used > before
    assert entry.created_at >= entry.last_used - 60


def test_distinct_tokens_get_distinct_clients(counting_factory):
    pool = ClientPool(counting_factory)

    alice = pool.get_client(make_token("alice"))
    bob = pool.get_client(make_token("bob"))

    assert alice is not bob
    assert alice.token != bob.token
    assert len(pool) == 2


def test_token_expiring_within_margin_is_never_pooled(counting_factory):
    pool = ClientPool(counting_factory)
    token = make_token(expires_in=200)

    first = pool.get_client(token)
    second = pool.get_client(token)

    assert first is not second
    assert first.token == token
    assert pool.size == 0
    assert pool.get_stats().unpooled == 2


def test_undecodable_or_expless_tokens_fall_back_to_fresh_clients(counting_factory):
    pool = ClientPool(counting_factory)

    for token in ["not-a-jwt", "a.b.c", make_token(expires_in=None)]:
        client = pool.get_client(token)
        assert client.token == token

    assert pool.size == 0
    assert len(counting_factory.built) == 3


def test_pool_stops_inserting_at_max_size(counting_factory):
    pool = ClientPool(counting_factory, PoolConfig(max_size=5))
    tokens = [make_token(f"user-{i}") for i in range(5 + 5)]

    clients = [pool.get_client(t) for t in tokens]

    assert pool.size == 5
    assert len(counting_factory.built) == 10
    # Overflow tokens still get working clients
    assert [c.token for c in clients] == tokens

    pool.cleanup()
    assert pool.size == 5
    assert {e.token for e in pool.entries()} == set(tokens[:5])


def test_cleanup_evicts_least_recently_used_over_capacity(counting_factory):
    pool = ClientPool(counting_factory, PoolConfig(max_size=5))
    tokens = [make_token(f"user-{i}") for i in range(5)]
    for t in tokens:
        pool.get_client(t)

    now = time.monotonic()
    ages = {tokens[0]: 5, tokens[1]: 50, tokens[2]: 40, tokens[3]: 1, tokens[4]: 30}
    for entry in pool.entries():
        entry.last_used = now - ages[entry.token]

    pool.config.max_size = 3
    evicted = pool.cleanup()

    assert evicted == 2
    assert pool.size == 3
    assert {e.token for e in pool.entries()} == {tokens[0], tokens[3], tokens[4]}


def test_cleanup_evicts_idle_and_old_entries(counting_factory):
    pool = ClientPool(counting_factory, PoolConfig(client_ttl=timedelta(minutes=30)))
    idle, old, fresh = make_token("idle"), make_token("old"), make_token("fresh")
    for t in (idle, old, fresh):
        pool.get_client(t)

    now = time.monotonic()
    for entry in pool.entries():
        if entry.token == idle:
            entry.last_used = now - 31 * 60
        elif entry.token == old:
            entry.created_at = now - 61 * 60

    assert pool.cleanup() == 2
    assert [e.token for e in pool.entries()] == [fresh]
    assert pool.get_stats().evictions == 2


def test_clear_drops_everything(counting_factory):
    pool = ClientPool(counting_factory)
    pool.get_client(make_token("a"))
    pool.get_client(make_token("b"))

    pool.clear()

    assert pool.size == 0


def test_cleanup_job_is_registered_on_scheduler(counting_factory):
    pool = ClientPool(
        counting_factory, PoolConfig(cleanup_interval=timedelta(minutes=5))
    )
    scheduler = RecordingScheduler()

    pool.start_cleanup(scheduler)

    job = scheduler.jobs[CLEANUP_JOB_ID]
    assert job["trigger"] == "interval"
    assert job["seconds"] == 300
    assert job["replace_existing"] is True

    pool.stop_cleanup()
    assert CLEANUP_JOB_ID not in scheduler.jobs


def test_hash_token_uses_whole_token():
    prefix = "x" * 200
    assert ClientPool.hash_token(prefix + "a") != ClientPool.hash_token(prefix + "b")


def test_pool_config_from_settings():
    from chorus.settings import Settings

    config = PoolConfig.from_settings(Settings(CHORUS_POOL_MAX_SIZE=7))

    assert config.max_size == 7
    assert config.client_ttl == timedelta(minutes=30)
    assert config.expiry_margin == timedelta(minutes=5)
