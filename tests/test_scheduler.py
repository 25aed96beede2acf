"""Tests for the identity-sharded worker pool."""

import threading
import time

from flakewatch.models import TestIdentity
from flakewatch.scheduler import ShardedScheduler, default_workers


def identities(n):
    return [TestIdentity("web", f"test_{i}") for i in range(n)]


class TestShards:
    def test_every_identity_in_exactly_one_shard(self):
        scheduler = ShardedScheduler(4)
        shards = scheduler.shards(identities(40))
        flat = [i for shard in shards for i in shard]
        assert sorted(flat, key=str) == sorted(identities(40), key=str)
        assert len(shards) <= 4

    def test_shard_is_stable(self):
        identity = TestIdentity("web", "test_a", "cart")
        assert identity.shard(8) == identity.shard(8)
        assert 0 <= identity.shard(8) < 8

    def test_default_workers(self):
        assert 1 <= default_workers() <= 8
        assert ShardedScheduler().workers == default_workers()


class TestRun:
    def test_results_and_errors(self):
        def fn(identity):
            if identity.test_name == "test_3":
                raise ValueError("bad")
            return identity.test_name.upper()

        outcome = ShardedScheduler(3).run(identities(6), fn)
        assert len(outcome.results) == 5
        assert outcome.results[TestIdentity("web", "test_0")] == "TEST_0"
        assert list(outcome.errors) == [TestIdentity("web", "test_3")]
        assert isinstance(outcome.errors[TestIdentity("web", "test_3")], ValueError)

    def test_same_identity_never_runs_concurrently(self):
        active = set()
        overlaps = []
        guard = threading.Lock()

        def fn(identity):
            with guard:
                if identity in active:
                    overlaps.append(identity)
                active.add(identity)
            time.sleep(0.001)
            with guard:
                active.discard(identity)
            return True

        work = identities(5) * 4
        outcome = ShardedScheduler(4).run(work, fn)
        assert overlaps == []
        assert len(outcome.results) == 5

    def test_order_kept_within_identity(self):
        seen = []
        lock = threading.Lock()
        identity = TestIdentity("web", "test_a")

        calls = iter(range(100))

        def fn(i):
            with lock:
                seen.append(next(calls))
            return True

        ShardedScheduler(4).run([identity] * 5, fn)
        assert seen == [0, 1, 2, 3, 4]

    def test_single_worker_runs_inline(self):
        outcome = ShardedScheduler(1).run(identities(3), lambda i: i.test_name)
        assert len(outcome.results) == 3

    def test_empty(self):
        outcome = ShardedScheduler(4).run([], lambda i: i)
        assert outcome.results == {}
        assert outcome.errors == {}
