"""Bounded worker pool sharded by identity hash.

Every identity maps to one shard and every shard is drained by a single
worker in submission order, so work for the same identity never runs
concurrently and keeps its order. Different shards run in parallel.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Optional, TypeVar

from .logging_config import get_logger
from .models import TestIdentity

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ShardOutcome(Generic[T]):
    results: dict[TestIdentity, T] = field(default_factory=dict)
    errors: dict[TestIdentity, Exception] = field(default_factory=dict)


def default_workers() -> int:
    return min(8, os.cpu_count() or 1)


class ShardedScheduler:
    """Run a per-identity function across a bounded pool."""

    def __init__(self, workers: Optional[int] = None):
        self.workers = max(1, workers or default_workers())

    def shards(self, identities: Iterable[TestIdentity]) -> list[list[TestIdentity]]:
        buckets: list[list[TestIdentity]] = [[] for _ in range(self.workers)]
        for identity in identities:
            buckets[identity.shard(self.workers)].append(identity)
        return [b for b in buckets if b]

    def run(
        self, identities: Iterable[TestIdentity], fn: Callable[[TestIdentity], T]
    ) -> ShardOutcome[T]:
        """Apply ``fn`` to every identity. A failing identity is recorded in
        ``errors`` and does not stop the rest of its shard."""
        outcome: ShardOutcome[T] = ShardOutcome()
        shards = self.shards(identities)

        def drain(shard: list[TestIdentity]) -> ShardOutcome[T]:
            local: ShardOutcome[T] = ShardOutcome()
            for identity in shard:
                try:
                    local.results[identity] = fn(identity)
                except Exception as e:
                    logger.error(f"Processing {identity.key} failed: {e}")
                    local.errors[identity] = e
            return local

        if len(shards) <= 1:
            for shard in shards:
                partial = drain(shard)
                outcome.results.update(partial.results)
                outcome.errors.update(partial.errors)
            return outcome

        with ThreadPoolExecutor(max_workers=len(shards)) as executor:
            futures = [executor.submit(drain, shard) for shard in shards]
            for future in as_completed(futures):
                partial = future.result()
                outcome.results.update(partial.results)
                outcome.errors.update(partial.errors)
        return outcome
