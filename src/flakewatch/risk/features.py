"""Feature vectors consumed by the risk scorer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Optional

E2E_FRAMEWORKS = frozenset({"selenium", "playwright", "cypress"})


@dataclass(frozen=True)
class StaticFeatures:
    """Counts and scores extracted from a test file's source.

    ``timing_sensitivity`` and ``resource_leak_risk`` are matches per
    line; ``test_isolation_score`` is in [0, 1] with 1 fully isolated.
    """

    cyclomatic_complexity: int = 0
    cognitive_complexity: int = 0
    nesting_depth: int = 0
    lines_of_code: int = 0
    async_await_count: int = 0
    promise_chain_count: int = 0
    timeout_count: int = 0
    http_call_count: int = 0
    file_system_count: int = 0
    database_query_count: int = 0
    external_service_count: int = 0
    setup_teardown_complexity: int = 0
    shared_state_usage: int = 0
    test_isolation_score: float = 1.0
    hardcoded_delays: int = 0
    race_condition_patterns: int = 0
    timing_sensitivity: float = 0.0
    resource_leak_risk: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StaticFeatures":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass(frozen=True)
class MetadataFeatures:
    """File-level facts. Optional fields raise scorer confidence when known."""

    file_size: int = 0
    test_count: int = 0
    test_framework: Optional[str] = None
    file_age: Optional[float] = None  # days since creation
    modification_frequency: Optional[float] = None  # changes per month
    author_count: Optional[int] = None
    has_setup_teardown: bool = False
    dependency_count: int = 0

    @property
    def is_e2e(self) -> bool:
        return (self.test_framework or "").lower() in E2E_FRAMEWORKS

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetadataFeatures":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})
