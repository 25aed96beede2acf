"""Configuration loading and management for Flakewatch.

Configuration sources are merged in priority order:
    1. Defaults (defined in the dataclasses below)
    2. Global config (~/.flakewatch.toml)
    3. Project config (./flakewatch.toml)
    4. Explicit config file
    5. Environment variables (FLAKEWATCH_* prefix)
    6. Keyword overrides (typically CLI flags)

TOML layout::

    db_path = ".flakewatch/flakewatch.db"
    workers = 4

    [classifier]
    minimum_sample_size = 5

    [quarantine]
    auto_quarantine_threshold = 0.25

    [team]
    average_developer_salary = 150000

    [projects.payments.quarantine]
    critical_suites = ["checkout"]

    [projects.payments.team]
    team_size = 12

Example:
    >>> config = load_config(workers=2)
    >>> config.policy_for("payments").auto_quarantine_threshold
    0.3
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationMissingError, FlakewatchError, InvalidConfigError
from .logging_config import get_logger

logger = get_logger(__name__)

StabilityMode = Literal["runs", "days"]

# Keywords that mark a test as high impact when found in its name or suite
HIGH_IMPACT_KEYWORDS = ("critical", "smoke", "integration", "e2e", "sanity")


def _check_unit(obj: Any, names: list[str]) -> None:
    for name in names:
        value = getattr(obj, name)
        if not 0.0 <= value <= 1.0:
            raise InvalidConfigError(name, value, "must be between 0.0 and 1.0")


def _check_positive(obj: Any, names: list[str], minimum: int = 1) -> None:
    for name in names:
        value = getattr(obj, name)
        if value < minimum:
            raise InvalidConfigError(name, value, f"must be at least {minimum}")


@dataclass(frozen=True)
class ClassifierConfig:
    """Thresholds used by the flaky classifier.

    Attributes:
        minimum_sample_size: Non-skipped runs needed before any verdict
        min_flaky_rate: Lower bound (inclusive) of the flaky band
        max_flaky_rate: Upper bound (inclusive) of the flaky band; above it
            the test is broken
        confidence_saturation_size: Runs at which confidence reaches 1.0
        window_days: Trailing observation window
        recent_window_days: Window used for the "recent" failure rate
        branch_variance_threshold: Branch failure-rate variance above which
            a failure pattern is environment dependent
        timing_consecutive_threshold: Consecutive failures that mark a
            pattern as timing sensitive
        high_failure_rate: Rate above which a "prioritize" recommendation
            is added
        inactivity_days: Days without runs before a pattern is deactivated
    """

    minimum_sample_size: int = 3
    min_flaky_rate: float = 0.10
    max_flaky_rate: float = 0.90
    confidence_saturation_size: int = 10
    window_days: int = 30
    recent_window_days: int = 7
    branch_variance_threshold: float = 0.1
    timing_consecutive_threshold: int = 3
    high_failure_rate: float = 0.3
    inactivity_days: int = 14

    def __post_init__(self) -> None:
        _check_unit(self, ["min_flaky_rate", "max_flaky_rate", "high_failure_rate"])
        if self.min_flaky_rate > self.max_flaky_rate:
            raise InvalidConfigError(
                "min_flaky_rate", self.min_flaky_rate, "must not exceed max_flaky_rate"
            )
        _check_positive(
            self,
            [
                "minimum_sample_size",
                "confidence_saturation_size",
                "window_days",
                "recent_window_days",
                "timing_consecutive_threshold",
                "inactivity_days",
            ],
        )
        if self.branch_variance_threshold < 0:
            raise InvalidConfigError(
                "branch_variance_threshold", self.branch_variance_threshold, "must be non-negative"
            )


@dataclass(frozen=True)
class QuarantinePolicy:
    """Per-project thresholds for the quarantine lifecycle.

    ``stability_mode`` selects whether ``stability_window_runs`` or
    ``stability_window_days`` governs recovery. The recovery confirmation
    window (``recovery_confirmation_*``) is how long a test stays in
    RECOVERING_STABLE before it is unquarantined.

    With the default of 0 the test leaves quarantine in the same
    evaluation that meets the stability window, so RECOVERING_STABLE is
    never observed and a relapse right after release goes straight back
    through FLAKY. Raise either value for flap protection: a failure
    inside the confirmation window re-quarantines the test and counts as
    a premature unquarantine. The cost is that a fixed test stays
    quarantined for that many more runs or days.
    """

    min_confidence_for_flagging: float = 0.5
    auto_quarantine_threshold: float = 0.3
    auto_quarantine_confidence: float = 0.7
    consecutive_failure_threshold: int = 5
    critical_path_threshold: float = 0.1
    stability_mode: StabilityMode = "runs"
    stability_window_runs: int = 10
    stability_window_days: int = 7
    recovery_confirmation_runs: int = 0
    recovery_confirmation_days: int = 0
    rapid_degradation_enabled: bool = True
    rapid_degradation_factor: float = 1.5
    rapid_degradation_min_runs: int = 3
    rapid_degradation_confidence: float = 0.5
    critical_tests: tuple[str, ...] = ()
    critical_suites: tuple[str, ...] = ()
    detect_high_impact_keywords: bool = True

    def __post_init__(self) -> None:
        # TOML hands us lists
        object.__setattr__(self, "critical_tests", tuple(self.critical_tests))
        object.__setattr__(self, "critical_suites", tuple(self.critical_suites))

        _check_unit(
            self,
            [
                "min_confidence_for_flagging",
                "auto_quarantine_threshold",
                "auto_quarantine_confidence",
                "critical_path_threshold",
                "rapid_degradation_confidence",
            ],
        )
        _check_positive(
            self,
            [
                "consecutive_failure_threshold",
                "stability_window_runs",
                "stability_window_days",
                "rapid_degradation_min_runs",
            ],
        )
        _check_positive(
            self, ["recovery_confirmation_runs", "recovery_confirmation_days"], minimum=0
        )
        if self.stability_mode not in ("runs", "days"):
            raise InvalidConfigError("stability_mode", self.stability_mode, "must be 'runs' or 'days'")
        if self.rapid_degradation_factor < 1.0:
            raise InvalidConfigError(
                "rapid_degradation_factor", self.rapid_degradation_factor, "must be at least 1.0"
            )


@dataclass(frozen=True)
class ImpactPolicy:
    """Empirical multipliers and recommendation thresholds for impact.

    The multipliers are placeholders carried over from production usage,
    not measured facts. Tune them per organisation.
    """

    deployment_delay_factor: float = 0.15
    blocked_merge_request_factor: float = 0.3
    false_alert_factor: float = 0.8
    customer_bug_factor: float = 0.05
    triage_minutes_per_failure: float = 15.0
    per_test_velocity_cap: float = 15.0
    per_test_risk_cap: float = 0.3
    aggregate_velocity_cap: float = 50.0
    aggregate_risk_cap: float = 1.0
    priority_cost_threshold: float = 1000.0
    velocity_threshold: float = 10.0
    infrastructure_cost_threshold: float = 500.0
    technical_debt_threshold: float = 40.0
    top_n: int = 5

    def __post_init__(self) -> None:
        _check_unit(
            self,
            [
                "deployment_delay_factor",
                "blocked_merge_request_factor",
                "false_alert_factor",
                "customer_bug_factor",
            ],
        )
        for name in (
            "per_test_velocity_cap",
            "per_test_risk_cap",
            "aggregate_velocity_cap",
            "aggregate_risk_cap",
            "priority_cost_threshold",
            "velocity_threshold",
            "infrastructure_cost_threshold",
            "technical_debt_threshold",
            "triage_minutes_per_failure",
        ):
            if getattr(self, name) < 0:
                raise InvalidConfigError(name, getattr(self, name), "must be non-negative")
        _check_positive(self, ["top_n"])


@dataclass(frozen=True)
class RiskConfig:
    """Risk scorer level cut-offs and alerting."""

    medium_threshold: float = 0.4
    high_threshold: float = 0.6
    critical_threshold: float = 0.8
    alert_level: str = "high"
    days_to_flaky_horizon: int = 30

    def __post_init__(self) -> None:
        _check_unit(self, ["medium_threshold", "high_threshold", "critical_threshold"])
        if not self.medium_threshold <= self.high_threshold <= self.critical_threshold:
            raise InvalidConfigError(
                "risk thresholds",
                (self.medium_threshold, self.high_threshold, self.critical_threshold),
                "must be ascending",
            )
        if self.alert_level not in ("low", "medium", "high", "critical"):
            raise InvalidConfigError("alert_level", self.alert_level, "unknown risk level")
        _check_positive(self, ["days_to_flaky_horizon"])


@dataclass(frozen=True)
class TeamConfiguration:
    """Cost inputs for impact estimation.

    Attributes:
        average_developer_salary: Annual salary in dollars
        ci_cost_per_minute: Dollars per CI minute
        team_size: Number of developers
        deployment_frequency: Deployments per week
        cost_per_deployment_delay: Dollars lost per delayed deployment
    """

    average_developer_salary: float = 120000.0
    ci_cost_per_minute: float = 0.50
    team_size: int = 8
    deployment_frequency: float = 5.0
    cost_per_deployment_delay: float = 2500.0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value < 0:
                raise InvalidConfigError(f.name, value, "must be non-negative")

    @property
    def hourly_rate(self) -> float:
        """Developer cost per working hour (52 weeks × 40 hours)."""
        return self.average_developer_salary / (52 * 40)


DEFAULT_TEAM = TeamConfiguration()
DEFAULT_POLICY = QuarantinePolicy()


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration for an engine instance.

    Per-project overrides are stored as plain dicts so partial sections
    are accepted; missing fields fall back to the global section.
    """

    db_path: str = ".flakewatch/flakewatch.db"
    cache_enabled: bool = True
    cache_dir: str = ".flakewatch/cache"
    cache_ttl_hours: int = 1
    workers: Optional[int] = None
    max_transition_retries: int = 3
    max_day_retries: int = 2
    verbosity: str = "normal"

    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    quarantine: QuarantinePolicy = field(default_factory=QuarantinePolicy)
    impact: ImpactPolicy = field(default_factory=ImpactPolicy)
    risk: RiskConfig = field(default_factory=RiskConfig)
    team: Optional[TeamConfiguration] = None
    projects: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.workers is not None and self.workers < 1:
            raise InvalidConfigError("workers", self.workers, "must be at least 1")
        if self.cache_ttl_hours < 0:
            raise InvalidConfigError("cache_ttl_hours", self.cache_ttl_hours, "must be non-negative")
        if self.max_transition_retries < 0:
            raise InvalidConfigError(
                "max_transition_retries", self.max_transition_retries, "must be non-negative"
            )
        if self.max_day_retries < 0:
            raise InvalidConfigError("max_day_retries", self.max_day_retries, "must be non-negative")
        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise InvalidConfigError("verbosity", self.verbosity, "must be quiet, normal or verbose")
        # Resolved lookups are cached; the dataclass itself stays immutable.
        object.__setattr__(self, "_resolved", {})
        object.__setattr__(self, "_warned", set())
        object.__setattr__(self, "_lock", threading.Lock())

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_hours * 3600

    def policy_for(self, project_id: str) -> QuarantinePolicy:
        """Quarantine policy for a project, global section as the base."""
        section = self.projects.get(project_id, {}).get("quarantine")
        if not section:
            return self.quarantine
        return self._resolve(("quarantine", project_id), self.quarantine, section)

    def team_for(self, project_id: str) -> TeamConfiguration:
        """Team configuration for a project.

        Falls back to the global ``[team]`` section, then to documented
        defaults. A missing configuration is logged once per project and
        never fails the calculation.
        """
        section = self.projects.get(project_id, {}).get("team")
        base = self.team
        if base is None and not section:
            with self._lock:
                first = project_id not in self._warned
                self._warned.add(project_id)
            if first:
                logger.warning(str(ConfigurationMissingError(project_id)) + "; using defaults")
            return DEFAULT_TEAM
        if not section:
            return base
        return self._resolve(("team", project_id), base or DEFAULT_TEAM, section)

    def _resolve(self, key: tuple, base: Any, section: dict) -> Any:
        with self._lock:
            cached = self._resolved.get(key)
            if cached is None:
                try:
                    cached = replace(base, **section)
                except TypeError as e:
                    raise FlakewatchError(
                        f"Invalid [projects.{key[1]}.{key[0]}] config: {e}"
                    ) from e
                self._resolved[key] = cached
            return cached


_SECTIONS = {
    "classifier": ClassifierConfig,
    "quarantine": QuarantinePolicy,
    "impact": ImpactPolicy,
    "risk": RiskConfig,
    "team": TeamConfiguration,
}


def load_config(config_file: Optional[Path] = None, **overrides: Any) -> EngineConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags)

    Returns:
        Validated EngineConfig instance

    Raises:
        FlakewatchError: If a config file is invalid or missing
    """
    merged: dict = {}

    global_config = Path.home() / ".flakewatch.toml"
    if global_config.exists():
        _merge(merged, _load_file(global_config, "global config"))

    project_config = Path.cwd() / "flakewatch.toml"
    if project_config.exists():
        _merge(merged, _load_file(project_config, "project config"))

    if config_file is not None:
        if not config_file.exists():
            raise FlakewatchError(f"Config file not found: {config_file}")
        _merge(merged, _load_file(config_file, "config file"))

    _merge(merged, _load_env_vars())

    if "verbose" in overrides:
        if overrides["verbose"]:
            overrides["verbosity"] = "verbose"
        del overrides["verbose"]
    if "quiet" in overrides:
        if overrides["quiet"]:
            overrides["verbosity"] = "quiet"
        del overrides["quiet"]
    _merge(merged, overrides)

    for name, cls in _SECTIONS.items():
        section = merged.pop(name, None)
        if section is None:
            continue
        if isinstance(section, cls):
            merged[name] = section
        elif isinstance(section, dict):
            try:
                merged[name] = cls(**section)
            except TypeError as e:
                raise FlakewatchError(f"Invalid [{name}] config: {e}")
        else:
            raise FlakewatchError(f"Invalid [{name}] config: expected a table")

    projects = merged.get("projects", {})
    if not isinstance(projects, dict):
        raise FlakewatchError("Invalid [projects] config: expected a table")
    for project_id, sections in projects.items():
        unknown = set(sections) - {"quarantine", "team"}
        if unknown:
            raise FlakewatchError(
                f"Invalid [projects.{project_id}] config: unknown sections {sorted(unknown)}"
            )

    try:
        return EngineConfig(**merged)
    except TypeError as e:
        raise FlakewatchError(f"Invalid configuration: {e}")


def _merge(target: dict, source: dict) -> None:
    """Merge ``source`` into ``target``, descending into nested tables."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = dict(value) if isinstance(value, dict) else value


def _load_file(path: Path, label: str) -> dict:
    try:
        return _load_toml_file(path)
    except FlakewatchError:
        raise
    except Exception as e:
        raise FlakewatchError(f"Invalid {label} '{path}': {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from FLAKEWATCH_* environment variables.

    Top-level fields use ``FLAKEWATCH_<FIELD>`` (e.g. ``FLAKEWATCH_WORKERS``);
    section fields use ``FLAKEWATCH_<SECTION>__<FIELD>``
    (e.g. ``FLAKEWATCH_QUARANTINE__AUTO_QUARANTINE_THRESHOLD``).
    """
    result: dict[str, Any] = {}

    top_hints = get_type_hints(EngineConfig)
    for field_name in EngineConfig.__dataclass_fields__:
        if field_name in _SECTIONS or field_name == "projects":
            continue
        env_key = f"FLAKEWATCH_{field_name.upper()}"
        parsed = _env_value(env_key, top_hints.get(field_name), field_name)
        if parsed is not None:
            result[field_name] = parsed

    for section, cls in _SECTIONS.items():
        hints = get_type_hints(cls)
        for field_name in cls.__dataclass_fields__:
            env_key = f"FLAKEWATCH_{section.upper()}__{field_name.upper()}"
            parsed = _env_value(env_key, hints.get(field_name), field_name)
            if parsed is not None:
                result.setdefault(section, {})[field_name] = parsed

    return result


def _env_value(env_key: str, type_hint: Any, field_name: str) -> Any:
    raw = os.environ.get(env_key)
    if raw is None or type_hint is None:
        return None
    try:
        return _parse_env_value(raw, type_hint, field_name)
    except ValueError as e:
        raise FlakewatchError(f"Invalid {env_key}: {e}")


def _parse_env_value(value: str, type_hint: Any, field_name: str) -> Any:
    """Parse an environment variable string to the field's type.

    Returns None for types that are not settable from the environment
    (tuples, nested sections).
    """
    origin = getattr(type_hint, "__origin__", None)

    # Optional[X] is Union[X, None]
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if origin is tuple or type_hint is tuple:
        return None

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    try:
        import tomllib
    except ModuleNotFoundError:
        try:
            # Python 3.9-3.10
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise FlakewatchError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

    with open(path, "rb") as f:
        return tomllib.load(f)
