"""
Maintenance Intake — Settings

Typed view over the merged YAML configuration (see engine.config).
Every key has a default, so an empty config yields a working setup.

    matching:
      recency_window_days: 14
      relevance_floor: 50
      max_candidates: 5
      weights: {title: 0.45, symptom: 0.35, scope: 0.20}
    assignment:
      capability: work_orders.assign
      supervisory_roles: [admin, supervisor, coordinator, manager, foreman, lead]
    storage:
      backend: sqlite
      path: intake.db
      dsn: ""
      lock_timeout_seconds: 5
    catalog:
      path: catalog.yaml
    authorization:
      actors:
        u-12: {roles: [technician], capabilities: []}
    logging:
      level: INFO
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from engine.config import get_config_value

DEFAULT_SUPERVISORY_ROLES = (
    "admin", "supervisor", "coordinator", "manager", "foreman", "lead",
)


@dataclass
class MatchingSettings:
    recency_window_days: float = 14
    relevance_floor: float = 50
    max_candidates: int = 5
    title_weight: float = 0.45
    symptom_weight: float = 0.35
    scope_weight: float = 0.20

    def __post_init__(self):
        for name in ("title_weight", "symptom_weight", "scope_weight"):
            if getattr(self, name) < 0:
                raise ValueError(f"matching weight {name} must be non-negative")
        if self.total_weight <= 0:
            raise ValueError("matching weights must not all be zero")
        if self.max_candidates < 1:
            raise ValueError("matching.max_candidates must be at least 1")

    @property
    def total_weight(self) -> float:
        return self.title_weight + self.symptom_weight + self.scope_weight


@dataclass
class AssignmentSettings:
    capability: str = "work_orders.assign"
    supervisory_roles: tuple[str, ...] = DEFAULT_SUPERVISORY_ROLES


@dataclass
class StorageSettings:
    backend: str = "sqlite"
    path: str = "intake.db"
    dsn: str = ""
    lock_timeout_seconds: float = 5.0


@dataclass
class IntakeSettings:
    matching: MatchingSettings = field(default_factory=MatchingSettings)
    assignment: AssignmentSettings = field(default_factory=AssignmentSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    catalog_path: str = ""
    actors: dict[str, dict[str, Any]] = field(default_factory=dict)
    log_level: str = "INFO"

    @staticmethod
    def from_config(cfg: dict[str, Any] | None) -> IntakeSettings:
        cfg = cfg or {}

        def get(path: str, default: Any) -> Any:
            value = get_config_value(path, cfg, default)
            return default if value is None else value

        matching = MatchingSettings(
            recency_window_days=float(get("matching.recency_window_days", 14)),
            relevance_floor=float(get("matching.relevance_floor", 50)),
            max_candidates=int(get("matching.max_candidates", 5)),
            title_weight=float(get("matching.weights.title", 0.45)),
            symptom_weight=float(get("matching.weights.symptom", 0.35)),
            scope_weight=float(get("matching.weights.scope", 0.20)),
        )
        assignment = AssignmentSettings(
            capability=str(get("assignment.capability", "work_orders.assign")),
            supervisory_roles=tuple(
                str(r) for r in get("assignment.supervisory_roles", DEFAULT_SUPERVISORY_ROLES)
            ),
        )
        storage = StorageSettings(
            backend=str(get("storage.backend", "sqlite")).lower(),
            path=str(get("storage.path", "intake.db")),
            dsn=str(get("storage.dsn", "")),
            lock_timeout_seconds=float(get("storage.lock_timeout_seconds", 5)),
        )
        return IntakeSettings(
            matching=matching,
            assignment=assignment,
            storage=storage,
            catalog_path=str(get("catalog.path", "")),
            actors=dict(get("authorization.actors", {})),
            log_level=str(get("logging.level", "INFO")),
        )
