"""Namespace entity shared between server, stores and caches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mltrack.entities.lifecycle_stage import LifecycleStage


@dataclass(frozen=True, slots=True)
class Namespace:
    """A tenancy boundary scoping experiments, runs and role grants."""

    DEFAULT_CODE = "default"

    id: int
    code: str
    description: str = ""
    default_experiment_id: int | None = None
    lifecycle_stage: str = LifecycleStage.ACTIVE

    @property
    def is_default(self) -> bool:
        return self.code == Namespace.DEFAULT_CODE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "default_experiment_id": self.default_experiment_id,
            "lifecycle_stage": self.lifecycle_stage,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Namespace":
        return cls(
            id=payload["id"],
            code=payload["code"],
            description=payload.get("description") or "",
            default_experiment_id=payload.get("default_experiment_id"),
            lifecycle_stage=payload.get("lifecycle_stage", LifecycleStage.ACTIVE),
        )
