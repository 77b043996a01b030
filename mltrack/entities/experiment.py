from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mltrack.entities.lifecycle_stage import LifecycleStage


@dataclass(frozen=True, slots=True)
class Experiment:
    """
    Experiment object.
    """

    DEFAULT_EXPERIMENT_NAME = "Default"

    experiment_id: int
    name: str
    namespace_id: int
    artifact_location: str | None = None
    lifecycle_stage: str = LifecycleStage.ACTIVE
    creation_time: int | None = None
    last_update_time: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "experiment_id": str(self.experiment_id),
            "name": self.name,
            "artifact_location": self.artifact_location,
            "lifecycle_stage": self.lifecycle_stage,
            "creation_time": self.creation_time,
            "last_update_time": self.last_update_time,
        }
