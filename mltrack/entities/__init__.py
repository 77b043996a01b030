"""
The ``mltrack.entities`` module defines entities returned by the mltrack stores and served
through the REST APIs.
"""

from mltrack.entities.experiment import Experiment
from mltrack.entities.lifecycle_stage import LifecycleStage
from mltrack.entities.namespace import Namespace
from mltrack.entities.permission import Permission
from mltrack.entities.role import Role

__all__ = [
    "Experiment",
    "LifecycleStage",
    "Namespace",
    "Permission",
    "Role",
]
