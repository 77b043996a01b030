"""
mltrack records and serves machine-learning experiment metadata through MLflow and Aim
compatible REST APIs, scoped by namespaces and guarded by role-based authentication.
"""

from mltrack.environment_variables import MLTRACK_CONFIGURE_LOGGING
from mltrack.exceptions import MltrackException
from mltrack.utils.logging_utils import _configure_mltrack_loggers
from mltrack.version import VERSION

__version__ = VERSION

if MLTRACK_CONFIGURE_LOGGING.get() is True:
    _configure_mltrack_loggers(root_module_name=__name__)

__all__ = ["MltrackException", "__version__"]
