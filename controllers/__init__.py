from .base_controller import BaseController, DirectoryEntryController
from .config import OperatorConfig, parse_duration
from .connection_prober import ConnectionProber
from .group_controller import GroupController
from .principal_controller import PrincipalController
from .results import ReconcileResult
from .status_publisher import StatusPublisher

__all__ = [
    'BaseController', 'DirectoryEntryController', 'OperatorConfig', 'parse_duration',
    'ConnectionProber', 'GroupController', 'PrincipalController', 'ReconcileResult',
    'StatusPublisher',
]
