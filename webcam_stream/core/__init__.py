from .errors import (
    ConfigError,
    DiagnosticError,
    EnumerationError,
    SpawnError,
    TerminationError,
    WebcamStreamError,
)
from .logging_utils import StructuredLogger, get_module_logger

__all__ = [
    'ConfigError',
    'DiagnosticError',
    'EnumerationError',
    'SpawnError',
    'TerminationError',
    'WebcamStreamError',
    'StructuredLogger',
    'get_module_logger',
]
