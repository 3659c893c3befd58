"""Map PostgreSQL rows onto nested JSON documents through short-lived sessions."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import AppConfig, RegistryConfig, load_config
from .errors import ErrorKind, OperationError, OperationResult, RowShapeError
from .mapping import MappingEntry, PreviewRequest
from .registry import SessionRegistry
from .service import MappingService
from .transform import TransformEngine, documents_to_json

__all__ = [
    "AppConfig",
    "ErrorKind",
    "MappingEntry",
    "MappingService",
    "OperationError",
    "OperationResult",
    "PreviewRequest",
    "RegistryConfig",
    "RowShapeError",
    "SessionRegistry",
    "TransformEngine",
    "__version__",
    "documents_to_json",
    "load_config",
]
