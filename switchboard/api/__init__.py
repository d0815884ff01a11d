"""
Model access: the provider catalog view and one backend per API family.

Importing this package registers the built-in backends.
"""

from switchboard.api.base import (
    BACKENDS,
    ModelBackend,
    ModelBackendInitError,
    ModelRequestError,
    UnsupportedModelApiError,
    Usage,
    create_backend,
    get_backend_class,
    register_backend,
)
from switchboard.api.registry import ModelRegistry, ResolvedModel, UnknownModelError
from switchboard.api import anthropic_backend, google_backend, openai_backend  # noqa: F401  (registration)

__all__ = [
    "BACKENDS",
    "ModelBackend",
    "ModelBackendInitError",
    "ModelRegistry",
    "ModelRequestError",
    "ResolvedModel",
    "UnknownModelError",
    "UnsupportedModelApiError",
    "Usage",
    "create_backend",
    "get_backend_class",
    "register_backend",
]
