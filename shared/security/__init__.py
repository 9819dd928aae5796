"""Node credentials, security context and inbound request filters."""

from shared.security.context import SecurityContext
from shared.security.filters import (
    NotificationFilter,
    NotificationOriginError,
    SecurityFilterMiddleware,
    SecurityFilters,
    TokenSecurityFilter,
    TokenValidationError,
    broker_common_name,
)
from shared.security.keystore import KeyMaterialError, KeystoreLoader, NodeCredentials

__all__ = [
    "NodeCredentials",
    "KeystoreLoader",
    "KeyMaterialError",
    "SecurityContext",
    "SecurityFilters",
    "TokenSecurityFilter",
    "TokenValidationError",
    "NotificationFilter",
    "NotificationOriginError",
    "SecurityFilterMiddleware",
    "broker_common_name",
]
