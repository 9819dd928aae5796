"""Shared mesh client library for subscriber nodes.

This module provides the pieces every node needs to take part in the mesh:
- Core system and core service definitions
- Pydantic request/result models in the core systems' wire format
- Service registry client for probing and endpoint resolution
- Authorization client for the authority public key
- Broker abstraction with an HTTP and an in-memory implementation
"""

from shared.mesh.authorization import AuthorizationClient
from shared.mesh.broker import (
    DUPLICATE_SUBSCRIPTION_MESSAGE,
    BrokerCall,
    EventBroker,
    InMemoryBroker,
)
from shared.mesh.errors import (
    AuthorityKeyUnavailableError,
    CoreServiceUnresolvedError,
    CoreSystemUnavailableError,
    InvalidParameterError,
    MeshAuthError,
    MeshError,
    MeshUnavailableError,
)
from shared.mesh.event_handler import EventHandlerClient
from shared.mesh.models import (
    ServiceEndpoint,
    SubscriptionOutcome,
    SubscriptionReport,
    SubscriptionRequest,
    SubscriptionResult,
    SubscriptionState,
    SystemRequest,
    UnsubscribeReport,
)
from shared.mesh.registry import RegistryClient
from shared.mesh.types import CoreService, CoreSystem, Interface

__all__ = [
    # Types
    "CoreSystem",
    "CoreService",
    "Interface",
    # Models
    "SystemRequest",
    "SubscriptionRequest",
    "ServiceEndpoint",
    "SubscriptionOutcome",
    "SubscriptionResult",
    "SubscriptionReport",
    "SubscriptionState",
    "UnsubscribeReport",
    # Clients
    "RegistryClient",
    "AuthorizationClient",
    "EventHandlerClient",
    # Broker
    "EventBroker",
    "InMemoryBroker",
    "BrokerCall",
    "DUPLICATE_SUBSCRIPTION_MESSAGE",
    # Errors
    "MeshError",
    "MeshUnavailableError",
    "MeshAuthError",
    "InvalidParameterError",
    "CoreSystemUnavailableError",
    "CoreServiceUnresolvedError",
    "AuthorityKeyUnavailableError",
]
