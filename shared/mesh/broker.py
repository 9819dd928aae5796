"""Event broker abstraction.

Provides a pluggable broker interface so the subscription lifecycle can run
against the event handler core system or an in-memory stand-in.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from shared.mesh.errors import InvalidParameterError
from shared.mesh.models import SubscriptionRequest

logger = logging.getLogger(__name__)

# Message the event handler uses when a subscription row already exists
DUPLICATE_SUBSCRIPTION_MESSAGE = "Subscription violates uniqueConstraint rules"


class EventBroker(ABC):
    """Abstract base class for event brokers.

    Implement this interface to register subscriptions with different
    broker backends (Strategy pattern).

    Example:
        >>> broker = EventHandlerClient(http, registry)
        >>> await broker.unsubscribe("TEMPERATURE", "subscriber", "10.0.0.5", 8869)
        >>> await broker.subscribe(request)
    """

    @abstractmethod
    async def subscribe(self, request: SubscriptionRequest) -> None:
        """Register a subscription.

        Args:
            request: The subscription to register

        Raises:
            InvalidParameterError: If the broker rejects the request,
                including duplicate subscriptions
            MeshError: If the call fails for any other reason
        """
        pass

    @abstractmethod
    async def unsubscribe(
        self,
        event_type: str,
        system_name: str,
        address: str,
        port: int,
    ) -> None:
        """Remove the subscription of a subscriber to an event type.

        Args:
            event_type: Event type to unsubscribe from
            system_name: Subscriber system name
            address: Subscriber address
            port: Subscriber port

        Raises:
            MeshError: If the call fails
        """
        pass


@dataclass(frozen=True)
class BrokerCall:
    """A call recorded by the in-memory broker."""

    action: str
    event_type: str
    system_name: str


class InMemoryBroker(EventBroker):
    """In-memory event broker for testing and development.

    Keeps one subscription per (event type, system name, address, port),
    rejects duplicates the way the event handler does and records every
    call in order. Individual event types can be made to fail.
    """

    def __init__(self) -> None:
        """Initialize the in-memory broker."""
        self._subscriptions: dict[tuple[str, str, str, int], SubscriptionRequest] = {}
        self._calls: list[BrokerCall] = []
        self._failures: dict[tuple[str, str], Exception] = {}

    @property
    def calls(self) -> list[BrokerCall]:
        """Get all recorded calls."""
        return self._calls.copy()

    @property
    def subscriptions(self) -> list[SubscriptionRequest]:
        """Get all active subscriptions."""
        return list(self._subscriptions.values())

    def clear(self) -> None:
        """Clear recorded calls, subscriptions and injected failures."""
        self._calls.clear()
        self._subscriptions.clear()
        self._failures.clear()

    def fail_on(self, action: str, event_type: str, error: Exception) -> None:
        """Make every ``action`` call for ``event_type`` raise ``error``.

        Args:
            action: "subscribe" or "unsubscribe"
            event_type: Event type the failure applies to
            error: Exception to raise
        """
        self._failures[(action, event_type)] = error

    async def subscribe(self, request: SubscriptionRequest) -> None:
        """Store the subscription, rejecting duplicates."""
        subscriber = request.subscriber_system
        self._calls.append(BrokerCall("subscribe", request.event_type, subscriber.system_name))
        self._raise_injected("subscribe", request.event_type)

        key = (request.event_type, subscriber.system_name, subscriber.address, subscriber.port)
        if key in self._subscriptions:
            raise InvalidParameterError(DUPLICATE_SUBSCRIPTION_MESSAGE, status_code=400)
        self._subscriptions[key] = request
        logger.debug(f"Subscribed {subscriber.system_name} to {request.event_type}")

    async def unsubscribe(
        self,
        event_type: str,
        system_name: str,
        address: str,
        port: int,
    ) -> None:
        """Drop the subscription if present."""
        self._calls.append(BrokerCall("unsubscribe", event_type, system_name))
        self._raise_injected("unsubscribe", event_type)
        self._subscriptions.pop((event_type, system_name, address, port), None)
        logger.debug(f"Unsubscribed {system_name} from {event_type}")

    def _raise_injected(self, action: str, event_type: str) -> None:
        error = self._failures.get((action, event_type))
        if error is not None:
            raise error
