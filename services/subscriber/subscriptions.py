"""Subscription lifecycle of the Subscriber node.

The node keeps no durable record of which subscriptions exist; the broker
is the only source of truth. Registration is therefore reconciled blindly:
every configured event type is unsubscribed first and then subscribed again,
so at most one registration per (event type, subscriber) survives a restart
or a configuration change.

Subscriptions are an optional feature of the node. Broker failures for a
single event type are logged at debug level and never escape this module.
"""

import logging
from collections.abc import Callable, Iterable, Sequence

from services.subscriber.constants import DEFAULT_EVENT_NOTIFICATION_BASE_URI
from shared.mesh.broker import DUPLICATE_SUBSCRIPTION_MESSAGE, EventBroker
from shared.mesh.errors import InvalidParameterError
from shared.mesh.models import (
    SubscriptionOutcome,
    SubscriptionReport,
    SubscriptionRequest,
    SubscriptionResult,
    SubscriptionState,
    SystemRequest,
    UnsubscribeReport,
)
from shared.security.keystore import NodeCredentials

logger = logging.getLogger(__name__)


def canonical_event_types(event_types: Iterable[str]) -> tuple[str, ...]:
    """Trim and upper-case event type names, dropping empty ones.

    The same form is used for subscribe and unsubscribe so both calls
    address the same registration.
    """
    return tuple(et.strip().upper() for et in event_types if et and et.strip())


class SubscriptionManager:
    """Registers and removes the node's event subscriptions.

    Example:
        >>> manager = SubscriptionManager(broker, "subscriber", "10.0.0.5", 8869)
        >>> report = await manager.subscribe_all(["temperature", "HUMIDITY"])
        >>> report.created
        2
    """

    def __init__(
        self,
        broker: EventBroker,
        system_name: str,
        address: str,
        port: int,
        load_credentials: Callable[[], NodeCredentials] | None = None,
        notify_uri: str = DEFAULT_EVENT_NOTIFICATION_BASE_URI,
    ) -> None:
        """Initialize the subscription manager.

        Args:
            broker: Broker to register subscriptions with
            system_name: Subscriber system name
            address: Address the broker delivers notifications to
            port: Port the broker delivers notifications to
            load_credentials: Returns the node key material; its public key
                becomes the subscriber's authentication info. Only called
                when subscribing
            notify_uri: Notification path sent with every subscription
        """
        self._broker = broker
        self._system_name = system_name
        self._address = address
        self._port = port
        self._load_credentials = load_credentials
        self._notify_uri = notify_uri
        self._states: dict[str, SubscriptionState] = {}

    @property
    def states(self) -> dict[str, SubscriptionState]:
        """Last-known state per event type (copy, for observability)."""
        return dict(self._states)

    def subscriber_identity(self) -> SystemRequest:
        """Build the identity presented to the broker.

        Raises:
            KeyMaterialError: If the node key material cannot be loaded
        """
        authentication_info = None
        if self._load_credentials is not None:
            authentication_info = self._load_credentials().public_key_base64()
        return SystemRequest(
            system_name=self._system_name,
            address=self._address,
            port=self._port,
            authentication_info=authentication_info,
        )

    async def subscribe_all(self, event_types: Sequence[str]) -> SubscriptionReport:
        """Reconcile the broker's registrations with the given event types.

        Every event type is unsubscribed first (outcome ignored), then
        subscribed again, both passes in the given order. Each event type is
        attempted exactly once; broker failures are reported, never raised.

        Args:
            event_types: Event types to subscribe to

        Returns:
            Per-type outcomes of the subscribe pass

        Raises:
            KeyMaterialError: If the node key material cannot be loaded
        """
        types = canonical_event_types(event_types)
        if not types:
            logger.info("No preset events to subscribe.")
            return SubscriptionReport()

        subscriber = self.subscriber_identity()

        for event_type in types:
            try:
                await self._broker.unsubscribe(
                    event_type, subscriber.system_name, subscriber.address, subscriber.port
                )
            except Exception as e:
                logger.debug(f"Nothing to unsubscribe for {event_type}: {e}")
            self._states[event_type] = SubscriptionState.UNREGISTERED

        results = [await self._subscribe(event_type, subscriber) for event_type in types]
        report = SubscriptionReport(results=tuple(results))

        logger.info(
            f"Preset event subscription finished: attempted={report.attempted}, "
            f"created={report.created}, already_exists={report.already_exists}, "
            f"failed={report.failed}"
        )
        return report

    async def unsubscribe_all(self, event_types: Sequence[str]) -> UnsubscribeReport:
        """Remove the node's subscription to each event type.

        Best effort: failures are logged and counted, never raised.

        Args:
            event_types: Event types to unsubscribe from

        Returns:
            Attempt and failure counts
        """
        types = canonical_event_types(event_types)
        if not types:
            logger.info("No preset events to unsubscribe.")
            return UnsubscribeReport()

        failed = 0
        for event_type in types:
            try:
                await self._broker.unsubscribe(
                    event_type, self._system_name, self._address, self._port
                )
            except Exception as e:
                failed += 1
                logger.debug(f"Could not unsubscribe from EventType: {event_type}: {e}")
            self._states[event_type] = SubscriptionState.UNREGISTERED

        logger.info(f"Unsubscribed from preset events: attempted={len(types)}, failed={failed}")
        return UnsubscribeReport(attempted=len(types), failed=failed)

    async def _subscribe(self, event_type: str, subscriber: SystemRequest) -> SubscriptionResult:
        """Subscribe to one event type and classify the outcome."""
        request = SubscriptionRequest(
            event_type=event_type,
            subscriber_system=subscriber,
            notify_uri=self._notify_uri,
        )

        try:
            await self._broker.subscribe(request)
        except InvalidParameterError as e:
            if DUPLICATE_SUBSCRIPTION_MESSAGE in str(e):
                logger.debug(f"Subscription to {event_type} is already registered")
                self._states[event_type] = SubscriptionState.SUBSCRIBED
                return SubscriptionResult(
                    event_type=event_type, outcome=SubscriptionOutcome.ALREADY_EXISTS
                )
            return self._failed(event_type, e)
        except Exception as e:
            return self._failed(event_type, e)

        self._states[event_type] = SubscriptionState.SUBSCRIBED
        return SubscriptionResult(event_type=event_type, outcome=SubscriptionOutcome.CREATED)

    def _failed(self, event_type: str, error: Exception) -> SubscriptionResult:
        logger.debug(f"Could not subscribe to EventType: {event_type}: {error}")
        self._states[event_type] = SubscriptionState.SUBSCRIBE_FAILED
        return SubscriptionResult(
            event_type=event_type,
            outcome=SubscriptionOutcome.FAILED,
            reason=str(error) or error.__class__.__name__,
        )
