"""Event handler core system client."""

import logging

import httpx

from shared.mesh.broker import EventBroker
from shared.mesh.errors import MeshUnavailableError, raise_for_error
from shared.mesh.models import SubscriptionRequest
from shared.mesh.registry import RegistryClient
from shared.mesh.types import CoreService

logger = logging.getLogger(__name__)


class EventHandlerClient(EventBroker):
    """HTTP client for the event handler core system.

    Endpoints are taken from the registry cache, so the event handler
    services must have been resolved with ``refresh_endpoints`` first.
    """

    def __init__(self, http: httpx.AsyncClient, registry: RegistryClient) -> None:
        """Initialize the event handler client.

        Args:
            http: Shared HTTP client
            registry: Registry client holding the resolved endpoints
        """
        self._http = http
        self._registry = registry

    async def subscribe(self, request: SubscriptionRequest) -> None:
        """POST the subscription to the event handler."""
        url = self._registry.service_url(CoreService.EVENT_SUBSCRIBE)
        try:
            response = await self._http.post(url, json=request.to_wire())
        except httpx.HTTPError as e:
            raise MeshUnavailableError(f"Subscribe call failed: {e}", origin=url) from e
        raise_for_error(response)
        logger.debug(f"Event handler accepted subscription to {request.event_type}")

    async def unsubscribe(
        self,
        event_type: str,
        system_name: str,
        address: str,
        port: int,
    ) -> None:
        """DELETE the subscription identified by event type and subscriber."""
        url = self._registry.service_url(CoreService.EVENT_UNSUBSCRIBE)
        params = {
            "event_type": event_type,
            "system_name": system_name,
            "address": address,
            "port": port,
        }
        try:
            response = await self._http.delete(url, params=params)
        except httpx.HTTPError as e:
            raise MeshUnavailableError(f"Unsubscribe call failed: {e}", origin=url) from e
        raise_for_error(response)
        logger.debug(f"Event handler removed subscription to {event_type}")
