"""Startup and shutdown sequencing of the Subscriber node."""

import logging
from collections.abc import Sequence

from services.subscriber.security import SecurityProvisioner
from services.subscriber.subscriptions import SubscriptionManager
from shared.mesh.errors import CoreSystemUnavailableError, MeshError
from shared.mesh.models import SubscriptionReport, UnsubscribeReport
from shared.mesh.registry import RegistryClient
from shared.mesh.types import CoreSystem
from shared.security.filters import SecurityFilters

logger = logging.getLogger(__name__)


class LifecycleOrchestrator:
    """Runs the node's startup and shutdown sequences.

    Startup aborts with an exception when a mandatory core system is
    missing or the security setup fails. The event broker is optional: if
    it is not reachable the node runs without subscriptions.
    """

    def __init__(
        self,
        registry: RegistryClient,
        provisioner: SecurityProvisioner,
        manager: SubscriptionManager,
        event_types: Sequence[str],
        token_security_enabled: bool,
    ) -> None:
        self._registry = registry
        self._provisioner = provisioner
        self._manager = manager
        self._event_types = tuple(event_types)
        self._token_security_enabled = token_security_enabled
        self._filters = SecurityFilters()
        self._broker_available = False
        self._subscription_report: SubscriptionReport | None = None

    @property
    def filters(self) -> SecurityFilters:
        """Filters built during startup (inactive before ``on_start``)."""
        return self._filters

    @property
    def broker_available(self) -> bool:
        return self._broker_available

    @property
    def subscription_report(self) -> SubscriptionReport | None:
        """Outcome of the startup subscription batch, if it ran."""
        return self._subscription_report

    @property
    def manager(self) -> SubscriptionManager:
        return self._manager

    async def on_start(self) -> SecurityFilters:
        """Bring the node into the mesh.

        Returns:
            The security filters to install on the node's HTTP surface

        Raises:
            CoreSystemUnavailableError: If a mandatory core system is down
            AuthorityKeyUnavailableError: If the authority has no public key
            KeyMaterialError: If the node keystore cannot be loaded
            MeshError: If resolving the authority endpoints fails
        """
        await self._require(CoreSystem.SERVICE_REGISTRY)
        if self._token_security_enabled:
            await self._require(CoreSystem.AUTHORIZATION)
            await self._registry.refresh_endpoints(CoreSystem.AUTHORIZATION)

        self._filters = await self._provisioner.provision()

        if await self._registry.probe(CoreSystem.EVENT_HANDLER):
            try:
                await self._registry.refresh_endpoints(CoreSystem.EVENT_HANDLER)
            except MeshError as e:
                logger.warning(f"Event handler endpoints could not be resolved: {e}")
            else:
                self._broker_available = True
                self._subscription_report = await self._manager.subscribe_all(self._event_types)
        else:
            logger.info("Event handler is not available, preset events are not subscribed")

        logger.info("Subscriber node started")
        return self._filters

    async def on_stop(self) -> UnsubscribeReport:
        """Remove the node's subscriptions.

        Runs whether or not the broker was reachable at startup; failures
        are logged by the subscription manager and never raised.
        """
        report = await self._manager.unsubscribe_all(self._event_types)
        logger.info("Subscriber node stopped")
        return report

    async def _require(self, system: CoreSystem) -> None:
        if not await self._registry.probe(system):
            logger.error(f"{system.value} is not available, startup aborted")
            raise CoreSystemUnavailableError(system)
        logger.info(f"{system.value} is available")
