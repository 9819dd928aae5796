"""Service registry client.

Probes core system reachability and resolves the endpoints of core
services through the service registry.
"""

import logging
from typing import Any

import httpx

from shared.mesh.errors import (
    CoreServiceUnresolvedError,
    MeshError,
    MeshUnavailableError,
    raise_for_error,
)
from shared.mesh.models import ServiceEndpoint, ServiceQueryForm
from shared.mesh.types import CoreService, CoreSystem, Interface

logger = logging.getLogger(__name__)


class RegistryClient:
    """Client for the service registry core system.

    Keeps an in-memory cache of resolved core service endpoints. The cache
    is only (re)filled by ``refresh_endpoints``; lookups never hit the
    network.

    Example:
        >>> async with httpx.AsyncClient() as http:
        ...     registry = RegistryClient(http, "localhost", 8443, secure=True)
        ...     if await registry.probe(CoreSystem.EVENT_HANDLER):
        ...         await registry.refresh_endpoints(CoreSystem.EVENT_HANDLER)
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        registry_address: str,
        registry_port: int,
        secure: bool = True,
    ) -> None:
        """Initialize the registry client.

        Args:
            http: Shared HTTP client (carries TLS material and timeouts)
            registry_address: Host of the service registry
            registry_port: Port of the service registry
            secure: Use https and secure interfaces when True
        """
        self._http = http
        self._scheme = "https" if secure else "http"
        self._interface = Interface.HTTP_SECURE_JSON if secure else Interface.HTTP_INSECURE_JSON
        self._registry_url = f"{self._scheme}://{registry_address}:{registry_port}"
        self._endpoints: dict[CoreService, ServiceEndpoint] = {}

    @property
    def registry_url(self) -> str:
        """Base URL of the service registry."""
        return self._registry_url

    @property
    def scheme(self) -> str:
        """URL scheme used for core system calls."""
        return self._scheme

    async def probe(self, system: CoreSystem) -> bool:
        """Check whether a core system answers its echo endpoint.

        The service registry is probed at its configured address; other
        core systems are located through the registry first.

        Args:
            system: Core system to probe

        Returns:
            True if the core system is reachable
        """
        if system is CoreSystem.SERVICE_REGISTRY:
            base_url = self._registry_url
        else:
            try:
                base_url = (await self._any_endpoint(system)).base_url(self._scheme)
            except (httpx.HTTPError, MeshError) as e:
                logger.info(f"{system.value} could not be located: {e}")
                return False

        try:
            response = await self._http.get(f"{base_url}{system.echo_path}")
            raise_for_error(response)
        except (httpx.HTTPError, MeshError) as e:
            logger.info(f"{system.value} is not reachable: {e}")
            return False

        logger.debug(f"{system.value} is reachable at {base_url}")
        return True

    async def refresh_endpoints(self, system: CoreSystem) -> None:
        """Re-resolve the endpoints of every core service of a system.

        Services the registry no longer knows are dropped from the cache.

        Args:
            system: Core system whose services to resolve

        Raises:
            MeshError: If the registry query fails
        """
        for service in system.services:
            endpoint = await self._query(service)
            if endpoint is None:
                self._endpoints.pop(service, None)
                logger.warning(f"Core service {service.value} is not registered")
                continue
            self._endpoints[service] = endpoint
            logger.debug(
                f"Resolved {service.value} -> {endpoint.url(self._scheme)}"
            )

    def service_url(self, service: CoreService) -> str:
        """Absolute URL of a resolved core service.

        Raises:
            CoreServiceUnresolvedError: If the service was never resolved
        """
        if service is CoreService.SERVICE_QUERY:
            return f"{self._registry_url}{service.default_uri}"
        endpoint = self._endpoints.get(service)
        if endpoint is None:
            raise CoreServiceUnresolvedError(service)
        return endpoint.url(self._scheme)

    async def _any_endpoint(self, system: CoreSystem) -> ServiceEndpoint:
        """Return a cached endpoint of the system, resolving once if needed."""
        cached = [self._endpoints[s] for s in system.services if s in self._endpoints]
        if not cached:
            await self.refresh_endpoints(system)
            cached = [self._endpoints[s] for s in system.services if s in self._endpoints]
        if not cached:
            raise CoreServiceUnresolvedError(system.services[0])
        return cached[0]

    async def _query(self, service: CoreService) -> ServiceEndpoint | None:
        """Look up one service definition in the registry."""
        form = ServiceQueryForm(
            service_definition_requirement=service.value,
            interface_requirements=[self._interface.value],
        )
        url = self.service_url(CoreService.SERVICE_QUERY)
        try:
            response = await self._http.post(url, json=form.to_wire())
        except httpx.HTTPError as e:
            raise MeshUnavailableError(
                f"Service registry query failed: {e}", origin=url
            ) from e
        raise_for_error(response)

        try:
            hits: list[dict[str, Any]] = response.json().get("serviceQueryData") or []
            if not hits:
                return None

            hit = hits[0]
            provider = hit["provider"]
            return ServiceEndpoint(
                service=service,
                address=provider["address"],
                port=provider["port"],
                service_uri=hit.get("serviceUri") or service.default_uri,
            )
        except (ValueError, KeyError, TypeError, AttributeError, IndexError) as e:
            raise MeshError(
                f"Malformed service registry reply for {service.value}: {e!r}", origin=url
            ) from e
