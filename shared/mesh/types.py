"""Core system and core service definitions of the mesh.

Every node talks to the same small set of core systems. Each core system
publishes a handful of core services that are looked up through the
service registry by their service definition.
"""

from enum import StrEnum


class CoreSystem(StrEnum):
    """Core systems a subscriber node depends on."""

    SERVICE_REGISTRY = "service_registry"
    AUTHORIZATION = "authorization"
    EVENT_HANDLER = "event_handler"

    @property
    def path(self) -> str:
        """URL path prefix the core system serves its API under."""
        return "/" + self.value.replace("_", "")

    @property
    def echo_path(self) -> str:
        """Path of the reachability probe endpoint."""
        return f"{self.path}/echo"

    @property
    def common_name(self) -> str:
        """First label of the core system's certificate common name."""
        return self.value.replace("_", "")

    @property
    def services(self) -> tuple["CoreService", ...]:
        """Core services published by this system."""
        return tuple(s for s in CoreService if s.system is self)


class CoreService(StrEnum):
    """Core services, keyed by their service definition."""

    SERVICE_QUERY = "service-query"
    AUTH_PUBLIC_KEY = "auth-public-key"
    EVENT_SUBSCRIBE = "event-subscribe"
    EVENT_UNSUBSCRIBE = "event-unsubscribe"

    @property
    def system(self) -> CoreSystem:
        """Core system that provides this service."""
        return _SERVICE_SYSTEMS[self]

    @property
    def default_uri(self) -> str:
        """Service URI used when the registry entry carries none."""
        return _SERVICE_URIS[self]


_SERVICE_SYSTEMS = {
    CoreService.SERVICE_QUERY: CoreSystem.SERVICE_REGISTRY,
    CoreService.AUTH_PUBLIC_KEY: CoreSystem.AUTHORIZATION,
    CoreService.EVENT_SUBSCRIBE: CoreSystem.EVENT_HANDLER,
    CoreService.EVENT_UNSUBSCRIBE: CoreSystem.EVENT_HANDLER,
}

_SERVICE_URIS = {
    CoreService.SERVICE_QUERY: "/serviceregistry/query",
    CoreService.AUTH_PUBLIC_KEY: "/authorization/publickey",
    CoreService.EVENT_SUBSCRIBE: "/eventhandler/subscribe",
    CoreService.EVENT_UNSUBSCRIBE: "/eventhandler/unsubscribe",
}


class Interface(StrEnum):
    """Interface names used in service registry queries."""

    HTTP_SECURE_JSON = "HTTP-SECURE-JSON"
    HTTP_INSECURE_JSON = "HTTP-INSECURE-JSON"
