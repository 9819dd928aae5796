"""Wiring of the Subscriber node's collaborators."""

from typing import Annotated

import httpx
from fastapi import Depends, Request

from services.subscriber.config import Settings
from services.subscriber.lifecycle import LifecycleOrchestrator
from services.subscriber.security import SecurityProvisioner
from services.subscriber.subscriptions import SubscriptionManager
from shared.mesh.authorization import AuthorizationClient
from shared.mesh.event_handler import EventHandlerClient
from shared.mesh.registry import RegistryClient
from shared.security.keystore import KeystoreLoader


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the HTTP client shared by all core system clients."""
    cert: tuple[str, str] | None = None
    if settings.http_client_cert_file and settings.http_client_key_file:
        cert = (settings.http_client_cert_file, settings.http_client_key_file)
    verify: str | bool = settings.http_ca_file or True

    return httpx.AsyncClient(
        cert=cert,
        verify=verify,
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        headers={"Accept": "application/json"},
    )


def create_orchestrator(settings: Settings, http: httpx.AsyncClient) -> LifecycleOrchestrator:
    """Assemble the orchestrator and everything it drives.

    Nothing is read or contacted here. The keystore is read on first use
    during startup, after the service registry has been probed. A node
    running without TLS presents no public key to the broker and needs no
    keystore unless token security or notification filtering is enabled.
    """
    registry = RegistryClient(
        http,
        settings.service_registry_address,
        settings.service_registry_port,
        secure=settings.server_ssl_enabled,
    )
    keystore = KeystoreLoader(
        settings.server_ssl_key_store,
        settings.server_ssl_key_store_password,
        settings.server_ssl_key_store_type,
    )
    provisioner = SecurityProvisioner(
        AuthorizationClient(http, registry),
        keystore.load,
        token_security_enabled=settings.token_security_filter_enabled,
        notification_uris=settings.notification_uris,
    )
    manager = SubscriptionManager(
        EventHandlerClient(http, registry),
        settings.client_system_name,
        settings.server_address,
        settings.server_port,
        load_credentials=keystore.load if settings.server_ssl_enabled else None,
    )
    return LifecycleOrchestrator(
        registry,
        provisioner,
        manager,
        event_types=settings.event_types,
        token_security_enabled=settings.token_security_filter_enabled,
    )


def get_orchestrator(request: Request) -> LifecycleOrchestrator:
    """Dependency returning the orchestrator created at startup."""
    return request.app.state.orchestrator


# Type alias for cleaner dependency injection
Orchestrator = Annotated[LifecycleOrchestrator, Depends(get_orchestrator)]
