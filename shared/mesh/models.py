"""Request and result models exchanged with the mesh core systems.

Core systems speak camelCase JSON; the models use snake_case attributes with
camelCase aliases so they can be built from Python keyword arguments and
dumped straight onto the wire.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.mesh.types import CoreService


class MeshModel(BaseModel):
    """Base model for mesh DTOs (immutable, camelCase on the wire)."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON body core systems expect."""
        return self.model_dump(mode="json", by_alias=True)


class SystemRequest(MeshModel):
    """Identity of a system as presented to core systems.

    For a subscriber node this is its subscriber identity: built once at
    startup and reused unchanged for every subscription request.

    Attributes:
        system_name: Registered name of the system
        address: Host name or IP address the system listens on
        port: Port the system listens on
        authentication_info: Base64 encoded DER public key of the system
    """

    system_name: str
    address: str
    port: int = Field(ge=0, le=65535)
    authentication_info: str | None = None


class SubscriptionRequest(MeshModel):
    """Subscription request for a single event type.

    Everything except the event type, the subscriber and the notification
    URI is left at the broker defaults.
    """

    event_type: str
    subscriber_system: SystemRequest
    filter_meta_data: dict[str, str] | None = None
    notify_uri: str
    match_meta_data: bool = False
    start_date: datetime | None = None
    end_date: datetime | None = None
    sources: list[SystemRequest] | None = None


class ServiceQueryForm(MeshModel):
    """Service registry lookup for one service definition."""

    service_definition_requirement: str
    interface_requirements: list[str] = Field(default_factory=list)


class ServiceEndpoint(MeshModel):
    """Resolved location of a core service."""

    service: CoreService
    address: str
    port: int
    service_uri: str

    def url(self, scheme: str) -> str:
        """Absolute URL of the service for the given scheme."""
        uri = self.service_uri if self.service_uri.startswith("/") else f"/{self.service_uri}"
        return f"{scheme}://{self.address}:{self.port}{uri}"

    def base_url(self, scheme: str) -> str:
        """Scheme, host and port of the providing system."""
        return f"{scheme}://{self.address}:{self.port}"


class ErrorMessage(MeshModel):
    """Error body returned by core systems."""

    error_message: str = ""
    error_code: int = 0
    exception_type: str = "GENERIC"
    origin: str | None = None


class SubscriptionOutcome(StrEnum):
    """Result of a single subscribe attempt."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


class SubscriptionState(StrEnum):
    """Last-known registration state of one event type."""

    UNREGISTERED = "unregistered"
    SUBSCRIBED = "subscribed"
    SUBSCRIBE_FAILED = "subscribe_failed"


class SubscriptionResult(MeshModel):
    """Outcome of subscribing to one event type."""

    event_type: str
    outcome: SubscriptionOutcome
    reason: str | None = None


class SubscriptionReport(MeshModel):
    """Per-type results of a subscribe batch, in attempt order."""

    results: tuple[SubscriptionResult, ...] = ()

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def created(self) -> int:
        return self._count(SubscriptionOutcome.CREATED)

    @property
    def already_exists(self) -> int:
        return self._count(SubscriptionOutcome.ALREADY_EXISTS)

    @property
    def failed(self) -> int:
        return self._count(SubscriptionOutcome.FAILED)

    def _count(self, outcome: SubscriptionOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)


class UnsubscribeReport(MeshModel):
    """Counts of a best-effort unsubscribe batch."""

    attempted: int = 0
    failed: int = 0
