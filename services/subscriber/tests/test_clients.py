"""Tests for the core system HTTP clients."""

import base64
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives import serialization

from shared.mesh.authorization import AuthorizationClient
from shared.mesh.errors import (
    CoreServiceUnresolvedError,
    InvalidParameterError,
    MeshAuthError,
    MeshError,
    MeshUnavailableError,
    raise_for_error,
)
from shared.mesh.event_handler import EventHandlerClient
from shared.mesh.models import SubscriptionRequest, SystemRequest
from shared.mesh.registry import RegistryClient
from shared.mesh.types import CoreService, CoreSystem

REGISTRY = "http://registry:8443"

_PROVIDERS = {
    "auth-public-key": ("authorization", 8445, "/authorization/publickey"),
    "event-subscribe": ("eventhandler", 8455, "/eventhandler/subscribe"),
    "event-unsubscribe": ("eventhandler", 8455, "/eventhandler/unsubscribe"),
}


def _query_result(definition: str) -> dict[str, Any]:
    if definition not in _PROVIDERS:
        return {"serviceQueryData": [], "unfilteredHits": 0}
    address, port, uri = _PROVIDERS[definition]
    return {
        "serviceQueryData": [
            {
                "provider": {"systemName": address, "address": address, "port": port},
                "serviceUri": uri,
                "interfaces": [{"interfaceName": "HTTP-INSECURE-JSON"}],
            }
        ],
        "unfilteredHits": 1,
    }


class FakeMesh:
    """Routes requests to canned core system answers and records them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {
            ("GET", f"{REGISTRY}/serviceregistry/echo"): lambda r: httpx.Response(200, text="Got it!"),
            ("POST", f"{REGISTRY}/serviceregistry/query"): self._query,
            ("GET", "http://eventhandler:8455/eventhandler/echo"): lambda r: httpx.Response(
                200, text="Got it!"
            ),
        }

    def _query(self, request: httpx.Request) -> httpx.Response:
        form = json.loads(request.content)
        return httpx.Response(200, json=_query_result(form["serviceDefinitionRequirement"]))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = f"{request.url.scheme}://{request.url.host}:{request.url.port}{request.url.path}"
        route = self.routes.get((request.method, url))
        if route is None:
            raise httpx.ConnectError("connection refused", request=request)
        return route(request)


@pytest.fixture
def mesh() -> FakeMesh:
    return FakeMesh()


@pytest.fixture
async def http(mesh: FakeMesh):
    async with httpx.AsyncClient(transport=httpx.MockTransport(mesh.handler)) as client:
        yield client


@pytest.fixture
def registry_client(http: httpx.AsyncClient) -> RegistryClient:
    return RegistryClient(http, "registry", 8443, secure=False)


class TestRegistryClient:
    """Test cases for probing and endpoint resolution."""

    async def test_probe_registry(self, registry_client):
        assert await registry_client.probe(CoreSystem.SERVICE_REGISTRY)

    async def test_probe_registry_down(self, registry_client, mesh):
        del mesh.routes[("GET", f"{REGISTRY}/serviceregistry/echo")]

        assert not await registry_client.probe(CoreSystem.SERVICE_REGISTRY)

    async def test_probe_locates_core_system_through_registry(self, registry_client, mesh):
        assert await registry_client.probe(CoreSystem.EVENT_HANDLER)

        assert str(mesh.requests[-1].url) == "http://eventhandler:8455/eventhandler/echo"

    async def test_probe_unregistered_system(self, registry_client, mesh):
        mesh.routes[("POST", f"{REGISTRY}/serviceregistry/query")] = lambda r: httpx.Response(
            200, json={"serviceQueryData": [], "unfilteredHits": 0}
        )

        assert not await registry_client.probe(CoreSystem.EVENT_HANDLER)

    async def test_probe_unreachable_system(self, registry_client):
        # authorization resolves but its echo endpoint does not answer
        assert not await registry_client.probe(CoreSystem.AUTHORIZATION)

    @pytest.mark.parametrize(
        "reply",
        [
            {"json": {"serviceQueryData": [{"serviceUri": "/x"}]}},
            {"json": {"serviceQueryData": [{"provider": {"address": "eh"}}]}},
            {"json": ["unexpected"]},
            {"text": "<html>proxy</html>"},
        ],
    )
    async def test_malformed_registry_reply(self, registry_client, mesh, reply):
        """Test a garbled query reply is a soft probe failure and a MeshError on refresh."""
        mesh.routes[("POST", f"{REGISTRY}/serviceregistry/query")] = lambda r: httpx.Response(
            200, **reply
        )

        assert not await registry_client.probe(CoreSystem.EVENT_HANDLER)
        with pytest.raises(MeshError, match="Malformed service registry reply"):
            await registry_client.refresh_endpoints(CoreSystem.EVENT_HANDLER)

    async def test_query_uses_interface_requirement(self, registry_client, mesh):
        await registry_client.refresh_endpoints(CoreSystem.EVENT_HANDLER)

        bodies = [json.loads(r.content) for r in mesh.requests]
        assert bodies == [
            {
                "serviceDefinitionRequirement": "event-subscribe",
                "interfaceRequirements": ["HTTP-INSECURE-JSON"],
            },
            {
                "serviceDefinitionRequirement": "event-unsubscribe",
                "interfaceRequirements": ["HTTP-INSECURE-JSON"],
            },
        ]

    async def test_refresh_endpoints_fills_cache(self, registry_client):
        await registry_client.refresh_endpoints(CoreSystem.EVENT_HANDLER)

        assert (
            registry_client.service_url(CoreService.EVENT_SUBSCRIBE)
            == "http://eventhandler:8455/eventhandler/subscribe"
        )
        assert (
            registry_client.service_url(CoreService.EVENT_UNSUBSCRIBE)
            == "http://eventhandler:8455/eventhandler/unsubscribe"
        )

    async def test_unresolved_service(self, registry_client):
        with pytest.raises(CoreServiceUnresolvedError):
            registry_client.service_url(CoreService.EVENT_SUBSCRIBE)

    async def test_refresh_with_registry_down(self, registry_client, mesh):
        del mesh.routes[("POST", f"{REGISTRY}/serviceregistry/query")]

        with pytest.raises(MeshUnavailableError):
            await registry_client.refresh_endpoints(CoreSystem.EVENT_HANDLER)


class TestEventHandlerClient:
    """Test cases for subscribe/unsubscribe calls."""

    @pytest.fixture
    async def event_handler(self, http, registry_client) -> EventHandlerClient:
        await registry_client.refresh_endpoints(CoreSystem.EVENT_HANDLER)
        return EventHandlerClient(http, registry_client)

    @pytest.fixture
    def request_dto(self) -> SubscriptionRequest:
        return SubscriptionRequest(
            event_type="TEMPERATURE",
            subscriber_system=SystemRequest(
                system_name="subscriber",
                address="127.0.0.1",
                port=8869,
                authentication_info="AAAA",
            ),
            notify_uri="notify",
        )

    async def test_subscribe_posts_camel_case_body(self, event_handler, mesh, request_dto):
        captured: list[dict[str, Any]] = []

        def _subscribe(request: httpx.Request) -> httpx.Response:
            captured.append(json.loads(request.content))
            return httpx.Response(201, json={"id": 1})

        mesh.routes[("POST", "http://eventhandler:8455/eventhandler/subscribe")] = _subscribe

        await event_handler.subscribe(request_dto)

        assert captured == [
            {
                "eventType": "TEMPERATURE",
                "subscriberSystem": {
                    "systemName": "subscriber",
                    "address": "127.0.0.1",
                    "port": 8869,
                    "authenticationInfo": "AAAA",
                },
                "filterMetaData": None,
                "notifyUri": "notify",
                "matchMetaData": False,
                "startDate": None,
                "endDate": None,
                "sources": None,
            }
        ]

    async def test_duplicate_subscription_raises_invalid_parameter(
        self, event_handler, mesh, request_dto
    ):
        mesh.routes[("POST", "http://eventhandler:8455/eventhandler/subscribe")] = (
            lambda r: httpx.Response(
                400,
                json={
                    "errorMessage": "Subscription violates uniqueConstraint rules",
                    "errorCode": 400,
                    "exceptionType": "INVALID_PARAMETER",
                    "origin": "/eventhandler/subscribe",
                },
            )
        )

        with pytest.raises(InvalidParameterError, match="uniqueConstraint") as exc_info:
            await event_handler.subscribe(request_dto)

        assert exc_info.value.status_code == 400

    async def test_unsubscribe_sends_query_parameters(self, event_handler, mesh):
        mesh.routes[("DELETE", "http://eventhandler:8455/eventhandler/unsubscribe")] = (
            lambda r: httpx.Response(200)
        )

        await event_handler.unsubscribe("TEMPERATURE", "subscriber", "127.0.0.1", 8869)

        params = dict(mesh.requests[-1].url.params)
        assert params == {
            "event_type": "TEMPERATURE",
            "system_name": "subscriber",
            "address": "127.0.0.1",
            "port": "8869",
        }

    async def test_transport_failure(self, event_handler):
        # no DELETE route registered
        with pytest.raises(MeshUnavailableError):
            await event_handler.unsubscribe("TEMPERATURE", "subscriber", "127.0.0.1", 8869)

    async def test_unresolved_endpoint(self, http):
        client = EventHandlerClient(http, RegistryClient(http, "registry", 8443, secure=False))

        with pytest.raises(CoreServiceUnresolvedError):
            await client.unsubscribe("TEMPERATURE", "subscriber", "127.0.0.1", 8869)


class TestAuthorizationClient:
    """Test cases for fetching the authority public key."""

    @pytest.fixture
    async def authorization_client(self, http, registry_client) -> AuthorizationClient:
        await registry_client.refresh_endpoints(CoreSystem.AUTHORIZATION)
        return AuthorizationClient(http, registry_client)

    def _serve_key(self, mesh: FakeMesh, body: Any) -> None:
        mesh.routes[("GET", "http://authorization:8445/authorization/publickey")] = (
            lambda r: httpx.Response(200, json=body)
        )

    async def test_fetch_public_key(self, authorization_client, mesh, authority_key):
        der = authority_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        self._serve_key(mesh, base64.b64encode(der).decode("ascii"))

        key = await authorization_client.fetch_public_key()

        assert key.public_numbers() == authority_key.public_key().public_numbers()

    @pytest.mark.parametrize("body", ["", "not base64!", {"key": "x"}])
    async def test_unusable_key_returns_none(self, authorization_client, mesh, body):
        self._serve_key(mesh, body)

        assert await authorization_client.fetch_public_key() is None

    async def test_authority_down(self, authorization_client):
        with pytest.raises(MeshUnavailableError):
            await authorization_client.fetch_public_key()


class TestRaiseForError:
    """Test cases for mapping error bodies to exceptions."""

    def _response(self, status_code: int, **kwargs: Any) -> httpx.Response:
        return httpx.Response(
            status_code, request=httpx.Request("GET", "http://eventhandler/x"), **kwargs
        )

    def test_success_passes(self):
        raise_for_error(self._response(200))

    @pytest.mark.parametrize(
        ("exception_type", "expected"),
        [
            ("INVALID_PARAMETER", InvalidParameterError),
            ("BAD_PAYLOAD", InvalidParameterError),
            ("AUTH", MeshAuthError),
            ("UNAVAILABLE", MeshUnavailableError),
            ("DATA_NOT_FOUND", MeshError),
        ],
    )
    def test_exception_type_mapping(self, exception_type, expected):
        response = self._response(
            400,
            json={"errorMessage": "nope", "errorCode": 400, "exceptionType": exception_type},
        )

        with pytest.raises(expected, match="nope"):
            raise_for_error(response)

    def test_unparsable_body(self):
        with pytest.raises(MeshError) as exc_info:
            raise_for_error(self._response(500, text="Internal Server Error"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.origin == "http://eventhandler/x"

    def test_forbidden_without_body_is_auth_error(self):
        with pytest.raises(MeshAuthError):
            raise_for_error(self._response(403))
