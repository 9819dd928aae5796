"""
Pytest configuration and fixtures for Subscriber node tests.

Core systems are replaced by in-memory doubles: the broker by
InMemoryBroker, the registry and authority by AsyncMock-backed fakes or
httpx.MockTransport. Keys and keystores are generated per test session.
"""

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

# Set test environment variables BEFORE importing modules that use settings
# These can be overridden by actual environment variables
_test_env_defaults = {
    "CLIENT_SYSTEM_NAME": "subscriber",
    "SERVER_ADDRESS": "127.0.0.1",
    "SERVER_PORT": "8869",
    "SERVER_SSL_ENABLED": "false",
    "TOKEN_SECURITY_FILTER_ENABLED": "false",
    "PRESET_EVENTS": "temperature,HUMIDITY",
    "PRESET_NOTIFICATION_URIS": "",
    "DEBUG": "false",
}

# Set defaults only if not already set
for key, value in _test_env_defaults.items():
    if key not in os.environ:
        os.environ[key] = value

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient
from jose import jwe, jwt

from services.subscriber.lifecycle import LifecycleOrchestrator
from services.subscriber.security import SecurityProvisioner
from services.subscriber.subscriptions import SubscriptionManager
from shared.mesh.authorization import AuthorizationClient
from shared.mesh.broker import InMemoryBroker
from shared.mesh.registry import RegistryClient
from shared.security.context import SecurityContext
from shared.security.keystore import NodeCredentials

NODE_CN = "subscriber.testcloud.company.arrowhead.eu"
BROKER_CN = "eventhandler.testcloud.company.arrowhead.eu"
KEYSTORE_PASSWORD = "123456"


# --- Key material ---


def _rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _self_signed(key: rsa.RSAPrivateKey, common_name: str) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def authority_key() -> rsa.RSAPrivateKey:
    """Private key the authority signs tokens with."""
    return _rsa_key()


@pytest.fixture(scope="session")
def node_key() -> rsa.RSAPrivateKey:
    """Private key of the subscriber node."""
    return _rsa_key()


@pytest.fixture(scope="session")
def node_certificate(node_key: rsa.RSAPrivateKey) -> x509.Certificate:
    return _self_signed(node_key, NODE_CN)


@pytest.fixture(scope="session")
def node_credentials(
    node_key: rsa.RSAPrivateKey, node_certificate: x509.Certificate
) -> NodeCredentials:
    return NodeCredentials(private_key=node_key, certificate=node_certificate)


@pytest.fixture(scope="session")
def keystore_path(
    tmp_path_factory: pytest.TempPathFactory,
    node_key: rsa.RSAPrivateKey,
    node_certificate: x509.Certificate,
) -> Path:
    """PKCS12 keystore holding the node key entry."""
    path = tmp_path_factory.mktemp("certificates") / "subscriber.p12"
    path.write_bytes(
        pkcs12.serialize_key_and_certificates(
            name=b"subscriber",
            key=node_key,
            cert=node_certificate,
            cas=None,
            encryption_algorithm=serialization.BestAvailableEncryption(
                KEYSTORE_PASSWORD.encode()
            ),
        )
    )
    return path


@pytest.fixture(scope="session")
def security_context(
    authority_key: rsa.RSAPrivateKey, node_key: rsa.RSAPrivateKey
) -> SecurityContext:
    return SecurityContext(
        authority_public_key=authority_key.public_key(),
        node_private_key=node_key,
    )


@pytest.fixture(scope="session")
def issue_token(
    authority_key: rsa.RSAPrivateKey, node_key: rsa.RSAPrivateKey
) -> Callable[..., str]:
    """Factory issuing tokens the way the authority does: signed, then encrypted."""
    authority_pem = authority_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    node_public_pem = node_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")

    def _issue(
        issuer: str = "Authorization",
        expires_in: timedelta | None = timedelta(minutes=5),
        signing_pem: str | None = None,
        **claims: Any,
    ) -> str:
        now = datetime.now(timezone.utc)
        to_encode: dict[str, Any] = {
            "iss": issuer,
            "iat": now,
            "nbf": now - timedelta(seconds=5),
            "cid": "consumer",
            "sid": "temperature-reading",
            **claims,
        }
        if expires_in is not None:
            to_encode["exp"] = now + expires_in
        signed = jwt.encode(to_encode, signing_pem or authority_pem, algorithm="RS512")
        token = jwe.encrypt(
            signed.encode("utf-8"),
            node_public_pem,
            encryption="A256CBC-HS512",
            algorithm="RSA-OAEP-256",
            cty="JWT",
        )
        return token.decode("ascii")

    return _issue


# --- Mesh doubles ---


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def manager(broker: InMemoryBroker, node_credentials: NodeCredentials) -> SubscriptionManager:
    return SubscriptionManager(
        broker,
        "subscriber",
        "127.0.0.1",
        8869,
        load_credentials=lambda: node_credentials,
    )


@pytest.fixture
def registry() -> MagicMock:
    """Registry double on which every core system is reachable."""
    fake = MagicMock(spec=RegistryClient)
    fake.probe = AsyncMock(return_value=True)
    fake.refresh_endpoints = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def authorization(authority_key: rsa.RSAPrivateKey) -> MagicMock:
    fake = MagicMock(spec=AuthorizationClient)
    fake.fetch_public_key = AsyncMock(return_value=authority_key.public_key())
    return fake


@pytest.fixture
def load_credentials(node_credentials: NodeCredentials) -> MagicMock:
    return MagicMock(return_value=node_credentials)


@pytest.fixture
def make_orchestrator(
    registry: MagicMock,
    authorization: MagicMock,
    load_credentials: MagicMock,
    manager: SubscriptionManager,
) -> Callable[..., LifecycleOrchestrator]:
    """Factory building an orchestrator over the mesh doubles."""

    def _make(
        event_types: tuple[str, ...] = ("TEMPERATURE", "HUMIDITY"),
        token_security_enabled: bool = False,
        notification_uris: tuple[str, ...] = (),
    ) -> LifecycleOrchestrator:
        provisioner = SecurityProvisioner(
            authorization,
            load_credentials,
            token_security_enabled=token_security_enabled,
            notification_uris=notification_uris,
        )
        return LifecycleOrchestrator(
            registry,
            provisioner,
            manager,
            event_types=event_types,
            token_security_enabled=token_security_enabled,
        )

    return _make


@pytest.fixture
def client(
    monkeypatch: pytest.MonkeyPatch,
    make_orchestrator: Callable[..., LifecycleOrchestrator],
) -> Generator[TestClient, Any, None]:
    """
    Provide a FastAPI test client whose lifespan runs against the doubles.
    """
    from services.subscriber import main as main_module

    orchestrator = make_orchestrator()
    monkeypatch.setattr(main_module, "create_orchestrator", lambda settings, http: orchestrator)

    with TestClient(main_module.app) as test_client:
        yield test_client
