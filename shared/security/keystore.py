"""Node key material loaded from a PKCS12 keystore."""

import base64
import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

SUPPORTED_STORE_TYPES = ("PKCS12",)


class KeyMaterialError(Exception):
    """Exception raised when the node's key material cannot be loaded."""

    def __init__(self, message: str, path: str | None = None) -> None:
        """Initialize key material error.

        Args:
            message: Error message
            path: The keystore that failed to load
        """
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class NodeCredentials:
    """Private key and certificate identifying this node."""

    private_key: PrivateKeyTypes
    certificate: x509.Certificate

    @classmethod
    def from_keystore(
        cls,
        path: str | Path,
        password: str | None,
        store_type: str = "PKCS12",
    ) -> "NodeCredentials":
        """Load the node's key entry from a keystore file.

        Args:
            path: Keystore file
            password: Keystore password
            store_type: Keystore format; only PKCS12 is supported

        Raises:
            KeyMaterialError: If the store is missing, unreadable or holds
                no private key with a certificate
        """
        if store_type.upper() not in SUPPORTED_STORE_TYPES:
            raise KeyMaterialError(f"Unsupported keystore type: {store_type}", str(path))

        try:
            data = Path(path).read_bytes()
            private_key, certificate, _ = pkcs12.load_key_and_certificates(
                data, password.encode() if password else None
            )
        except (OSError, ValueError, TypeError) as e:
            raise KeyMaterialError(f"Cannot load keystore {path}: {e}", str(path)) from e

        if private_key is None or certificate is None:
            raise KeyMaterialError(
                f"Keystore {path} holds no private key entry with a certificate",
                str(path),
            )

        logger.debug(f"Loaded key material from {path}")
        return cls(private_key=private_key, certificate=certificate)

    @property
    def public_key(self) -> PublicKeyTypes:
        return self.certificate.public_key()

    @property
    def certificate_common_name(self) -> str:
        """Common name of the node certificate subject."""
        names = self.certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if not names:
            raise KeyMaterialError("Node certificate has no common name")
        value = names[0].value
        return value if isinstance(value, str) else value.decode()

    def public_key_base64(self) -> str:
        """Base64 encoded DER public key, as presented to core systems."""
        der = self.public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return base64.b64encode(der).decode("ascii")


class KeystoreLoader:
    """Loads the node credentials on first use and keeps them for the process."""

    def __init__(self, path: str | Path, password: str | None, store_type: str = "PKCS12") -> None:
        self._path = path
        self._password = password
        self._store_type = store_type
        self._credentials: NodeCredentials | None = None

    def load(self) -> NodeCredentials:
        """Return the node credentials, reading the keystore once.

        Raises:
            KeyMaterialError: If the keystore cannot be loaded
        """
        if self._credentials is None:
            self._credentials = NodeCredentials.from_keystore(
                self._path, self._password, self._store_type
            )
        return self._credentials
