"""Security context shared by the inbound request filters."""

from dataclasses import dataclass, field

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)


@dataclass(frozen=True)
class SecurityContext:
    """Keys needed to validate tokens issued by the authority.

    Built once at startup when token security is enabled and handed to the
    token filter by reference. Never refreshed.

    Attributes:
        authority_public_key: Verifies the authority's token signatures
        node_private_key: Decrypts tokens encrypted for this node
    """

    authority_public_key: PublicKeyTypes = field(repr=False)
    node_private_key: PrivateKeyTypes = field(repr=False)

    def authority_public_key_pem(self) -> bytes:
        return self.authority_public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def node_private_key_pem(self) -> bytes:
        return self.node_private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
