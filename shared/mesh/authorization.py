"""Authorization core system client."""

import base64
import binascii
import logging

import httpx
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from cryptography.hazmat.primitives.serialization import load_der_public_key

from shared.mesh.errors import MeshUnavailableError, raise_for_error
from shared.mesh.registry import RegistryClient
from shared.mesh.types import CoreService

logger = logging.getLogger(__name__)


class AuthorizationClient:
    """Fetches the authority's public key used to verify inbound tokens."""

    def __init__(self, http: httpx.AsyncClient, registry: RegistryClient) -> None:
        self._http = http
        self._registry = registry

    async def fetch_public_key(self) -> PublicKeyTypes | None:
        """Query the authority public key.

        The authority publishes its key as a JSON string holding the base64
        encoded DER SubjectPublicKeyInfo.

        Returns:
            The public key, or None if the authority returned no usable key

        Raises:
            CoreServiceUnresolvedError: If the key service was never resolved
            MeshError: If the authority rejects the call
        """
        url = self._registry.service_url(CoreService.AUTH_PUBLIC_KEY)
        try:
            response = await self._http.get(url)
        except httpx.HTTPError as e:
            raise MeshUnavailableError(
                f"Authority public key query failed: {e}", origin=url
            ) from e
        raise_for_error(response)

        try:
            encoded = response.json()
        except ValueError:
            encoded = response.text
        if not isinstance(encoded, str) or not encoded.strip():
            logger.warning("Authority returned an empty public key")
            return None

        try:
            return load_der_public_key(base64.b64decode(encoded.strip(), validate=True))
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Authority returned an unreadable public key: {e}")
            return None
