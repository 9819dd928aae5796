"""Security provisioning for the Subscriber node.

Builds the inbound request filters once at startup from the node's key
material, the authority public key and configuration.
"""

import logging
from collections.abc import Callable, Sequence

from shared.mesh.authorization import AuthorizationClient
from shared.mesh.errors import AuthorityKeyUnavailableError
from shared.security.context import SecurityContext
from shared.security.filters import (
    ECHO_PATH,
    NotificationFilter,
    SecurityFilters,
    TokenSecurityFilter,
)
from shared.security.keystore import NodeCredentials

logger = logging.getLogger(__name__)


class SecurityProvisioner:
    """Configures the token filter and the notification filter."""

    def __init__(
        self,
        authorization: AuthorizationClient,
        load_credentials: Callable[[], NodeCredentials],
        token_security_enabled: bool,
        notification_uris: Sequence[str],
    ) -> None:
        """Initialize the provisioner.

        Args:
            authorization: Client for the authority public key
            load_credentials: Returns the node key material; raises
                KeyMaterialError if it cannot be loaded
            token_security_enabled: Whether inbound tokens are required
            notification_uris: Paths only the broker may call
        """
        self._authorization = authorization
        self._load_credentials = load_credentials
        self._token_security_enabled = token_security_enabled
        self._notification_uris = tuple(notification_uris)

    async def configure_token_filter(self) -> TokenSecurityFilter | None:
        """Arm the token filter with the authority and node keys.

        Returns:
            The armed filter, or None when token security is disabled

        Raises:
            AuthorityKeyUnavailableError: If the authority has no public key
            KeyMaterialError: If the node keystore cannot be loaded
            MeshError: If the authority cannot be queried
        """
        if not self._token_security_enabled:
            logger.info("TokenSecurityFilter is not active")
            return None

        authority_public_key = await self._authorization.fetch_public_key()
        if authority_public_key is None:
            raise AuthorityKeyUnavailableError("Authorization public key is null")

        credentials = self._load_credentials()
        context = SecurityContext(
            authority_public_key=authority_public_key,
            node_private_key=credentials.private_key,
        )
        logger.info("TokenSecurityFilter is active")
        return TokenSecurityFilter(
            context,
            skip_paths=(ECHO_PATH, *self._notification_uris),
        )

    def configure_notification_filter(self) -> NotificationFilter | None:
        """Restrict the notification URIs to the broker.

        Returns:
            The filter, or None when no notification URIs are configured

        Raises:
            KeyMaterialError: If the node certificate cannot be loaded or its
                common name has no cloud part
        """
        logger.debug("Notification filter configuration started...")
        if not self._notification_uris:
            logger.info("NotificationFilter is not active")
            return None

        server_cn = self._load_credentials().certificate_common_name
        notification_filter = NotificationFilter(self._notification_uris, server_cn)
        logger.info(
            f"NotificationFilter is active for {', '.join(notification_filter.notification_uris)} "
            f"(broker: {notification_filter.broker_cn})"
        )
        return notification_filter

    async def provision(self) -> SecurityFilters:
        """Build both filters."""
        token_filter = await self.configure_token_filter()
        notification_filter = self.configure_notification_filter()
        return SecurityFilters(token_filter=token_filter, notification_filter=notification_filter)
