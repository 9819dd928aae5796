"""Inbound request filters of a mesh node.

Two filters guard the node's HTTP surface:

- ``TokenSecurityFilter`` requires a valid authority-issued token on every
  request except the echo endpoint and notification URIs. Tokens are
  signed by the authority (JWS) and encrypted for this node (JWE).
- ``NotificationFilter`` only lets the event broker call the configured
  notification URIs, identified by its certificate common name.

Both filters are immutable once built. The orchestrator builds them at
startup and exposes them as ``app.state.security_filters``; the
``SecurityFilterMiddleware`` applies whatever is installed there.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from jose import jwe, jwt
from jose.exceptions import JOSEError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from shared.mesh.types import CoreSystem
from shared.security.context import SecurityContext
from shared.security.keystore import KeyMaterialError

logger = logging.getLogger(__name__)

TOKEN_ISSUER = "Authorization"
TOKEN_QUERY_PARAM = "token"
TOKEN_SIGNATURE_ALGORITHMS = ["RS512"]
ECHO_PATH = "/echo"


class TokenValidationError(Exception):
    """Exception raised when an inbound request carries no valid token."""


class NotificationOriginError(Exception):
    """Exception raised when a notification comes from an unexpected caller."""


def _normalize_path(uri: str) -> str:
    uri = uri.strip()
    return "/" + uri.strip("/") if uri else ""


def _path_matches(path: str, prefixes: Iterable[str]) -> bool:
    path = _normalize_path(path)
    return any(path == p or path.startswith(p + "/") for p in prefixes)


class TokenSecurityFilter:
    """Validates authority-issued tokens passed in the ``token`` query parameter."""

    def __init__(
        self,
        context: SecurityContext,
        skip_paths: Iterable[str] = (ECHO_PATH,),
        issuer: str = TOKEN_ISSUER,
    ) -> None:
        """Initialize the token filter.

        Args:
            context: Keys used to decrypt and verify tokens
            skip_paths: Path prefixes that need no token
            issuer: Expected ``iss`` claim
        """
        self._context = context
        self._skip_paths = tuple(p for p in map(_normalize_path, skip_paths) if p)
        self._issuer = issuer
        self._private_key_pem = context.node_private_key_pem().decode("ascii")
        self._public_key_pem = context.authority_public_key_pem().decode("ascii")

    @property
    def context(self) -> SecurityContext:
        return self._context

    def applies_to(self, path: str) -> bool:
        return not _path_matches(path, self._skip_paths)

    def validate(self, token: str | None) -> dict[str, Any]:
        """Decrypt and verify a token.

        Args:
            token: Compact JWE string from the request

        Returns:
            The verified token claims

        Raises:
            TokenValidationError: If the token is missing or invalid
        """
        if not token:
            raise TokenValidationError("Token is missing")

        try:
            signed = jwe.decrypt(token, self._private_key_pem)
        except JOSEError as e:
            raise TokenValidationError(f"Token cannot be decrypted: {e}") from e
        if signed is None:
            raise TokenValidationError("Token cannot be decrypted")

        try:
            return jwt.decode(
                signed.decode("utf-8"),
                self._public_key_pem,
                algorithms=TOKEN_SIGNATURE_ALGORITHMS,
                issuer=self._issuer,
                options={"verify_aud": False},
            )
        except JOSEError as e:
            raise TokenValidationError(f"Token is invalid: {e}") from e


class NotificationFilter:
    """Restricts notification URIs to callers presenting the broker's certificate."""

    def __init__(self, notification_uris: Sequence[str], server_cn: str) -> None:
        """Initialize the notification filter.

        Args:
            notification_uris: Paths the broker delivers notifications to
            server_cn: Common name of this node's own certificate
        """
        self._notification_uris = tuple(
            p for p in map(_normalize_path, notification_uris) if p
        )
        self._broker_cn = broker_common_name(server_cn)

    @property
    def notification_uris(self) -> tuple[str, ...]:
        return self._notification_uris

    @property
    def broker_cn(self) -> str:
        return self._broker_cn

    def applies_to(self, path: str) -> bool:
        return _path_matches(path, self._notification_uris)

    def check(self, client_cn: str | None) -> None:
        """Verify the caller of a notification URI.

        Raises:
            NotificationOriginError: If the caller is not the broker
        """
        if not client_cn or client_cn.strip().lower() != self._broker_cn.lower():
            raise NotificationOriginError(
                f"Notification caller {client_cn!r} is not {self._broker_cn}"
            )


def broker_common_name(server_cn: str) -> str:
    """Certificate common name the broker of this node's cloud presents.

    Node certificates are named ``<system>.<cloud>.<operator>...``; the
    broker shares everything after the system label.

    Raises:
        KeyMaterialError: If the common name has no cloud part
    """
    parts = server_cn.strip().split(".", 1)
    if len(parts) < 2 or not parts[1]:
        raise KeyMaterialError(f"Node certificate common name {server_cn!r} has no cloud part")
    return f"{CoreSystem.EVENT_HANDLER.common_name}.{parts[1]}"


@dataclass(frozen=True)
class SecurityFilters:
    """Filters installed on the node; None means the filter is inactive."""

    token_filter: TokenSecurityFilter | None = None
    notification_filter: NotificationFilter | None = None


def _reject(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "errorMessage": message,
            "errorCode": status_code,
            "exceptionType": "AUTH",
            "origin": request.url.path,
        },
    )


class SecurityFilterMiddleware(BaseHTTPMiddleware):
    """Applies the filters found in ``app.state.security_filters``."""

    def __init__(self, app: Any, client_cn_header: str = "X-SSL-Client-CN") -> None:
        super().__init__(app)
        self._client_cn_header = client_cn_header

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        filters: SecurityFilters = getattr(
            request.app.state, "security_filters", None
        ) or SecurityFilters()
        path = request.url.path

        notification_filter = filters.notification_filter
        if notification_filter is not None and notification_filter.applies_to(path):
            try:
                notification_filter.check(request.headers.get(self._client_cn_header))
            except NotificationOriginError as e:
                logger.warning(f"Rejected notification on {path}: {e}")
                return _reject(request, 403, str(e))
            return await call_next(request)

        token_filter = filters.token_filter
        if token_filter is not None and token_filter.applies_to(path):
            try:
                request.state.token_claims = token_filter.validate(
                    request.query_params.get(TOKEN_QUERY_PARAM)
                )
            except TokenValidationError as e:
                logger.info(f"Rejected request on {path}: {e}")
                return _reject(request, 401, str(e))

        return await call_next(request)
