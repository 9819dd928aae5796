"""Exceptions raised when talking to mesh core systems."""

import logging

import httpx
from pydantic import ValidationError

from shared.mesh.models import ErrorMessage
from shared.mesh.types import CoreService, CoreSystem

logger = logging.getLogger(__name__)


class MeshError(Exception):
    """Base exception for failed calls to core systems."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        origin: str | None = None,
    ) -> None:
        """Initialize mesh error.

        Args:
            message: Error message
            status_code: HTTP status of the failed call, if any
            origin: URL or service that produced the error
        """
        super().__init__(message)
        self.status_code = status_code
        self.origin = origin


class MeshUnavailableError(MeshError):
    """Exception raised when a core system cannot be reached."""


class MeshAuthError(MeshError):
    """Exception raised when a core system rejects the node's credentials."""


class InvalidParameterError(MeshError):
    """Exception raised when a core system rejects request parameters."""


class CoreSystemUnavailableError(MeshError):
    """Exception raised when a mandatory core system fails its probe."""

    def __init__(self, system: CoreSystem) -> None:
        super().__init__(f"{system.value} is not available")
        self.system = system


class CoreServiceUnresolvedError(MeshError):
    """Exception raised when a core service has no known endpoint."""

    def __init__(self, service: CoreService) -> None:
        super().__init__(f"No endpoint resolved for core service {service.value}")
        self.service = service


class AuthorityKeyUnavailableError(MeshError):
    """Exception raised when the authority public key cannot be obtained."""


_EXCEPTION_TYPES: dict[str, type[MeshError]] = {
    "INVALID_PARAMETER": InvalidParameterError,
    "BAD_PAYLOAD": InvalidParameterError,
    "AUTH": MeshAuthError,
    "UNAVAILABLE": MeshUnavailableError,
}


def raise_for_error(response: httpx.Response) -> None:
    """Raise the matching MeshError if a core system call failed.

    Core systems answer failures with an error body naming an exception
    type; unknown or unparsable bodies fall back to MeshError.

    Args:
        response: Response of a core system call

    Raises:
        MeshError: If the response status is not successful
    """
    if response.is_success:
        return

    try:
        origin: str | None = str(response.request.url)
    except RuntimeError:
        origin = None
    try:
        error = ErrorMessage.model_validate(response.json())
    except (ValueError, ValidationError):
        error = ErrorMessage(
            error_message=response.text or response.reason_phrase,
            error_code=response.status_code,
        )

    error_cls = _EXCEPTION_TYPES.get(error.exception_type)
    if error_cls is None:
        error_cls = MeshAuthError if response.status_code in (401, 403) else MeshError
    logger.debug(
        f"Core system call failed: status={response.status_code}, "
        f"type={error.exception_type}, message={error.error_message}"
    )
    raise error_cls(
        error.error_message or f"HTTP {response.status_code}",
        status_code=response.status_code,
        origin=error.origin or origin,
    )
