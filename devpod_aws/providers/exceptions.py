"""Provider-agnostic exception hierarchy for devpod-provider-aws."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for all provider errors."""


class ConfigurationError(ProviderError, ValueError):
    """Required option missing from the environment or not parsable."""


class ProviderCredentialsError(ProviderError):
    """Cloud credentials are missing or unusable."""


class ProviderConnectionError(ProviderError):
    """The cloud control-plane endpoint could not be reached."""


class ProviderAPIError(ProviderError):
    """A cloud control-plane call failed.

    Parameters
    ----------
    message : str
        Human readable error message
    error_code : str | None
        Provider error code (e.g. ``UnauthorizedOperation``)
    operation : str | None
        Name of the failed API operation
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.operation = operation


class ResourceNotFoundError(ProviderError):
    """A cloud resource looked up by tag or id does not exist.

    Parameters
    ----------
    kind : str
        Resource kind, e.g. ``instance`` or ``subnet``
    identifier : str
        Identifier that was searched for (machine id, VPC id, ...)
    message : str | None
        Optional override for the default message
    """

    def __init__(self, kind: str, identifier: str, message: str | None = None) -> None:
        super().__init__(message or f"{kind} {identifier} doesn't exist")
        self.kind = kind
        self.identifier = identifier


class NoSuitableNetworkError(ResourceNotFoundError):
    """No VPC could be discovered, created or defaulted to."""

    def __init__(self, region: str) -> None:
        super().__init__(
            "vpc",
            region,
            f"No suitable VPC found in region '{region}'. Set AWS_VPC_ID, "
            "set AWS_CREATE_VPC=true or create a default VPC.",
        )
        self.region = region


class InstanceNotReachableError(ProviderError):
    """Neither the public nor the private address accepted an SSH session."""

    def __init__(self, machine_id: str) -> None:
        super().__init__(f"instance {machine_id} is not reachable")
        self.machine_id = machine_id


class FulfillmentTimeoutError(ProviderError):
    """A spot request was not fulfilled before the deadline."""

    def __init__(self, request_id: str, timeout: float) -> None:
        super().__init__(
            f"Timed out after {timeout:g}s waiting for spot request {request_id} "
            "to be fulfilled"
        )
        self.request_id = request_id
        self.timeout = timeout


class OperationCancelledError(ProviderError):
    """A blocking wait was cancelled by a signal."""
