"""Translation of botocore exceptions into provider exceptions."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    NoRegionError,
    PartialCredentialsError,
)

from devpod_aws.providers.exceptions import (
    ConfigurationError,
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
)


@contextmanager
def handle_aws_errors() -> Iterator[None]:
    """Re-raise botocore errors as provider exceptions.

    The original exception is chained as ``__cause__`` and the AWS error code
    is kept on ``ProviderAPIError.error_code``.

    Raises
    ------
    ProviderCredentialsError
        If credentials are missing or incomplete
    ConfigurationError
        If no region could be determined
    ProviderConnectionError
        If the EC2 endpoint cannot be reached
    ProviderAPIError
        For any other client error returned by the API
    """
    try:
        yield
    except (NoCredentialsError, PartialCredentialsError) as e:
        raise ProviderCredentialsError(str(e)) from e
    except NoRegionError as e:
        raise ConfigurationError(
            "couldn't find option AWS_REGION in environment, please make sure "
            "AWS_REGION is defined"
        ) from e
    except EndpointConnectionError as e:
        raise ProviderConnectionError(str(e)) from e
    except ClientError as e:
        error = e.response.get("Error", {})
        raise ProviderAPIError(
            message=error.get("Message") or str(e),
            error_code=error.get("Code"),
            operation=e.operation_name,
        ) from e
