"""Cloud provider implementations and their shared error types."""

from __future__ import annotations

from devpod_aws.providers.exceptions import (
    ConfigurationError,
    FulfillmentTimeoutError,
    InstanceNotReachableError,
    NoSuitableNetworkError,
    OperationCancelledError,
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
    ProviderError,
    ResourceNotFoundError,
)

__all__ = [
    "ProviderError",
    "ConfigurationError",
    "ProviderCredentialsError",
    "ProviderAPIError",
    "ProviderConnectionError",
    "ResourceNotFoundError",
    "NoSuitableNetworkError",
    "InstanceNotReachableError",
    "FulfillmentTimeoutError",
    "OperationCancelledError",
]
