"""CLI entry point for devpod-provider-aws."""

from __future__ import annotations

import logging
import os
import sys
from typing import NoReturn

import fire

from devpod_aws.__main__ import DevPodAWS
from devpod_aws.constants import EXIT_CONFIG_ERROR, EXIT_ERROR
from devpod_aws.core.signals import setup_signal_handlers
from devpod_aws.logging import configure_logging, is_debug_enabled
from devpod_aws.providers.aws.utils import get_aws_credentials_error_message
from devpod_aws.providers.exceptions import (
    ConfigurationError,
    FulfillmentTimeoutError,
    InstanceNotReachableError,
    OperationCancelledError,
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
    ProviderError,
    ResourceNotFoundError,
)

logger = logging.getLogger(__name__)


class DevPodAWSCLI(DevPodAWS):
    """CLI wrapper that turns command results into stdout and exit codes."""

    def create(self) -> None:
        """Create the machine's network resources and instance."""
        instance = super().create()
        logger.info("Created instance %s", instance["instance_id"])

    def command(self) -> NoReturn:
        """Run ``$COMMAND`` on the machine, exiting with its exit status."""
        sys.exit(super().command())


def handle_credentials_error(debug_mode: bool) -> NoReturn:
    """Handle provider credentials error.

    Parameters
    ----------
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ProviderCredentialsError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(get_aws_credentials_error_message(), file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_configuration_error(error: ValueError, debug_mode: bool) -> NoReturn:
    """Handle missing or invalid options.

    Parameters
    ----------
    error : ValueError
        The configuration error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ValueError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Configuration error: {error}", file=sys.stderr)
    sys.exit(EXIT_CONFIG_ERROR)


def handle_api_error(error: ProviderAPIError, debug_mode: bool) -> NoReturn:
    """Handle AWS API error with context-specific messages.

    Parameters
    ----------
    error : ProviderAPIError
        The API error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ProviderAPIError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    error_code = error.error_code

    if error_code == "UnauthorizedOperation":
        print("Insufficient IAM permissions\n", file=sys.stderr)
        print("The configured credentials lack a required permission:", file=sys.stderr)
        print(f"  {error}", file=sys.stderr)
    elif error_code in ["InstanceLimitExceeded", "MaxSpotInstanceCountExceeded"]:
        print("AWS quota exceeded\n", file=sys.stderr)
        print("Request a quota increase or delete unused machines:", file=sys.stderr)
        print("  https://console.aws.amazon.com/servicequotas/", file=sys.stderr)
    elif error_code in ["ExpiredToken", "RequestExpired", "ExpiredTokenException"]:
        print("AWS credentials have expired\n", file=sys.stderr)
        print("Fix it:", file=sys.stderr)
        print("  aws sso login           # If using AWS SSO", file=sys.stderr)
        print("  aws configure           # Re-configure credentials", file=sys.stderr)
    else:
        print(f"AWS API error: {error}", file=sys.stderr)

    sys.exit(EXIT_ERROR)


def handle_provider_error(error: ProviderError | RuntimeError, debug_mode: bool) -> NoReturn:
    """Handle the remaining provider failures with a one-line message.

    Parameters
    ----------
    error : ProviderError | RuntimeError
        The error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ProviderError, RuntimeError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    if isinstance(error, InstanceNotReachableError):
        print(f"SSH connectivity error: {error}", file=sys.stderr)
    elif isinstance(error, FulfillmentTimeoutError):
        print(f"Spot request failed: {error}", file=sys.stderr)
    elif isinstance(error, OperationCancelledError):
        print(f"Cancelled: {error}", file=sys.stderr)
    elif isinstance(error, ResourceNotFoundError):
        print(f"Not found: {error}", file=sys.stderr)
    elif isinstance(error, ProviderConnectionError):
        print(f"Connection error: {error}", file=sys.stderr)
    else:
        print(f"Error: {error}", file=sys.stderr)

    sys.exit(EXIT_ERROR)


def main() -> None:
    """Entry point for Fire CLI with graceful error handling.

    Fire maps the methods of ``DevPodAWSCLI`` to subcommands, so DevPod
    invokes ``devpod-provider-aws create``, ``status`` and so on.
    """
    debug_mode = is_debug_enabled(os.environ)
    configure_logging(debug=debug_mode)
    setup_signal_handlers()

    try:
        fire.Fire(DevPodAWSCLI())
    except ProviderCredentialsError:
        handle_credentials_error(debug_mode)
    except (ConfigurationError, ValueError) as e:
        handle_configuration_error(e, debug_mode)
    except ProviderAPIError as e:
        handle_api_error(e, debug_mode)
    except (ProviderError, RuntimeError) as e:
        handle_provider_error(e, debug_mode)


if __name__ == "__main__":
    main()
