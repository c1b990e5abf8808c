"""AWS-specific utility functions for devpod-provider-aws."""

from __future__ import annotations

import re
from typing import Any

from devpod_aws.providers.aws.constants import MACHINE_TAG_KEY
from devpod_aws.providers.exceptions import ConfigurationError

_TAG_PATTERN = re.compile(r"^Name=(?P<key>[^,]+),Value=(?P<value>.*)$")


def tags_to_dict(tags: list[dict[str, str]] | None) -> dict[str, str]:
    """Convert an AWS ``Tags`` list into a plain dictionary."""
    return {tag["Key"]: tag["Value"] for tag in tags or []}


def machine_tag_filter(machine_id: str) -> dict[str, Any]:
    """Return the describe filter matching resources of one machine."""
    return {"Name": f"tag:{MACHINE_TAG_KEY}", "Values": [machine_id]}


def tag_specification(resource_type: str, tags: dict[str, str]) -> dict[str, Any]:
    """Build one ``TagSpecifications`` entry."""
    return {
        "ResourceType": resource_type,
        "Tags": [{"Key": key, "Value": value} for key, value in tags.items()],
    }


def parse_instance_tags(raw: str) -> dict[str, str]:
    """Parse ``AWS_INSTANCE_TAGS``.

    The format mirrors the AWS CLI shorthand: whitespace separated
    ``Name=<key>,Value=<value>`` pairs.

    Parameters
    ----------
    raw : str
        Raw option value, possibly empty

    Returns
    -------
    dict[str, str]
        Tag keys mapped to values, in input order

    Raises
    ------
    ConfigurationError
        If a pair does not follow the expected format
    """
    tags: dict[str, str] = {}
    for pair in raw.split():
        match = _TAG_PATTERN.match(pair)
        if not match:
            raise ConfigurationError(
                f"invalid value for option AWS_INSTANCE_TAGS: {pair!r} is not of "
                "the form Name=<key>,Value=<value>"
            )
        tags[match.group("key")] = match.group("value")
    return tags


def first_instance(response: dict[str, Any]) -> dict[str, Any] | None:
    """Return the first instance of a describe_instances response, if any."""
    for reservation in response.get("Reservations", []):
        instances = reservation.get("Instances", [])
        if instances:
            return instances[0]
    return None


def summarize_instance(instance: dict[str, Any]) -> dict[str, Any]:
    """Normalize an EC2 instance description into the provider's view."""
    return {
        "instance_id": instance["InstanceId"],
        "state": instance["State"]["Name"],
        "public_ip": instance.get("PublicIpAddress"),
        "private_ip": instance.get("PrivateIpAddress"),
        "instance_type": instance.get("InstanceType"),
        "spot_request_id": instance.get("SpotInstanceRequestId"),
        "tags": tags_to_dict(instance.get("Tags")),
    }


def get_aws_credentials_error_message() -> str:
    """Get standard AWS credentials error message.

    Returns
    -------
    str
        Formatted AWS credentials error message
    """
    return (
        "AWS credentials not found\n\n"
        "Configure your credentials:\n"
        "  aws configure\n\n"
        "Or set environment variables:\n"
        "  export AWS_ACCESS_KEY_ID=...\n"
        "  export AWS_SECRET_ACCESS_KEY=..."
    )
