"""AMI resolution for EC2 instances."""

import logging
import re
from typing import Any

from devpod_aws.providers.aws.constants import DEFAULT_AMI_NAME_PATTERN, DEFAULT_AMI_OWNER
from devpod_aws.providers.aws.errors import handle_aws_errors
from devpod_aws.providers.exceptions import ConfigurationError, ResourceNotFoundError

logger = logging.getLogger(__name__)

_AMI_ID_PATTERN = re.compile(r"^ami-[0-9a-f]{8,17}$")


class AMIResolver:
    """Resolve the disk image an instance boots from."""

    def __init__(self, ec2_client: Any, region: str) -> None:
        """Initialize AMIResolver.

        Parameters
        ----------
        ec2_client : Any
            Boto3 EC2 client
        region : str
            AWS region name
        """
        self.ec2_client = ec2_client
        self.region = region

    def resolve_ami(self, disk_image: str) -> str:
        """Return the AMI id to launch.

        Parameters
        ----------
        disk_image : str
            Value of AWS_AMI; empty selects the newest official Ubuntu image

        Returns
        -------
        str
            AMI id

        Raises
        ------
        ConfigurationError
            If ``disk_image`` is not an AMI id
        ResourceNotFoundError
            If no default image matches in the region
        """
        if disk_image:
            if not _AMI_ID_PATTERN.match(disk_image):
                raise ConfigurationError(
                    f"invalid value for option AWS_AMI: '{disk_image}' is not an AMI id"
                )
            return disk_image

        return self.find_ami_by_query(DEFAULT_AMI_NAME_PATTERN, owner=DEFAULT_AMI_OWNER)

    def find_ami_by_query(self, name_pattern: str, owner: str | None = None) -> str:
        """Query AWS for the newest available x86_64 AMI matching a pattern."""
        filters = [
            {"Name": "name", "Values": [name_pattern]},
            {"Name": "state", "Values": ["available"]},
            {"Name": "architecture", "Values": ["x86_64"]},
        ]

        kwargs: dict[str, Any] = {"Filters": filters}
        if owner:
            kwargs["Owners"] = [owner]

        with handle_aws_errors():
            response = self.ec2_client.describe_images(**kwargs)

        if not response["Images"]:
            raise ResourceNotFoundError(
                "image",
                name_pattern,
                f"No AMI found in region '{self.region}' for name={name_pattern}. "
                "Set AWS_AMI explicitly.",
            )

        newest = max(response["Images"], key=lambda image: image["CreationDate"])
        logger.debug("Resolved default AMI %s (%s)", newest["ImageId"], newest.get("Name"))
        return newest["ImageId"]
