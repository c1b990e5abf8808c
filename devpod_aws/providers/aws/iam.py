"""Best-effort instance profile resolution."""

from __future__ import annotations

import json
import logging
from typing import Any

from devpod_aws.providers.aws.constants import (
    EC2_TRUST_POLICY,
    INSTANCE_PROFILE_NAME,
    INSTANCE_ROLE_POLICY_ARNS,
    MACHINE_TAG_KEY,
)
from devpod_aws.providers.aws.errors import handle_aws_errors
from devpod_aws.providers.exceptions import ProviderError

logger = logging.getLogger(__name__)


class InstanceProfileResolver:
    """Find or create the IAM instance profile attached to instances.

    Instances work without a profile, so every failure here is downgraded to
    "no profile" instead of failing the launch. ``created_profile`` records
    whether this resolver created the profile, which IAM may not have
    propagated to EC2 yet.

    Parameters
    ----------
    iam_client : Any
        Boto3 IAM client
    """

    def __init__(self, iam_client: Any) -> None:
        self.iam_client = iam_client
        self.created_profile = False

    def resolve(self, explicit_arn: str = "") -> str | None:
        """Return an instance profile ARN or None.

        Parameters
        ----------
        explicit_arn : str
            Value of AWS_INSTANCE_PROFILE_ARN, used verbatim when set

        Returns
        -------
        str | None
            Profile ARN, or None when lookup and creation both failed
        """
        if explicit_arn:
            return explicit_arn

        try:
            return self._get_or_create_profile()
        except ProviderError as e:
            logger.debug("Launching without instance profile: %s", e)
            return None

    def _get_or_create_profile(self) -> str:
        try:
            with handle_aws_errors():
                response = self.iam_client.get_instance_profile(
                    InstanceProfileName=INSTANCE_PROFILE_NAME
                )
            return response["InstanceProfile"]["Arn"]
        except ProviderError as e:
            if getattr(e, "error_code", None) != "NoSuchEntity":
                raise

        logger.info("Creating instance profile %s", INSTANCE_PROFILE_NAME)
        tags = [{"Key": MACHINE_TAG_KEY, "Value": MACHINE_TAG_KEY}]

        with handle_aws_errors():
            self.iam_client.create_role(
                RoleName=INSTANCE_PROFILE_NAME,
                AssumeRolePolicyDocument=json.dumps(EC2_TRUST_POLICY),
                Description="Role for DevPod machines",
                Tags=tags,
            )
            for policy_arn in INSTANCE_ROLE_POLICY_ARNS:
                self.iam_client.attach_role_policy(
                    RoleName=INSTANCE_PROFILE_NAME, PolicyArn=policy_arn
                )
            response = self.iam_client.create_instance_profile(
                InstanceProfileName=INSTANCE_PROFILE_NAME, Tags=tags
            )
            self.iam_client.add_role_to_instance_profile(
                InstanceProfileName=INSTANCE_PROFILE_NAME, RoleName=INSTANCE_PROFILE_NAME
            )

        self.created_profile = True
        return response["InstanceProfile"]["Arn"]
