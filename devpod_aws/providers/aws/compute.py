"""EC2 instance management for devpod-provider-aws."""

from __future__ import annotations

import logging
from typing import Any

import boto3

from devpod_aws.constants import InstanceStatus
from devpod_aws.core.options import Options
from devpod_aws.core.polling import PollTimeoutError, poll_until
from devpod_aws.core.signals import CancellationToken, get_cancellation_token
from devpod_aws.providers.aws.ami import AMIResolver
from devpod_aws.providers.aws.constants import (
    ACTIVE_INSTANCE_STATES,
    INVALID_PARAMETER_VALUE,
    MACHINE_TAG_KEY,
    ROOT_DEVICE_NAME,
    ROOT_VOLUME_TYPE,
    SPOT_ACTIVE_REQUEST_STATES,
    SPOT_FULFILLED_STATUS,
    SPOT_POLL_INITIAL_DELAY_SECONDS,
    SPOT_POLL_INTERVAL_SECONDS,
)
from devpod_aws.providers.aws.errors import handle_aws_errors
from devpod_aws.providers.aws.iam import InstanceProfileResolver
from devpod_aws.providers.aws.network import NetworkManager, NetworkResources
from devpod_aws.providers.aws.userdata import build_user_data, render_inject_keypair_script
from devpod_aws.providers.aws.utils import (
    first_instance,
    machine_tag_filter,
    parse_instance_tags,
    summarize_instance,
    tag_specification,
)
from devpod_aws.providers.exceptions import (
    FulfillmentTimeoutError,
    OperationCancelledError,
    ProviderAPIError,
    ResourceNotFoundError,
)

logger = logging.getLogger(__name__)


class EC2Manager:
    """Manage the EC2 instance backing one DevPod machine.

    Instances are located through the machine tag on every call; the manager
    keeps no state besides its API clients.

    Parameters
    ----------
    region : str | None
        AWS region; None or empty uses the boto3 default chain
    boto3_client_factory : Callable[..., Any] | None
        Optional factory for creating boto3 clients. If None, uses boto3.client
    token : CancellationToken | None
        Cancellation source for the spot fulfilment wait
    caller_ip_lookup : Callable[[], str] | None
        Override for the caller IP lookup used by the network resolver
    poll_interval : float
        Seconds between spot request status checks
    poll_initial_delay : float
        Seconds before the first spot request status check
    """

    def __init__(
        self,
        region: str | None = None,
        boto3_client_factory: Any | None = None,
        token: CancellationToken | None = None,
        caller_ip_lookup: Any | None = None,
        poll_interval: float = SPOT_POLL_INTERVAL_SECONDS,
        poll_initial_delay: float = SPOT_POLL_INITIAL_DELAY_SECONDS,
    ) -> None:
        self.boto3_client_factory = boto3_client_factory or boto3.client
        with handle_aws_errors():
            self.ec2_client = self.boto3_client_factory("ec2", region_name=region or None)
            self.iam_client = self.boto3_client_factory("iam", region_name=region or None)
        self.region = region or self.ec2_client.meta.region_name
        self.token = token or get_cancellation_token()
        self.poll_interval = poll_interval
        self.poll_initial_delay = poll_initial_delay

        self.ami_resolver = AMIResolver(self.ec2_client, self.region)
        self.network_manager = NetworkManager(
            self.ec2_client, self.region, caller_ip_lookup=caller_ip_lookup
        )
        self.profile_resolver = InstanceProfileResolver(self.iam_client)

    def validate(self) -> None:
        """Check that credentials and region allow describing instances."""
        with handle_aws_errors():
            self.ec2_client.describe_instances(MaxResults=5)
        logger.debug("Validated EC2 access in region %s", self.region)

    def find_instance(
        self, machine_id: str, states: list[str] | None = None
    ) -> dict[str, Any] | None:
        """Return the instance tagged with ``machine_id`` or None.

        Parameters
        ----------
        machine_id : str
            Machine identifier tag value
        states : list[str] | None
            Instance states to consider, defaults to all non-terminated states

        Returns
        -------
        dict[str, Any] | None
            Normalized instance details: instance_id, state, public_ip,
            private_ip, instance_type, spot_request_id, tags
        """
        with handle_aws_errors():
            response = self.ec2_client.describe_instances(
                Filters=[
                    machine_tag_filter(machine_id),
                    {
                        "Name": "instance-state-name",
                        "Values": states or ACTIVE_INSTANCE_STATES,
                    },
                ]
            )

        instance = first_instance(response)
        if instance is None:
            return None
        return summarize_instance(instance)

    def get_instance(self, machine_id: str, states: list[str] | None = None) -> dict[str, Any]:
        """Like ``find_instance`` but raise when nothing matches.

        Raises
        ------
        ResourceNotFoundError
            If no instance carries the machine tag
        """
        instance = self.find_instance(machine_id, states)
        if instance is None:
            raise ResourceNotFoundError("instance", machine_id)
        return instance

    def get_running_instance(self, machine_id: str) -> dict[str, Any]:
        return self.get_instance(machine_id, states=["running"])

    def create(self, options: Options, public_key: str) -> dict[str, Any]:
        """Launch the machine's instance.

        Parameters
        ----------
        options : Options
            Provider options
        public_key : str
            OpenSSH public key authorized for the remote user

        Returns
        -------
        dict[str, Any]
            Details with instance_id, spot_request_id and the resolved
            network identifiers

        Raises
        ------
        RuntimeError
            If an instance for the machine already exists
        """
        existing = self.find_instance(options.machine_id)
        if existing is not None:
            raise RuntimeError(
                f"Instance {existing['instance_id']} for machine {options.machine_id} "
                f"already exists (state: {existing['state']})"
            )

        network = self.network_manager.resolve(options)
        ami_id = self.ami_resolver.resolve_ami(options.disk_image)
        profile_arn = self.profile_resolver.resolve(options.instance_profile_arn)
        tags = self._instance_tags(options)

        launch = (
            self._launch_spot_instance if options.use_spot else self._launch_on_demand_instance
        )
        try:
            return launch(options, network, ami_id, profile_arn, tags, public_key)
        except ProviderAPIError as e:
            # A profile created moments ago may not have propagated through IAM yet
            if not (
                profile_arn
                and self.profile_resolver.created_profile
                and e.error_code == INVALID_PARAMETER_VALUE
            ):
                raise
            logger.warning(
                "Instance profile %s is not usable yet, launching without it", profile_arn
            )
            return launch(options, network, ami_id, None, tags, public_key)

    def _instance_tags(self, options: Options) -> dict[str, str]:
        tags = parse_instance_tags(options.instance_tags)
        tags["Name"] = options.machine_id
        tags[MACHINE_TAG_KEY] = options.machine_id
        return tags

    def _launch_parameters(
        self,
        options: Options,
        network: NetworkResources,
        ami_id: str,
        profile_arn: str | None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "ImageId": ami_id,
            "InstanceType": options.instance_type,
            "SecurityGroupIds": [network.security_group_id],
            "BlockDeviceMappings": [
                {
                    "DeviceName": ROOT_DEVICE_NAME,
                    "Ebs": {
                        "VolumeSize": options.disk_size_gb,
                        "VolumeType": ROOT_VOLUME_TYPE,
                        "DeleteOnTermination": True,
                    },
                }
            ],
        }
        if network.subnet_id:
            params["SubnetId"] = network.subnet_id
        if profile_arn:
            params["IamInstanceProfile"] = {"Arn": profile_arn}
        return params

    def _launch_on_demand_instance(
        self,
        options: Options,
        network: NetworkResources,
        ami_id: str,
        profile_arn: str | None,
        tags: dict[str, str],
        public_key: str,
    ) -> dict[str, Any]:
        params = self._launch_parameters(options, network, ami_id, profile_arn)

        with handle_aws_errors():
            response = self.ec2_client.run_instances(
                MinCount=1,
                MaxCount=1,
                UserData=render_inject_keypair_script(public_key),
                TagSpecifications=[
                    tag_specification("instance", tags),
                    tag_specification("volume", {MACHINE_TAG_KEY: options.machine_id}),
                ],
                **params,
            )

        instance_id = response["Instances"][0]["InstanceId"]
        logger.info("Launched instance %s for machine %s", instance_id, options.machine_id)
        return {
            "instance_id": instance_id,
            "spot_request_id": None,
            "vpc_id": network.vpc_id,
            "subnet_id": network.subnet_id,
            "security_group_id": network.security_group_id,
        }

    def _launch_spot_instance(
        self,
        options: Options,
        network: NetworkResources,
        ami_id: str,
        profile_arn: str | None,
        tags: dict[str, str],
        public_key: str,
    ) -> dict[str, Any]:
        launch_specification = self._launch_parameters(options, network, ami_id, profile_arn)
        launch_specification["UserData"] = build_user_data(public_key)

        with handle_aws_errors():
            response = self.ec2_client.request_spot_instances(
                InstanceCount=1,
                Type="persistent",
                InstanceInterruptionBehavior="stop",
                LaunchSpecification=launch_specification,
                TagSpecifications=[
                    tag_specification(
                        "spot-instances-request", {MACHINE_TAG_KEY: options.machine_id}
                    )
                ],
            )

        request_id = response["SpotInstanceRequests"][0]["SpotInstanceRequestId"]
        logger.info("Requested spot instance %s for machine %s", request_id, options.machine_id)

        try:
            instance_id = self.wait_for_spot_fulfillment(request_id, options.spot_timeout)
        except (FulfillmentTimeoutError, OperationCancelledError):
            self._cancel_spot_requests_quietly([request_id])
            raise

        # An untagged instance is invisible to status and find_instance
        try:
            with handle_aws_errors():
                self.ec2_client.create_tags(
                    Resources=[instance_id],
                    Tags=[{"Key": key, "Value": value} for key, value in tags.items()],
                )
        except ProviderAPIError:
            logger.error("Failed to tag spot instance %s, cleaning up", instance_id)
            self._cancel_spot_requests_quietly([request_id])
            self._terminate_instances_quietly([instance_id])
            raise

        return {
            "instance_id": instance_id,
            "spot_request_id": request_id,
            "vpc_id": network.vpc_id,
            "subnet_id": network.subnet_id,
            "security_group_id": network.security_group_id,
        }

    def wait_for_spot_fulfillment(self, request_id: str, timeout: float) -> str:
        """Poll a spot request until it is fulfilled with an instance.

        Parameters
        ----------
        request_id : str
            Spot instance request id
        timeout : float
            Maximum seconds to wait

        Returns
        -------
        str
            Id of the instance attached to the fulfilled request

        Raises
        ------
        FulfillmentTimeoutError
            If the request is not fulfilled within ``timeout``
        OperationCancelledError
            If the process was signalled while waiting
        """

        def check() -> str | None:
            try:
                with handle_aws_errors():
                    response = self.ec2_client.describe_spot_instance_requests(
                        SpotInstanceRequestIds=[request_id]
                    )
            except ProviderAPIError as e:
                if e.error_code == "InvalidSpotInstanceRequestID.NotFound":
                    return None
                raise

            requests = response.get("SpotInstanceRequests", [])
            if not requests:
                return None

            request = requests[0]
            status = request.get("Status", {}).get("Code")
            instance_id = request.get("InstanceId")
            if status == SPOT_FULFILLED_STATUS and instance_id:
                logger.info("Spot instance fulfilled: %s", instance_id)
                return instance_id

            logger.debug("Spot request %s status: %s", request_id, status)
            return None

        try:
            return poll_until(
                check,
                interval=self.poll_interval,
                initial_delay=self.poll_initial_delay,
                timeout=timeout,
                token=self.token,
                description="spot instance fulfilment",
            )
        except PollTimeoutError as e:
            raise FulfillmentTimeoutError(request_id, timeout) from e

    def find_spot_requests(self, machine_id: str) -> list[dict[str, Any]]:
        """Return open or active spot requests tagged with the machine."""
        with handle_aws_errors():
            response = self.ec2_client.describe_spot_instance_requests(
                Filters=[
                    machine_tag_filter(machine_id),
                    {"Name": "state", "Values": SPOT_ACTIVE_REQUEST_STATES},
                ]
            )
        return response.get("SpotInstanceRequests", [])

    def _cancel_spot_requests_quietly(self, request_ids: list[str]) -> None:
        try:
            with handle_aws_errors():
                self.ec2_client.cancel_spot_instance_requests(
                    SpotInstanceRequestIds=request_ids
                )
        except ProviderAPIError as e:
            logger.warning("Failed to cancel spot request %s: %s", ", ".join(request_ids), e)

    def _terminate_instances_quietly(self, instance_ids: list[str]) -> None:
        try:
            with handle_aws_errors():
                self.ec2_client.terminate_instances(InstanceIds=instance_ids)
        except ProviderAPIError as e:
            logger.warning("Failed to terminate instance %s: %s", ", ".join(instance_ids), e)

    def start(self, machine_id: str) -> None:
        instance = self.get_instance(machine_id)
        with handle_aws_errors():
            self.ec2_client.start_instances(InstanceIds=[instance["instance_id"]])
        logger.info("Starting instance %s", instance["instance_id"])

    def stop(self, machine_id: str) -> None:
        instance = self.get_instance(machine_id)
        with handle_aws_errors():
            self.ec2_client.stop_instances(InstanceIds=[instance["instance_id"]])
        logger.info("Stopping instance %s", instance["instance_id"])

    def status(self, machine_id: str) -> InstanceStatus:
        """Map the instance state onto DevPod's status vocabulary."""
        instance = self.find_instance(machine_id)
        if instance is None:
            return InstanceStatus.NOT_FOUND

        state = instance["state"]
        if state == "running":
            return InstanceStatus.RUNNING
        if state == "stopped":
            return InstanceStatus.STOPPED
        return InstanceStatus.BUSY

    def delete(self, machine_id: str) -> None:
        """Cancel the machine's spot request, then terminate its instance.

        Instances attached to a tagged spot request are terminated too, even
        when they never received the machine tag themselves.

        Raises
        ------
        ResourceNotFoundError
            If neither an instance nor a spot request exists for the machine
        ProviderAPIError
            If cancellation or termination fails
        """
        instance = self.find_instance(machine_id)
        requests = self.find_spot_requests(machine_id)

        request_ids = [r["SpotInstanceRequestId"] for r in requests]
        instance_ids = [r["InstanceId"] for r in requests if r.get("InstanceId")]
        if instance is not None:
            if instance["spot_request_id"] and instance["spot_request_id"] not in request_ids:
                request_ids.append(instance["spot_request_id"])
            if instance["instance_id"] not in instance_ids:
                instance_ids.insert(0, instance["instance_id"])

        if not instance_ids and not request_ids:
            raise ResourceNotFoundError("instance", machine_id)

        if request_ids:
            with handle_aws_errors():
                self.ec2_client.cancel_spot_instance_requests(
                    SpotInstanceRequestIds=request_ids
                )
            logger.info("Cancelled spot request %s", ", ".join(request_ids))

        if instance_ids:
            with handle_aws_errors():
                self.ec2_client.terminate_instances(InstanceIds=instance_ids)
            logger.info("Terminating instance %s", ", ".join(instance_ids))
