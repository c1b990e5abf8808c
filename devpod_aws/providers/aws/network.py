"""VPC, subnet and security group resolution for EC2 instances."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from devpod_aws.constants import SSH_PORT, SSHIngress
from devpod_aws.core.options import Options
from devpod_aws.providers.aws.constants import (
    CHECKIP_TIMEOUT_SECONDS,
    CHECKIP_URL,
    MACHINE_TAG_KEY,
    NETWORK_NAME,
    SECURITY_GROUP_NAME,
    SSH_ANYWHERE_CIDR,
    SUBNET_CIDR,
    VPC_CIDR,
    VPC_NAME_MARKER,
)
from devpod_aws.providers.aws.errors import handle_aws_errors
from devpod_aws.providers.aws.utils import tag_specification, tags_to_dict
from devpod_aws.providers.exceptions import (
    NoSuitableNetworkError,
    ProviderConnectionError,
    ResourceNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkResources:
    """Network identifiers an instance is launched into.

    Attributes
    ----------
    vpc_id : str
        VPC the security group (and subnet) belong to
    security_group_id : str
        Security group allowing inbound SSH
    subnet_id : str | None
        Subnet to launch into; None lets EC2 pick a default subnet
    """

    vpc_id: str
    security_group_id: str
    subnet_id: str | None


@dataclass(frozen=True)
class _ResolvedVpc:
    vpc_id: str
    explicit: bool = False
    is_default: bool = False


def get_caller_ip_cidr(session: Any = None) -> str:
    """Return the caller's public IPv4 address as a /32 CIDR.

    Parameters
    ----------
    session : Any
        Optional ``requests`` session, mainly for tests

    Raises
    ------
    ProviderConnectionError
        If the lookup service cannot be reached or returns an error
    """
    http = session or requests
    try:
        response = http.get(CHECKIP_URL, timeout=CHECKIP_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ProviderConnectionError(f"Failed to determine public IP address: {e}") from e

    address = response.text.strip().replace("\n", "")
    if not address:
        raise ProviderConnectionError(
            f"Failed to determine public IP address: empty response from {CHECKIP_URL}"
        )
    return f"{address}/32"


class NetworkManager:
    """Discover or create the network resources a machine needs.

    Every lookup goes to the EC2 API; nothing is cached between invocations.
    Created resources are tagged so the next invocation finds them again.

    Parameters
    ----------
    ec2_client : Any
        Boto3 EC2 client
    region : str
        AWS region name
    caller_ip_lookup : Callable[[], str] | None
        Returns the caller's CIDR for restricted SSH ingress
    """

    def __init__(self, ec2_client: Any, region: str, caller_ip_lookup: Any = None) -> None:
        self.ec2_client = ec2_client
        self.region = region
        self.caller_ip_lookup = caller_ip_lookup or get_caller_ip_cidr

    def resolve(self, options: Options) -> NetworkResources:
        """Return the VPC, security group and subnet for a launch.

        Parameters
        ----------
        options : Options
            Provider options; explicit ids are returned verbatim

        Returns
        -------
        NetworkResources
            Resolved identifiers
        """
        if options.security_group_id and options.subnet_id:
            return NetworkResources(
                vpc_id=options.vpc_id,
                security_group_id=options.security_group_id,
                subnet_id=options.subnet_id,
            )

        vpc = self._resolve_vpc(options)
        security_group_id = self.get_security_group(options, vpc.vpc_id)
        subnet_id = self.get_subnet(options, vpc)

        logger.info(
            "Using vpc=%s security_group=%s subnet=%s",
            vpc.vpc_id,
            security_group_id,
            subnet_id or "<default>",
        )
        return NetworkResources(
            vpc_id=vpc.vpc_id,
            security_group_id=security_group_id,
            subnet_id=subnet_id,
        )

    def get_vpc(self, options: Options) -> str:
        """Return the VPC id to use for the machine."""
        return self._resolve_vpc(options).vpc_id

    def _resolve_vpc(self, options: Options) -> _ResolvedVpc:
        if options.vpc_id:
            return _ResolvedVpc(vpc_id=options.vpc_id, explicit=True)

        with handle_aws_errors():
            paginator = self.ec2_client.get_paginator("describe_vpcs")
            vpcs = [vpc for page in paginator.paginate() for vpc in page["Vpcs"]]

        for vpc in vpcs:
            name = tags_to_dict(vpc.get("Tags")).get("Name", "")
            if VPC_NAME_MARKER in name:
                logger.debug("Found devpod VPC %s (%s)", vpc["VpcId"], name)
                return _ResolvedVpc(vpc_id=vpc["VpcId"])

        if options.create_vpc:
            return _ResolvedVpc(vpc_id=self.create_vpc(options.machine_id))

        for vpc in vpcs:
            if vpc.get("IsDefault"):
                logger.debug("Using default VPC %s", vpc["VpcId"])
                return _ResolvedVpc(vpc_id=vpc["VpcId"], is_default=True)

        raise NoSuitableNetworkError(self.region)

    def create_vpc(self, machine_id: str) -> str:
        """Create a dedicated VPC tagged with the machine identifier."""
        with handle_aws_errors():
            response = self.ec2_client.create_vpc(
                CidrBlock=VPC_CIDR,
                TagSpecifications=[
                    tag_specification(
                        "vpc", {"Name": machine_id, MACHINE_TAG_KEY: machine_id}
                    )
                ],
            )
        vpc_id = response["Vpc"]["VpcId"]
        logger.info("Created VPC %s", vpc_id)
        return vpc_id

    def get_security_group(self, options: Options, vpc_id: str) -> str:
        """Return the SSH security group id, creating it when missing."""
        if options.security_group_id:
            return options.security_group_id

        with handle_aws_errors():
            response = self.ec2_client.describe_security_groups(
                Filters=[
                    {"Name": "tag:Name", "Values": [NETWORK_NAME]},
                    {"Name": "vpc-id", "Values": [vpc_id]},
                ]
            )

        if response["SecurityGroups"]:
            return response["SecurityGroups"][0]["GroupId"]

        return self.create_security_group(options, vpc_id)

    def create_security_group(self, options: Options, vpc_id: str) -> str:
        """Create the security group and open port 22.

        The ingress source follows ``options.ssh_ingress``: the caller's own
        public address or every address.
        """
        if options.ssh_ingress == SSHIngress.ANYWHERE:
            cidr_block = SSH_ANYWHERE_CIDR
            logger.warning(
                "SSH security group is using %s (all IPs). "
                "This allows SSH access from any IP address. "
                "Set AWS_SSH_INGRESS=caller-ip to restrict it to your address.",
                SSH_ANYWHERE_CIDR,
            )
        else:
            cidr_block = self.caller_ip_lookup()

        with handle_aws_errors():
            response = self.ec2_client.create_security_group(
                GroupName=SECURITY_GROUP_NAME,
                Description="Default Security Group for DevPod",
                VpcId=vpc_id,
                TagSpecifications=[
                    tag_specification(
                        "security-group",
                        {"Name": NETWORK_NAME, MACHINE_TAG_KEY: options.machine_id},
                    )
                ],
            )
        sg_id = response["GroupId"]

        with handle_aws_errors():
            self.ec2_client.authorize_security_group_ingress(
                GroupId=sg_id,
                IpPermissions=[
                    {
                        "IpProtocol": "tcp",
                        "FromPort": SSH_PORT,
                        "ToPort": SSH_PORT,
                        "IpRanges": [{"CidrIp": cidr_block}],
                    }
                ],
            )

        logger.info("Created security group %s allowing SSH from %s", sg_id, cidr_block)
        return sg_id

    def get_subnet(self, options: Options, vpc: _ResolvedVpc | None = None) -> str | None:
        """Return the subnet id to launch into."""
        if options.subnet_id:
            return options.subnet_id

        vpc = vpc or self._resolve_vpc(options)

        if vpc.explicit or vpc.is_default:
            return self.find_public_subnet(vpc.vpc_id)

        with handle_aws_errors():
            response = self.ec2_client.describe_subnets(
                Filters=[
                    {"Name": "tag:Name", "Values": [NETWORK_NAME]},
                    {"Name": "vpc-id", "Values": [vpc.vpc_id]},
                ]
            )

        if response["Subnets"]:
            subnet = response["Subnets"][0]
            subnet_id = subnet["SubnetId"]
            if not subnet.get("MapPublicIpOnLaunch"):
                self._enable_public_ips(subnet_id)
            self.ensure_internet_route(options.machine_id, vpc.vpc_id, subnet_id)
            return subnet_id

        return self.create_subnet(options.machine_id, vpc.vpc_id)

    def find_public_subnet(self, vpc_id: str) -> str:
        """Return the public subnet of ``vpc_id`` with the most free addresses.

        Raises
        ------
        ResourceNotFoundError
            If the VPC has no subnet that auto-assigns public addresses
        """
        with handle_aws_errors():
            paginator = self.ec2_client.get_paginator("describe_subnets")
            subnets = [
                subnet
                for page in paginator.paginate(
                    Filters=[{"Name": "vpc-id", "Values": [vpc_id]}]
                )
                for subnet in page["Subnets"]
            ]

        public = [s for s in subnets if s.get("MapPublicIpOnLaunch")]
        if not public:
            raise ResourceNotFoundError(
                "subnet",
                vpc_id,
                f"No subnet with public IP auto-assignment found in VPC {vpc_id}. "
                "Set AWS_SUBNET_ID explicitly.",
            )

        best = max(public, key=lambda s: s.get("AvailableIpAddressCount", 0))
        return best["SubnetId"]

    def create_subnet(self, machine_id: str, vpc_id: str) -> str:
        """Create a public subnet with an internet route in ``vpc_id``."""
        with handle_aws_errors():
            response = self.ec2_client.create_subnet(
                CidrBlock=SUBNET_CIDR,
                VpcId=vpc_id,
                TagSpecifications=[
                    tag_specification(
                        "subnet", {"Name": NETWORK_NAME, MACHINE_TAG_KEY: machine_id}
                    )
                ],
            )
            subnet_id = response["Subnet"]["SubnetId"]

        self._enable_public_ips(subnet_id)
        self.ensure_internet_route(machine_id, vpc_id, subnet_id)
        logger.info("Created subnet %s in VPC %s", subnet_id, vpc_id)
        return subnet_id

    def _enable_public_ips(self, subnet_id: str) -> None:
        with handle_aws_errors():
            self.ec2_client.modify_subnet_attribute(
                SubnetId=subnet_id, MapPublicIpOnLaunch={"Value": True}
            )

    def ensure_internet_route(self, machine_id: str, vpc_id: str, subnet_id: str) -> None:
        """Make sure ``subnet_id`` routes 0.0.0.0/0 through an internet gateway.

        Every step checks for what an earlier, interrupted run may have left
        behind, so calling this on an already routed subnet changes nothing.
        """
        tags = {"Name": NETWORK_NAME, MACHINE_TAG_KEY: machine_id}

        with handle_aws_errors():
            associated = self.ec2_client.describe_route_tables(
                Filters=[{"Name": "association.subnet-id", "Values": [subnet_id]}]
            )["RouteTables"]

        if associated and _default_gateway(associated[0]):
            logger.debug("Subnet %s already routed to the internet", subnet_id)
            return

        gateway_id = self._ensure_internet_gateway(vpc_id, tags)

        with handle_aws_errors():
            if associated:
                route_table = associated[0]
            else:
                leftovers = self.ec2_client.describe_route_tables(
                    Filters=[
                        {"Name": "tag:Name", "Values": [NETWORK_NAME]},
                        {"Name": "vpc-id", "Values": [vpc_id]},
                    ]
                )["RouteTables"]
                if leftovers:
                    route_table = leftovers[0]
                else:
                    route_table = self.ec2_client.create_route_table(
                        VpcId=vpc_id,
                        TagSpecifications=[tag_specification("route-table", tags)],
                    )["RouteTable"]
            route_table_id = route_table["RouteTableId"]

            has_default_route = any(
                route.get("DestinationCidrBlock") == SSH_ANYWHERE_CIDR
                for route in route_table.get("Routes", [])
            )
            route_call = (
                self.ec2_client.replace_route
                if has_default_route
                else self.ec2_client.create_route
            )
            route_call(
                RouteTableId=route_table_id,
                DestinationCidrBlock=SSH_ANYWHERE_CIDR,
                GatewayId=gateway_id,
            )

            if not associated:
                self.ec2_client.associate_route_table(
                    RouteTableId=route_table_id, SubnetId=subnet_id
                )

        logger.debug(
            "Routed subnet %s through internet gateway %s (route table %s)",
            subnet_id,
            gateway_id,
            route_table_id,
        )

    def _ensure_internet_gateway(self, vpc_id: str, tags: dict[str, str]) -> str:
        with handle_aws_errors():
            gateways = self.ec2_client.describe_internet_gateways(
                Filters=[{"Name": "attachment.vpc-id", "Values": [vpc_id]}]
            )["InternetGateways"]
            if gateways:
                return gateways[0]["InternetGatewayId"]

            gateway_id = self.ec2_client.create_internet_gateway(
                TagSpecifications=[tag_specification("internet-gateway", tags)]
            )["InternetGateway"]["InternetGatewayId"]
            self.ec2_client.attach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc_id)

        return gateway_id


def _default_gateway(route_table: dict[str, Any]) -> str | None:
    """Return the internet gateway of the table's active default route, if any."""
    for route in route_table.get("Routes", []):
        if (
            route.get("DestinationCidrBlock") == SSH_ANYWHERE_CIDR
            and route.get("GatewayId", "").startswith("igw-")
            and route.get("State", "active") == "active"
        ):
            return route["GatewayId"]
    return None
