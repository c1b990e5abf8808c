"""Tests for VPC, subnet and security group resolution."""

import logging
from unittest.mock import MagicMock, patch

import boto3
import pytest
import requests
from botocore.exceptions import ClientError
from moto import mock_aws

from devpod_aws.providers.aws.network import NetworkManager, get_caller_ip_cidr
from devpod_aws.providers.exceptions import (
    NoSuitableNetworkError,
    ProviderAPIError,
    ProviderConnectionError,
    ResourceNotFoundError,
)

CALLER_CIDR = "198.51.100.7/32"


@pytest.fixture
def ec2_client(aws_credentials):
    """Return a moto-backed EC2 client."""
    with mock_aws():
        yield boto3.client("ec2", region_name="us-east-1")


@pytest.fixture
def caller_ip_lookup():
    return MagicMock(return_value=CALLER_CIDR)


@pytest.fixture
def network_manager(ec2_client, caller_ip_lookup):
    return NetworkManager(ec2_client, "us-east-1", caller_ip_lookup=caller_ip_lookup)


def ssh_cidrs(ec2_client, group_id):
    group = ec2_client.describe_security_groups(GroupIds=[group_id])["SecurityGroups"][0]
    return [
        ip_range["CidrIp"]
        for permission in group["IpPermissions"]
        if permission.get("FromPort") == 22
        for ip_range in permission["IpRanges"]
    ]


def default_vpc_id(ec2_client):
    vpcs = ec2_client.describe_vpcs(Filters=[{"Name": "isDefault", "Values": ["true"]}])
    return vpcs["Vpcs"][0]["VpcId"]


def devpod_route_tables(ec2_client, vpc_id):
    return ec2_client.describe_route_tables(
        Filters=[
            {"Name": "tag:Name", "Values": ["devpod"]},
            {"Name": "vpc-id", "Values": [vpc_id]},
        ]
    )["RouteTables"]


def test_resolve_uses_default_vpc_and_public_subnet(ec2_client, network_manager, make_options):
    network = network_manager.resolve(make_options())

    assert network.vpc_id == default_vpc_id(ec2_client)
    subnet = ec2_client.describe_subnets(SubnetIds=[network.subnet_id])["Subnets"][0]
    assert subnet["VpcId"] == network.vpc_id
    assert subnet["MapPublicIpOnLaunch"] is True


def test_resolve_creates_security_group_for_caller_ip(
    ec2_client, network_manager, caller_ip_lookup, make_options
):
    network = network_manager.resolve(make_options())

    group = ec2_client.describe_security_groups(GroupIds=[network.security_group_id])[
        "SecurityGroups"
    ][0]
    tags = {tag["Key"]: tag["Value"] for tag in group["Tags"]}
    assert group["GroupName"] == "devpod"
    assert tags["Name"] == "devpod"
    assert tags["devpod"] == "devpod-abc123"
    assert ssh_cidrs(ec2_client, network.security_group_id) == [CALLER_CIDR]
    caller_ip_lookup.assert_called_once_with()


def test_resolve_is_idempotent(ec2_client, network_manager, caller_ip_lookup, make_options):
    options = make_options()

    first = network_manager.resolve(options)
    second = network_manager.resolve(options)

    assert first == second
    groups = ec2_client.describe_security_groups(
        Filters=[{"Name": "group-name", "Values": ["devpod"]}]
    )["SecurityGroups"]
    assert len(groups) == 1
    assert caller_ip_lookup.call_count == 1


def test_resolve_with_explicit_ids_makes_no_api_calls(make_options, caller_ip_lookup):
    client = MagicMock()
    manager = NetworkManager(client, "us-east-1", caller_ip_lookup=caller_ip_lookup)

    network = manager.resolve(
        make_options(AWS_SECURITY_GROUP_ID="sg-explicit", AWS_SUBNET_ID="subnet-explicit")
    )

    assert network.security_group_id == "sg-explicit"
    assert network.subnet_id == "subnet-explicit"
    assert client.method_calls == []
    caller_ip_lookup.assert_not_called()


def test_resolve_explicit_security_group_is_not_modified(
    ec2_client, network_manager, caller_ip_lookup, make_options
):
    vpc_id = default_vpc_id(ec2_client)
    group_id = ec2_client.create_security_group(
        GroupName="mine", Description="mine", VpcId=vpc_id
    )["GroupId"]

    network = network_manager.resolve(make_options(AWS_SECURITY_GROUP_ID=group_id))

    assert network.security_group_id == group_id
    assert ssh_cidrs(ec2_client, group_id) == []
    caller_ip_lookup.assert_not_called()


def test_resolve_anywhere_ingress_warns(ec2_client, network_manager, caller_ip_lookup, make_options, caplog):
    with caplog.at_level(logging.WARNING):
        network = network_manager.resolve(make_options(AWS_SSH_INGRESS="anywhere"))

    assert ssh_cidrs(ec2_client, network.security_group_id) == ["0.0.0.0/0"]
    assert "0.0.0.0/0" in caplog.text
    caller_ip_lookup.assert_not_called()


def test_resolve_creates_dedicated_vpc(ec2_client, network_manager, make_options):
    options = make_options(AWS_CREATE_VPC="true")

    network = network_manager.resolve(options)

    vpc = ec2_client.describe_vpcs(VpcIds=[network.vpc_id])["Vpcs"][0]
    assert vpc["CidrBlock"] == "10.0.0.0/16"
    assert {"Key": "Name", "Value": "devpod-abc123"} in vpc["Tags"]

    subnet = ec2_client.describe_subnets(SubnetIds=[network.subnet_id])["Subnets"][0]
    assert subnet["CidrBlock"] == "10.0.0.0/24"
    assert subnet["MapPublicIpOnLaunch"] is True

    gateways = ec2_client.describe_internet_gateways(
        Filters=[{"Name": "attachment.vpc-id", "Values": [network.vpc_id]}]
    )["InternetGateways"]
    assert len(gateways) == 1

    route_tables = ec2_client.describe_route_tables(
        Filters=[{"Name": "association.subnet-id", "Values": [network.subnet_id]}]
    )["RouteTables"]
    routes = route_tables[0]["Routes"]
    assert any(
        route.get("DestinationCidrBlock") == "0.0.0.0/0"
        and route.get("GatewayId") == gateways[0]["InternetGatewayId"]
        for route in routes
    )


def test_resolve_reuses_dedicated_vpc(ec2_client, network_manager, make_options):
    options = make_options(AWS_CREATE_VPC="true")

    first = network_manager.resolve(options)
    second = network_manager.resolve(options)

    assert first == second
    vpc_ids = [vpc["VpcId"] for vpc in ec2_client.describe_vpcs()["Vpcs"]]
    assert vpc_ids.count(first.vpc_id) == 1
    assert len(vpc_ids) == 2
    assert len(devpod_route_tables(ec2_client, first.vpc_id)) == 1


def test_resolve_repairs_subnet_left_without_route(ec2_client, network_manager, make_options):
    options = make_options(AWS_CREATE_VPC="true")
    failure = ClientError(
        {"Error": {"Code": "RequestLimitExceeded", "Message": "slow down"}}, "CreateRoute"
    )

    with patch.object(ec2_client, "create_route", side_effect=failure):
        with pytest.raises(ProviderAPIError):
            network_manager.resolve(options)

    network = network_manager.resolve(options)

    gateways = ec2_client.describe_internet_gateways(
        Filters=[{"Name": "attachment.vpc-id", "Values": [network.vpc_id]}]
    )["InternetGateways"]
    associated = ec2_client.describe_route_tables(
        Filters=[{"Name": "association.subnet-id", "Values": [network.subnet_id]}]
    )["RouteTables"]
    assert len(associated) == 1
    assert any(
        route.get("DestinationCidrBlock") == "0.0.0.0/0"
        and route.get("GatewayId") == gateways[0]["InternetGatewayId"]
        for route in associated[0]["Routes"]
    )
    assert len(devpod_route_tables(ec2_client, network.vpc_id)) == 1
    assert len(gateways) == 1


def test_explicit_vpc_without_public_subnet(ec2_client, network_manager, make_options):
    vpc_id = ec2_client.create_vpc(CidrBlock="10.1.0.0/16")["Vpc"]["VpcId"]
    ec2_client.create_subnet(VpcId=vpc_id, CidrBlock="10.1.0.0/24")

    with pytest.raises(ResourceNotFoundError, match="AWS_SUBNET_ID"):
        network_manager.get_subnet(make_options(AWS_VPC_ID=vpc_id))


def test_explicit_vpc_picks_public_subnet(ec2_client, network_manager, make_options):
    vpc_id = ec2_client.create_vpc(CidrBlock="10.2.0.0/16")["Vpc"]["VpcId"]
    ec2_client.create_subnet(VpcId=vpc_id, CidrBlock="10.2.0.0/24")
    public_id = ec2_client.create_subnet(VpcId=vpc_id, CidrBlock="10.2.1.0/24")["Subnet"][
        "SubnetId"
    ]
    ec2_client.modify_subnet_attribute(SubnetId=public_id, MapPublicIpOnLaunch={"Value": True})

    assert network_manager.get_subnet(make_options(AWS_VPC_ID=vpc_id)) == public_id


def test_get_vpc_without_candidates_raises(make_options, caller_ip_lookup):
    client = MagicMock()
    client.get_paginator.return_value.paginate.return_value = [{"Vpcs": []}]
    manager = NetworkManager(client, "eu-west-1", caller_ip_lookup=caller_ip_lookup)

    with pytest.raises(NoSuitableNetworkError, match="eu-west-1"):
        manager.get_vpc(make_options())


def test_get_vpc_prefers_devpod_named_vpc(make_options, caller_ip_lookup):
    client = MagicMock()
    client.get_paginator.return_value.paginate.return_value = [
        {
            "Vpcs": [
                {"VpcId": "vpc-default", "IsDefault": True},
                {"VpcId": "vpc-devpod", "Tags": [{"Key": "Name", "Value": "my-devpod-net"}]},
            ]
        }
    ]
    manager = NetworkManager(client, "us-east-1", caller_ip_lookup=caller_ip_lookup)

    assert manager.get_vpc(make_options()) == "vpc-devpod"


def test_get_caller_ip_cidr():
    session = MagicMock()
    session.get.return_value.text = "198.51.100.7\n"

    assert get_caller_ip_cidr(session) == CALLER_CIDR
    session.get.assert_called_once_with("https://checkip.amazonaws.com", timeout=10)


def test_get_caller_ip_cidr_request_failure():
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("offline")

    with pytest.raises(ProviderConnectionError, match="public IP"):
        get_caller_ip_cidr(session)


def test_get_caller_ip_cidr_empty_response():
    session = MagicMock()
    session.get.return_value.text = "  \n"

    with pytest.raises(ProviderConnectionError, match="empty response"):
        get_caller_ip_cidr(session)
