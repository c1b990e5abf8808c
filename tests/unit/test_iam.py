"""Tests for instance profile resolution."""

from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from devpod_aws.providers.aws.constants import INSTANCE_PROFILE_NAME
from devpod_aws.providers.aws.iam import InstanceProfileResolver


@pytest.fixture
def iam_client(aws_credentials):
    """Return a moto-backed IAM client with AWS managed policies available."""
    with mock_aws(config={"iam": {"load_aws_managed_policies": True}}):
        yield boto3.client("iam", region_name="us-east-1")


def test_resolve_returns_explicit_arn():
    client = MagicMock()
    resolver = InstanceProfileResolver(client)

    assert resolver.resolve("arn:aws:iam::123:instance-profile/mine") == (
        "arn:aws:iam::123:instance-profile/mine"
    )
    client.get_instance_profile.assert_not_called()


def test_resolve_creates_profile_when_missing(iam_client):
    resolver = InstanceProfileResolver(iam_client)

    arn = resolver.resolve()

    assert arn.endswith(f"instance-profile/{INSTANCE_PROFILE_NAME}")
    profile = iam_client.get_instance_profile(InstanceProfileName=INSTANCE_PROFILE_NAME)
    roles = [role["RoleName"] for role in profile["InstanceProfile"]["Roles"]]
    assert roles == [INSTANCE_PROFILE_NAME]

    policies = iam_client.list_attached_role_policies(RoleName=INSTANCE_PROFILE_NAME)
    assert [p["PolicyName"] for p in policies["AttachedPolicies"]] == [
        "AmazonSSMManagedInstanceCore"
    ]


def test_resolve_reuses_existing_profile(iam_client):
    resolver = InstanceProfileResolver(iam_client)

    assert resolver.resolve() == resolver.resolve()
    assert len(iam_client.list_instance_profiles()["InstanceProfiles"]) == 1


def test_resolve_records_whether_profile_was_created(iam_client):
    creator = InstanceProfileResolver(iam_client)
    creator.resolve()

    reuser = InstanceProfileResolver(iam_client)
    reuser.resolve()

    assert creator.created_profile is True
    assert reuser.created_profile is False


def test_resolve_returns_none_on_access_denied():
    client = MagicMock()
    client.get_instance_profile.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetInstanceProfile"
    )
    resolver = InstanceProfileResolver(client)

    assert resolver.resolve() is None
    client.create_role.assert_not_called()


def test_resolve_returns_none_when_creation_fails():
    client = MagicMock()
    client.get_instance_profile.side_effect = ClientError(
        {"Error": {"Code": "NoSuchEntity", "Message": "missing"}}, "GetInstanceProfile"
    )
    client.create_role.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "CreateRole"
    )
    resolver = InstanceProfileResolver(client)

    assert resolver.resolve() is None
