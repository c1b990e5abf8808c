"""AWS-specific constants for EC2 network and instance operations."""

MACHINE_TAG_KEY = "devpod"
"""Tag key whose value is the machine identifier.

Every resource created for a machine carries this tag so later invocations
can rediscover it without local state.
"""

NETWORK_NAME = "devpod"
"""Value of the ``Name`` tag on shared network resources (subnet, SG)."""

VPC_NAME_MARKER = "devpod"
"""Substring of a VPC ``Name`` tag identifying a dedicated devpod VPC."""

VPC_CIDR = "10.0.0.0/16"
"""CIDR block of a dedicated VPC created with AWS_CREATE_VPC."""

SUBNET_CIDR = "10.0.0.0/24"
"""CIDR block of the subnet created inside a dedicated VPC."""

SECURITY_GROUP_NAME = "devpod"
"""Group name of the security group created for SSH access."""

SSH_ANYWHERE_CIDR = "0.0.0.0/0"
"""CIDR used when SSH ingress is opened to every address."""

CHECKIP_URL = "https://checkip.amazonaws.com"
"""Service returning the caller's public IPv4 address as plain text."""

CHECKIP_TIMEOUT_SECONDS = 10
"""HTTP timeout for the caller IP lookup."""

ROOT_DEVICE_NAME = "/dev/sda1"
"""Device name of the root EBS volume."""

ROOT_VOLUME_TYPE = "gp3"
"""EBS volume type of the root volume."""

INSTANCE_PROFILE_NAME = "devpod-ec2-role"
"""Name of the IAM role and instance profile created for instances."""

INSTANCE_ROLE_POLICY_ARNS = (
    "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore",
)
"""Managed policies attached to the instance role."""

EC2_TRUST_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"Service": "ec2.amazonaws.com"},
            "Action": "sts:AssumeRole",
        }
    ],
}
"""Trust policy allowing EC2 to assume the instance role."""

DEFAULT_AMI_NAME_PATTERN = "ubuntu/images/hvm-ssd*/ubuntu-jammy-22.04-amd64-server-*"
"""Image name pattern used when AWS_AMI is empty."""

DEFAULT_AMI_OWNER = "099720109477"
"""Canonical's AWS account id, owner of the official Ubuntu images."""

ACTIVE_INSTANCE_STATES = [
    "pending",
    "running",
    "shutting-down",
    "stopping",
    "stopped",
]
"""EC2 instance states for which a machine is considered to exist."""

SPOT_POLL_INITIAL_DELAY_SECONDS = 5.0
"""Delay before the first spot request status check."""

SPOT_POLL_INTERVAL_SECONDS = 5.0
"""Interval between spot request status checks."""

DEFAULT_SPOT_TIMEOUT_SECONDS = 600
"""Default upper bound for waiting on spot request fulfilment."""

SPOT_FULFILLED_STATUS = "fulfilled"
"""Spot request status code once an instance is attached."""

SPOT_ACTIVE_REQUEST_STATES = ["open", "active", "disabled"]
"""Spot request states that still hold capacity and must be cancelled."""

INVALID_PARAMETER_VALUE = "InvalidParameterValue"
"""Error code EC2 returns for an instance profile IAM has not propagated yet."""
