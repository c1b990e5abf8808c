"""Load provider options from the environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from omegaconf import MISSING, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from devpod_aws.constants import MACHINE_ID_PREFIX, SSHIngress
from devpod_aws.providers.aws.constants import DEFAULT_SPOT_TIMEOUT_SECONDS
from devpod_aws.providers.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

AWS_AMI = "AWS_AMI"
AWS_DISK_SIZE = "AWS_DISK_SIZE"
AWS_INSTANCE_TYPE = "AWS_INSTANCE_TYPE"
AWS_REGION = "AWS_REGION"
AWS_SECURITY_GROUP_ID = "AWS_SECURITY_GROUP_ID"
AWS_SUBNET_ID = "AWS_SUBNET_ID"
AWS_VPC_ID = "AWS_VPC_ID"
AWS_INSTANCE_TAGS = "AWS_INSTANCE_TAGS"
AWS_INSTANCE_PROFILE_ARN = "AWS_INSTANCE_PROFILE_ARN"
AWS_USE_SPOT_INSTANCES = "AWS_USE_SPOT_INSTANCES"
AWS_CREATE_VPC = "AWS_CREATE_VPC"
AWS_SSH_INGRESS = "AWS_SSH_INGRESS"
AWS_SPOT_TIMEOUT = "AWS_SPOT_TIMEOUT"
MACHINE_ID = "MACHINE_ID"
MACHINE_FOLDER = "MACHINE_FOLDER"

_TRUE_VALUES = frozenset(("1", "t", "true", "y", "yes", "on"))
_FALSE_VALUES = frozenset(("0", "f", "false", "n", "no", "off"))


@dataclass(frozen=True)
class Options:
    """Typed, immutable provider configuration.

    Attributes
    ----------
    instance_type : str
        EC2 instance type
    disk_size_gb : int
        Root volume size in GB
    disk_image : str
        AMI id; empty means resolve the default Ubuntu image
    region : str
        AWS region; empty means use the boto3 default chain
    vpc_id, subnet_id, security_group_id : str
        Explicit network resources; empty means discover or create
    instance_profile_arn : str
        Explicit instance profile; empty means best-effort lookup
    instance_tags : str
        Extra instance tags in ``Name=k,Value=v`` notation
    use_spot : bool
        Request a persistent spot instance instead of on-demand
    create_vpc : bool
        Create a dedicated VPC when no devpod VPC exists
    ssh_ingress : SSHIngress
        Source range for SSH on a created security group
    spot_timeout : int
        Seconds to wait for spot fulfilment
    machine_id : str
        Prefixed machine identifier, empty in init mode
    machine_folder : str
        Folder holding the machine's key material, empty in init mode
    """

    instance_type: str = MISSING
    disk_size_gb: int = MISSING
    disk_image: str = ""
    region: str = ""
    vpc_id: str = ""
    subnet_id: str = ""
    security_group_id: str = ""
    instance_profile_arn: str = ""
    instance_tags: str = ""
    use_spot: bool = False
    create_vpc: bool = False
    ssh_ingress: SSHIngress = SSHIngress.CALLER_IP
    spot_timeout: int = DEFAULT_SPOT_TIMEOUT_SECONDS
    machine_id: str = ""
    machine_folder: str = ""


_ENV_FIELDS = {
    AWS_INSTANCE_TYPE: "instance_type",
    AWS_DISK_SIZE: "disk_size_gb",
    AWS_AMI: "disk_image",
    AWS_REGION: "region",
    AWS_VPC_ID: "vpc_id",
    AWS_SUBNET_ID: "subnet_id",
    AWS_SECURITY_GROUP_ID: "security_group_id",
    AWS_INSTANCE_PROFILE_ARN: "instance_profile_arn",
    AWS_INSTANCE_TAGS: "instance_tags",
    AWS_SSH_INGRESS: "ssh_ingress",
    AWS_SPOT_TIMEOUT: "spot_timeout",
}


def from_env_or_error(name: str, environ: Mapping[str, str]) -> str:
    """Return a required environment variable.

    Raises
    ------
    ConfigurationError
        If the variable is unset or empty
    """
    value = environ.get(name, "")
    if not value:
        raise ConfigurationError(
            f"couldn't find option {name} in environment, please make sure "
            f"{name} is defined"
        )
    return value


def parse_bool(value: str | None) -> bool:
    """Parse a boolean option leniently; unknown values are false."""
    if value is None or value.strip() == "":
        return False

    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized not in _FALSE_VALUES:
        logger.warning("Unrecognized boolean value %r, treating it as false", value)
    return False


def load_options(environ: Mapping[str, str] | None = None, init: bool = False) -> Options:
    """Build ``Options`` from environment variables.

    Parameters
    ----------
    environ : Mapping[str, str] | None
        Environment to read; defaults to ``os.environ``
    init : bool
        Init mode skips the machine identifier and folder, which DevPod only
        supplies once a machine exists

    Returns
    -------
    Options
        Validated, immutable configuration

    Raises
    ------
    ConfigurationError
        If a required variable is missing or a value cannot be converted
    """
    env = os.environ if environ is None else environ

    from_env_or_error(AWS_INSTANCE_TYPE, env)
    from_env_or_error(AWS_DISK_SIZE, env)

    values: dict[str, object] = {}
    for env_name, field_name in _ENV_FIELDS.items():
        raw = env.get(env_name, "")
        if raw:
            values[field_name] = raw.strip()

    values["use_spot"] = parse_bool(env.get(AWS_USE_SPOT_INSTANCES))
    values["create_vpc"] = parse_bool(env.get(AWS_CREATE_VPC))

    if "ssh_ingress" in values:
        try:
            values["ssh_ingress"] = SSHIngress(str(values["ssh_ingress"]).lower())
        except ValueError as e:
            choices = ", ".join(item.value for item in SSHIngress)
            raise ConfigurationError(
                f"invalid value for option {AWS_SSH_INGRESS}: expected one of {choices}"
            ) from e

    if not init:
        values["machine_id"] = MACHINE_ID_PREFIX + from_env_or_error(MACHINE_ID, env)
        values["machine_folder"] = from_env_or_error(MACHINE_FOLDER, env)

    try:
        cfg = OmegaConf.merge(OmegaConf.structured(Options), values)
        options = OmegaConf.to_object(cfg)
    except OmegaConfBaseException as e:
        key = getattr(e, "full_key", None) or getattr(e, "key", None)
        env_name = next(
            (name for name, field in _ENV_FIELDS.items() if field == key), key
        )
        message = str(e).splitlines()[0] if str(e) else type(e).__name__
        raise ConfigurationError(f"invalid value for option {env_name}: {message}") from e

    if options.disk_size_gb <= 0:
        raise ConfigurationError(
            f"invalid value for option {AWS_DISK_SIZE}: must be a positive integer"
        )

    if options.spot_timeout <= 0:
        raise ConfigurationError(
            f"invalid value for option {AWS_SPOT_TIMEOUT}: must be a positive integer"
        )

    logger.debug(
        "Loaded options: machine=%s type=%s disk=%sGB spot=%s",
        options.machine_id or "<init>",
        options.instance_type,
        options.disk_size_gb,
        options.use_spot,
    )
    return options


def get_command(environ: Mapping[str, str] | None = None) -> str:
    """Return the remote command DevPod passes through ``COMMAND``."""
    env = os.environ if environ is None else environ
    command = env.get("COMMAND", "")
    if not command:
        raise ConfigurationError("command environment variable is missing")
    return command
