"""Tests for the Fire CLI entry point and its error handling."""

import io
import logging
import sys
from unittest.mock import MagicMock, patch

import fire
import pytest

from devpod_aws.cli.main import (
    DevPodAWSCLI,
    handle_api_error,
    handle_configuration_error,
    handle_provider_error,
    main,
)
from devpod_aws.logging import LevelFormatter, configure_logging, is_debug_enabled
from devpod_aws.providers.exceptions import (
    ConfigurationError,
    InstanceNotReachableError,
    OperationCancelledError,
    ProviderAPIError,
    ProviderCredentialsError,
    ProviderError,
    ResourceNotFoundError,
)
from tests.unit.fakes.fake_ec2_manager import FakeEC2Manager
from tests.unit.fakes.fake_ssh_manager import FakeSSHManager


@pytest.fixture(autouse=True)
def reset_fake_ssh():
    FakeSSHManager.reset()
    yield
    FakeSSHManager.reset()


@pytest.fixture
def machines() -> dict:
    return {}


@pytest.fixture
def cli(provider_env, machines) -> DevPodAWSCLI:
    """CLI instance wired to in-memory fakes."""
    return DevPodAWSCLI(
        compute_provider_factory=lambda region=None: FakeEC2Manager(region, machines),
        ssh_manager_factory=FakeSSHManager,
        environ=provider_env,
    )


@pytest.fixture
def run_main(cli, monkeypatch):
    """Run ``main()`` with the given argv against the fake-wired CLI.

    Returns
    -------
    callable
        Function taking CLI arguments and returning the SystemExit code or None
    """
    monkeypatch.delenv("DEVPOD_DEBUG", raising=False)

    def _run(*args: str):
        with (
            patch("devpod_aws.cli.main.DevPodAWSCLI", return_value=cli),
            patch("devpod_aws.cli.main.configure_logging"),
            patch("devpod_aws.cli.main.setup_signal_handlers"),
            patch.object(sys, "argv", ["devpod-provider-aws", *args]),
        ):
            try:
                main()
            except SystemExit as e:
                return e.code
        return None

    return _run


def test_status_prints_to_stdout(cli, capsys):
    fire.Fire(cli, command=["status"])

    assert capsys.readouterr().out.strip() == "NotFound"


def test_create_then_status(cli, machines, capsys):
    fire.Fire(cli, command=["create"])
    assert capsys.readouterr().out == ""
    assert "devpod-abc123" in machines

    fire.Fire(cli, command=["status"])
    assert capsys.readouterr().out.strip() == "Running"


def test_command_exits_with_remote_status(cli, provider_env):
    fire.Fire(cli, command=["create"])
    provider_env["COMMAND"] = "exit 4"
    FakeSSHManager.exit_code = 4

    with pytest.raises(SystemExit) as exc_info:
        fire.Fire(cli, command=["command"])

    assert exc_info.value.code == 4


def test_main_success_returns_normally(run_main):
    assert run_main("status") is None


def test_main_configuration_error_exits_2(run_main, provider_env, capsys):
    del provider_env["AWS_INSTANCE_TYPE"]

    assert run_main("status") == 2
    assert "couldn't find option AWS_INSTANCE_TYPE" in capsys.readouterr().err


def test_main_missing_instance_exits_1(run_main, capsys):
    assert run_main("stop") == 1
    assert "instance devpod-abc123 doesn't exist" in capsys.readouterr().err


def test_main_unreachable_exits_1(run_main, provider_env, machines, capsys):
    assert run_main("create") is None
    machines["devpod-abc123"].update(public_ip=None, private_ip=None)
    provider_env["COMMAND"] = "true"

    assert run_main("command") == 1
    assert "is not reachable" in capsys.readouterr().err


def test_main_debug_mode_reraises(run_main, provider_env):
    del provider_env["AWS_DISK_SIZE"]

    with patch("devpod_aws.cli.main.is_debug_enabled", return_value=True):
        with pytest.raises(ConfigurationError):
            run_main("status")


def test_main_credentials_error_exits_1(run_main, cli, capsys):
    cli._compute_provider_factory_override = MagicMock(
        side_effect=ProviderCredentialsError("Unable to locate credentials")
    )

    assert run_main("status") == 1
    assert "AWS credentials not found" in capsys.readouterr().err


def test_handle_configuration_error_exits_2(capsys):
    try:
        raise ConfigurationError("bad option")
    except ConfigurationError as e:
        with pytest.raises(SystemExit) as exc_info:
            handle_configuration_error(e, debug_mode=False)

    assert exc_info.value.code == 2
    assert capsys.readouterr().err.strip() == "Configuration error: bad option"


@pytest.mark.parametrize(
    ("error_code", "expected"),
    [
        ("UnauthorizedOperation", "Insufficient IAM permissions"),
        ("InstanceLimitExceeded", "AWS quota exceeded"),
        ("ExpiredToken", "AWS credentials have expired"),
        ("InvalidParameterValue", "AWS API error: boom"),
    ],
)
def test_handle_api_error_messages(error_code, expected, capsys):
    try:
        raise ProviderAPIError("boom", error_code=error_code)
    except ProviderAPIError as e:
        with pytest.raises(SystemExit) as exc_info:
            handle_api_error(e, debug_mode=False)

    assert exc_info.value.code == 1
    assert expected in capsys.readouterr().err


def test_handle_api_error_debug_reraises():
    with pytest.raises(ProviderAPIError):
        try:
            raise ProviderAPIError("boom", error_code="Throttling")
        except ProviderAPIError as e:
            handle_api_error(e, debug_mode=True)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (InstanceNotReachableError("devpod-x"), "SSH connectivity error"),
        (ResourceNotFoundError("instance", "devpod-x"), "Not found"),
        (RuntimeError("already exists"), "Error: already exists"),
        (OperationCancelledError("Interrupted by SIGTERM"), "Cancelled: Interrupted by SIGTERM"),
    ],
)
def test_handle_provider_error_messages(error, expected, capsys):
    try:
        raise error
    except (RuntimeError, ProviderError) as e:
        with pytest.raises(SystemExit) as exc_info:
            handle_provider_error(e, debug_mode=False)

    assert exc_info.value.code == 1
    assert expected in capsys.readouterr().err


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1", True), ("true", True), ("TRUE", True), ("0", False), ("", False)],
)
def test_is_debug_enabled(value, expected):
    assert is_debug_enabled({"DEVPOD_DEBUG": value}) is expected


@patch("devpod_aws.logging.logging.basicConfig")
def test_configure_logging_installs_single_stream_handler(mock_basic_config):
    stream = io.StringIO()

    handler = configure_logging(debug=True, stream=stream)

    kwargs = mock_basic_config.call_args.kwargs
    assert kwargs["level"] == logging.DEBUG
    assert kwargs["handlers"] == [handler]
    assert handler.stream is stream
    assert isinstance(handler.formatter, LevelFormatter)
    assert logging.getLogger("botocore").level == logging.WARNING
    assert logging.getLogger("paramiko").level == logging.WARNING


@patch("devpod_aws.logging.logging.basicConfig")
def test_configure_logging_defaults_to_info(mock_basic_config):
    configure_logging()

    assert mock_basic_config.call_args.kwargs["level"] == logging.INFO


def test_level_formatter_plain_info():
    formatter = LevelFormatter()
    info = logging.LogRecord("devpod_aws.x", logging.INFO, __file__, 1, "hello", None, None)
    warning = logging.LogRecord("devpod_aws.x", logging.WARNING, __file__, 1, "careful", None, None)

    assert formatter.format(info) == "hello"
    assert formatter.format(warning) == "warning: careful"


def test_level_formatter_verbose():
    formatter = LevelFormatter(verbose=True)
    record = logging.LogRecord("devpod_aws.x", logging.DEBUG, __file__, 1, "msg %s", ("a",), None)

    assert formatter.format(record) == "debug [devpod_aws.x] msg a"
