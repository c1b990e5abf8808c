"""Pytest configuration and fixtures for devpod-provider-aws tests."""

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from devpod_aws.core.options import load_options


@pytest.fixture
def aws_credentials() -> Generator[None, None, None]:
    """Fixture to set AWS credentials for testing with proper cleanup.

    Sets mock AWS credentials in environment variables for the duration of the test,
    then restores the original environment state.

    Yields
    ------
    None
        Control back to test after setting credentials
    """
    names = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_DEFAULT_REGION")
    old_values = {name: os.environ.get(name) for name in names}

    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

    yield

    for name, value in old_values.items():
        if value is not None:
            os.environ[name] = value
        else:
            os.environ.pop(name, None)


@pytest.fixture
def machine_folder(tmp_path: Path) -> Path:
    """Return an empty machine folder."""
    folder = tmp_path / "machine"
    folder.mkdir()
    return folder


@pytest.fixture
def provider_env(machine_folder: Path) -> dict[str, str]:
    """Minimal environment DevPod passes to machine commands.

    Returns
    -------
    dict[str, str]
        Environment mapping; tests add or drop keys as needed
    """
    return {
        "AWS_INSTANCE_TYPE": "t3.medium",
        "AWS_DISK_SIZE": "40",
        "AWS_REGION": "us-east-1",
        "MACHINE_ID": "abc123",
        "MACHINE_FOLDER": str(machine_folder),
    }


@pytest.fixture
def make_options(provider_env: dict[str, str]):
    """Build ``Options`` from ``provider_env`` plus overrides.

    Returns
    -------
    callable
        Function taking environment overrides and returning Options
    """

    def _make(**overrides: str):
        env = dict(provider_env)
        env.update(overrides)
        return load_options(env)

    return _make
