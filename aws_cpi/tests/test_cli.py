from logging import DEBUG, NOTSET, getLogger
from unittest.mock import patch

from click.testing import CliRunner
import pytest

from aws_cpi.cli import cli
from aws_cpi.errors import CreationError


@pytest.fixture()
def cloud():
    with patch("aws_cpi.cli.Cloud") as cloud_class:
        yield cloud_class.return_value


def test_create_vm(cloud):
    cloud.create_vm.return_value = "i-12345678"

    result = CliRunner().invoke(
        cli,
        [
            "create-vm",
            "--agent-id", "agent-id",
            "--stemcell-id", "ami-1",
            "--resource-pool", '{"instance_type": "m1.small", "spot_bid_price": 0.15}',
            "--networks", '{"default": {"type": "dynamic"}}',
        ],
    )

    assert result.exit_code == 0, result.output
    assert "i-12345678" in result.output
    cloud.create_vm.assert_called_once_with(
        "agent-id",
        "ami-1",
        {"instance_type": "m1.small", "spot_bid_price": 0.15},
        {"default": {"type": "dynamic"}},
        disk_locality=None,
        environment=None,
    )


def test_create_vm_failure(cloud):
    cloud.create_vm.side_effect = CreationError("Could not create instance", operation="run_instances")

    result = CliRunner().invoke(cli, ["create-vm", "--agent-id", "agent-id", "--stemcell-id", "ami-1"])

    assert result.exit_code == 1


def test_create_vm_invalid_json(cloud):
    result = CliRunner().invoke(
        cli, ["create-vm", "--agent-id", "agent-id", "--stemcell-id", "ami-1", "--networks", "{nope"],
    )

    assert result.exit_code == 2
    cloud.create_vm.assert_not_called()


def test_delete_vm(cloud):
    result = CliRunner().invoke(cli, ["delete-vm", "i-12345678"])

    assert result.exit_code == 0, result.output
    cloud.delete_vm.assert_called_once_with("i-12345678")


@pytest.mark.parametrize("exists,expected", [(True, "true"), (False, "false")])
def test_has_vm(cloud, exists, expected):
    cloud.has_vm.return_value = exists

    result = CliRunner().invoke(cli, ["has-vm", "i-12345678"])

    assert result.output.strip() == expected


@pytest.fixture()
def reset_log_level():
    yield
    getLogger("aws_cpi").setLevel(NOTSET)


def test_log_level(cloud, reset_log_level):
    cloud.has_vm.return_value = True

    result = CliRunner().invoke(cli, ["--log-level", "debug", "has-vm", "i-12345678"])

    assert result.exit_code == 0, result.output
    assert getLogger("aws_cpi.InstanceManager").getEffectiveLevel() == DEBUG
