from unittest.mock import MagicMock, patch

import pytest

from aws_cpi.cloud import Cloud, initial_agent_settings
from aws_cpi.errors import RegistryError


@pytest.fixture()
def cloud(settings, registry):
    cloud = Cloud(settings, session=MagicMock(), registry=registry)
    cloud.instance_manager = MagicMock()
    return cloud


def test_clients_use_configured_region(settings, registry):
    session = MagicMock()

    Cloud(settings, session=session, registry=registry)

    session.client.assert_any_call("ec2", region_name="us-east-1")
    session.client.assert_any_call("elb", region_name="us-east-1")


def test_create_vm(cloud, registry):
    instance = MagicMock(id="i-12345678")
    cloud.instance_manager.provision.return_value = instance

    instance_id = cloud.create_vm(
        "agent-id",
        "ami-1",
        {"instance_type": "m1.small"},
        {"default": {"type": "dynamic"}},
        environment={"bosh": {"password": "secret"}},
    )

    assert instance_id == "i-12345678"
    request = cloud.instance_manager.provision.call_args.args[0]
    assert request.stemcell_id == "ami-1"
    assert request.resource_pool.instance_type == "m1.small"

    registry_instance_id, registry_settings = registry.update_settings.call_args.args
    assert registry_instance_id == "i-12345678"
    assert registry_settings["agent_id"] == "agent-id"
    assert registry_settings["networks"] == {"default": {"type": "dynamic"}}
    assert registry_settings["env"] == {"bosh": {"password": "secret"}}


def test_create_vm_registry_failure_terminates(settings, registry):
    cloud = Cloud(settings, session=MagicMock(), registry=registry)
    instance = MagicMock(id="i-12345678")
    registry.update_settings.side_effect = RegistryError("registry is down")

    with patch.object(cloud.instance_manager, "provision", return_value=instance):
        with pytest.raises(RegistryError):
            cloud.create_vm("agent-id", "ami-1", {}, {})

    instance.terminate.assert_called_once_with()


def test_delete_vm(cloud):
    cloud.delete_vm("i-12345678")

    cloud.instance_manager.find.assert_called_once_with("i-12345678")
    cloud.instance_manager.find.return_value.terminate.assert_called_once_with()


def test_has_vm(cloud):
    cloud.instance_manager.find.return_value.exists.return_value = False
    assert not cloud.has_vm("i-12345678")


def test_initial_agent_settings():
    settings = initial_agent_settings("agent-id", {"default": {}}, None)

    assert settings["vm"]["name"].startswith("vm-")
    assert settings["env"] == {}
    assert settings["disks"]["persistent"] == {}
