from tempfile import TemporaryDirectory
from unittest.mock import MagicMock
from pathlib import Path

import pytest

from aws_cpi.availability_zone import AvailabilityZoneSelector
from aws_cpi.instance_manager import InstanceManager
from aws_cpi.settings import Settings
from aws_cpi.tests.helpers import REGISTRY_ENDPOINT, describe_instances_response


@pytest.fixture(scope="function")
def output_dir():
    with TemporaryDirectory() as directory:
        yield Path(directory)


@pytest.fixture()
def stats_path(output_dir):
    return output_dir / "stats.jsonl"


@pytest.fixture()
def settings():
    # No sleeping in between retries and polls
    return Settings(
        region="us-east-1",
        default_security_groups=["default_1", "default_2"],
        registry_endpoint=REGISTRY_ENDPOINT,
        instance_create_wait_time=0,
        instance_create_max_attempts=3,
        spot_poll_interval=0,
        spot_timeout=5,
        running_poll_interval=0,
        running_timeout=5,
        terminate_timeout=5,
    )


@pytest.fixture()
def ec2_client():
    client = MagicMock()
    client.describe_subnets.return_value = {
        "Subnets": [{"SubnetId": "sub-123456", "AvailabilityZone": "us-east-1a", "VpcId": "vpc-123"}],
    }
    client.describe_security_groups.return_value = {
        "SecurityGroups": [{"GroupName": "baz", "GroupId": "sg-baz-1234"}],
    }
    client.run_instances.return_value = {"Instances": [{"InstanceId": "i-12345678"}]}
    client.describe_instances.return_value = describe_instances_response("i-12345678", 16, "running")
    return client


@pytest.fixture()
def elb_client():
    return MagicMock()


@pytest.fixture()
def registry():
    return MagicMock(endpoint=REGISTRY_ENDPOINT)


@pytest.fixture()
def instance_manager(ec2_client, elb_client, registry, settings):
    return InstanceManager(
        ec2_client,
        elb_client,
        registry,
        AvailabilityZoneSelector(),
        settings,
    )
