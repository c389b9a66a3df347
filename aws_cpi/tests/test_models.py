from base64 import b64decode
from decimal import Decimal

import pytest

from aws_cpi.models import (
    CreatePath,
    InstanceParameters,
    InstanceState,
    NetworkKind,
    NetworkSpec,
    ProvisioningRequest,
    ResourcePool,
    SpotRequestState,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("dynamic", NetworkKind.DYNAMIC),
        ("manual", NetworkKind.MANUAL),
        ("vip", NetworkKind.VIP),
        (None, NetworkKind.UNSPECIFIED),
        ("designed by robots", NetworkKind.UNSPECIFIED),
    ]
)
def test_network_kind(raw, expected):
    assert NetworkKind.parse(raw) == expected


def test_network_from_dict_normalizes_security_groups():
    network = NetworkSpec.from_dict("default", {"cloud_properties": {"security_groups": "baz"}})

    assert network.kind == NetworkKind.UNSPECIFIED
    assert network.security_groups == ["baz"]
    assert network.subnet_id is None


def test_resource_pool_bid_price():
    resource_pool = ResourcePool.from_dict({"spot_bid_price": 0.15, "elbs": ["lb-1"]})

    assert resource_pool.spot_bid_price == Decimal("0.15")
    assert str(resource_pool.spot_bid_price) == "0.15"
    assert resource_pool.elbs == ["lb-1"]


@pytest.mark.parametrize(
    "resource_pool,expected",
    [
        ({"spot_bid_price": "0.15"}, CreatePath.SPOT),
        ({"spot_bid_price": 0}, CreatePath.SPOT),
        ({"instance_type": "m1.small"}, CreatePath.ON_DEMAND),
        ({}, CreatePath.ON_DEMAND),
    ]
)
def test_create_path(resource_pool, expected):
    request = ProvisioningRequest.from_director("agent-id", "stemcell-id", resource_pool, {})
    assert request.create_path == expected


def test_duplicate_network_names():
    with pytest.raises(ValueError):
        ProvisioningRequest(
            agent_id="agent-id",
            stemcell_id="stemcell-id",
            networks=[NetworkSpec("default"), NetworkSpec("default")],
        )


def test_spot_request_states():
    assert not SpotRequestState.OPEN.is_terminal_failure
    assert not SpotRequestState.ACTIVE.is_terminal_failure
    assert SpotRequestState.FAILED.is_terminal_failure
    assert SpotRequestState.CANCELLED.is_terminal_failure


def test_instance_state_ignores_high_byte():
    assert InstanceState.from_code(16) == InstanceState.RUNNING
    assert InstanceState.from_code(256 + 16) == InstanceState.RUNNING


def test_launch_specification_minimal():
    instance_params = InstanceParameters(image_id="ami-1", instance_type="m1.small", user_data='{"a":1}')

    specification = instance_params.launch_specification([])

    assert specification == {
        "ImageId": "ami-1",
        "InstanceType": "m1.small",
        "UserData": specification["UserData"],
        "NetworkInterfaces": [{"DeviceIndex": 0, "Groups": []}],
    }
    assert b64decode(specification["UserData"]).decode() == '{"a":1}'
