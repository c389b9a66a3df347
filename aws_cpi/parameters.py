"""
Derive the provider parameters of a new instance from a provisioning request.

Each `set_*` function only writes into the `instance_params` accumulator it is handed
and leaves a key out entirely when there is nothing to set, so the provider can apply
its own default. `freeze_parameters` turns the accumulator into the immutable bundle.

"""
from base64 import b64decode
from json import dumps, loads
from typing import Any, Dict, Iterable, Optional

from aws_cpi.availability_zone import AvailabilityZoneSelector
from aws_cpi.models import InstanceParameters, NetworkSpec


def set_key_name_parameter(instance_params: Dict[str, Any], *candidates: Optional[str]):
    """
    :param candidates: In priority order, e.g. the resource pool's key name followed by
        the configured default.

    """
    key_name = next((candidate for candidate in candidates if candidate), None)
    if key_name:
        instance_params["key_name"] = key_name


def set_security_groups_parameter(
    instance_params: Dict[str, Any],
    networks: Iterable[NetworkSpec],
    default_security_groups: Iterable[str],
):
    groups = [group for network in networks for group in network.security_groups]
    if not groups:
        groups = list(default_security_groups)
    instance_params["security_groups"] = list(dict.fromkeys(groups))


def set_vpc_parameters(instance_params: Dict[str, Any], networks: Iterable[NetworkSpec]):
    for network in networks:
        if network.kind.places_like_manual and network.ip and "private_ip_address" not in instance_params:
            instance_params["private_ip_address"] = network.ip

        if network.kind.accepts_subnet and network.subnet_id and "subnet_id" not in instance_params:
            instance_params["subnet_id"] = network.subnet_id


def set_availability_zone_parameter(
    instance_params: Dict[str, Any],
    selector: AvailabilityZoneSelector,
    volume_zones: Iterable[str],
    resource_pool_zone: Optional[str],
    subnet_zone: Optional[str],
):
    zone = selector.common_availability_zone(volume_zones, resource_pool_zone, subnet_zone)
    if zone:
        instance_params["availability_zone"] = zone


def build_user_data(registry_endpoint: str, networks: Iterable[NetworkSpec]) -> str:
    user_data: Dict[str, Any] = {"registry": {"endpoint": registry_endpoint}}

    dns = next((network.dns for network in networks if network.dns is not None), None)
    if dns is not None:
        user_data["dns"] = {"nameserver": dns}

    # The agent reads this back at boot; keep it compact and in a fixed key order
    return dumps(user_data, separators=(",", ":"))


def set_user_data_parameter(
    instance_params: Dict[str, Any],
    registry_endpoint: str,
    networks: Iterable[NetworkSpec],
):
    instance_params["user_data"] = build_user_data(registry_endpoint, networks)


def decode_user_data(payload: str, base64_encoded: bool = False) -> Dict[str, Any]:
    if base64_encoded:
        payload = b64decode(payload).decode()
    return loads(payload)


def freeze_parameters(instance_params: Dict[str, Any]) -> InstanceParameters:
    values = dict(instance_params)
    values["security_groups"] = tuple(values.get("security_groups", ()))
    return InstanceParameters(**values)
