from base64 import b64encode
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, unique
from typing import Any, Dict, List, Optional, Union


@unique
class NetworkKind(Enum):
    DYNAMIC = "dynamic"
    MANUAL = "manual"
    VIP = "vip"
    UNSPECIFIED = None

    @classmethod
    def parse(cls, value: Optional[str]) -> "NetworkKind":
        # Anything we don't recognize is placed exactly like a manual network
        try:
            return cls(value)
        except ValueError:
            return cls.UNSPECIFIED

    @property
    def places_like_manual(self) -> bool:
        return self in (NetworkKind.MANUAL, NetworkKind.UNSPECIFIED)

    @property
    def accepts_subnet(self) -> bool:
        return self != NetworkKind.VIP


@unique
class CreatePath(Enum):
    ON_DEMAND = "on-demand"
    SPOT = "spot"


@unique
class SpotRequestState(Enum):
    OPEN = "open"
    ACTIVE = "active"
    CLOSED = "closed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DISABLED = "disabled"

    @property
    def is_terminal_failure(self) -> bool:
        return self in (
            SpotRequestState.CLOSED,
            SpotRequestState.FAILED,
            SpotRequestState.CANCELLED,
            SpotRequestState.DISABLED,
        )


@unique
class InstanceState(Enum):
    PENDING = 0
    RUNNING = 16
    SHUTTING_DOWN = 32
    TERMINATED = 48
    STOPPING = 64
    STOPPED = 80

    @classmethod
    def from_code(cls, code: int) -> "InstanceState":
        # The high byte of the code is reserved for internal AWS use
        return cls(code & 0xFF)


def normalize_security_groups(value: Union[None, str, List[str]]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


@dataclass
class NetworkSpec:
    """
    One entry of the director's network specification, with the loosely typed
    fields (missing `type`, `security_groups` as a string or a list) resolved up front.

    """
    name: str
    kind: NetworkKind = NetworkKind.UNSPECIFIED
    ip: Optional[str] = None
    # Passed through verbatim to the agent, can be a single nameserver or a list
    dns: Any = None
    subnet_id: Optional[str] = None
    security_groups: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, raw: Optional[Dict[str, Any]]) -> "NetworkSpec":
        raw = raw or {}
        cloud_properties = raw.get("cloud_properties") or {}
        return cls(
            name=name,
            kind=NetworkKind.parse(raw.get("type")),
            ip=raw.get("ip"),
            dns=raw.get("dns"),
            subnet_id=cloud_properties.get("subnet"),
            security_groups=normalize_security_groups(cloud_properties.get("security_groups")),
        )


def parse_networks(raw_networks: Optional[Dict[str, Dict[str, Any]]]) -> List[NetworkSpec]:
    return [
        NetworkSpec.from_dict(name, raw)
        for name, raw in (raw_networks or {}).items()
    ]


def parse_bid_price(value: Union[None, str, float, int, Decimal]) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    # Go through str() so that 0.15 stays "0.15" instead of its binary expansion
    return Decimal(str(value))


@dataclass
class ResourcePool:
    instance_type: Optional[str] = None
    key_name: Optional[str] = None
    availability_zone: Optional[str] = None
    spot_bid_price: Optional[Decimal] = None
    elbs: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "ResourcePool":
        raw = raw or {}
        return cls(
            instance_type=raw.get("instance_type"),
            key_name=raw.get("key_name"),
            availability_zone=raw.get("availability_zone"),
            spot_bid_price=parse_bid_price(raw.get("spot_bid_price")),
            elbs=list(raw.get("elbs") or []),
        )


@dataclass
class ProvisioningRequest:
    """
    Everything the director tells us about a VM it wants. Intended for exactly one
    creation attempt.

    """
    agent_id: str
    stemcell_id: str
    resource_pool: ResourcePool = field(default_factory=ResourcePool)
    networks: List[NetworkSpec] = field(default_factory=list)
    # Availability zones of the persistent disks this VM will attach
    disk_locality: List[str] = field(default_factory=list)
    environment: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        names = [network.name for network in self.networks]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate network names: {', '.join(duplicates)}")

    @classmethod
    def from_director(
        cls,
        agent_id: str,
        stemcell_id: str,
        resource_pool: Optional[Dict[str, Any]],
        networks: Optional[Dict[str, Dict[str, Any]]],
        disk_locality: Optional[List[str]] = None,
        environment: Optional[Dict[str, Any]] = None,
    ) -> "ProvisioningRequest":
        return cls(
            agent_id=agent_id,
            stemcell_id=stemcell_id,
            resource_pool=ResourcePool.from_dict(resource_pool),
            networks=parse_networks(networks),
            disk_locality=list(disk_locality or []),
            environment=dict(environment or {}),
        )

    @property
    def create_path(self) -> CreatePath:
        if self.resource_pool.spot_bid_price is not None:
            return CreatePath.SPOT
        return CreatePath.ON_DEMAND


@dataclass(frozen=True)
class InstanceParameters:
    """
    Provider ready parameters for a single instance. Built once per request.

    """
    image_id: str
    instance_type: Optional[str]
    user_data: str
    security_groups: tuple = ()
    count: int = 1
    key_name: Optional[str] = None
    subnet_id: Optional[str] = None
    private_ip_address: Optional[str] = None
    availability_zone: Optional[str] = None

    def run_instances_kwargs(self, security_group_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        :param security_group_ids: Instances launched into a subnet address their groups by id;
            when omitted the group names are sent as-is.

        """
        kwargs: Dict[str, Any] = {
            "ImageId": self.image_id,
            "MinCount": self.count,
            "MaxCount": self.count,
            # boto3 base64 encodes this for run_instances
            "UserData": self.user_data,
        }
        if self.instance_type:
            kwargs["InstanceType"] = self.instance_type
        if self.key_name:
            kwargs["KeyName"] = self.key_name
        if security_group_ids is not None:
            kwargs["SecurityGroupIds"] = list(security_group_ids)
        elif self.security_groups:
            kwargs["SecurityGroups"] = list(self.security_groups)
        if self.subnet_id:
            kwargs["SubnetId"] = self.subnet_id
        if self.private_ip_address:
            kwargs["PrivateIpAddress"] = self.private_ip_address
        if self.availability_zone:
            kwargs["Placement"] = {"AvailabilityZone": self.availability_zone}
        return kwargs

    def launch_specification(self, security_group_ids: List[str]) -> Dict[str, Any]:
        network_interface: Dict[str, Any] = {
            "DeviceIndex": 0,
            "Groups": list(security_group_ids),
        }
        if self.subnet_id:
            network_interface["SubnetId"] = self.subnet_id
        if self.private_ip_address:
            network_interface["PrivateIpAddress"] = self.private_ip_address

        specification: Dict[str, Any] = {
            "ImageId": self.image_id,
            # Unlike run_instances, spot launch specifications expect pre-encoded user data
            "UserData": b64encode(self.user_data.encode()).decode(),
            "NetworkInterfaces": [network_interface],
        }
        if self.key_name:
            specification["KeyName"] = self.key_name
        if self.instance_type:
            specification["InstanceType"] = self.instance_type
        if self.availability_zone:
            specification["Placement"] = {"AvailabilityZone": self.availability_zone}
        return specification
