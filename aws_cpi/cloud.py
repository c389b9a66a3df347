from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from boto3 import Session

from aws_cpi.availability_zone import AvailabilityZoneSelector
from aws_cpi.instance_manager import InstanceManager
from aws_cpi.logging import logger
from aws_cpi.models import ProvisioningRequest
from aws_cpi.registry import RegistryClient
from aws_cpi.settings import Settings
from aws_cpi.stats_logger import StatsLogger


def initial_agent_settings(
    agent_id: str,
    networks: Dict[str, Any],
    environment: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Settings the agent fetches from the registry when it boots for the first time.

    """
    return {
        "vm": {
            "name": f"vm-{uuid4()}",
        },
        "agent_id": agent_id,
        "networks": networks,
        "disks": {
            "system": "/dev/sda",
            "ephemeral": "/dev/sdb",
            "persistent": {},
        },
        "env": environment or {},
    }


@logger
class Cloud:
    """
    VM operations as the director invokes them, wired up from `Settings`.

    """
    def __init__(
        self,
        settings: Settings,
        session: Optional[Session] = None,
        registry: Optional[RegistryClient] = None,
    ):
        self.settings = settings

        # All requests are made in the configured region, so the clients are shared
        session = session or settings.session()
        self.ec2_client = session.client("ec2", region_name=settings.region)
        self.elb_client = session.client("elb", region_name=settings.region)

        self.registry = registry or RegistryClient(
            settings.registry_endpoint,
            user=settings.registry_user,
            password=settings.registry_password,
        )
        self.az_selector = AvailabilityZoneSelector()
        self.instance_manager = InstanceManager(
            self.ec2_client,
            self.elb_client,
            self.registry,
            self.az_selector,
            settings,
            stats=StatsLogger(Path(settings.stats_path).expanduser()) if settings.stats_path else None,
        )

    def create_vm(
        self,
        agent_id: str,
        stemcell_id: str,
        resource_pool: Dict[str, Any],
        networks: Dict[str, Any],
        disk_locality: Optional[List[str]] = None,
        environment: Optional[Dict[str, Any]] = None,
    ) -> str:
        request = ProvisioningRequest.from_director(
            agent_id,
            stemcell_id,
            resource_pool,
            networks,
            disk_locality=disk_locality,
            environment=environment,
        )
        instance = self.instance_manager.provision(request)

        # An instance whose agent can't find its settings is useless, don't leak it
        with self.instance_manager.terminate_on_failure(instance):
            self.registry.update_settings(
                instance.id,
                initial_agent_settings(agent_id, networks, environment),
            )

        return instance.id

    def delete_vm(self, instance_id: str):
        self.logger.info(f"Deleting VM `{instance_id}`")
        self.instance_manager.find(instance_id).terminate()

    def has_vm(self, instance_id: str) -> bool:
        return self.instance_manager.find(instance_id).exists()

    def reboot_vm(self, instance_id: str):
        self.instance_manager.find(instance_id).reboot()
