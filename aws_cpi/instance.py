from threading import Event
from typing import Any, Dict, Iterable, Optional

from botocore.exceptions import ClientError

from aws_cpi.errors import PostCreationError, RegistryError, VMNotFoundError, is_not_found
from aws_cpi.logging import logger
from aws_cpi.models import InstanceState
from aws_cpi.registry import RegistryClient
from aws_cpi.settings import Settings
from aws_cpi.waiter import ResourceWait


@logger
class Instance:
    """
    Handle on a single EC2 instance. Creating one never talks to the provider: an id
    that doesn't exist only fails once an operation is invoked on the handle.

    """
    def __init__(
        self,
        instance_id: str,
        ec2_client,
        elb_client,
        registry: RegistryClient,
        settings: Settings,
        waiter: Optional[ResourceWait] = None,
    ):
        self.instance_id = instance_id
        self.ec2_client = ec2_client
        self.elb_client = elb_client
        self.registry = registry
        self.settings = settings
        self.waiter = waiter or ResourceWait()

    @property
    def id(self) -> str:
        return self.instance_id

    def __repr__(self):
        return f"Instance({self.instance_id!r})"

    def describe(self) -> Dict[str, Any]:
        response = self.ec2_client.describe_instances(InstanceIds=[self.instance_id])
        for reservation in response["Reservations"]:
            for instance in reservation["Instances"]:
                return instance
        raise VMNotFoundError(f"VM `{self.instance_id}` not found")

    def state(self) -> InstanceState:
        return InstanceState.from_code(self.describe()["State"]["Code"])

    def exists(self) -> bool:
        try:
            return self.state() != InstanceState.TERMINATED
        except VMNotFoundError:
            return False
        except ClientError as e:
            if is_not_found(e):
                return False
            raise

    def wait_for_running(self, cancel_event: Optional[Event] = None):
        self.waiter.wait_for(
            f"Instance `{self.instance_id}`",
            # Freshly created instances can briefly be unknown to describe calls
            lambda: self._state_or(None),
            target_states={InstanceState.RUNNING},
            failure_states={InstanceState.SHUTTING_DOWN, InstanceState.TERMINATED},
            timeout=self.settings.running_timeout,
            interval=self.settings.running_poll_interval,
            cancel_event=cancel_event,
        )

    def attach_to_load_balancers(self, load_balancer_names: Iterable[str]):
        for name in load_balancer_names:
            self.logger.info(f"Attaching `{self.instance_id}` to load balancer `{name}`")
            try:
                self.elb_client.register_instances_with_load_balancer(
                    LoadBalancerName=name,
                    Instances=[{"InstanceId": self.instance_id}],
                )
            except ClientError as e:
                raise PostCreationError(
                    f"Could not attach `{self.instance_id}` to load balancer `{name}`",
                    instance_id=self.instance_id,
                    cause=e,
                ) from e

    def reboot(self):
        self.logger.info(f"Rebooting `{self.instance_id}`")
        self.ec2_client.reboot_instances(InstanceIds=[self.instance_id])

    def terminate(self, fast: bool = False):
        """
        :param fast: Return as soon as the provider accepted the termination instead of
            waiting for the instance to be gone.

        """
        try:
            self.logger.info(f"Terminating `{self.instance_id}`")
            self.ec2_client.terminate_instances(InstanceIds=[self.instance_id])
        except ClientError as e:
            if is_not_found(e):
                self.logger.warning(f"Failed to terminate `{self.instance_id}` because it was not found")
                raise VMNotFoundError(f"VM `{self.instance_id}` not found") from e
            raise
        finally:
            self.delete_registry_settings()

        if fast:
            return

        self.waiter.wait_for(
            f"Instance `{self.instance_id}`",
            # Instances that are already gone from describe calls count as terminated
            lambda: self._state_or(InstanceState.TERMINATED),
            target_states={InstanceState.TERMINATED},
            timeout=self.settings.terminate_timeout,
            interval=self.settings.running_poll_interval,
        )

    def delete_registry_settings(self):
        # Must not replace an error raised by the termination itself
        try:
            self.registry.delete_settings(self.instance_id)
        except RegistryError as e:
            self.logger.warning(f"Failed to delete registry settings of `{self.instance_id}`: {e}")

    def _state_or(self, default: Optional[InstanceState]) -> Optional[InstanceState]:
        try:
            return self.state()
        except VMNotFoundError:
            return default
        except ClientError as e:
            if is_not_found(e):
                return default
            raise
