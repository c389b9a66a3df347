from contextlib import contextmanager
from decimal import Decimal
from threading import Event
from time import time
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from aws_cpi.availability_zone import AvailabilityZoneSelector
from aws_cpi.errors import (
    CreationError,
    OperationCancelled,
    SpotRequestError,
    TransientConflictError,
    WaitStateError,
    WaitTimeoutError,
    is_ip_in_use,
    is_not_found,
)
from aws_cpi.instance import Instance
from aws_cpi.logging import logger
from aws_cpi.models import (
    CreatePath,
    InstanceParameters,
    ProvisioningRequest,
    SpotRequestState,
)
from aws_cpi.parameters import (
    freeze_parameters,
    set_availability_zone_parameter,
    set_key_name_parameter,
    set_security_groups_parameter,
    set_user_data_parameter,
    set_vpc_parameters,
)
from aws_cpi.registry import RegistryClient
from aws_cpi.settings import Settings
from aws_cpi.stats_logger import ProvisionStat, StatsLogger
from aws_cpi.waiter import ResourceWait


@logger
class InstanceManager:
    """
    Turn provisioning requests into running EC2 instances.

    The manager only keeps read-only configuration and client handles, so concurrent
    `provision` / `find` calls on one manager are safe.

    """
    def __init__(
        self,
        ec2_client,
        elb_client,
        registry: RegistryClient,
        az_selector: AvailabilityZoneSelector,
        settings: Settings,
        stats: Optional[StatsLogger] = None,
        waiter: Optional[ResourceWait] = None,
    ):
        self.ec2_client = ec2_client
        self.elb_client = elb_client
        self.registry = registry
        self.az_selector = az_selector
        self.settings = settings
        self.stats = stats
        self.waiter = waiter or ResourceWait()

    def provision(self, request: ProvisioningRequest, cancel_event: Optional[Event] = None) -> Instance:
        """
        Create the instance, wait until it runs and attach it to the resource pool's
        load balancers. If anything after the creation fails the instance is terminated
        and the original error propagates.

        """
        start = time()
        instance = None

        try:
            instance = self.create(request, cancel_event=cancel_event)

            with self.terminate_on_failure(instance):
                instance.wait_for_running(cancel_event=cancel_event)

                if request.resource_pool.elbs:
                    instance.attach_to_load_balancers(request.resource_pool.elbs)
        except Exception as e:
            self.record(request, success=False, start=start, instance=instance, error=e)
            raise

        self.record(request, success=True, start=start, instance=instance)
        return instance

    def create(self, request: ProvisioningRequest, cancel_event: Optional[Event] = None) -> Instance:
        instance_params = self.instance_params(request)

        if request.create_path == CreatePath.SPOT:
            instance_id = self.create_spot_instance(
                instance_params,
                request.resource_pool.spot_bid_price,
                cancel_event=cancel_event,
            )
        else:
            instance_id = self.create_on_demand_instance(instance_params)

        self.logger.info(f"Created instance `{instance_id}` for agent `{request.agent_id}`")
        return self.find(instance_id)

    def find(self, instance_id: str) -> Instance:
        return Instance(
            instance_id,
            self.ec2_client,
            self.elb_client,
            self.registry,
            self.settings,
            waiter=self.waiter,
        )

    def instance_params(self, request: ProvisioningRequest) -> InstanceParameters:
        resource_pool = request.resource_pool
        instance_params: Dict[str, Any] = {
            "image_id": request.stemcell_id,
            "instance_type": resource_pool.instance_type,
            "count": 1,
        }

        set_key_name_parameter(instance_params, resource_pool.key_name, self.settings.default_key_name)
        set_security_groups_parameter(instance_params, request.networks, self.settings.default_security_groups)
        set_vpc_parameters(instance_params, request.networks)

        subnet = self.describe_subnet(instance_params.get("subnet_id"))
        set_availability_zone_parameter(
            instance_params,
            self.az_selector,
            request.disk_locality,
            resource_pool.availability_zone,
            subnet["AvailabilityZone"] if subnet else None,
        )
        set_user_data_parameter(instance_params, self.registry.endpoint, request.networks)

        return freeze_parameters(instance_params)

    def create_on_demand_instance(self, instance_params: InstanceParameters) -> str:
        security_group_ids = None
        if instance_params.subnet_id:
            # Inside a VPC subnet, run_instances only accepts group ids
            security_group_ids = self.security_group_ids(instance_params)

        run_kwargs = instance_params.run_instances_kwargs(security_group_ids)
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.instance_create_max_attempts),
            wait=wait_fixed(self.settings.instance_create_wait_time),
            retry=retry_if_exception_type(TransientConflictError),
            before_sleep=self.log_ip_conflict,
            reraise=True,
        )

        try:
            response = retrying(self.run_instance, run_kwargs)
        except TransientConflictError as e:
            raise CreationError(
                f"Private IP address still in use after {self.settings.instance_create_max_attempts} attempts",
                cause=e.cause,
                operation="run_instances",
                resource_id=instance_params.private_ip_address,
            ) from e.cause
        except ClientError as e:
            raise CreationError(
                "Could not create instance",
                cause=e,
                operation="run_instances",
                resource_id=instance_params.image_id,
            ) from e

        return response["Instances"][0]["InstanceId"]

    def run_instance(self, run_kwargs: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self.ec2_client.run_instances(**run_kwargs)
        except ClientError as e:
            if is_ip_in_use(e):
                raise TransientConflictError(e) from e
            raise

    def log_ip_conflict(self, retry_state):
        self.logger.warning(
            f"Private IP address already in use (attempt {retry_state.attempt_number}), "
            f"retrying in {self.settings.instance_create_wait_time} seconds"
        )

    def create_spot_instance(
        self,
        instance_params: InstanceParameters,
        spot_bid_price: Decimal,
        cancel_event: Optional[Event] = None,
    ) -> str:
        launch_specification = instance_params.launch_specification(self.security_group_ids(instance_params))

        self.logger.info(f"Requesting spot instance with bid price `{spot_bid_price}`")
        try:
            response = self.ec2_client.request_spot_instances(
                SpotPrice=str(spot_bid_price),
                InstanceCount=1,
                LaunchSpecification=launch_specification,
            )
        except ClientError as e:
            raise SpotRequestError(
                "Could not request spot instance",
                cause=e,
                operation="request_spot_instances",
            ) from e

        spot_request_id = response["SpotInstanceRequests"][0]["SpotInstanceRequestId"]

        try:
            spot_request = self.waiter.wait_for(
                f"Spot request `{spot_request_id}`",
                lambda: self.describe_spot_request(spot_request_id),
                target_states={SpotRequestState.ACTIVE},
                failure_states={state for state in SpotRequestState if state.is_terminal_failure},
                timeout=self.settings.spot_timeout,
                interval=self.settings.spot_poll_interval,
                cancel_event=cancel_event,
                state_of=self.spot_request_state,
            )
        except OperationCancelled:
            self.cancel_spot_request(spot_request_id)
            raise
        except (WaitTimeoutError, WaitStateError, ClientError) as e:
            self.cancel_spot_request(spot_request_id)
            raise SpotRequestError(
                "Spot request did not become active",
                cause=e,
                operation="describe_spot_instance_requests",
                resource_id=spot_request_id,
            ) from e

        return spot_request["InstanceId"]

    def spot_request_state(self, spot_request: Dict[str, Any]) -> SpotRequestState:
        try:
            return SpotRequestState(spot_request["State"])
        except ValueError:
            raise WaitStateError(
                f"Spot request `{spot_request.get('SpotInstanceRequestId')}` is in unknown state `{spot_request['State']}`",
                state=spot_request["State"],
            )

    def describe_spot_request(self, spot_request_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.ec2_client.describe_spot_instance_requests(
                SpotInstanceRequestIds=[spot_request_id],
            )
        except ClientError as e:
            # Requests are not always visible right after they were submitted
            if is_not_found(e):
                return None
            raise

        spot_requests = response.get("SpotInstanceRequests", [])
        return spot_requests[0] if spot_requests else None

    def cancel_spot_request(self, spot_request_id: str):
        self.logger.info(f"Cancelling spot request `{spot_request_id}`")
        try:
            self.ec2_client.cancel_spot_instance_requests(SpotInstanceRequestIds=[spot_request_id])
        except ClientError as e:
            self.logger.warning(f"Failed to cancel spot request `{spot_request_id}`: {e}")

    def security_group_ids(self, instance_params: InstanceParameters) -> List[str]:
        """
        Translate the group names of the instance into the ids that launch specifications
        and VPC launches address them by.

        """
        names = list(instance_params.security_groups)
        if not names:
            return []

        try:
            response = self.ec2_client.describe_security_groups(
                Filters=[{"Name": "group-name", "Values": names}],
            )
        except ClientError as e:
            raise CreationError(
                "Could not look up security groups",
                cause=e,
                operation="describe_security_groups",
                resource_id=", ".join(names),
            ) from e

        ids_by_name = {group["GroupName"]: group["GroupId"] for group in response["SecurityGroups"]}
        missing = [name for name in names if name not in ids_by_name]
        if missing:
            raise CreationError(
                "Unknown security groups",
                operation="describe_security_groups",
                resource_id=", ".join(missing),
            )

        return [ids_by_name[name] for name in names]

    def describe_subnet(self, subnet_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not subnet_id:
            return None

        try:
            response = self.ec2_client.describe_subnets(SubnetIds=[subnet_id])
        except ClientError as e:
            raise CreationError(
                "Could not look up subnet",
                cause=e,
                operation="describe_subnets",
                resource_id=subnet_id,
            ) from e

        subnets = response.get("Subnets", [])
        return subnets[0] if subnets else None

    @contextmanager
    def terminate_on_failure(self, instance: Instance):
        """
        Terminate `instance` if the block raises. Termination is best effort: its own
        failure is logged and the original error is what propagates.

        """
        try:
            yield instance
        except BaseException as e:
            self.logger.error(f"Failed to bring up `{instance.id}`, terminating it: {e}")
            try:
                instance.terminate()
            except Exception as terminate_error:
                self.logger.warning(f"Failed to terminate `{instance.id}`: {terminate_error}")
            raise

    def record(
        self,
        request: ProvisioningRequest,
        success: bool,
        start: float,
        instance: Optional[Instance] = None,
        error: Optional[BaseException] = None,
    ):
        if self.stats is None:
            return

        self.stats.write(
            ProvisionStat(
                agent_id=request.agent_id,
                create_path=request.create_path,
                success=success,
                instance_id=instance.id if instance else None,
                rolled_back=instance is not None and not success,
                seconds=time() - start,
                error=str(error) if error else None,
            )
        )
