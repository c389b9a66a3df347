from typing import Iterable, Optional

from aws_cpi.errors import AvailabilityZoneConflictError
from aws_cpi.logging import logger


@logger
class AvailabilityZoneSelector:
    """
    Reduce the zone hints of a request (disk locality, resource pool, subnet) to the
    single zone the instance has to live in.

    """
    def common_availability_zone(
        self,
        volume_zones: Iterable[str],
        resource_pool_zone: Optional[str],
        subnet_zone: Optional[str],
    ) -> Optional[str]:
        volume_zones = list(volume_zones or [])
        zones = {zone for zone in volume_zones + [resource_pool_zone, subnet_zone] if zone}

        if len(zones) > 1:
            raise AvailabilityZoneConflictError(
                f"Can't use multiple availability zones: volumes `{sorted(set(volume_zones))}`, "
                f"resource pool `{resource_pool_zone}`, subnet `{subnet_zone}`"
            )

        zone = zones.pop() if zones else None
        self.logger.debug(f"Resolved availability zone `{zone}`")
        return zone
