from json import loads
from typing import Any, Dict, Optional

import httpx

from aws_cpi.errors import RegistryError
from aws_cpi.logging import logger


@logger
class RegistryClient:
    """
    Client of the registry that stores per-instance agent settings. The agent finds the
    registry through the `endpoint` we embed into its user data.

    """
    def __init__(
        self,
        endpoint: str,
        user: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.client = httpx.Client(
            base_url=endpoint.rstrip("/"),
            auth=(user, password) if user else None,
            timeout=timeout,
            transport=transport,
        )

    def update_settings(self, instance_id: str, settings: Dict[str, Any]):
        self.logger.info(f"Updating registry settings of `{instance_id}`")
        response = self.request("PUT", instance_id, json=settings)
        if response.status_code not in (200, 201, 204):
            raise RegistryError(
                f"Cannot update settings for `{instance_id}`, got HTTP {response.status_code}"
            )

    def read_settings(self, instance_id: str) -> Dict[str, Any]:
        response = self.request("GET", instance_id)
        if response.status_code != 200:
            raise RegistryError(
                f"Cannot read settings for `{instance_id}`, got HTTP {response.status_code}"
            )

        body = response.json()
        if "settings" not in body:
            raise RegistryError(f"Invalid registry response for `{instance_id}`: {body}")
        # The registry hands the settings back as an encoded json document
        return loads(body["settings"])

    def delete_settings(self, instance_id: str):
        self.logger.info(f"Deleting registry settings of `{instance_id}`")
        response = self.request("DELETE", instance_id)
        # Nothing to delete for instances that never got registered
        if response.status_code not in (200, 204, 404):
            raise RegistryError(
                f"Cannot delete settings for `{instance_id}`, got HTTP {response.status_code}"
            )

    def request(self, method: str, instance_id: str, **kwargs) -> httpx.Response:
        try:
            return self.client.request(method, f"/instances/{instance_id}/settings", **kwargs)
        except httpx.HTTPError as e:
            raise RegistryError(f"Registry request `{method}` for `{instance_id}` failed: {e}") from e
