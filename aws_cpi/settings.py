from typing import List, Optional

from boto3 import Session
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    region: str = "us-east-1"

    # Leave empty to fall back on the standard boto credential chain (instance
    # profile, ~/.aws/credentials, ...)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    default_key_name: Optional[str] = None
    # Used whenever no network in the request names its own security groups
    default_security_groups: List[str] = ["default"]

    registry_endpoint: str = "http://127.0.0.1:25777"
    registry_user: Optional[str] = None
    registry_password: Optional[str] = None

    # Retry of the on-demand create call when the private IP is already in use
    instance_create_wait_time: float = 5
    instance_create_max_attempts: int = 3

    spot_poll_interval: float = 5
    spot_timeout: float = 300

    running_poll_interval: float = 5
    running_timeout: float = 600
    terminate_timeout: float = 600

    # Optional jsonl file that receives one record per provisioning attempt
    stats_path: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix="AWS_CPI__")

    def session(self) -> Session:
        return Session(
            aws_access_key_id=self.aws_access_key_id,
            aws_secret_access_key=self.aws_secret_access_key,
            region_name=self.region,
        )
