from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from json import JSONEncoder, dumps
from pathlib import Path
from threading import Lock
from typing import List, Optional, Union

from aws_cpi.logging import logger
from aws_cpi.models import CreatePath


class StatsEncoder(JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Decimal):
            return str(obj)
        elif isinstance(obj, datetime):
            return obj.isoformat()
        return JSONEncoder.default(self, obj)


@dataclass
class ProvisionStat:
    agent_id: str
    create_path: CreatePath
    success: bool

    instance_id: Optional[str] = None
    # Set when a created instance had to be terminated again
    rolled_back: bool = False
    seconds: Optional[float] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    warnings: List[str] = field(default_factory=list)


@logger
class StatsLogger:
    """
    Append one json line per provisioning attempt. Losing a record is preferable to
    failing a provisioning call, so write errors are only logged.

    """
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.lock = Lock()

        if not self.path.exists():
            self.path.touch()

    def write(self, stat: ProvisionStat):
        try:
            line = dumps(asdict(stat), cls=StatsEncoder)
            with self.lock:
                with open(self.path, "a") as file:
                    file.write(line + "\n")
        except (OSError, TypeError, ValueError) as e:
            self.logger.warning(f"Could not record provisioning stat for `{stat.agent_id}`: {e}")
