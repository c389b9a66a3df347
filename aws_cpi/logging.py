from functools import wraps
from logging import (
    INFO,
    Logger,
    basicConfig,
    getLogger,
)
from typing import Callable, TypeVar, Union


DecoratedClass = TypeVar("DecoratedClass")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoggingClassStub:
    logger: Logger


def configure_logging(level: Union[int, str] = INFO):
    basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    # basicConfig is a no-op once the root logger has handlers, so the level of our
    # own namespace is set explicitly
    getLogger("aws_cpi").setLevel(level)


def logger(cls) -> Callable[[DecoratedClass], type[LoggingClassStub]]:
    """
    Decorate a class with a .logger attribute, namespaced under `aws_cpi` so a
    director embedding this library can route our records separately from its own

    """
    basicConfig(
        level=INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )

    @wraps(cls, updated=())
    class WrappedClass(cls, LoggingClassStub):
        logger = getLogger(f"aws_cpi.{cls.__name__}")

    return WrappedClass
