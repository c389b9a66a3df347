from typing import Optional

from botocore.exceptions import ClientError


# The only provider error we recover from locally: two concurrent creations picked
# the same address out of an overlapping manual IP pool
IP_IN_USE_ERROR_CODE = "InvalidIPAddress.InUse"
NOT_FOUND_ERROR_CODES = {
    "InvalidInstanceID.NotFound",
    "InvalidSpotInstanceRequestID.NotFound",
}


class CpiError(Exception):
    pass


class CreationError(CpiError):
    """
    Raised when we cannot obtain an instance from the provider. The underlying provider
    error is kept on `cause` (and chained through `__cause__` where we raise it).

    """
    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        operation: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.cause = cause
        self.operation = operation
        self.resource_id = resource_id

    def __str__(self):
        context = ", ".join(
            f"{key}={value}"
            for key, value in [("operation", self.operation), ("resource", self.resource_id)]
            if value
        )
        message = super().__str__()
        if context:
            message = f"{message} ({context})"
        if self.cause is not None:
            message = f"{message}: {self.cause}"
        return message


class SpotRequestError(CreationError):
    pass


class TransientConflictError(CpiError):
    """
    Private IP address is already in use. Retried locally, only escalated once
    the attempts are exhausted.

    """
    def __init__(self, cause: ClientError):
        super().__init__(str(cause))
        self.cause = cause


class PostCreationError(CpiError):
    """
    Failure in one of the steps after the provider accepted our instance, e.g. attaching
    it to a load balancer. The instance gets terminated before this propagates.

    """
    def __init__(self, message: str, instance_id: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.instance_id = instance_id
        self.cause = cause


class VMNotFoundError(CpiError):
    pass


class AvailabilityZoneConflictError(CpiError):
    pass


class WaitTimeoutError(CpiError, TimeoutError):
    pass


class WaitStateError(CpiError):
    def __init__(self, message: str, state: str):
        super().__init__(message)
        self.state = state


class OperationCancelled(CpiError):
    pass


class RegistryError(CpiError):
    pass


def error_code(error: BaseException) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def is_ip_in_use(error: BaseException) -> bool:
    return error_code(error) == IP_IN_USE_ERROR_CODE


def is_not_found(error: BaseException) -> bool:
    return error_code(error) in NOT_FOUND_ERROR_CODES
