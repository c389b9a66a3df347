from threading import Event
from time import monotonic
from typing import Any, Callable, Collection, Optional

from aws_cpi.errors import OperationCancelled, WaitStateError, WaitTimeoutError
from aws_cpi.logging import logger


@logger
class ResourceWait:
    def wait_for(
        self,
        description: str,
        fetch: Callable[[], Any],
        target_states: Collection[Any],
        failure_states: Collection[Any] = (),
        timeout: float = 600,
        interval: float = 5,
        cancel_event: Optional[Event] = None,
        state_of: Callable[[Any], Any] = lambda resource: resource,
    ):
        """
        Poll `fetch` until the state of the returned resource is one of `target_states`.

        :param fetch: Returns the current resource, or None if the provider doesn't know
            about it yet (we keep polling in that case).
        :param state_of: Extracts the state from what `fetch` returned.
        :param cancel_event: When set, we stop polling as soon as possible.

        :returns: The last resource returned by `fetch`

        """
        cancel_event = cancel_event or Event()
        deadline = monotonic() + timeout

        while True:
            if cancel_event.is_set():
                raise OperationCancelled(f"Stopped waiting for {description}")

            resource = fetch()
            state = state_of(resource) if resource is not None else None
            self.logger.info(f"{description} - {state}")

            # Once we resolve the status of the resource, we don't have to wait any longer
            if state in target_states:
                return resource
            if state in failure_states:
                raise WaitStateError(f"{description} ended up in state `{state}`", state=str(state))

            remaining = deadline - monotonic()
            if remaining <= 0:
                raise WaitTimeoutError(
                    f"{description} did not reach `{list(target_states)}` within {timeout} seconds"
                )

            if cancel_event.wait(min(interval, remaining)):
                raise OperationCancelled(f"Stopped waiting for {description}")
