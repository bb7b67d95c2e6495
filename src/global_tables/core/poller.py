"""Polling loop that waits for an asynchronous AWS operation to settle."""

import threading
import time
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Optional

from global_tables.utils.errors import OperationCancelledError, StackWaitTimeoutError
from global_tables.utils.logging import get_logger

logger = get_logger(__name__)

STACK_SUCCESS_STATUSES = frozenset({
    'CREATE_COMPLETE',
    'UPDATE_COMPLETE',
})

STACK_FAILURE_STATUSES = frozenset({
    'ROLLBACK_COMPLETE',
    'ROLLBACK_FAILED',
    'UPDATE_ROLLBACK_COMPLETE',
    'UPDATE_ROLLBACK_FAILED',
})

# ReplicaStatus values reported by DescribeTable for 2019.11.21 replicas
REPLICA_SUCCESS_STATUSES = frozenset({'ACTIVE'})
REPLICA_FAILURE_STATUSES = frozenset({
    'CREATION_FAILED',
    'REGION_DISABLED',
    'INACCESSIBLE_ENCRYPTION_CREDENTIALS',
})

DEFAULT_POLL_INTERVAL = 5.0

StatusQuery = Callable[[], str]
ProgressObserver = Callable[[str], None]


class PollState(Enum):
    """State of a poll loop."""
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"


class StackStatusPoller:
    """Queries a status until it reaches a terminal value.

    The status families are fixed at construction, so the same loop serves
    CloudFormation stacks (the default) and DynamoDB replicas. Sleeping
    happens on a threading.Event: other region workers keep running, and
    setting the event wakes the sleeper and cancels the wait.
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        success_statuses: Iterable[str] = STACK_SUCCESS_STATUSES,
        failure_statuses: Iterable[str] = STACK_FAILURE_STATUSES,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        observer: Optional[ProgressObserver] = None,
        sleep: Optional[Callable[[float], bool]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the poller.

        Args:
            poll_interval: Seconds to wait between status queries
            success_statuses: Terminal statuses that mean success
            failure_statuses: Terminal statuses that mean failure
            max_attempts: Maximum number of status queries, unbounded if None
            timeout: Maximum seconds to wait, unbounded if None
            cancel_event: Event that aborts the wait when set
            observer: Called with the status on every in-progress iteration
            sleep: Replacement for the cancellable sleep; returns True when
                cancelled. Used by tests.
            clock: Monotonic clock used for the timeout
        """
        self.poll_interval = poll_interval
        self.success_statuses: FrozenSet[str] = frozenset(success_statuses)
        self.failure_statuses: FrozenSet[str] = frozenset(failure_statuses)
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self.observer = observer
        self._sleep = sleep or self.cancel_event.wait
        self._clock = clock

    def classify(self, status: str) -> PollState:
        """Map a raw status string to a poll state."""
        if status in self.success_statuses:
            return PollState.SUCCESS
        if status in self.failure_statuses:
            return PollState.FAILED
        return PollState.IN_PROGRESS

    def poll(self, status_query: StatusQuery, description: str = 'operation') -> bool:
        """Block until the queried status is terminal.

        Args:
            status_query: Returns the latest status string
            description: Name of what is being waited on, for messages

        Returns:
            True if the terminal status is a success, False if it is a failure

        Raises:
            StackWaitTimeoutError: max_attempts or timeout was exceeded
            OperationCancelledError: the cancel event was set
        """
        started = self._clock()
        attempts = 0
        state = PollState.IN_PROGRESS
        status = None

        while state == PollState.IN_PROGRESS:
            if self.cancel_event.is_set():
                raise OperationCancelledError(f"Wait for {description} was cancelled")

            status = status_query()
            attempts += 1
            state = self.classify(status)
            if state != PollState.IN_PROGRESS:
                break

            if self.observer:
                self.observer(status)

            if self.max_attempts is not None and attempts >= self.max_attempts:
                raise StackWaitTimeoutError(
                    f"{description} still {status} after {attempts} checks",
                    last_status=status
                )
            if self.timeout is not None and self._clock() - started >= self.timeout:
                raise StackWaitTimeoutError(
                    f"{description} still {status} after {self.timeout:.0f}s",
                    last_status=status
                )

            if self._sleep(self.poll_interval):
                raise OperationCancelledError(f"Wait for {description} was cancelled")

        logger.debug(f"{description} reached {status} after {attempts} checks")
        return state == PollState.SUCCESS
