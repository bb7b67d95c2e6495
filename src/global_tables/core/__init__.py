"""Replication reconciliation core: region diffing and status polling."""

from global_tables.core.resolver import (
    DiffStrategy,
    RegionDiffResolver,
    RegionDiffResult,
    TopologyLookup,
)
from global_tables.core.poller import (
    DEFAULT_POLL_INTERVAL,
    REPLICA_FAILURE_STATUSES,
    REPLICA_SUCCESS_STATUSES,
    STACK_FAILURE_STATUSES,
    STACK_SUCCESS_STATUSES,
    PollState,
    ProgressObserver,
    StackStatusPoller,
    StatusQuery,
)

__all__ = [
    'DiffStrategy',
    'RegionDiffResolver',
    'RegionDiffResult',
    'TopologyLookup',
    'DEFAULT_POLL_INTERVAL',
    'REPLICA_FAILURE_STATUSES',
    'REPLICA_SUCCESS_STATUSES',
    'STACK_FAILURE_STATUSES',
    'STACK_SUCCESS_STATUSES',
    'PollState',
    'ProgressObserver',
    'StackStatusPoller',
    'StatusQuery',
]
