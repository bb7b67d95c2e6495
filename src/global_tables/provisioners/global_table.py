"""Links tables into DynamoDB global tables.

Two API generations exist and behave differently:

* 2017.11.29 ("v1"): replica tables are created separately, then joined with
  CreateGlobalTable / UpdateGlobalTable. Membership is read from
  DescribeGlobalTable and includes the source region.
* 2019.11.21 ("v2"): DynamoDB creates replicas itself through UpdateTable
  ReplicaUpdates, one region per call. Membership is read from the table's
  own Replicas list, which excludes the source region.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from botocore.exceptions import ClientError

from global_tables.core.poller import (
    REPLICA_FAILURE_STATUSES,
    REPLICA_SUCCESS_STATUSES,
    StackStatusPoller,
)
from global_tables.core.resolver import DiffStrategy, RegionDiffResult, TopologyLookup
from global_tables.utils.aws_client import AWSClientManager
from global_tables.utils.errors import (
    ErrorContext,
    ProvisioningError,
    TopologyNotFoundError,
    ValidationError,
    is_not_found,
)
from global_tables.utils.logging import get_logger

logger = get_logger(__name__)

REPLICA_DELETED = 'DELETED'
STREAM_VIEW_TYPE = 'NEW_AND_OLD_IMAGES'

PollerFactory = Callable[..., StackStatusPoller]


class GlobalTableLinker(ABC):
    """Reads replication topology and issues the linkage calls for one version."""

    strategy: DiffStrategy

    def __init__(
        self,
        client_manager: AWSClientManager,
        source_region: str,
        poller_factory: Optional[PollerFactory] = None
    ):
        """Initialize linker.

        Args:
            client_manager: Client manager handing out per-region boto3 clients
            source_region: Region of the source tables
            poller_factory: Builds a poller for given success/failure statuses
        """
        self.client_manager = client_manager
        self.source_region = source_region
        self.poller_factory = poller_factory or StackStatusPoller

    @property
    def dynamodb(self):
        return self.client_manager.get_client('dynamodb', self.source_region)

    def topology_lookup(self, table_name: str) -> TopologyLookup:
        """Return a lookup that fetches current membership on every call."""
        def lookup() -> List[str]:
            try:
                return self.describe_topology(table_name)
            except ClientError as e:
                if is_not_found(e):
                    raise TopologyNotFoundError(
                        f"No replication found for {table_name}",
                        context=ErrorContext(table_name=table_name, region=self.source_region),
                        cause=e
                    )
                raise
        return lookup

    @abstractmethod
    def describe_topology(self, table_name: str) -> List[str]:
        """Return the regions currently replicating the table."""

    @abstractmethod
    def link(self, table_name: str, diff: RegionDiffResult) -> None:
        """Add the diff's missing regions to the table's replication."""

    @abstractmethod
    def unlink(self, table_name: str, regions: Sequence[str]) -> List[str]:
        """Remove regions from the table's replication.

        Returns:
            The regions that were actually removed
        """


class LegacyGlobalTableLinker(GlobalTableLinker):
    """Global tables version 2017.11.29."""

    strategy = DiffStrategy.INCLUDE_SOURCE

    def describe_topology(self, table_name: str) -> List[str]:
        response = self.dynamodb.describe_global_table(GlobalTableName=table_name)
        return [rg['RegionName'] for rg in response['GlobalTableDescription']['ReplicationGroup']]

    def ensure_stream(self, table_name: str) -> None:
        """Enable NEW_AND_OLD_IMAGES streams on the source table if needed."""
        table = self.dynamodb.describe_table(TableName=table_name)['Table']
        stream = table.get('StreamSpecification') or {}

        if stream.get('StreamEnabled'):
            if stream.get('StreamViewType') != STREAM_VIEW_TYPE:
                raise ValidationError(
                    f"Table {table_name} streams {stream.get('StreamViewType')}, "
                    f"global tables need {STREAM_VIEW_TYPE}",
                    context=ErrorContext(table_name=table_name, region=self.source_region),
                    suggestions=[f'Set StreamViewType: {STREAM_VIEW_TYPE} on the table']
                )
            return

        logger.info(f"Enabling streams on {table_name}")
        self.dynamodb.update_table(
            TableName=table_name,
            StreamSpecification={'StreamEnabled': True, 'StreamViewType': STREAM_VIEW_TYPE}
        )
        self.dynamodb.get_waiter('table_exists').wait(TableName=table_name)

    def link(self, table_name: str, diff: RegionDiffResult) -> None:
        if diff.is_noop():
            return

        if not diff.adding_new_regions:
            self.ensure_stream(table_name)
            replication_group = list(dict.fromkeys([self.source_region, *diff.missing_regions]))
            self.dynamodb.create_global_table(
                GlobalTableName=table_name,
                ReplicationGroup=[{'RegionName': r} for r in replication_group]
            )
            logger.info(f"Created global table setup for {table_name}: {', '.join(replication_group)}")
        else:
            self.dynamodb.update_global_table(
                GlobalTableName=table_name,
                ReplicaUpdates=[{'Create': {'RegionName': r}} for r in diff.missing_regions]
            )
            logger.info(f"Added {', '.join(diff.missing_regions)} to global table {table_name}")

    def unlink(self, table_name: str, regions: Sequence[str]) -> List[str]:
        try:
            current = set(self.describe_topology(table_name))
        except ClientError as e:
            if not is_not_found(e):
                raise
            logger.info(f"Global table {table_name} does not exist. Nothing to unlink")
            return []

        to_remove = [r for r in regions if r in current and r != self.source_region]
        if not to_remove:
            return []

        self.dynamodb.update_global_table(
            GlobalTableName=table_name,
            ReplicaUpdates=[{'Delete': {'RegionName': r}} for r in to_remove]
        )
        logger.info(f"Removing {', '.join(to_remove)} from global table {table_name}...")

        poller = self.poller_factory(success_statuses={'ACTIVE'}, failure_statuses=set())
        poller.poll(
            lambda: self.removal_status(table_name, to_remove),
            description=f"removal of {', '.join(to_remove)} from {table_name}"
        )
        logger.info(f"Removed {', '.join(to_remove)} from global table {table_name}")
        return to_remove

    def removal_status(self, table_name: str, regions: Sequence[str]) -> str:
        """ACTIVE once the global table is idle and none of the regions remain."""
        description = self.dynamodb.describe_global_table(GlobalTableName=table_name)['GlobalTableDescription']
        status = description.get('GlobalTableStatus', 'UPDATING')
        if status != 'ACTIVE':
            return status

        members = {rg['RegionName'] for rg in description.get('ReplicationGroup', [])}
        return 'UPDATING' if members & set(regions) else status


class ReplicaGlobalTableLinker(GlobalTableLinker):
    """Global tables version 2019.11.21."""

    strategy = DiffStrategy.REQUESTED_ONLY

    def describe_topology(self, table_name: str) -> List[str]:
        table = self.dynamodb.describe_table(TableName=table_name)['Table']
        return [r['RegionName'] for r in table.get('Replicas', [])]

    def replica_status(self, table_name: str, region: str) -> str:
        """Status of one replica; the table's own status while it is busy.

        A replica missing from the list reports DELETED, so the same query
        serves both creation and removal waits.
        """
        table = self.dynamodb.describe_table(TableName=table_name)['Table']
        if table.get('TableStatus') != 'ACTIVE':
            return table.get('TableStatus', 'UPDATING')

        for replica in table.get('Replicas', []):
            if replica['RegionName'] == region:
                return replica.get('ReplicaStatus', 'CREATING')
        return REPLICA_DELETED

    def link(self, table_name: str, diff: RegionDiffResult) -> None:
        poller = self.poller_factory(
            success_statuses=REPLICA_SUCCESS_STATUSES,
            failure_statuses=REPLICA_FAILURE_STATUSES
        )

        # UpdateTable accepts a single replica change per call
        for region in diff.missing_regions:
            logger.info(f"Creating replica of {table_name} in {region}...")
            self.dynamodb.update_table(
                TableName=table_name,
                ReplicaUpdates=[{'Create': {'RegionName': region}}]
            )
            # Poll until the replica leaves CREATING; DELETED here means it has not appeared yet
            active = poller.poll(
                lambda: self._creation_status(table_name, region),
                description=f"replica of {table_name} in {region}"
            )
            if not active:
                raise ProvisioningError(
                    f"Replica of {table_name} in {region} failed: "
                    f"{self.replica_status(table_name, region)}",
                    context=ErrorContext(table_name=table_name, region=region, operation='create_replica')
                )
            logger.info(f"Replica of {table_name} in {region} is active")

    def unlink(self, table_name: str, regions: Sequence[str]) -> List[str]:
        try:
            current = set(self.describe_topology(table_name))
        except ClientError as e:
            if not is_not_found(e):
                raise
            logger.info(f"Table {table_name} does not exist. Nothing to unlink")
            return []

        poller = self.poller_factory(
            success_statuses={REPLICA_DELETED},
            failure_statuses=set()
        )

        removed = []
        for region in regions:
            if region not in current or region == self.source_region:
                continue
            logger.info(f"Deleting replica of {table_name} in {region}...")
            self.dynamodb.update_table(
                TableName=table_name,
                ReplicaUpdates=[{'Delete': {'RegionName': region}}]
            )
            poller.poll(
                lambda: self.replica_status(table_name, region),
                description=f"replica removal of {table_name} in {region}"
            )
            removed.append(region)
            logger.info(f"Replica of {table_name} in {region} deleted")
        return removed

    def _creation_status(self, table_name: str, region: str) -> str:
        status = self.replica_status(table_name, region)
        return 'CREATING' if status == REPLICA_DELETED else status


def build_linker(
    version: str,
    client_manager: AWSClientManager,
    source_region: str,
    poller_factory: Optional[PollerFactory] = None
) -> GlobalTableLinker:
    """Pick the linker for a configured global tables version ('v1' or 'v2')."""
    if version == 'v2':
        return ReplicaGlobalTableLinker(client_manager, source_region, poller_factory)
    return LegacyGlobalTableLinker(client_manager, source_region, poller_factory)
