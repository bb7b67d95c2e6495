"""Works out which regions still need a replica of a table."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Sequence

from global_tables.utils.errors import TopologyNotFoundError
from global_tables.utils.logging import get_logger

logger = get_logger(__name__)

TopologyLookup = Callable[[], Iterable[str]]


class DiffStrategy(Enum):
    """How requested regions are compared against the reported topology.

    INCLUDE_SOURCE matches global tables version 2017.11.29, where the global
    table descriptor lists every member including the source region.
    REQUESTED_ONLY matches version 2019.11.21, where the table descriptor
    lists only the other replicas.
    """
    INCLUDE_SOURCE = "include_source"
    REQUESTED_ONLY = "requested_only"


@dataclass
class RegionDiffResult:
    """Regions still missing a replica and whether replication already exists."""
    missing_regions: List[str] = field(default_factory=list)
    adding_new_regions: bool = False

    def is_noop(self) -> bool:
        return not self.missing_regions


class RegionDiffResolver:
    """Diffs requested replica regions against the current replication topology."""

    def __init__(self, strategy: DiffStrategy = DiffStrategy.INCLUDE_SOURCE):
        self.strategy = strategy

    def resolve(
        self,
        source_region: str,
        requested_regions: Sequence[str],
        topology_lookup: TopologyLookup
    ) -> RegionDiffResult:
        """Decide which regions need a replica.

        Args:
            source_region: Region holding the source table
            requested_regions: Regions that should replicate the table
            topology_lookup: Callable returning the regions currently
                replicating the table; raises TopologyNotFoundError when no
                replication exists yet

        Returns:
            RegionDiffResult with missing regions in requested order. When
            nothing is replicated yet the requested regions come back exactly
            as given, duplicates included. Otherwise missing regions are
            deduplicated.

        Raises:
            Any exception from topology_lookup other than TopologyNotFoundError
        """
        try:
            topology = frozenset(topology_lookup())
        except TopologyNotFoundError:
            topology = frozenset()

        # Nothing replicated yet, whether the lookup found nothing or no descriptor exists
        if not topology:
            logger.info("No replication set up yet")
            return RegionDiffResult(missing_regions=list(requested_regions), adding_new_regions=False)

        missing = [r for r in self._candidates(source_region, requested_regions) if r not in topology]

        if not missing:
            logger.info(f"Already replicated in all requested regions: {', '.join(sorted(topology))}")
            return RegionDiffResult(missing_regions=[], adding_new_regions=False)

        return RegionDiffResult(missing_regions=missing, adding_new_regions=True)

    def _candidates(self, source_region: str, requested_regions: Sequence[str]) -> List[str]:
        if self.strategy == DiffStrategy.INCLUDE_SOURCE:
            regions = [source_region, *requested_regions]
        else:
            regions = [r for r in requested_regions if r != source_region]
        # dict keeps first occurrence order
        return list(dict.fromkeys(regions))
