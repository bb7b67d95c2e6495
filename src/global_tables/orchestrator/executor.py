"""Parallel per-region execution and run result types."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from global_tables.core.resolver import RegionDiffResult
from global_tables.utils.errors import DeploymentError
from global_tables.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class ExecutionStatus(Enum):
    """Status of execution."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RegionOutcome:
    """Result of one region's work."""
    region: str
    value: object = None
    error: Optional[Exception] = None

    def is_success(self) -> bool:
        return self.error is None and self.value is not False


@dataclass
class TableResult:
    """Outcome for one table."""
    table_name: str
    status: ExecutionStatus
    diff: Optional[RegionDiffResult] = None
    regions: List[str] = field(default_factory=list)
    error: Optional[DeploymentError] = None

    def is_failed(self) -> bool:
        return self.status == ExecutionStatus.FAILED


@dataclass
class RunResult:
    """Outcome of a deploy or remove run."""
    status: ExecutionStatus
    table_results: Dict[str, TableResult] = field(default_factory=dict)
    stack_results: Dict[str, bool] = field(default_factory=dict)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: float = 0.0  # seconds
    message: Optional[str] = None
    error: Optional[DeploymentError] = None

    def is_success(self) -> bool:
        return self.status != ExecutionStatus.FAILED

    def failed_tables(self) -> List[str]:
        return [name for name, r in self.table_results.items() if r.is_failed()]

    def finish(self) -> 'RunResult':
        """Stamp end time and derive the overall status from table results."""
        self.end_time = datetime.now(timezone.utc)
        if self.start_time:
            self.duration = (self.end_time - self.start_time).total_seconds()
        if self.status != ExecutionStatus.SKIPPED and (self.failed_tables() or self.error):
            self.status = ExecutionStatus.FAILED
        return self


class RegionExecutor:
    """Runs one independent unit of work per region and joins them all."""

    def __init__(self, max_workers: int = 10):
        self.max_workers = max_workers

    def run(
        self,
        regions: Sequence[str],
        work: Callable[[str], T],
        parallel: bool = True
    ) -> Dict[str, RegionOutcome]:
        """Execute work for every region.

        Exceptions are captured per region so one failing region does not
        abandon the others; callers decide what a failure means.

        Args:
            regions: Regions to work on
            work: Callable taking the region name
            parallel: Whether to run regions on a thread pool

        Returns:
            Outcome per region, in input order
        """
        outcomes: Dict[str, RegionOutcome] = {}

        if not parallel or len(regions) <= 1:
            for region in regions:
                outcomes[region] = self._run_one(region, work)
            return outcomes

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(regions))) as executor:
            future_to_region = {executor.submit(work, region): region for region in regions}
            for future in as_completed(future_to_region):
                region = future_to_region[future]
                try:
                    outcomes[region] = RegionOutcome(region=region, value=future.result())
                except Exception as e:
                    logger.error(f"Work in {region} failed: {e}")
                    outcomes[region] = RegionOutcome(region=region, error=e)

        return {region: outcomes[region] for region in regions}

    @staticmethod
    def _run_one(region: str, work: Callable[[str], T]) -> RegionOutcome:
        try:
            return RegionOutcome(region=region, value=work(region))
        except Exception as e:
            logger.error(f"Work in {region} failed: {e}")
            return RegionOutcome(region=region, error=e)
