"""Coordinates discovery, reconciliation, provisioning and linkage of global tables."""

import functools
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from global_tables.config.models import GlobalTablesConfig, ServiceConfig
from global_tables.core.poller import ProgressObserver, StackStatusPoller
from global_tables.core.resolver import RegionDiffResolver, RegionDiffResult
from global_tables.orchestrator.executor import (
    ExecutionStatus,
    RegionExecutor,
    RunResult,
    TableResult,
)
from global_tables.provisioners.global_table import GlobalTableLinker, build_linker
from global_tables.provisioners.replica_table import ReplicaTableProvisioner
from global_tables.provisioners.stack import StackProvisioner
from global_tables.utils.aws_client import AWSClientManager
from global_tables.utils.errors import (
    ConfigurationError,
    ErrorContext,
    ProvisioningError,
    error_handler,
)
from global_tables.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


@dataclass
class TableStatusReport:
    """Current replication of one table, as shown by the status command."""
    table_name: str
    replicated_regions: List[str] = field(default_factory=list)
    diff: Optional[RegionDiffResult] = None


class GlobalTableOrchestrator:
    """Runs the deploy, remove and status flows for one service."""

    def __init__(
        self,
        config: ServiceConfig,
        client_manager: AWSClientManager,
        template: Optional[Dict[str, Any]] = None,
        observer: Optional[ProgressObserver] = None,
        cancel_event: Optional[threading.Event] = None,
        max_workers: int = 10,
        parallel: bool = True
    ):
        """Initialize orchestrator.

        Args:
            config: Validated service configuration
            client_manager: AWS client manager for the source region
            template: Compiled CloudFormation template, needed when the
                template is deployed into replica regions
            observer: Receives in-progress statuses while waiting
            cancel_event: Set to abort any status wait
            max_workers: Maximum concurrent region workers
            parallel: Whether per-region work runs concurrently
        """
        self.config = config
        self.client_manager = client_manager
        self.template = template
        self.observer = observer
        self.cancel_event = cancel_event or threading.Event()
        self.parallel = parallel
        self.source_region = config.region

        settings = config.global_tables
        self.poller_factory = functools.partial(
            StackStatusPoller,
            poll_interval=settings.poll_interval if settings else 5.0,
            timeout=settings.stack_timeout if settings else None,
            cancel_event=self.cancel_event,
            observer=observer
        )

        self.executor = RegionExecutor(max_workers=max_workers)
        self.stacks = StackProvisioner(client_manager, poller=self.poller_factory())
        self.replica_tables = ReplicaTableProvisioner(client_manager)
        self.linker: Optional[GlobalTableLinker] = None
        self.resolver: Optional[RegionDiffResolver] = None
        if settings:
            self.linker = build_linker(
                settings.version, client_manager, self.source_region, self.poller_factory
            )
            self.resolver = RegionDiffResolver(self.linker.strategy)

    @property
    def settings(self) -> Optional[GlobalTablesConfig]:
        return self.config.global_tables

    def discover_tables(self) -> List[str]:
        """List the DynamoDB tables belonging to the service stack."""
        tables = self.stacks.list_table_names(self.config.stack_name, self.source_region)
        logger.info(f"Found {len(tables)} table(s) in stack {self.config.stack_name}")
        return tables

    def deploy(self) -> RunResult:
        """Set up global tables for every table in the stack.

        Returns:
            RunResult with per-table and per-region outcomes
        """
        result = RunResult(status=ExecutionStatus.SUCCESS, start_time=datetime.now(timezone.utc))
        logger.info("Starting setting up global tables...")

        if not self.settings:
            logger.info("Global Table configuration missing, skipping creation...")
            result.status = ExecutionStatus.SKIPPED
            result.message = "Global table configuration missing"
            return result.finish()

        try:
            tables = self.discover_tables()
        except Exception as e:
            return self._fail_run(result, e, operation='discover_tables')

        if not tables:
            logger.info("No table has been created as part of this stack. Skipping global table setup.")
            result.status = ExecutionStatus.SKIPPED
            result.message = "No tables in stack"
            return result.finish()

        pending = self._resolve_all(tables, result)
        if not pending:
            logger.info("Global table setup already in place.")
            return result.finish()

        if self.settings.deploy_stack:
            if not self._deploy_stacks(pending, result):
                return self._log_summary(result.finish(), "setup")
        elif self.settings.version == 'v1':
            self._create_replica_tables(pending, result)

        for table_name, diff in pending.items():
            if result.table_results[table_name].is_failed():
                continue
            with LogContext(table_name=table_name):
                try:
                    self.linker.link(table_name, diff)
                    result.table_results[table_name].status = ExecutionStatus.SUCCESS
                except Exception as e:
                    self._fail_table(result, table_name, e, operation='link')

        return self._log_summary(result.finish(), "setup")

    def remove(self) -> RunResult:
        """Remove replicas of every table in the stack from the configured regions."""
        result = RunResult(status=ExecutionStatus.SUCCESS, start_time=datetime.now(timezone.utc))
        logger.info("Starting removing global table replicas...")

        if not self.settings:
            logger.info("Global Table configuration missing, skipping removal...")
            result.status = ExecutionStatus.SKIPPED
            result.message = "Global table configuration missing"
            return result.finish()

        try:
            tables = self.discover_tables()
        except Exception as e:
            return self._fail_run(result, e, operation='discover_tables')

        regions = self.settings.regions
        for table_name in tables:
            with LogContext(table_name=table_name):
                try:
                    removed = self.linker.unlink(table_name, regions)
                    result.table_results[table_name] = TableResult(
                        table_name=table_name, status=ExecutionStatus.SUCCESS, regions=removed
                    )
                except Exception as e:
                    self._fail_table(result, table_name, e, operation='unlink')

        if self.settings.version == 'v1' and not result.failed_tables():
            if self.settings.deploy_stack:
                outcomes = self.executor.run(
                    regions,
                    lambda region: self.stacks.destroy(self.config.stack_name, region),
                    parallel=self.parallel
                )
                result.stack_results = {r: o.is_success() for r, o in outcomes.items()}
                for outcome in outcomes.values():
                    if outcome.error:
                        result.error = error_handler.handle_exception(
                            outcome.error,
                            ErrorContext(stack_name=self.config.stack_name, region=outcome.region,
                                         operation='delete_stack')
                        )
                        error_handler.log_error(result.error)
            else:
                for table_name in tables:
                    # Only regions this run actually unlinked have replica tables to drop
                    unlinked = result.table_results[table_name].regions
                    if not unlinked:
                        continue
                    outcomes = self.executor.run(
                        unlinked,
                        functools.partial(self.replica_tables.destroy, table_name),
                        parallel=self.parallel
                    )
                    for outcome in outcomes.values():
                        if outcome.error:
                            self._fail_table(result, table_name, outcome.error,
                                             operation='delete_table', region=outcome.region)

        return self._log_summary(result.finish(), "removal")

    def status(self) -> List[TableStatusReport]:
        """Report current replication and missing regions without changing anything."""
        if not self.settings:
            raise ConfigurationError("custom.globalTables is not configured")

        reports = []
        for table_name in self.discover_tables():
            seen: List[str] = []
            base_lookup = self.linker.topology_lookup(table_name)

            def lookup(base_lookup=base_lookup, seen=seen):
                regions = base_lookup()
                seen.extend(regions)
                return regions

            diff = self.resolver.resolve(self.source_region, self.settings.regions, lookup)
            reports.append(TableStatusReport(
                table_name=table_name,
                replicated_regions=sorted(set(seen)),
                diff=diff
            ))
        return reports

    def _resolve_all(self, tables: List[str], result: RunResult) -> Dict[str, RegionDiffResult]:
        """Diff every table; returns only the tables with work left."""
        pending: Dict[str, RegionDiffResult] = {}
        for table_name in tables:
            with LogContext(table_name=table_name):
                try:
                    diff = self.resolver.resolve(
                        self.source_region,
                        self.settings.regions,
                        self.linker.topology_lookup(table_name)
                    )
                except Exception as e:
                    self._fail_table(result, table_name, e, operation='resolve')
                    continue

            if diff.is_noop():
                result.table_results[table_name] = TableResult(
                    table_name=table_name, status=ExecutionStatus.SKIPPED, diff=diff
                )
                continue

            logger.info(
                f"{table_name} needs replicas in {', '.join(diff.missing_regions)} "
                f"({'adding regions' if diff.adding_new_regions else 'new global table'})"
            )
            # Linking flips this to SUCCESS
            result.table_results[table_name] = TableResult(
                table_name=table_name,
                status=ExecutionStatus.SKIPPED,
                diff=diff,
                regions=list(diff.missing_regions)
            )
            pending[table_name] = diff
        return pending

    def _deploy_stacks(self, pending: Dict[str, RegionDiffResult], result: RunResult) -> bool:
        """Deploy the template into every region some table is missing.

        Returns:
            True when every regional stack settled successfully
        """
        if self.template is None:
            error = ConfigurationError("createStack is enabled but no compiled template was loaded")
            error_handler.log_error(error)
            result.error = error
            return False

        regions = self._replica_regions(pending.values())

        def deploy_stack(region: str) -> bool:
            plan = self.stacks.plan(self.config.stack_name, region, {'template': self.template})
            return self.stacks.provision(plan)

        outcomes = self.executor.run(regions, deploy_stack, parallel=self.parallel)
        result.stack_results = {r: o.is_success() for r, o in outcomes.items()}

        failed = [r for r, ok in result.stack_results.items() if not ok]
        if not failed:
            return True

        for table_name in pending:
            cause = next((o.error for o in outcomes.values() if o.error), None)
            error = ProvisioningError(
                f"Stack {self.config.stack_name} failed in {', '.join(failed)}; "
                f"not linking {table_name}",
                context=ErrorContext(table_name=table_name, stack_name=self.config.stack_name,
                                     operation='deploy_stack'),
                cause=cause,
                suggestions=['Check the stack events in the failed regions and rerun deploy']
            )
            error_handler.log_error(error)
            result.table_results[table_name].status = ExecutionStatus.FAILED
            result.table_results[table_name].error = error
        return False

    def _create_replica_tables(self, pending: Dict[str, RegionDiffResult], result: RunResult) -> None:
        """Create replica tables in the missing regions of each pending table."""
        for table_name, diff in pending.items():
            with LogContext(table_name=table_name):
                try:
                    spec = self.replica_tables.describe_source(table_name, self.source_region)
                except Exception as e:
                    self._fail_table(result, table_name, e, operation='describe_source')
                    continue

                def create(region: str, spec=spec) -> bool:
                    plan = self.replica_tables.plan(spec.table_name, region, {'spec': spec})
                    return self.replica_tables.provision(plan)

                outcomes = self.executor.run(
                    self._replica_regions([diff]), create, parallel=self.parallel
                )
                for outcome in outcomes.values():
                    if not outcome.is_success():
                        self._fail_table(
                            result, table_name,
                            outcome.error or ProvisioningError(f"Replica table not created in {outcome.region}"),
                            operation='create_table', region=outcome.region
                        )
                        break

    def _replica_regions(self, diffs) -> List[str]:
        """Ordered union of missing regions, without the source region."""
        regions: Dict[str, None] = {}
        for diff in diffs:
            for region in diff.missing_regions:
                if region != self.source_region:
                    regions[region] = None
        return list(regions)

    def _fail_table(
        self,
        result: RunResult,
        table_name: str,
        error: Exception,
        operation: str,
        region: Optional[str] = None
    ) -> None:
        deployment_error = error_handler.handle_exception(
            error, ErrorContext(table_name=table_name, region=region, operation=operation)
        )
        error_handler.log_error(deployment_error)

        table_result = result.table_results.get(table_name)
        if table_result is None:
            table_result = TableResult(table_name=table_name, status=ExecutionStatus.FAILED)
            result.table_results[table_name] = table_result
        table_result.status = ExecutionStatus.FAILED
        table_result.error = deployment_error

    def _fail_run(self, result: RunResult, error: Exception, operation: str) -> RunResult:
        result.error = error_handler.handle_exception(
            error, ErrorContext(stack_name=self.config.stack_name, region=self.source_region,
                                operation=operation)
        )
        error_handler.log_error(result.error)
        result.status = ExecutionStatus.FAILED
        return result.finish()

    def _log_summary(self, result: RunResult, what: str) -> RunResult:
        if result.is_success():
            logger.info(f"Global table {what} completed in {result.duration:.1f}s")
        else:
            failed = result.failed_tables()
            logger.error(
                f"Failed to complete global table {what}"
                + (f" for {', '.join(failed)}" if failed else "")
            )
        return result
