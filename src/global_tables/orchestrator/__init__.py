"""Orchestration of global table setup and removal."""

from global_tables.orchestrator.executor import (
    ExecutionStatus,
    RegionExecutor,
    RegionOutcome,
    RunResult,
    TableResult,
)
from global_tables.orchestrator.orchestrator import GlobalTableOrchestrator, TableStatusReport

__all__ = [
    'ExecutionStatus',
    'RegionExecutor',
    'RegionOutcome',
    'RunResult',
    'TableResult',
    'GlobalTableOrchestrator',
    'TableStatusReport',
]
