"""Provisioners for replica tables, regional stacks and global table links."""

from .base import BaseProvisioner, ProvisionPlan, ChangeType
from .replica_table import ReplicaTableProvisioner, ReplicaTableSpec
from .stack import StackProvisioner
from .global_table import (
    GlobalTableLinker,
    LegacyGlobalTableLinker,
    ReplicaGlobalTableLinker,
    build_linker,
)

__all__ = [
    'BaseProvisioner',
    'ProvisionPlan',
    'ChangeType',
    'ReplicaTableProvisioner',
    'ReplicaTableSpec',
    'StackProvisioner',
    'GlobalTableLinker',
    'LegacyGlobalTableLinker',
    'ReplicaGlobalTableLinker',
    'build_linker',
]
