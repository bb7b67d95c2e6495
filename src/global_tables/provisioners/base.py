"""Base provisioner interface for region-scoped resources."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from global_tables.utils.aws_client import AWSClientManager


class ChangeType(Enum):
    """Type of change for a resource."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NO_CHANGE = "no_change"


@dataclass
class ProvisionPlan:
    """Plan for provisioning one named resource in one region."""
    name: str
    region: str
    change_type: ChangeType
    properties: Dict[str, Any] = field(default_factory=dict)


class BaseProvisioner(ABC):
    """Base class for provisioners that act on a resource in a given region."""

    def __init__(self, client_manager: AWSClientManager):
        """Initialize provisioner.

        Args:
            client_manager: Client manager handing out per-region boto3 clients
        """
        self.client_manager = client_manager

    def client(self, service_name: str, region: str):
        return self.client_manager.get_client(service_name, region)

    @abstractmethod
    def plan(self, name: str, region: str, properties: Dict[str, Any]) -> ProvisionPlan:
        """Determine what changes are needed for the resource.

        Args:
            name: Physical name of the resource
            region: Region the resource lives in
            properties: Desired properties

        Returns:
            ProvisionPlan describing the change needed
        """

    @abstractmethod
    def provision(self, plan: ProvisionPlan) -> bool:
        """Execute the provisioning plan.

        Returns:
            True if the resource ended up in the desired state
        """

    @abstractmethod
    def destroy(self, name: str, region: str) -> None:
        """Destroy the resource in a region; missing resources are ignored."""
