"""Deploys the service's CloudFormation template into replica regions."""

import json
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from global_tables.core.poller import StackStatusPoller
from global_tables.utils.aws_client import AWSClientManager
from global_tables.utils.errors import get_error_code
from global_tables.utils.logging import get_logger
from .base import BaseProvisioner, ChangeType, ProvisionPlan

logger = get_logger(__name__)

STACK_CAPABILITIES = ['CAPABILITY_IAM', 'CAPABILITY_NAMED_IAM']
DYNAMODB_TABLE_TYPE = 'AWS::DynamoDB::Table'


class StackProvisioner(BaseProvisioner):
    """Creates, updates and deletes the regional copies of a stack."""

    def __init__(self, client_manager: AWSClientManager, poller: Optional[StackStatusPoller] = None):
        """Initialize stack provisioner.

        Args:
            client_manager: Client manager handing out per-region boto3 clients
            poller: Poller used to wait for create/update to settle
        """
        super().__init__(client_manager)
        self.poller = poller or StackStatusPoller()

    def list_table_names(self, stack_name: str, region: str) -> List[str]:
        """Get the physical names of the DynamoDB tables in a stack.

        Args:
            stack_name: CloudFormation stack name
            region: Region the stack is deployed in

        Returns:
            Table names in stack resource order
        """
        cfn = self.client('cloudformation', region)
        paginator = cfn.get_paginator('list_stack_resources')

        table_names = []
        for page in paginator.paginate(StackName=stack_name):
            for summary in page.get('StackResourceSummaries', []):
                if summary.get('ResourceType') == DYNAMODB_TABLE_TYPE and summary.get('PhysicalResourceId'):
                    table_names.append(summary['PhysicalResourceId'])
        return table_names

    def get_status(self, stack_name: str, region: str) -> str:
        """Return the current StackStatus."""
        cfn = self.client('cloudformation', region)
        response = cfn.describe_stacks(StackName=stack_name)
        return response['Stacks'][0]['StackStatus']

    def plan(self, name: str, region: str, properties: Dict[str, Any]) -> ProvisionPlan:
        """Plan CREATE when the stack is absent in the region, UPDATE otherwise."""
        try:
            self.get_status(name, region)
            change_type = ChangeType.UPDATE
        except ClientError as e:
            # describe_stacks reports a missing stack as a ValidationError
            if get_error_code(e) != 'ValidationError':
                raise
            change_type = ChangeType.CREATE

        return ProvisionPlan(name=name, region=region, change_type=change_type, properties=properties)

    def provision(self, plan: ProvisionPlan) -> bool:
        """Create or update the stack, then wait for it to settle.

        Args:
            plan: Plan whose properties hold the 'template' dict

        Returns:
            True if the stack reached CREATE_COMPLETE or UPDATE_COMPLETE
        """
        logger.info(f"Creating/Updating cloudformation stack {plan.name} in {plan.region}...")
        cfn = self.client('cloudformation', plan.region)
        stack_params = {
            'StackName': plan.name,
            'TemplateBody': json.dumps(plan.properties['template']),
            'Capabilities': STACK_CAPABILITIES,
        }

        update = plan.change_type == ChangeType.UPDATE
        if not update:
            try:
                cfn.create_stack(**stack_params)
            except ClientError as e:
                if get_error_code(e) != 'AlreadyExistsException':
                    raise
                update = True

        if update:
            try:
                cfn.update_stack(**stack_params)
            except ClientError as e:
                # "No updates are to be performed" and stacks stuck in
                # ROLLBACK_COMPLETE both land here; the status check decides
                if get_error_code(e) != 'ValidationError':
                    raise
                logger.debug(f"Stack {plan.name} in {plan.region} not updated: {e}")

        logger.info(f"Checking cloudformation stack {plan.name} status in {plan.region}...")
        success = self.poller.poll(
            lambda: self.get_status(plan.name, plan.region),
            description=f"stack {plan.name} in {plan.region}"
        )

        if success:
            logger.info(f"Cloudformation stack {plan.name} successfully created/updated in {plan.region}")
        else:
            logger.error(
                f"Failed to create/update the stack {plan.name} in {plan.region}. "
                "Please check the stack status in console and retry."
            )
        return success

    def destroy(self, name: str, region: str) -> None:
        """Delete the regional stack and wait until it is gone."""
        cfn = self.client('cloudformation', region)
        logger.info(f"Deleting cloudformation stack {name} in {region}...")
        cfn.delete_stack(StackName=name)

        waiter = cfn.get_waiter('stack_delete_complete')
        waiter.wait(StackName=name)
        logger.info(f"Deleted cloudformation stack {name} in {region}")
