"""Tests for StackProvisioner."""

import json

import boto3
import pytest
from moto import mock_aws

from global_tables.core.poller import StackStatusPoller
from global_tables.provisioners.base import ChangeType, ProvisionPlan
from global_tables.provisioners.stack import STACK_CAPABILITIES, StackProvisioner
from global_tables.utils.aws_client import AWSClientManager

from conftest import client_error

STACK_NAME = 'orders-dev'
TEMPLATE = {'Resources': {'Orders': {'Type': 'AWS::DynamoDB::Table'}}}


def stack_response(status):
    return {'Stacks': [{'StackName': STACK_NAME, 'StackStatus': status}]}


@pytest.fixture
def provisioner(client_manager):
    poller = StackStatusPoller(poll_interval=1, sleep=lambda seconds: False)
    return StackProvisioner(client_manager, poller=poller)


@pytest.fixture
def cfn(client_manager):
    return client_manager.get_client('cloudformation', 'us-east-1')


class TestListTableNames:
    def test_only_dynamodb_tables_across_pages(self, provisioner, client_manager):
        cfn = client_manager.get_client('cloudformation', 'us-west-2')
        cfn.get_paginator.return_value.paginate.return_value = [
            {'StackResourceSummaries': [
                {'ResourceType': 'AWS::DynamoDB::Table', 'PhysicalResourceId': 'orders-dev'},
                {'ResourceType': 'AWS::Lambda::Function', 'PhysicalResourceId': 'handler'},
            ]},
            {'StackResourceSummaries': [
                {'ResourceType': 'AWS::DynamoDB::Table', 'PhysicalResourceId': 'customers-dev'},
                {'ResourceType': 'AWS::DynamoDB::Table'},
            ]},
        ]

        assert provisioner.list_table_names(STACK_NAME, 'us-west-2') == ['orders-dev', 'customers-dev']
        cfn.get_paginator.assert_called_once_with('list_stack_resources')
        cfn.get_paginator.return_value.paginate.assert_called_once_with(StackName=STACK_NAME)

    def test_missing_stack_propagates(self, provisioner, client_manager):
        cfn = client_manager.get_client('cloudformation', 'us-west-2')
        cfn.get_paginator.return_value.paginate.side_effect = client_error('ValidationError')

        with pytest.raises(Exception):
            provisioner.list_table_names(STACK_NAME, 'us-west-2')


class TestPlan:
    def test_absent_stack_plans_create(self, provisioner, cfn):
        cfn.describe_stacks.side_effect = client_error('ValidationError', 'DescribeStacks')

        plan = provisioner.plan(STACK_NAME, 'us-east-1', {'template': TEMPLATE})

        assert plan.change_type == ChangeType.CREATE

    def test_existing_stack_plans_update(self, provisioner, cfn):
        cfn.describe_stacks.return_value = stack_response('CREATE_COMPLETE')

        plan = provisioner.plan(STACK_NAME, 'us-east-1', {'template': TEMPLATE})

        assert plan.change_type == ChangeType.UPDATE

    def test_other_errors_propagate(self, provisioner, cfn):
        cfn.describe_stacks.side_effect = client_error('AccessDenied', 'DescribeStacks')

        with pytest.raises(Exception):
            provisioner.plan(STACK_NAME, 'us-east-1', {})


class TestProvision:
    def plan(self, change_type=ChangeType.CREATE):
        return ProvisionPlan(STACK_NAME, 'us-east-1', change_type, {'template': TEMPLATE})

    def test_create_waits_for_completion(self, provisioner, cfn):
        cfn.describe_stacks.side_effect = [
            stack_response('CREATE_IN_PROGRESS'),
            stack_response('CREATE_COMPLETE'),
        ]

        assert provisioner.provision(self.plan()) is True
        cfn.create_stack.assert_called_once_with(
            StackName=STACK_NAME,
            TemplateBody=json.dumps(TEMPLATE),
            Capabilities=STACK_CAPABILITIES
        )
        cfn.update_stack.assert_not_called()

    def test_already_exists_falls_back_to_update(self, provisioner, cfn):
        cfn.create_stack.side_effect = client_error('AlreadyExistsException', 'CreateStack')
        cfn.describe_stacks.return_value = stack_response('UPDATE_COMPLETE')

        assert provisioner.provision(self.plan()) is True
        cfn.update_stack.assert_called_once()

    def test_no_updates_is_not_an_error(self, provisioner, cfn):
        cfn.update_stack.side_effect = client_error(
            'ValidationError', 'UpdateStack', 'No updates are to be performed.'
        )
        cfn.describe_stacks.return_value = stack_response('UPDATE_COMPLETE')

        assert provisioner.provision(self.plan(ChangeType.UPDATE)) is True
        cfn.create_stack.assert_not_called()

    def test_rollback_returns_false(self, provisioner, cfn):
        cfn.describe_stacks.side_effect = [
            stack_response('CREATE_IN_PROGRESS'),
            stack_response('ROLLBACK_IN_PROGRESS'),
            stack_response('ROLLBACK_COMPLETE'),
        ]

        assert provisioner.provision(self.plan()) is False

    def test_create_errors_propagate(self, provisioner, cfn):
        cfn.create_stack.side_effect = client_error('InsufficientCapabilitiesException', 'CreateStack')

        with pytest.raises(Exception):
            provisioner.provision(self.plan())
        cfn.describe_stacks.assert_not_called()


def test_destroy_waits_for_delete(provisioner, cfn):
    provisioner.destroy(STACK_NAME, 'us-east-1')

    cfn.delete_stack.assert_called_once_with(StackName=STACK_NAME)
    cfn.get_waiter.assert_called_once_with('stack_delete_complete')
    cfn.get_waiter.return_value.wait.assert_called_once_with(StackName=STACK_NAME)


@mock_aws
def test_list_table_names_from_deployed_stack():
    template = {
        'Resources': {
            'OrdersTable': {
                'Type': 'AWS::DynamoDB::Table',
                'Properties': {
                    'TableName': 'orders-dev',
                    'AttributeDefinitions': [{'AttributeName': 'pk', 'AttributeType': 'S'}],
                    'KeySchema': [{'AttributeName': 'pk', 'KeyType': 'HASH'}],
                    'BillingMode': 'PAY_PER_REQUEST',
                },
            },
        }
    }
    boto3.client('cloudformation', region_name='us-west-2').create_stack(
        StackName=STACK_NAME, TemplateBody=json.dumps(template)
    )

    provisioner = StackProvisioner(AWSClientManager(region='us-west-2'))

    assert provisioner.list_table_names(STACK_NAME, 'us-west-2') == ['orders-dev']
