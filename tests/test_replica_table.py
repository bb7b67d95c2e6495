"""Tests for ReplicaTableProvisioner."""

import boto3
import pytest
from moto import mock_aws

from global_tables.provisioners.base import ChangeType, ProvisionPlan
from global_tables.provisioners.replica_table import (
    READ_AUTO_SCALING_POLICY,
    WRITE_AUTO_SCALING_POLICY,
    ReplicaTableProvisioner,
    ReplicaTableSpec,
)
from global_tables.utils.aws_client import AWSClientManager

from conftest import SOURCE_TABLE, client_error

TABLE_NAME = 'orders-dev'


@pytest.fixture
def aws():
    with mock_aws():
        yield AWSClientManager(region='us-west-2')


@pytest.fixture
def source_table(aws):
    dynamodb = boto3.client('dynamodb', region_name='us-west-2')
    dynamodb.create_table(
        TableName=TABLE_NAME,
        AttributeDefinitions=[
            {'AttributeName': 'pk', 'AttributeType': 'S'},
            {'AttributeName': 'sk', 'AttributeType': 'S'},
        ],
        KeySchema=[
            {'AttributeName': 'pk', 'KeyType': 'HASH'},
            {'AttributeName': 'sk', 'KeyType': 'RANGE'},
        ],
        ProvisionedThroughput={'ReadCapacityUnits': 5, 'WriteCapacityUnits': 10},
        Tags=[{'Key': 'team', 'Value': 'payments'}],
    )
    return dynamodb


class TestBuildCreateParams:
    def test_strips_read_only_fields(self):
        params = ReplicaTableProvisioner.build_create_params(SOURCE_TABLE)

        assert params['TableName'] == TABLE_NAME
        assert params['BillingMode'] == 'PROVISIONED'
        assert params['ProvisionedThroughput'] == {'ReadCapacityUnits': 5, 'WriteCapacityUnits': 10}
        assert params['GlobalSecondaryIndexes'] == [{
            'IndexName': 'gsi1',
            'KeySchema': [{'AttributeName': 'gsi1pk', 'KeyType': 'HASH'}],
            'Projection': {'ProjectionType': 'ALL'},
            'ProvisionedThroughput': {'ReadCapacityUnits': 2, 'WriteCapacityUnits': 3},
        }]
        assert params['StreamSpecification'] == {
            'StreamEnabled': True, 'StreamViewType': 'NEW_AND_OLD_IMAGES'
        }
        assert 'TableArn' not in params
        assert 'LocalSecondaryIndexes' not in params

    def test_on_demand_table_has_no_throughput(self):
        table = dict(SOURCE_TABLE, BillingModeSummary={'BillingMode': 'PAY_PER_REQUEST'})

        params = ReplicaTableProvisioner.build_create_params(table)

        assert params['BillingMode'] == 'PAY_PER_REQUEST'
        assert 'ProvisionedThroughput' not in params
        assert 'ProvisionedThroughput' not in params['GlobalSecondaryIndexes'][0]

    def test_kms_encryption_is_kept(self):
        table = dict(SOURCE_TABLE, SSEDescription={'Status': 'ENABLED', 'SSEType': 'KMS'})

        params = ReplicaTableProvisioner.build_create_params(table)

        assert params['SSESpecification'] == {'Enabled': True, 'SSEType': 'KMS'}


class TestWithMoto:
    def test_describe_source_copies_tags(self, aws, source_table):
        spec = ReplicaTableProvisioner(aws).describe_source(TABLE_NAME, 'us-west-2')

        assert spec.table_name == TABLE_NAME
        assert spec.create_params['Tags'] == [{'Key': 'team', 'Value': 'payments'}]
        assert spec.scaling_policies == []

    def test_plan_create_when_absent(self, aws, source_table):
        plan = ReplicaTableProvisioner(aws).plan(TABLE_NAME, 'us-east-1', {})

        assert plan.change_type == ChangeType.CREATE

    def test_provision_creates_replica_table(self, aws, source_table):
        provisioner = ReplicaTableProvisioner(aws)
        spec = provisioner.describe_source(TABLE_NAME, 'us-west-2')
        plan = provisioner.plan(TABLE_NAME, 'us-east-1', {'spec': spec})

        assert provisioner.provision(plan) is True

        replica = boto3.client('dynamodb', region_name='us-east-1').describe_table(TableName=TABLE_NAME)
        assert replica['Table']['TableStatus'] == 'ACTIVE'
        assert replica['Table']['StreamSpecification']['StreamViewType'] == 'NEW_AND_OLD_IMAGES'

    def test_existing_table_is_skipped(self, aws, source_table):
        provisioner = ReplicaTableProvisioner(aws)
        plan = provisioner.plan(TABLE_NAME, 'us-west-2', {})

        assert plan.change_type == ChangeType.NO_CHANGE
        assert provisioner.provision(plan) is True

    def test_destroy_deletes_table(self, aws, source_table):
        ReplicaTableProvisioner(aws).destroy(TABLE_NAME, 'us-west-2')

        assert source_table.list_tables()['TableNames'] == []

    def test_destroy_missing_table_is_ignored(self, aws):
        ReplicaTableProvisioner(aws).destroy('does-not-exist', 'eu-west-1')


class TestScalingPolicies:
    def test_policies_are_copied_to_replica(self, client_manager):
        target_config = {
            'TargetValue': 70.0,
            'PredefinedMetricSpecification': {'PredefinedMetricType': 'DynamoDBWriteCapacityUtilization'},
        }
        spec = ReplicaTableSpec(
            table_name=TABLE_NAME,
            create_params=ReplicaTableProvisioner.build_create_params(SOURCE_TABLE),
            scaling_policies=[{
                'PolicyName': 'custom-write-policy',
                'PolicyType': 'TargetTrackingScaling',
                'ScalableDimension': 'dynamodb:table:WriteCapacityUnits',
                'TargetTrackingScalingPolicyConfiguration': target_config,
            }],
            scalable_targets={'dynamodb:table:WriteCapacityUnits': {'MinCapacity': 5, 'MaxCapacity': 50}},
        )
        plan = ProvisionPlan(TABLE_NAME, 'us-east-1', ChangeType.CREATE, {'spec': spec})

        ReplicaTableProvisioner(client_manager).provision(plan)

        autoscaling = client_manager.get_client('application-autoscaling', 'us-east-1')
        autoscaling.register_scalable_target.assert_called_once_with(
            ServiceNamespace='dynamodb',
            ResourceId=f'table/{TABLE_NAME}',
            ScalableDimension='dynamodb:table:WriteCapacityUnits',
            MinCapacity=5,
            MaxCapacity=50
        )
        policy = autoscaling.put_scaling_policy.call_args.kwargs
        assert policy['PolicyName'] == WRITE_AUTO_SCALING_POLICY
        assert policy['TargetTrackingScalingPolicyConfiguration'] == target_config

    def test_missing_target_falls_back_to_table_capacity(self, client_manager):
        spec = ReplicaTableSpec(
            table_name=TABLE_NAME,
            create_params=ReplicaTableProvisioner.build_create_params(SOURCE_TABLE),
            scaling_policies=[{
                'PolicyName': READ_AUTO_SCALING_POLICY,
                'TargetTrackingScalingPolicyConfiguration': {'TargetValue': 50.0},
            }],
        )
        plan = ProvisionPlan(TABLE_NAME, 'us-east-1', ChangeType.CREATE, {'spec': spec})

        ReplicaTableProvisioner(client_manager).provision(plan)

        autoscaling = client_manager.get_client('application-autoscaling', 'us-east-1')
        target = autoscaling.register_scalable_target.call_args.kwargs
        assert target['ScalableDimension'] == 'dynamodb:table:ReadCapacityUnits'
        assert (target['MinCapacity'], target['MaxCapacity']) == (5, 5)

    def test_table_in_use_counts_as_created(self, client_manager):
        dynamodb = client_manager.get_client('dynamodb', 'us-east-1')
        dynamodb.create_table.side_effect = client_error('ResourceInUseException', 'CreateTable')
        spec = ReplicaTableSpec(table_name=TABLE_NAME, create_params={'TableName': TABLE_NAME})
        plan = ProvisionPlan(TABLE_NAME, 'us-east-1', ChangeType.CREATE, {'spec': spec})

        assert ReplicaTableProvisioner(client_manager).provision(plan) is True
        dynamodb.get_waiter.assert_not_called()

    def test_other_create_errors_propagate(self, client_manager):
        dynamodb = client_manager.get_client('dynamodb', 'us-east-1')
        dynamodb.create_table.side_effect = client_error('LimitExceededException', 'CreateTable')
        spec = ReplicaTableSpec(table_name=TABLE_NAME, create_params={'TableName': TABLE_NAME})
        plan = ProvisionPlan(TABLE_NAME, 'us-east-1', ChangeType.CREATE, {'spec': spec})

        with pytest.raises(Exception) as exc_info:
            ReplicaTableProvisioner(client_manager).provision(plan)

        assert exc_info.value.response['Error']['Code'] == 'LimitExceededException'


def test_plan_reraises_unexpected_errors(client_manager):
    dynamodb = client_manager.get_client('dynamodb', 'us-east-1')
    dynamodb.describe_table.side_effect = client_error('AccessDeniedException', 'DescribeTable')

    with pytest.raises(Exception):
        ReplicaTableProvisioner(client_manager).plan(TABLE_NAME, 'us-east-1', {})
