"""Creates copies of a source DynamoDB table in replica regions."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from global_tables.utils.errors import get_error_code
from global_tables.utils.logging import get_logger
from .base import BaseProvisioner, ChangeType, ProvisionPlan

logger = get_logger(__name__)

WRITE_AUTO_SCALING_POLICY = 'WriteAutoScalingPolicy'
READ_AUTO_SCALING_POLICY = 'ReadAutoScalingPolicy'

# policy name -> (throughput key, scalable dimension)
SCALING_DIMENSIONS = {
    WRITE_AUTO_SCALING_POLICY: ('WriteCapacityUnits', 'dynamodb:table:WriteCapacityUnits'),
    READ_AUTO_SCALING_POLICY: ('ReadCapacityUnits', 'dynamodb:table:ReadCapacityUnits'),
}

REPLICA_STREAM_SPECIFICATION = {
    'StreamEnabled': True,
    'StreamViewType': 'NEW_AND_OLD_IMAGES',
}


@dataclass
class ReplicaTableSpec:
    """Everything needed to recreate a source table in another region."""
    table_name: str
    create_params: Dict[str, Any]
    scaling_policies: List[Dict[str, Any]] = field(default_factory=list)
    scalable_targets: Dict[str, Dict[str, int]] = field(default_factory=dict)


class ReplicaTableProvisioner(BaseProvisioner):
    """Provisioner for replica tables used by 2017.11.29 global tables."""

    def describe_source(self, table_name: str, region: str) -> ReplicaTableSpec:
        """Build a replica spec from the source table.

        Args:
            table_name: Source table name
            region: Source region

        Returns:
            ReplicaTableSpec with create-table parameters, tags and scaling settings
        """
        dynamodb = self.client('dynamodb', region)
        table = dynamodb.describe_table(TableName=table_name)['Table']

        create_params = self.build_create_params(table)

        tags_response = dynamodb.list_tags_of_resource(ResourceArn=table['TableArn'])
        if tags_response.get('Tags'):
            create_params['Tags'] = tags_response['Tags']

        scaling_policies: List[Dict[str, Any]] = []
        scalable_targets: Dict[str, Dict[str, int]] = {}
        if create_params.get('BillingMode') == 'PROVISIONED':
            autoscaling = self.client('application-autoscaling', region)
            scaling_policies = autoscaling.describe_scaling_policies(
                ServiceNamespace='dynamodb',
                ResourceId=f'table/{table_name}'
            ).get('ScalingPolicies', [])
            targets = autoscaling.describe_scalable_targets(
                ServiceNamespace='dynamodb',
                ResourceIds=[f'table/{table_name}']
            ).get('ScalableTargets', [])
            scalable_targets = {
                t['ScalableDimension']: {'MinCapacity': t['MinCapacity'], 'MaxCapacity': t['MaxCapacity']}
                for t in targets
            }

        return ReplicaTableSpec(
            table_name=table_name,
            create_params=create_params,
            scaling_policies=scaling_policies,
            scalable_targets=scalable_targets
        )

    @staticmethod
    def build_create_params(table: Dict[str, Any]) -> Dict[str, Any]:
        """Turn a DescribeTable description into CreateTable parameters.

        Describe output carries read-only fields (counts, statuses, ARNs), so
        indexes and throughput are rebuilt from the creatable fields only.
        """
        billing_mode = table.get('BillingModeSummary', {}).get('BillingMode', 'PROVISIONED')

        params: Dict[str, Any] = {
            'TableName': table['TableName'],
            'AttributeDefinitions': table['AttributeDefinitions'],
            'KeySchema': table['KeySchema'],
            'BillingMode': billing_mode,
            'StreamSpecification': dict(REPLICA_STREAM_SPECIFICATION),
        }

        if billing_mode == 'PROVISIONED':
            params['ProvisionedThroughput'] = _throughput(table['ProvisionedThroughput'])

        gsis = []
        for gsi in table.get('GlobalSecondaryIndexes', []):
            index = {
                'IndexName': gsi['IndexName'],
                'KeySchema': gsi['KeySchema'],
                'Projection': gsi['Projection'],
            }
            if billing_mode == 'PROVISIONED' and gsi.get('ProvisionedThroughput'):
                index['ProvisionedThroughput'] = _throughput(gsi['ProvisionedThroughput'])
            gsis.append(index)
        if gsis:
            params['GlobalSecondaryIndexes'] = gsis

        lsis = [
            {
                'IndexName': lsi['IndexName'],
                'KeySchema': lsi['KeySchema'],
                'Projection': lsi['Projection'],
            }
            for lsi in table.get('LocalSecondaryIndexes', [])
        ]
        if lsis:
            params['LocalSecondaryIndexes'] = lsis

        sse = table.get('SSEDescription')
        if sse and sse.get('SSEType') == 'KMS' and sse.get('Status') in ('ENABLED', 'ENABLING'):
            # Customer keys are regional, so replicas fall back to the AWS managed key
            params['SSESpecification'] = {'Enabled': True, 'SSEType': 'KMS'}

        return params

    def plan(self, name: str, region: str, properties: Dict[str, Any]) -> ProvisionPlan:
        """Plan CREATE if the table is absent in the region, NO_CHANGE otherwise."""
        dynamodb = self.client('dynamodb', region)
        try:
            dynamodb.describe_table(TableName=name)
            change_type = ChangeType.NO_CHANGE
        except ClientError as e:
            if get_error_code(e) != 'ResourceNotFoundException':
                raise
            change_type = ChangeType.CREATE

        return ProvisionPlan(name=name, region=region, change_type=change_type, properties=properties)

    def provision(self, plan: ProvisionPlan) -> bool:
        """Create the replica table and copy the source's auto scaling.

        Args:
            plan: Plan whose properties hold a 'spec' ReplicaTableSpec

        Returns:
            True once the table exists in the region
        """
        if plan.change_type == ChangeType.NO_CHANGE:
            logger.info(f"Table {plan.name} already exists in {plan.region}. Skipping creation...")
            return True

        spec: ReplicaTableSpec = plan.properties['spec']
        dynamodb = self.client('dynamodb', plan.region)

        logger.info(f"Creating new table {plan.name} in {plan.region} region...")
        try:
            dynamodb.create_table(**spec.create_params)
        except ClientError as e:
            if get_error_code(e) == 'ResourceInUseException':
                logger.info(f"Table {plan.name} already exists in the region {plan.region}")
                return True
            raise

        waiter = dynamodb.get_waiter('table_exists')
        waiter.wait(TableName=plan.name)
        logger.info(f"Created new table {plan.name} in {plan.region} region")

        if spec.scaling_policies:
            self._apply_scaling_policies(spec, plan.region)

        return True

    def destroy(self, name: str, region: str) -> None:
        """Delete a replica table and wait until it is gone."""
        dynamodb = self.client('dynamodb', region)
        try:
            dynamodb.delete_table(TableName=name)
        except ClientError as e:
            if get_error_code(e) != 'ResourceNotFoundException':
                raise
            logger.info(f"Table {name} does not exist in {region}. Nothing to delete")
            return

        waiter = dynamodb.get_waiter('table_not_exists')
        waiter.wait(TableName=name)
        logger.info(f"Deleted table {name} in {region}")

    def _apply_scaling_policies(self, spec: ReplicaTableSpec, region: str) -> None:
        autoscaling = self.client('application-autoscaling', region)
        resource_id = f'table/{spec.table_name}'
        throughput = spec.create_params.get('ProvisionedThroughput', {})

        logger.info(f"Adding auto scaling settings to {spec.table_name} in {region}")
        for policy_name, (capacity_key, dimension) in SCALING_DIMENSIONS.items():
            policy = _find_policy(spec.scaling_policies, policy_name, dimension)
            if policy is None:
                continue

            capacity = throughput.get(capacity_key, 1)
            limits = spec.scalable_targets.get(
                dimension, {'MinCapacity': capacity, 'MaxCapacity': capacity}
            )
            autoscaling.register_scalable_target(
                ServiceNamespace='dynamodb',
                ResourceId=resource_id,
                ScalableDimension=dimension,
                MinCapacity=limits['MinCapacity'],
                MaxCapacity=limits['MaxCapacity']
            )
            autoscaling.put_scaling_policy(
                PolicyName=policy_name,
                ServiceNamespace='dynamodb',
                ResourceId=resource_id,
                ScalableDimension=dimension,
                PolicyType='TargetTrackingScaling',
                TargetTrackingScalingPolicyConfiguration=dict(
                    policy['TargetTrackingScalingPolicyConfiguration']
                )
            )
            logger.info(f"Added {policy_name} to {spec.table_name} in {region}")


def _throughput(throughput: Dict[str, Any]) -> Dict[str, int]:
    return {
        'ReadCapacityUnits': throughput['ReadCapacityUnits'],
        'WriteCapacityUnits': throughput['WriteCapacityUnits'],
    }


def _find_policy(policies: List[Dict[str, Any]], name: str, dimension: str) -> Optional[Dict[str, Any]]:
    """Find a policy by its conventional name, else any target tracking policy on the dimension."""
    by_name = next((p for p in policies if p.get('PolicyName') == name), None)
    if by_name is not None:
        return by_name
    return next(
        (
            p for p in policies
            if p.get('ScalableDimension') == dimension and p.get('PolicyType') == 'TargetTrackingScaling'
        ),
        None
    )
