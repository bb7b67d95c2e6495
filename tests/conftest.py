"""Shared pytest fixtures."""

import os
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from global_tables.config.models import ServiceConfig


@pytest.fixture(scope='function', autouse=True)
def aws_credentials():
    """Mocked AWS credentials so nothing can reach a real account."""
    keys = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-west-2',
    }
    previous = {key: os.environ.get(key) for key in keys}
    os.environ.update(keys)

    yield

    for key, value in previous.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


class FakeClientManager:
    """Hands out one MagicMock per (service, region)."""

    def __init__(self, region='us-west-2'):
        self.region = region
        self.clients = {}

    def get_client(self, service_name, region=None):
        key = (service_name, region or self.region)
        if key not in self.clients:
            self.clients[key] = MagicMock(name=f"{service_name}:{key[1]}")
        return self.clients[key]

    def get_region(self):
        return self.region


@pytest.fixture
def client_manager():
    return FakeClientManager()


def client_error(code, operation='Operation', message='error'):
    """Build a botocore ClientError with the given code."""
    return ClientError({'Error': {'Code': code, 'Message': message}}, operation)


def make_service_config(**global_tables):
    settings = {'regions': ['us-east-1'], 'pollInterval': 0.01}
    settings.update(global_tables)
    return ServiceConfig(
        service='orders',
        provider={'region': 'us-west-2', 'stage': 'dev'},
        global_tables=settings,
    )


SOURCE_TABLE = {
    'TableName': 'orders-dev',
    'TableArn': 'arn:aws:dynamodb:us-west-2:123456789012:table/orders-dev',
    'TableStatus': 'ACTIVE',
    'AttributeDefinitions': [
        {'AttributeName': 'pk', 'AttributeType': 'S'},
        {'AttributeName': 'sk', 'AttributeType': 'S'},
        {'AttributeName': 'gsi1pk', 'AttributeType': 'S'},
    ],
    'KeySchema': [
        {'AttributeName': 'pk', 'KeyType': 'HASH'},
        {'AttributeName': 'sk', 'KeyType': 'RANGE'},
    ],
    'ProvisionedThroughput': {
        'ReadCapacityUnits': 5,
        'WriteCapacityUnits': 10,
        'NumberOfDecreasesToday': 0,
    },
    'GlobalSecondaryIndexes': [
        {
            'IndexName': 'gsi1',
            'KeySchema': [{'AttributeName': 'gsi1pk', 'KeyType': 'HASH'}],
            'Projection': {'ProjectionType': 'ALL'},
            'IndexStatus': 'ACTIVE',
            'ItemCount': 0,
            'ProvisionedThroughput': {
                'ReadCapacityUnits': 2,
                'WriteCapacityUnits': 3,
                'NumberOfDecreasesToday': 0,
            },
        }
    ],
    'StreamSpecification': {'StreamEnabled': True, 'StreamViewType': 'NEW_AND_OLD_IMAGES'},
}
