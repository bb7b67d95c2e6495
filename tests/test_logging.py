"""Tests for logging helpers."""

import json
import logging

from global_tables.utils.logging import ConsoleFormatter, JSONFormatter, LogContext, get_logger


def make_record(message='Creating replica'):
    return logging.getLogRecordFactory()('global_tables.test', logging.INFO, __file__, 1, message, None, None)


def test_log_context_adds_fields_and_restores_factory():
    original = logging.getLogRecordFactory()

    with LogContext(table_name='orders-dev', region='us-east-1'):
        record = make_record()

    assert record.table_name == 'orders-dev'
    assert record.region == 'us-east-1'
    assert logging.getLogRecordFactory() is original
    assert not hasattr(make_record(), 'table_name')


def test_json_formatter_includes_context():
    with LogContext(table_name='orders-dev', operation='link'):
        record = make_record()

    data = json.loads(JSONFormatter().format(record))

    assert data['message'] == 'Creating replica'
    assert data['level'] == 'INFO'
    assert data['table_name'] == 'orders-dev'
    assert data['operation'] == 'link'
    assert 'region' not in data


def test_console_formatter_prefixes_table_and_region():
    with LogContext(table_name='orders-dev', region='eu-west-1'):
        record = make_record()

    assert '[orders-dev/eu-west-1] Creating replica' in ConsoleFormatter().format(record)


def test_get_logger():
    assert get_logger('global_tables.core').name == 'global_tables.core'
