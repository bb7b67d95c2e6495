"""Tests for the error taxonomy and ErrorHandler."""

import logging

from botocore.exceptions import NoCredentialsError

from global_tables.utils.errors import (
    DeploymentError,
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    StackWaitTimeoutError,
    TopologyNotFoundError,
    get_error_code,
    is_not_found,
)

from conftest import client_error


class TestHelpers:
    def test_get_error_code(self):
        assert get_error_code(client_error('ValidationError')) == 'ValidationError'
        assert get_error_code(RuntimeError('x')) is None

    def test_not_found_codes(self):
        assert is_not_found(client_error('GlobalTableNotFoundException'))
        assert is_not_found(client_error('ResourceNotFoundException'))
        assert not is_not_found(client_error('AccessDeniedException'))
        assert not is_not_found(TopologyNotFoundError('gone'))


class TestErrorHandler:
    def setup_method(self):
        self.handler = ErrorHandler()

    def test_deployment_errors_pass_through(self):
        error = StackWaitTimeoutError('still waiting', last_status='CREATE_IN_PROGRESS')

        assert self.handler.handle_exception(error) is error

    def test_mapped_aws_error(self):
        context = ErrorContext(table_name='orders-dev', region='us-east-1')

        error = self.handler.handle_exception(
            client_error('AccessDeniedException', 'UpdateTable', 'not allowed'), context
        )

        assert error.category == ErrorCategory.PERMISSION
        assert 'not allowed' in error.message
        assert error.context.aws_operation == 'UpdateTable'
        assert error.suggestions

    def test_unmapped_aws_error(self):
        error = self.handler.handle_exception(client_error('SomethingOdd', message='odd'))

        assert error.category == ErrorCategory.AWS
        assert error.message == 'AWS Error (SomethingOdd): odd'

    def test_credentials_error(self):
        error = self.handler.handle_exception(NoCredentialsError())

        assert error.category == ErrorCategory.CREDENTIAL
        assert error.severity == ErrorSeverity.CRITICAL

    def test_network_error(self):
        error = self.handler.handle_exception(ConnectionError('reset'))

        assert error.category == ErrorCategory.NETWORK

    def test_unknown_error_keeps_cause(self):
        cause = KeyError('Table')

        error = self.handler.handle_exception(cause)

        assert error.category == ErrorCategory.UNKNOWN
        assert error.cause is cause

    def test_log_error_level_follows_severity(self, caplog):
        with caplog.at_level(logging.INFO, logger='global_tables'):
            self.handler.log_error(TopologyNotFoundError('no global table yet'))
            self.handler.log_error(DeploymentError('broken'))

        levels = [r.levelno for r in caplog.records]
        assert logging.INFO in levels
        assert logging.ERROR in levels


class TestDeploymentError:
    def test_user_message_includes_context_and_suggestions(self):
        error = DeploymentError(
            'Replica failed',
            context=ErrorContext(table_name='orders-dev', region='eu-west-1'),
            suggestions=['Retry']
        )

        message = error.to_user_message()

        assert message.startswith('ERROR: Replica failed')
        assert 'Table: orders-dev' in message
        assert 'Region: eu-west-1' in message
        assert '1. Retry' in message

    def test_to_dict(self):
        error = DeploymentError('x', context=ErrorContext(stack_name='orders-dev'), cause=ValueError('y'))

        data = error.to_dict()

        assert data['context']['stack_name'] == 'orders-dev'
        assert data['cause'] == 'y'
        assert data['category'] == 'unknown'
