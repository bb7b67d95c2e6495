"""Utility modules for logging, AWS client management, and errors."""

from global_tables.utils.aws_client import AWSClientManager
from global_tables.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    DeploymentError,
    ConfigurationError,
    ProvisioningError,
    ValidationError,
    TopologyNotFoundError,
    StackWaitTimeoutError,
    OperationCancelledError,
    ErrorHandler,
    error_handler,
    get_error_code,
    is_not_found,
)
from global_tables.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # AWS Client
    'AWSClientManager',

    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'DeploymentError',
    'ConfigurationError',
    'ProvisioningError',
    'ValidationError',
    'TopologyNotFoundError',
    'StackWaitTimeoutError',
    'OperationCancelledError',
    'ErrorHandler',
    'error_handler',
    'get_error_code',
    'is_not_found',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
