"""Error handling framework for global table operations."""

from typing import Optional, Dict, Any, List
from enum import Enum
from dataclasses import dataclass
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError
from global_tables.utils.logging import get_logger

logger = get_logger(__name__)

# Provider error codes meaning "the table / global table does not exist yet"
NOT_FOUND_ERROR_CODES = frozenset({
    'GlobalTableNotFoundException',
    'ResourceNotFoundException',
    'TableNotFoundException',
})


class ErrorCategory(Enum):
    """Categories of errors that can occur while setting up global tables."""
    CONFIGURATION = "configuration"
    AWS = "aws"
    NETWORK = "network"
    NOT_FOUND = "not_found"
    PROVISIONING = "provisioning"
    TIMEOUT = "timeout"
    CREDENTIAL = "credential"
    PERMISSION = "permission"
    RESOURCE_LIMIT = "resource_limit"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Run cannot continue
    ERROR = "error"  # Table failed but other tables can continue
    WARNING = "warning"
    INFO = "info"


@dataclass
class ErrorContext:
    """Context information for an error."""
    table_name: Optional[str] = None
    region: Optional[str] = None
    stack_name: Optional[str] = None
    operation: Optional[str] = None
    aws_operation: Optional[str] = None
    request_id: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class DeploymentError(Exception):
    """Base exception for global table errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize deployment error.

        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def to_user_message(self) -> str:
        """Convert error to user-friendly message.

        Returns:
            Formatted error message for display to user
        """
        lines = [f"{self.severity.value.upper()}: {self.message}"]

        if self.context.table_name:
            lines.append(f"   Table: {self.context.table_name}")
        if self.context.region:
            lines.append(f"   Region: {self.context.region}")
        if self.context.stack_name:
            lines.append(f"   Stack: {self.context.stack_name}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")

        if self.cause:
            lines.append(f"   Cause: {str(self.cause)}")

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': {
                'table_name': self.context.table_name,
                'region': self.context.region,
                'stack_name': self.context.stack_name,
                'operation': self.context.operation,
                'aws_operation': self.context.aws_operation,
                'request_id': self.context.request_id,
                'additional_info': self.context.additional_info
            },
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class ConfigurationError(DeploymentError):
    """Error in configuration file or settings."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class ProvisioningError(DeploymentError):
    """Error while creating stacks, replica tables or replication links."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.PROVISIONING,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class ValidationError(DeploymentError):
    """Error during validation."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class TopologyNotFoundError(DeploymentError):
    """The table or global table whose replicas were requested does not exist."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.INFO,
            **kwargs
        )


class StackWaitTimeoutError(DeploymentError):
    """A status poll ran out of attempts or time before reaching a terminal state."""

    def __init__(self, message: str, last_status: Optional[str] = None, **kwargs):
        kwargs.setdefault('suggestions', [
            'Check the resource status in the AWS console',
            'Increase stackTimeout in the globalTables configuration'
        ])
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )
        self.last_status = last_status


class OperationCancelledError(DeploymentError):
    """A status poll was cancelled by its caller."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.WARNING,
            **kwargs
        )


def get_error_code(error: Exception) -> Optional[str]:
    """Return the AWS error code of a ClientError, or None for other exceptions."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code')
    return None


def is_not_found(error: Exception) -> bool:
    """Check whether a provider error means the resource does not exist."""
    return get_error_code(error) in NOT_FOUND_ERROR_CODES


class ErrorHandler:
    """Converts AWS and other exceptions into categorized DeploymentErrors."""

    # Mapping of AWS error codes to error categories and suggestions
    AWS_ERROR_MAPPING = {
        'InvalidClientTokenId': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS credentials are invalid or expired',
            'suggestions': [
                'Check that your AWS credentials are correctly configured',
                'Verify credentials using: aws sts get-caller-identity'
            ]
        },
        'ExpiredToken': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS session token has expired',
            'suggestions': [
                'Refresh your AWS session credentials',
                'Re-authenticate with your identity provider'
            ]
        },
        'AccessDenied': {
            'category': ErrorCategory.PERMISSION,
            'message': 'Access denied - insufficient permissions',
            'suggestions': [
                'Check IAM policies attached to your user/role',
                'Global tables need dynamodb:CreateGlobalTable, dynamodb:UpdateGlobalTable '
                'and dynamodb:UpdateTable in every replica region'
            ]
        },
        'AccessDeniedException': {
            'category': ErrorCategory.PERMISSION,
            'message': 'Access denied - insufficient permissions',
            'suggestions': [
                'Check IAM policies attached to your user/role',
                'Verify the role may act in every configured replica region'
            ]
        },
        'LimitExceededException': {
            'category': ErrorCategory.RESOURCE_LIMIT,
            'message': 'AWS service limit exceeded',
            'suggestions': [
                'Too many tables are being created or updated at once; retry later',
                'Request a service limit increase through AWS Support'
            ]
        },
        'GlobalTableNotFoundException': {
            'category': ErrorCategory.NOT_FOUND,
            'message': 'Global table not found',
            'suggestions': [
                'Verify the table name and the source region'
            ]
        },
        'ResourceNotFoundException': {
            'category': ErrorCategory.NOT_FOUND,
            'message': 'Resource not found',
            'suggestions': [
                'Verify the table exists in the specified region',
                'Check that the stack was deployed before running deploy'
            ]
        },
        'GlobalTableAlreadyExistsException': {
            'category': ErrorCategory.PROVISIONING,
            'message': 'Global table already exists',
            'suggestions': [
                'Run the status command to inspect current replication'
            ]
        },
        'ReplicaAlreadyExistsException': {
            'category': ErrorCategory.PROVISIONING,
            'message': 'Replica already exists',
            'suggestions': [
                'Run the status command to inspect current replication'
            ]
        },
        'ResourceInUseException': {
            'category': ErrorCategory.PROVISIONING,
            'message': 'Resource is currently in use',
            'suggestions': [
                'Wait for the table to become ACTIVE and retry',
                'Only one replica can be added or removed at a time'
            ]
        },
        'ValidationException': {
            'category': ErrorCategory.VALIDATION,
            'message': 'Invalid parameter or configuration',
            'suggestions': [
                'Version 2019.11.21 replicas need streams with NEW_AND_OLD_IMAGES',
                'Provisioned tables need write auto scaling for 2019.11.21 replicas'
            ]
        },
        'ValidationError': {
            'category': ErrorCategory.VALIDATION,
            'message': 'CloudFormation rejected the request',
            'suggestions': [
                'Check the compiled template at templatePath',
                'Verify the stack is not in a ROLLBACK_COMPLETE state'
            ]
        },
        'RequestTimeout': {
            'category': ErrorCategory.NETWORK,
            'message': 'Request timed out',
            'suggestions': [
                'Check your network connectivity',
                'Retry the operation'
            ]
        },
    }

    def __init__(self):
        self.logger = get_logger(__name__)

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> DeploymentError:
        """Handle an exception and convert to DeploymentError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            DeploymentError with categorization and suggestions
        """
        context = context or ErrorContext()

        if isinstance(error, DeploymentError):
            return error

        if isinstance(error, ClientError):
            return self._handle_aws_error(error, context)

        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return DeploymentError(
                message=f'AWS credentials unavailable: {error}',
                category=ErrorCategory.CREDENTIAL,
                severity=ErrorSeverity.CRITICAL,
                context=context,
                cause=error,
                suggestions=[
                    'Configure AWS credentials using: aws configure',
                    'Specify a profile with --profile'
                ]
            )

        if isinstance(error, (ConnectionError, TimeoutError)):
            return DeploymentError(
                message=f'Network error: {error}',
                category=ErrorCategory.NETWORK,
                context=context,
                cause=error,
                suggestions=['Check your internet connection', 'Retry the operation']
            )

        return DeploymentError(
            message=str(error),
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )

    def _handle_aws_error(
        self,
        error: ClientError,
        context: ErrorContext
    ) -> DeploymentError:
        error_code = error.response.get('Error', {}).get('Code', 'Unknown')
        error_message = error.response.get('Error', {}).get('Message', str(error))
        context.request_id = error.response.get('ResponseMetadata', {}).get('RequestId')
        context.aws_operation = getattr(error, 'operation_name', None)

        error_info = self.AWS_ERROR_MAPPING.get(error_code)
        if error_info:
            return DeploymentError(
                message=f"{error_info['message']}: {error_message}",
                category=error_info['category'],
                severity=ErrorSeverity.ERROR,
                context=context,
                cause=error,
                suggestions=error_info['suggestions']
            )

        return DeploymentError(
            message=f"AWS Error ({error_code}): {error_message}",
            category=ErrorCategory.AWS,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=[
                'Check AWS documentation for this error code',
                f'AWS Request ID: {context.request_id}'
            ]
        )

    def log_error(self, error: DeploymentError):
        """Log an error with appropriate level.

        Args:
            error: The error to log
        """
        log_message = error.to_user_message()

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR):
            self.logger.error(log_message)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)

        self.logger.debug(f"Error details: {error.to_dict()}")


# Global error handler instance
error_handler = ErrorHandler()
