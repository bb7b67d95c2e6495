"""Cross-region replication setup for DynamoDB tables of a deployed stack."""

__version__ = "0.1.0"
