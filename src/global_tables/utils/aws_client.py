"""AWS client management across replica regions."""

import threading
from typing import Optional, Dict, Any, Tuple

import boto3
from botocore.config import Config

from global_tables.utils.logging import get_logger

logger = get_logger(__name__)


class AWSClientManager:
    """Manages one boto3 session and caches clients per (service, region).

    Global table setup talks to the same services in several regions, so
    clients are keyed by region as well as service name. botocore's
    adaptive retry mode is the only retry layer.
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        max_pool_connections: int = 20,
        session: Optional[boto3.Session] = None
    ):
        """Initialize AWS client manager.

        Args:
            profile: AWS profile name to use
            region: Source (home) region of the service
            max_pool_connections: Maximum number of connections in the connection pool
            session: Pre-built boto3 session, mainly for tests
        """
        self.profile = profile
        self.region = region
        self.max_pool_connections = max_pool_connections
        self._session = session
        self._clients: Dict[Tuple[str, str], Any] = {}
        self._lock = threading.Lock()

        self._boto_config = Config(
            max_pool_connections=max_pool_connections,
            retries={
                'mode': 'adaptive',
                'max_attempts': 5
            },
            connect_timeout=10,
            read_timeout=60
        )

    @property
    def session(self) -> boto3.Session:
        """Get or create the boto3 session."""
        if self._session is None:
            kwargs = {}
            if self.profile:
                kwargs['profile_name'] = self.profile
            if self.region:
                kwargs['region_name'] = self.region

            self._session = boto3.Session(**kwargs)
            logger.info(f"Created AWS session - Region: {self._session.region_name}, "
                        f"Profile: {self.profile or 'default'}")

        return self._session

    def get_client(self, service_name: str, region: Optional[str] = None):
        """Get a boto3 client for a service in a region.

        Region workers run on separate threads, so creation is guarded; boto3
        clients themselves are safe to share once built.

        Args:
            service_name: AWS service name (e.g., 'dynamodb', 'cloudformation')
            region: Region for the client; defaults to the source region

        Returns:
            Boto3 client for the service
        """
        region = region or self.get_region()
        cache_key = (service_name, region)

        with self._lock:
            if cache_key not in self._clients:
                self._clients[cache_key] = self.session.client(
                    service_name, region_name=region, config=self._boto_config
                )
                logger.debug(f"Created {service_name} client for {region}")
            return self._clients[cache_key]

    def get_region(self) -> str:
        """Get the source region."""
        return self.region or self.session.region_name

    def clear_cache(self):
        """Clear cached clients and session."""
        with self._lock:
            self._clients.clear()
        self._session = None
        logger.debug("Cleared AWS client cache")
