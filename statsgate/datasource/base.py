"""
Base data source interface.
"""

from abc import ABC, abstractmethod
from typing import Any

from statsgate.services.client import ServiceClient
from statsgate.services.health import HealthAggregator, HealthReport


class BaseDataSource(ABC):
    """
    Abstract base class for upstream data sources.

    All data sources should:
    - Use an injected ServiceClient for HTTP requests (caching, circuit breaker, etc.)
    - Return Pydantic models
    - Degrade instead of raising, except for invalid input
    """

    def __init__(self, client: ServiceClient, offline: bool = False):
        self.client = client
        self.offline = offline
        self.health = HealthAggregator(client, offline=offline)

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this data source."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the data source is properly configured."""
        ...

    async def health_check(self) -> HealthReport:
        return await self.health.check()

    async def is_api_available(self) -> bool:
        """Single lightweight upstream probe."""
        ok, _ = await self.health.check_api()
        return ok

    def get_cache_stats(self) -> dict[str, Any]:
        return self.client.cache.get_stats().to_dict()

    async def close(self) -> None:
        await self.client.close()
