"""
EasyQ Runtime

Context object owning the connection manager and the engines that use
it. The bridge and the HTTP service each hold one.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Union

from .config import Settings, get_settings
from .connection import Connection, ConnectionConfig, ConnectionManager
from .connection.manager import ResourceFactory
from .models import (
    ChannelOptions,
    ChannelReport,
    KeyOptions,
    KeyResult,
    RandomResult,
    SearchOptions,
    SearchResult,
)
from .policy import FallbackPolicy
from .qkd import ChannelSecurityVerifier, KeyDistributionEngine
from .randomness import ChaCha20CSPRNG, RandomnessEngine
from .resources import create_resource
from .search import SearchEngine

logger = logging.getLogger(__name__)


class EasyQRuntime:
    """Manager plus engines, sharing one settings object and fallback policy."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        resource_factory: ResourceFactory = create_resource,
        fallback: Optional[ChaCha20CSPRNG] = None,
    ):
        self.settings = settings or get_settings()
        self.policy = FallbackPolicy(enabled=self.settings.allow_classical_fallback)
        self.manager = ConnectionManager(self.settings, resource_factory)
        self.randomness = RandomnessEngine(
            self.manager, policy=self.policy, fallback=fallback, settings=self.settings
        )
        self.search_engine = SearchEngine(self.manager, policy=self.policy, settings=self.settings)
        self.verifier = ChannelSecurityVerifier(settings=self.settings)
        self.keys = KeyDistributionEngine(
            self.manager, self.randomness, verifier=self.verifier, settings=self.settings
        )

    @property
    def version(self) -> str:
        return self.manager.version

    def initialize(self) -> None:
        self.manager.initialize()

    async def shutdown(self) -> None:
        await self.manager.shutdown()

    async def configure(self, config: Union[ConnectionConfig, Dict[str, Any]]) -> Connection:
        return await self.manager.configure(config)

    async def use_default_simulator(self) -> Connection:
        return await self.manager.use_default_simulator()

    async def search(
        self,
        items: Sequence[Any],
        predicate: Any,
        options: Optional[SearchOptions] = None,
    ) -> SearchResult:
        return await self.search_engine.search(items, predicate, options)

    async def search_one(
        self,
        items: Sequence[Any],
        predicate: Any,
        options: Optional[SearchOptions] = None,
    ) -> SearchResult:
        return await self.search_engine.search_one(items, predicate, options)

    async def random_int(self, min_value: int, max_value: int, timeout: Optional[float] = None) -> RandomResult:
        return await self.randomness.random_int(min_value, max_value, timeout)

    async def random_bytes(self, length: int, timeout: Optional[float] = None) -> RandomResult:
        return await self.randomness.random_bytes(length, timeout)

    async def generate_key(self, options: Optional[KeyOptions] = None) -> KeyResult:
        return await self.keys.generate_key(options)

    async def verify_channel_security(self, options: Optional[ChannelOptions] = None) -> ChannelReport:
        return await self.keys.verify_channel_security(options)
