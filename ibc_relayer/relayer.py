"""
Relay loops and the relayer facade.

Each started path gets its own asyncio task. A tick relays pending packets
and acknowledgements from the stored checkpoint, persists the new
checkpoint, and refreshes stale light clients on both sides.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Iterable, Optional, TypeVar

import structlog

from .balance import BalanceGuard
from .chain import ChainClient, Link, Side, calc_gas_limits, load_chain_client
from .config import Settings
from .errors import (
    ChainNotFound,
    PathNotFound,
    PathNotLinked,
    PathsNotDefined,
    RelayPacketError,
)
from .linker import LinkOrchestrator, PathLinker
from .models import (
    ChainSetupOptions,
    ChainSetupResponse,
    Coin,
    InfoResponse,
    LinkResponse,
    PacketHeights,
    PathConfig,
    PathDefinition,
    RelayerConfig,
)
from .registry import ChainRegistry
from .store import ConfigStore

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class PathLoopState:
    """Current state of one path's relay loop."""

    is_running: bool = False
    ticks: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_tick_time: Optional[datetime] = None
    last_error: Optional[str] = None
    checkpoint: Optional[PacketHeights] = None


class RelayLoop:
    """Schedules and runs one relay task per linked path."""

    def __init__(
        self,
        store: ConfigStore,
        client: ChainClient,
        poll_time: float = 5.0,
        src_retries: int = 2,
        dst_retries: int = 6,
        max_age_src: int = 86400,
        max_age_dest: int = 86400,
        request_timeout: Optional[float] = None,
        failure_threshold: int = 5,
        max_backoff: float = 60.0,
    ):
        self.store = store
        self.client = client
        self.poll_time = poll_time
        self.src_retries = src_retries
        self.dst_retries = dst_retries
        self.max_age_src = max_age_src
        self.max_age_dest = max_age_dest
        self.request_timeout = request_timeout
        self.failure_threshold = failure_threshold
        self.max_backoff = max_backoff

        self.states: dict[str, PathLoopState] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._links: dict[str, Link] = {}

    async def _call(self, aw: Awaitable[T]) -> T:
        return await asyncio.wait_for(aw, timeout=self.request_timeout)

    def running_paths(self) -> list[str]:
        return [path_id for path_id, task in self._tasks.items() if not task.done()]

    async def start(self, path_ids: Iterable[str]) -> dict:
        """
        Schedule relay loops for linked paths.

        Every id is validated before any loop is scheduled, so one unlinked
        or unknown path fails the whole call.
        """
        config = self.store.load()
        if not config.paths:
            raise PathsNotDefined()

        to_start: list[str] = []
        for path_id in dict.fromkeys(path_ids):
            path_config = config.path_by_id(path_id)
            if path_config is None:
                raise PathNotFound(path_id)
            if not path_config.is_linked:
                raise PathNotLinked(path_id)
            to_start.append(path_id)

        for path_id in to_start:
            task = self._tasks.get(path_id)
            if task is not None and not task.done():
                logger.info("relay_loop_already_running", path_id=path_id)
                continue
            self.states[path_id] = PathLoopState()
            self._tasks[path_id] = asyncio.create_task(self._run(path_id), name=f"relay-{path_id}")
            logger.info("relay_loop_scheduled", path_id=path_id, poll_time=self.poll_time)

        return {}

    async def stop(self, path_ids: Optional[Iterable[str]] = None) -> None:
        """Cancel relay loops (all of them by default) and wait for them to exit."""
        targets = list(self._tasks) if path_ids is None else [p for p in path_ids if p in self._tasks]
        tasks = [self._tasks.pop(path_id) for path_id in targets]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for path_id in targets:
            self._links.pop(path_id, None)
        if targets:
            logger.info("relay_loops_stopped", paths=targets)

    async def wait(self) -> None:
        """Wait until every scheduled loop has exited."""
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    def _next_delay(self, state: PathLoopState) -> float:
        if state.consecutive_failures == 0:
            return self.poll_time
        # Exponent is capped so the float conversion cannot overflow on long streaks.
        exponent = min(state.consecutive_failures, 32)
        backoff = self.poll_time * (2 ** exponent)
        return max(self.poll_time, min(backoff, self.max_backoff))

    async def _run(self, path_id: str) -> None:
        state = self.states[path_id]
        state.is_running = True
        try:
            while True:
                try:
                    delay = self._next_delay(state)
                except Exception as e:
                    logger.error("relay_delay_error", path_id=path_id, error=str(e))
                    delay = self.poll_time
                await asyncio.sleep(delay)
                try:
                    state.checkpoint = await self.run_once(path_id)
                except Exception as e:
                    self._record_failure(path_id, state, e)
                else:
                    state.consecutive_failures = 0
                    state.last_error = None
                finally:
                    state.ticks += 1
                    state.last_tick_time = datetime.now()
        finally:
            state.is_running = False

    def _record_failure(self, path_id: str, state: PathLoopState, error: Exception) -> None:
        state.failures += 1
        state.consecutive_failures += 1
        state.last_error = str(error)
        logger.warning(
            "relay_tick_failed",
            path_id=path_id,
            error=str(error),
            consecutive_failures=state.consecutive_failures,
        )
        if state.consecutive_failures == self.failure_threshold:
            logger.error(
                "relay_loop_unhealthy",
                path_id=path_id,
                consecutive_failures=state.consecutive_failures,
                last_error=state.last_error,
            )

    async def _ensure_link(self, path_config: PathConfig, config: RelayerConfig) -> Link:
        path_id = path_config.id
        link = self._links.get(path_id)
        if link is not None:
            return link

        path = path_config.path
        chain_a = config.chain_by_id(path.src.chain_id)
        if chain_a is None:
            raise ChainNotFound(path.src.chain_id)
        chain_b = config.chain_by_id(path.dst.chain_id)
        if chain_b is None:
            raise ChainNotFound(path.dst.chain_id)
        if path_config.connections is None:
            raise PathNotLinked(path_id)

        handle_a = await self._call(
            self.client.connect_with_signer(chain_a, config.mnemonic, calc_gas_limits(chain_a.gas_limit))
        )
        handle_b = await self._call(
            self.client.connect_with_signer(chain_b, config.mnemonic, calc_gas_limits(chain_b.gas_limit))
        )
        link = await self._call(
            self.client.create_link_with_existing_connections(
                handle_a,
                handle_b,
                path_config.connections.src_connection,
                path_config.connections.dest_connection,
            )
        )
        self._links[path_id] = link
        logger.info("relay_link_ready", path_id=path_id)
        return link

    def _save_checkpoint(self, path_id: str, heights: PacketHeights) -> PacketHeights:
        saved: list[PacketHeights] = []

        def apply(doc: RelayerConfig) -> None:
            stored = doc.path_by_id(path_id)
            if stored is None:
                raise PathNotFound(path_id)
            previous = stored.relayer_data or PacketHeights()
            merged = previous.merge(heights)
            if merged != heights:
                logger.warning(
                    "checkpoint_regression_ignored",
                    path_id=path_id,
                    stored=previous.model_dump(),
                    received=heights.model_dump(),
                )
            stored.relayer_data = merged
            saved.append(merged)

        self.store.mutate(apply)
        return saved[0]

    async def run_once(self, path_id: str) -> PacketHeights:
        """
        Run one relay tick for a path and return the persisted checkpoint.

        The checkpoint is written as soon as packets are relayed, before the
        light client refresh, so a refresh failure keeps the relay progress.
        """
        config = self.store.load()
        path_config = config.path_by_id(path_id)
        if path_config is None:
            raise PathNotFound(path_id)
        if not path_config.is_linked:
            raise PathNotLinked(path_id)

        link = await self._ensure_link(path_config, config)
        checkpoint = path_config.relayer_data or PacketHeights()

        try:
            heights = await self._call(
                self.client.relay_pending_packets_and_acks(
                    link, checkpoint, self.src_retries, self.dst_retries
                )
            )
        except Exception as e:
            self._links.pop(path_id, None)
            raise RelayPacketError(path_id, e) from e

        saved = self._save_checkpoint(path_id, heights)
        logger.debug("relay_tick_complete", path_id=path_id, **saved.model_dump())

        try:
            await self._call(self.client.update_client_if_stale(link, Side.A, self.max_age_dest))
            await self._call(self.client.update_client_if_stale(link, Side.B, self.max_age_src))
        except Exception as e:
            self._links.pop(path_id, None)
            raise RelayPacketError(path_id, e) from e

        return saved


class Relayer:
    """
    Facade exposing the relayer operations:
    link, start, stop, ensure_chain_setup, create_path, get_path,
    list_paths, get_account_balance and info.
    """

    def __init__(
        self,
        store: ConfigStore,
        client: ChainClient,
        settings: Optional[Settings] = None,
    ):
        settings = settings or Settings()
        self.settings = settings
        self.store = store
        self.client = client

        self.registry = ChainRegistry(store)
        self.balance_guard = BalanceGuard(
            client,
            ibc_setup_gas=settings.ibc_setup_gas,
            request_timeout=settings.request_timeout,
        )
        self.linker = PathLinker(
            store, client, self.balance_guard, request_timeout=settings.request_timeout
        )
        self.orchestrator = LinkOrchestrator(
            store, self.linker, concurrency=settings.link_concurrency
        )
        self.loop = RelayLoop(
            store,
            client,
            poll_time=settings.poll_time,
            src_retries=settings.src_retries,
            dst_retries=settings.dst_retries,
            max_age_src=settings.max_age_src,
            max_age_dest=settings.max_age_dest,
            request_timeout=settings.request_timeout,
            failure_threshold=settings.failure_threshold,
            max_backoff=settings.max_backoff,
        )

        logger.info(
            "relayer_initialized",
            config_path=str(store.config_path),
            poll_time=settings.poll_time,
            link_concurrency=settings.link_concurrency,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[ChainClient] = None
    ) -> "Relayer":
        """Create a relayer from settings, loading the configured chain client."""
        store = ConfigStore(settings.config_path)
        return cls(store, client or load_chain_client(settings.chain_client), settings)

    async def link(self, path_ids: Iterable[str]) -> LinkResponse:
        return await self.orchestrator.link(path_ids)

    async def start(self, path_ids: Iterable[str]) -> dict:
        return await self.loop.start(path_ids)

    async def stop(self, path_ids: Optional[Iterable[str]] = None) -> None:
        await self.loop.stop(path_ids)

    def ensure_chain_setup(self, chain_id: str, options: ChainSetupOptions) -> ChainSetupResponse:
        return self.registry.ensure_chain_setup(chain_id, options)

    def create_path(self, definition: PathDefinition) -> PathConfig:
        return self.registry.create_path(definition)

    def get_path(self, path_id: str) -> PathConfig:
        return self.registry.path_by_id(path_id)

    def list_paths(self) -> list[PathConfig]:
        return self.registry.list_paths()

    async def get_account_balance(self, chain_ids: Iterable[str]) -> list[Coin]:
        config = self.store.load()
        coins: list[Coin] = []
        for chain_id in chain_ids:
            chain = config.chain_by_id(chain_id)
            if chain is None:
                raise ChainNotFound(chain_id)
            coins.extend(await self.balance_guard.get_balance(chain, config.mnemonic))
        return coins

    def info(self) -> InfoResponse:
        return InfoResponse(config_path=str(self.store.config_path))
