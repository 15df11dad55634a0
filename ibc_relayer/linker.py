"""
Path linking: connection and channel establishment between two chains.

A path moves from unlinked to linked exactly once. The linked state, the
channel ids and the connection ids are written in a single store mutation,
so a failed attempt leaves the persisted path untouched.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Iterable, Optional, TypeVar

import structlog

from .balance import BalanceGuard
from .chain import ChainClient, Side, calc_gas_limits
from .errors import (
    ChainNotFound,
    ChannelFailed,
    ConfigError,
    ConnectionFailed,
    PathAlreadyLinked,
    PathNotFound,
    PathsNotDefined,
)
from .models import (
    ConnectOptions,
    Connections,
    LinkFailure,
    LinkResponse,
    PathConfig,
    RelayerConfig,
)
from .store import ConfigStore

logger = structlog.get_logger()

T = TypeVar("T")


class LinkState(str, Enum):
    UNLINKED = "unlinked"
    LINKING = "linking"
    LINKED = "linked"
    LINK_FAILED = "link_failed"


@dataclass
class LinkStatus:
    """Result of a single link attempt."""

    path_name: str
    state: LinkState
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state is LinkState.LINKED


class PathLinker:
    """
    Links a single path:
    1. Resolves both chains
    2. Checks both relayer accounts can pay for the setup
    3. Creates new connections and a channel, initiated from the source side
    4. Persists channel ids, connections and the linked flag together
    """

    def __init__(
        self,
        store: ConfigStore,
        client: ChainClient,
        balance_guard: BalanceGuard,
        request_timeout: Optional[float] = None,
    ):
        self.store = store
        self.client = client
        self.balance_guard = balance_guard
        self.request_timeout = request_timeout

    async def _call(self, aw: Awaitable[T]) -> T:
        return await asyncio.wait_for(aw, timeout=self.request_timeout)

    async def create_link(self, path_config: PathConfig) -> LinkStatus:
        path = path_config.path
        config = self.store.load()
        mnemonic = config.mnemonic

        chain_a = config.chain_by_id(path.src.chain_id)
        if chain_a is None:
            raise ChainNotFound(path.src.chain_id)
        chain_b = config.chain_by_id(path.dst.chain_id)
        if chain_b is None:
            raise ChainNotFound(path.dst.chain_id)

        for chain in (chain_a, chain_b):
            if not await self.balance_guard.check_sufficient_balance(chain, mnemonic):
                error = self.balance_guard.insufficient_balance_error(chain)
                logger.warning("link_insufficient_balance", path_id=path.id, error=error.message)
                return LinkStatus(path.id, LinkState.LINK_FAILED, error.message)

        options = path_config.options or ConnectOptions()
        logger.info(
            "linking_path",
            path_id=path.id,
            src=chain_a.chain_id,
            dst=chain_b.chain_id,
            state=LinkState.LINKING.value,
        )

        try:
            handle_a = await self._call(
                self.client.connect_with_signer(chain_a, mnemonic, calc_gas_limits(chain_a.gas_limit))
            )
            handle_b = await self._call(
                self.client.connect_with_signer(chain_b, mnemonic, calc_gas_limits(chain_b.gas_limit))
            )
            link = await self._call(self.client.create_link_with_new_connections(handle_a, handle_b))
        except Exception as e:
            error = ConnectionFailed(path.id, e)
            logger.error("link_connection_failed", path_id=path.id, error=str(e))
            return LinkStatus(path.id, LinkState.LINK_FAILED, error.message)

        try:
            channels = await self._call(
                self.client.create_channel(
                    link,
                    Side.A,
                    options.source_port,
                    options.target_port,
                    options.ordering,
                    options.target_version,
                )
            )
        except Exception as e:
            error = ChannelFailed(path.id, e)
            logger.error("link_channel_failed", path_id=path.id, error=str(e))
            return LinkStatus(path.id, LinkState.LINK_FAILED, error.message)

        def apply(doc: RelayerConfig) -> None:
            stored = doc.path_by_id(path.id)
            if stored is None:
                raise PathNotFound(path.id)
            if stored.is_linked:
                raise PathAlreadyLinked(path.id)
            stored.path.src.channel_id = channels.src.channel_id
            stored.path.dst.channel_id = channels.dest.channel_id
            stored.path.is_linked = True
            stored.connections = Connections(
                src_connection=link.connection_a,
                dest_connection=link.connection_b,
            )
            stored.relayer_data = None

        self.store.mutate(apply)

        logger.info(
            "path_linked",
            path_id=path.id,
            src_channel=channels.src.channel_id,
            dst_channel=channels.dest.channel_id,
            src_connection=link.connection_a,
            dst_connection=link.connection_b,
        )
        return LinkStatus(path.id, LinkState.LINKED)


class LinkOrchestrator:
    """
    Links a batch of paths.

    Already linked paths are skipped without any chain access. The rest are
    linked concurrently up to ``concurrency`` at a time; paths sharing a
    chain take turns so one account never signs two setups at once.
    """

    def __init__(self, store: ConfigStore, linker: PathLinker, concurrency: int = 4):
        self.store = store
        self.linker = linker
        self.concurrency = max(1, concurrency)

    async def link(self, path_ids: Iterable[str]) -> LinkResponse:
        config = self.store.load()
        if not config.paths:
            raise PathsNotDefined()

        response = LinkResponse()
        pending: list[PathConfig] = []
        seen: set[str] = set()

        for path_id in path_ids:
            if path_id in seen:
                continue
            seen.add(path_id)

            path_config = config.path_by_id(path_id)
            if path_config is None:
                response.failed_to_link_paths.append(
                    LinkFailure(path_name=path_id, error=PathNotFound(path_id).message)
                )
                continue
            if path_config.is_linked:
                response.already_linked_paths.append(path_id)
                continue
            pending.append(path_config)

        semaphore = asyncio.Semaphore(self.concurrency)
        chain_locks: dict[str, asyncio.Lock] = {}
        for path_config in pending:
            for chain_id in (path_config.path.src.chain_id, path_config.path.dst.chain_id):
                chain_locks.setdefault(chain_id, asyncio.Lock())

        async def link_one(path_config: PathConfig) -> LinkStatus:
            path = path_config.path
            # Fixed lock order avoids deadlock between paths over the same chains.
            locks = [chain_locks[c] for c in sorted({path.src.chain_id, path.dst.chain_id})]
            acquired: list[asyncio.Lock] = []
            async with semaphore:
                try:
                    for lock in locks:
                        await lock.acquire()
                        acquired.append(lock)
                    return await self.linker.create_link(path_config)
                except ConfigError:
                    raise
                except Exception as e:
                    logger.error("link_path_error", path_id=path.id, error=str(e))
                    message = getattr(e, "message", None) or str(e) or type(e).__name__
                    return LinkStatus(path.id, LinkState.LINK_FAILED, message)
                finally:
                    for lock in reversed(acquired):
                        lock.release()

        # Every attempt settles before a config error propagates.
        results = await asyncio.gather(
            *(link_one(p) for p in pending), return_exceptions=True
        )

        error: Optional[BaseException] = None
        for result in results:
            if isinstance(result, BaseException):
                error = error or result
                continue
            if result.success:
                response.linked_paths.append(result.path_name)
            else:
                response.failed_to_link_paths.append(
                    LinkFailure(path_name=result.path_name, error=result.error or "")
                )

        logger.info(
            "link_complete",
            linked=len(response.linked_paths),
            already_linked=len(response.already_linked_paths),
            failed=len(response.failed_to_link_paths),
        )
        if error is not None:
            logger.error("link_aborted", error=str(error), linked=response.linked_paths)
            raise error
        return response
