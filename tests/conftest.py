import asyncio
from pathlib import Path
from typing import Callable

import pytest
import pytest_asyncio
import structlog

from ibc_relayer.chain import MockChainClient
from ibc_relayer.config import Settings
from ibc_relayer.models import ChainSetupOptions, PathDefinition
from ibc_relayer.registry import ChainRegistry
from ibc_relayer.relayer import Relayer
from ibc_relayer.store import ConfigStore

# 0.025 * 2_256_000 = 56_400 uatom, 0.01 * 2_256_000 = 22_560 stake
CHAIN_A_MINIMUM = 56_400
CHAIN_B_MINIMUM = 22_560


def chain_options(rpc_addr: str, gas_price: str) -> ChainSetupOptions:
    return ChainSetupOptions(
        account="relayer",
        rpc_addr=rpc_addr,
        address_prefix="cosmos",
        gas_price=gas_price,
        gas_limit=300_000,
    )


def setup_chains(registry: ChainRegistry) -> None:
    registry.ensure_chain_setup("chain-a", chain_options("http://localhost:26657", "0.025uatom"))
    registry.ensure_chain_setup("chain-b", chain_options("http://localhost:26659", "0.01stake"))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging configuration done by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "relayer" / "config.yml"


@pytest.fixture
def store(config_path: Path) -> ConfigStore:
    return ConfigStore(config_path)


@pytest.fixture
def client() -> MockChainClient:
    client = MockChainClient()
    client.set_balance("chain-a", "uatom", 10_000_000)
    client.set_balance("chain-b", "stake", 10_000_000)
    return client


@pytest.fixture
def settings(config_path: Path) -> Settings:
    return Settings(
        config_dir=config_path.parent,
        config_file=config_path.name,
        poll_time=0.01,
        max_backoff=0.04,
        request_timeout=5.0,
        failure_threshold=3,
        chain_client=None,
    )


@pytest.fixture
def registry(store: ConfigStore) -> ChainRegistry:
    registry = ChainRegistry(store)
    setup_chains(registry)
    return registry


@pytest.fixture
def relayer(store: ConfigStore, client: MockChainClient, settings: Settings) -> Relayer:
    """Relayer with two funded chains and an unlinked path p1 from chain-a to chain-b."""
    relayer = Relayer(store, client, settings)
    setup_chains(relayer.registry)
    relayer.create_path(PathDefinition(id="p1", src_chain_id="chain-a", dst_chain_id="chain-b"))
    return relayer


@pytest_asyncio.fixture
async def linked_relayer(relayer: Relayer, client: MockChainClient) -> Relayer:
    """Same as ``relayer`` with p1 already linked and the call log cleared."""
    response = await relayer.link(["p1"])
    assert response.linked_paths == ["p1"]
    client.calls.clear()
    return relayer
