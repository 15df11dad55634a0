"""
IBC Relayer

Links pairs of chains over IBC (connections and channels) and relays
packets and acknowledgements between them, keeping both light clients fresh.

Chain access goes through a pluggable chain client configured with
IBC_RELAYER_CHAIN_CLIENT=module:factory.

Usage:
    # Register chains and a path between them
    ibc-relayer chain-setup chain-a --rpc http://localhost:26657 --prefix cosmos --gas-price 0.025uatom
    ibc-relayer chain-setup chain-b --rpc http://localhost:26659 --prefix cosmos --gas-price 0.025uatom
    ibc-relayer create-path chain-a chain-b

    # Link the path and relay until interrupted
    ibc-relayer connect chain-a-chain-b
"""

__version__ = "0.1.0"

from .config import Settings
from .models import RelayerConfig, PathConfig, ChainConfig, PacketHeights
from .store import ConfigStore
from .registry import ChainRegistry
from .balance import BalanceGuard, GasPrice
from .linker import LinkOrchestrator, PathLinker
from .relayer import RelayLoop, Relayer
from .chain import ChainClient, MockChainClient

__all__ = [
    "__version__",
    "Settings",
    "RelayerConfig",
    "PathConfig",
    "ChainConfig",
    "PacketHeights",
    "ConfigStore",
    "ChainRegistry",
    "BalanceGuard",
    "GasPrice",
    "LinkOrchestrator",
    "PathLinker",
    "RelayLoop",
    "Relayer",
    "ChainClient",
    "MockChainClient",
]
