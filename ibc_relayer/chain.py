"""
Chain client capability used by the relayer core.

The core never talks to a chain directly. Everything that needs RPC access,
signing or proof construction goes through a ``ChainClient``. Real
implementations live outside this package and are loaded from a
``module:attribute`` factory reference.
"""

import importlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from .errors import ChainClientLoadFailed, ChainClientNotConfigured
from .models import ChainConfig, Coin, Ordering, PacketHeights


class Side(str, Enum):
    """Side of a link. A is the path source, B the destination."""

    A = "A"
    B = "B"


@dataclass
class ChannelEnd:
    channel_id: str
    port_id: str


@dataclass
class ChannelPair:
    """Channel ids created on both sides of a link."""

    src: ChannelEnd
    dest: ChannelEnd


class Link(Protocol):
    """An established link between two chain client handles."""

    connection_a: str
    connection_b: str


class ChainClient(Protocol):
    """Operations the relayer core needs from a chain client."""

    async def query_balance(self, chain: ChainConfig, mnemonic: Optional[str]) -> list[Coin]:
        ...

    async def connect_with_signer(
        self, chain: ChainConfig, mnemonic: Optional[str], gas_limits: dict[str, int]
    ) -> Any:
        ...

    async def create_link_with_new_connections(self, handle_a: Any, handle_b: Any) -> Link:
        ...

    async def create_link_with_existing_connections(
        self, handle_a: Any, handle_b: Any, connection_a: str, connection_b: str
    ) -> Link:
        ...

    async def create_channel(
        self,
        link: Link,
        side: Side,
        source_port: str,
        target_port: str,
        ordering: Ordering,
        version: str,
    ) -> ChannelPair:
        ...

    async def relay_pending_packets_and_acks(
        self,
        link: Link,
        checkpoint: PacketHeights,
        src_retries: int,
        dst_retries: int,
    ) -> PacketHeights:
        ...

    async def update_client_if_stale(self, link: Link, side: Side, max_age: int) -> None:
        ...


def calc_gas_limits(limit: int) -> dict[str, int]:
    """Per-message gas limits for IBC transactions on a chain."""
    return {
        "initClient": 150_000,
        "updateClient": 600_000,
        "initConnection": 150_000,
        "connectionHandshake": limit,
        "initChannel": 150_000,
        "channelHandshake": limit,
        "receivePacket": limit,
        "ackPacket": limit,
        "timeoutPacket": limit,
        "transfer": 180_000,
    }


def load_chain_client(reference: Optional[str]) -> ChainClient:
    """
    Build a chain client from a ``module:attribute`` reference.

    The attribute may be a class or a zero-argument factory.
    """
    if not reference:
        raise ChainClientNotConfigured()

    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ChainClientLoadFailed(reference, "expected module:attribute")

    try:
        module = importlib.import_module(module_name)
        factory: Callable[[], ChainClient] = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ChainClientLoadFailed(reference, str(e)) from e
    return factory()


# ============================================================================
# In-process client for tests and dry runs
# ============================================================================


@dataclass
class MockHandle:
    chain: ChainConfig


@dataclass
class MockLink:
    chain_a: str
    chain_b: str
    connection_a: str
    connection_b: str


@dataclass
class MockChainClient:
    """
    Chain client backed by in-memory state.

    ``balances`` maps chain id to coins. ``failures`` maps a method name to
    an exception raised on every call to it. ``calls`` records method names
    in call order.
    """

    balances: dict[str, list[Coin]] = field(default_factory=dict)
    failures: dict[str, BaseException] = field(default_factory=dict)
    height_step: int = 1
    calls: list[str] = field(default_factory=list)
    _next_connection: int = 0
    _next_channel: int = 0

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failures:
            raise self.failures[method]

    def set_balance(self, chain_id: str, denom: str, amount: int) -> None:
        self.balances[chain_id] = [Coin(denom=denom, amount=str(amount))]

    async def query_balance(self, chain: ChainConfig, mnemonic: Optional[str]) -> list[Coin]:
        self._enter("query_balance")
        return list(self.balances.get(chain.chain_id, []))

    async def connect_with_signer(
        self, chain: ChainConfig, mnemonic: Optional[str], gas_limits: dict[str, int]
    ) -> MockHandle:
        self._enter("connect_with_signer")
        return MockHandle(chain=chain)

    async def create_link_with_new_connections(
        self, handle_a: MockHandle, handle_b: MockHandle
    ) -> MockLink:
        self._enter("create_link_with_new_connections")
        first = self._next_connection
        self._next_connection += 2
        return MockLink(
            chain_a=handle_a.chain.chain_id,
            chain_b=handle_b.chain.chain_id,
            connection_a=f"connection-{first}",
            connection_b=f"connection-{first + 1}",
        )

    async def create_link_with_existing_connections(
        self, handle_a: MockHandle, handle_b: MockHandle, connection_a: str, connection_b: str
    ) -> MockLink:
        self._enter("create_link_with_existing_connections")
        return MockLink(
            chain_a=handle_a.chain.chain_id,
            chain_b=handle_b.chain.chain_id,
            connection_a=connection_a,
            connection_b=connection_b,
        )

    async def create_channel(
        self,
        link: MockLink,
        side: Side,
        source_port: str,
        target_port: str,
        ordering: Ordering,
        version: str,
    ) -> ChannelPair:
        self._enter("create_channel")
        first = self._next_channel
        self._next_channel += 2
        return ChannelPair(
            src=ChannelEnd(channel_id=f"channel-{first}", port_id=source_port),
            dest=ChannelEnd(channel_id=f"channel-{first + 1}", port_id=target_port),
        )

    async def relay_pending_packets_and_acks(
        self,
        link: MockLink,
        checkpoint: PacketHeights,
        src_retries: int,
        dst_retries: int,
    ) -> PacketHeights:
        self._enter("relay_pending_packets_and_acks")
        step = self.height_step
        return PacketHeights(
            packet_height_a=checkpoint.packet_height_a + step,
            packet_height_b=checkpoint.packet_height_b + step,
            ack_height_a=checkpoint.ack_height_a + step,
            ack_height_b=checkpoint.ack_height_b + step,
        )

    async def update_client_if_stale(self, link: MockLink, side: Side, max_age: int) -> None:
        self._enter("update_client_if_stale")
