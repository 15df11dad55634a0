"""
Pydantic models for the relayer config document and operation results.

Field names on disk are camelCase; Python attributes are snake_case.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CONFIG_VERSION = "2"

TRANSFER_PORT = "transfer"
TRANSFER_VERSION = "ics20-1"


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Ordering(str, Enum):
    """Channel ordering."""

    ORDERED = "ORDER_ORDERED"
    UNORDERED = "ORDER_UNORDERED"


# ============================================================================
# Config document
# ============================================================================


class ChainConfig(_Model):
    """A chain the relayer can talk to."""

    chain_id: str
    account: str = ""
    rpc_addr: str
    address_prefix: str
    gas_price: str = Field(..., description="Gas price as <amount><denom>, e.g. 0.025uatom")
    gas_limit: int = Field(..., gt=0)


class Endpoint(BaseModel):
    """One side of a path."""

    model_config = ConfigDict(populate_by_name=True)

    chain_id: str = Field(..., alias="chainID")
    port_id: str = Field(..., alias="portID")
    channel_id: Optional[str] = Field(None, alias="channelID")


class Path(_Model):
    """A logical pairing of two chain endpoints."""

    id: str
    is_linked: bool = False
    src: Endpoint
    dst: Endpoint


class ConnectOptions(_Model):
    """Channel parameters supplied at path creation and consumed by linking."""

    source_port: str = TRANSFER_PORT
    source_version: str = TRANSFER_VERSION
    target_port: str = TRANSFER_PORT
    target_version: str = TRANSFER_VERSION
    ordering: Ordering = Ordering.UNORDERED


class Connections(_Model):
    """Connection ids on both chains, set once when a path is linked."""

    src_connection: str
    dest_connection: str


class PacketHeights(_Model):
    """Relay checkpoint: last processed heights per chain and direction."""

    packet_height_a: int = 0
    packet_height_b: int = 0
    ack_height_a: int = 0
    ack_height_b: int = 0

    def merge(self, other: "PacketHeights") -> "PacketHeights":
        """Field-wise maximum, so a checkpoint never moves backwards."""
        return PacketHeights(
            packet_height_a=max(self.packet_height_a, other.packet_height_a),
            packet_height_b=max(self.packet_height_b, other.packet_height_b),
            ack_height_a=max(self.ack_height_a, other.ack_height_a),
            ack_height_b=max(self.ack_height_b, other.ack_height_b),
        )


class PathConfig(_Model):
    """A path with its link options, connections and relay checkpoint."""

    path: Path
    options: Optional[ConnectOptions] = None
    connections: Optional[Connections] = None
    relayer_data: Optional[PacketHeights] = None

    @property
    def id(self) -> str:
        return self.path.id

    @property
    def is_linked(self) -> bool:
        return self.path.is_linked


class RelayerConfig(_Model):
    """The persisted relayer document."""

    version: str = CONFIG_VERSION
    chains: list[ChainConfig] = Field(default_factory=list)
    paths: list[PathConfig] = Field(default_factory=list)
    mnemonic: Optional[str] = None

    def chain_by_id(self, chain_id: str) -> Optional[ChainConfig]:
        for chain in self.chains:
            if chain.chain_id == chain_id:
                return chain
        return None

    def path_by_id(self, path_id: str) -> Optional[PathConfig]:
        for path in self.paths:
            if path.path.id == path_id:
                return path
        return None

    def to_document(self) -> dict:
        """Plain dict in on-disk form."""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Operation inputs and results
# ============================================================================


class Coin(_Model):
    """An amount of a single denom."""

    denom: str
    amount: str

    @property
    def amount_int(self) -> int:
        return int(self.amount)


class ChainSetupOptions(_Model):
    """Options used to register or update a chain."""

    account: str = ""
    rpc_addr: str
    address_prefix: str
    gas_price: str
    gas_limit: int = Field(..., gt=0)


class ChainSetupResponse(_Model):
    id: str


class PathDefinition(_Model):
    """Input for creating a path between two configured chains."""

    id: Optional[str] = None
    src_chain_id: str
    dst_chain_id: str
    options: ConnectOptions = Field(default_factory=ConnectOptions)


class LinkFailure(_Model):
    path_name: str
    error: str


class LinkResponse(_Model):
    """Outcome of a link request, bucketed per path."""

    linked_paths: list[str] = Field(default_factory=list)
    already_linked_paths: list[str] = Field(default_factory=list)
    failed_to_link_paths: list[LinkFailure] = Field(default_factory=list)


class InfoResponse(_Model):
    config_path: str
