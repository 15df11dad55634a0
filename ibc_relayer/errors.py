"""
Error taxonomy for the IBC relayer.

Configuration errors are fatal for the call that raised them. Path, chain,
balance and link errors are reported per path where a batch operation
allows it. Relay errors never leave the loop of the path that raised them.
"""

from typing import Optional


class RelayerError(Exception):
    """Base class for every error raised by the relayer."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# Configuration


class ConfigError(RelayerError):
    """The persisted configuration document could not be used."""


class ConfigFolderFailed(ConfigError):
    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        super().__init__(f"cannot create config folder {path}: {cause}")


class ConfigReadFailed(ConfigError):
    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"cannot read config {path}: {reason}")


class ConfigWriteFailed(ConfigError):
    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        super().__init__(f"cannot write config {path}: {cause}")


# Paths


class PathError(RelayerError):
    """A path could not be used for the requested operation."""


class PathsNotDefined(PathError):
    def __init__(self) -> None:
        super().__init__("no paths are defined in the relayer config")


class PathNotFound(PathError):
    def __init__(self, path_id: str):
        self.path_id = path_id
        super().__init__(f"path {path_id!r} cannot be found")


class PathNotLinked(PathError):
    def __init__(self, path_id: str):
        self.path_id = path_id
        super().__init__(f"path {path_id!r} is not linked")


class PathAlreadyLinked(PathError):
    def __init__(self, path_id: str):
        self.path_id = path_id
        super().__init__(f"path {path_id!r} is already linked")


class PathAlreadyExists(PathError):
    def __init__(self, path_id: str):
        self.path_id = path_id
        super().__init__(f"path {path_id!r} already exists")


# Chains


class ChainError(RelayerError):
    """A chain configuration is missing or inconsistent."""


class ChainNotFound(ChainError):
    def __init__(self, chain_id: str):
        self.chain_id = chain_id
        super().__init__(f"chain {chain_id!r} cannot be found")


class ChainEndpointConflict(ChainError):
    def __init__(self, chain_id: str, existing: str, given: str):
        self.chain_id = chain_id
        super().__init__(
            f"chain {chain_id!r} already exists with rpc endpoint {existing}, got {given}"
        )


class InvalidGasPrice(ChainError):
    def __init__(self, gas_price: str):
        self.gas_price = gas_price
        super().__init__(f"invalid gas price {gas_price!r}, expected <amount><denom>")


class ChainClientNotConfigured(RelayerError):
    def __init__(self) -> None:
        super().__init__(
            "no chain client configured, set IBC_RELAYER_CHAIN_CLIENT to module:factory"
        )


class ChainClientLoadFailed(RelayerError):
    def __init__(self, reference: str, reason: str):
        self.reference = reference
        super().__init__(f"cannot load chain client {reference!r}: {reason}")


# Balance


class BalanceError(RelayerError):
    """The relayer account cannot pay for an operation."""


class InsufficientFunds(BalanceError):
    def __init__(self, chain_id: str, required: str, denom: str):
        self.chain_id = chain_id
        self.required = required
        self.denom = denom
        super().__init__(f"insufficient balance: {required} {denom} ({chain_id})")


# Linking


class LinkError(RelayerError):
    """Connection or channel establishment failed for a path."""


class ConnectionFailed(LinkError):
    def __init__(self, path_id: str, cause: BaseException):
        self.path_id = path_id
        super().__init__(f"connection failed for path {path_id!r}: {cause}")


class ChannelFailed(LinkError):
    def __init__(self, path_id: str, cause: BaseException):
        self.path_id = path_id
        super().__init__(f"channel failed for path {path_id!r}: {cause}")


# Relaying


class RelayError(RelayerError):
    """A relay tick failed."""


class RelayPacketError(RelayError):
    def __init__(self, path_id: str, cause: BaseException):
        self.path_id = path_id
        super().__init__(f"relaying packets failed for path {path_id!r}: {cause!r}")
