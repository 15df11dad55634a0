"""
Chain and path registry backed by the config store.
"""

import structlog

from .balance import GasPrice
from .errors import (
    ChainEndpointConflict,
    ChainNotFound,
    PathAlreadyExists,
    PathNotFound,
)
from .models import (
    ChainConfig,
    ChainSetupOptions,
    ChainSetupResponse,
    Endpoint,
    Path,
    PathConfig,
    PathDefinition,
    RelayerConfig,
)
from .store import ConfigStore

logger = structlog.get_logger()


def unique_path_id(config: RelayerConfig, src_chain_id: str, dst_chain_id: str) -> str:
    """
    Pick a path id from chain ids: ``src-dst``, then ``src-dst-2``, ``src-dst-3``...
    """
    base = f"{src_chain_id}-{dst_chain_id}"
    candidate = base
    suffix = 2
    while config.path_by_id(candidate) is not None:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


class ChainRegistry:
    """Lookup and registration of chains and paths."""

    def __init__(self, store: ConfigStore):
        self.store = store

    def chain_by_id(self, chain_id: str) -> ChainConfig:
        chain = self.store.load().chain_by_id(chain_id)
        if chain is None:
            raise ChainNotFound(chain_id)
        return chain

    def path_by_id(self, path_id: str) -> PathConfig:
        path = self.store.load().path_by_id(path_id)
        if path is None:
            raise PathNotFound(path_id)
        return path

    def list_paths(self) -> list[PathConfig]:
        return self.store.load().paths

    def ensure_chain_setup(self, chain_id: str, options: ChainSetupOptions) -> ChainSetupResponse:
        """
        Register a chain or update the existing entry with the same id.

        An existing chain keeps its id only while it is served from the same
        RPC endpoint.
        """
        GasPrice.parse(options.gas_price)

        chain = ChainConfig(
            chain_id=chain_id,
            account=options.account,
            rpc_addr=options.rpc_addr.rstrip("/"),
            address_prefix=options.address_prefix,
            gas_price=options.gas_price,
            gas_limit=options.gas_limit,
        )

        def apply(config: RelayerConfig) -> None:
            for index, existing in enumerate(config.chains):
                if existing.chain_id != chain_id:
                    continue
                if existing.rpc_addr != chain.rpc_addr:
                    raise ChainEndpointConflict(chain_id, existing.rpc_addr, chain.rpc_addr)
                config.chains[index] = existing.model_copy(
                    update=chain.model_dump(exclude_defaults=True)
                )
                return
            config.chains.append(chain)

        self.store.mutate(apply)
        logger.info("chain_setup", chain_id=chain_id, rpc_addr=chain.rpc_addr)
        return ChainSetupResponse(id=chain_id)

    def create_path(self, definition: PathDefinition) -> PathConfig:
        """Create an unlinked path between two configured chains."""
        created: list[PathConfig] = []

        def apply(config: RelayerConfig) -> None:
            for chain_id in (definition.src_chain_id, definition.dst_chain_id):
                if config.chain_by_id(chain_id) is None:
                    raise ChainNotFound(chain_id)

            if definition.id:
                if config.path_by_id(definition.id) is not None:
                    raise PathAlreadyExists(definition.id)
                path_id = definition.id
            else:
                path_id = unique_path_id(config, definition.src_chain_id, definition.dst_chain_id)

            options = definition.options
            path_config = PathConfig(
                path=Path(
                    id=path_id,
                    is_linked=False,
                    src=Endpoint(chain_id=definition.src_chain_id, port_id=options.source_port),
                    dst=Endpoint(chain_id=definition.dst_chain_id, port_id=options.target_port),
                ),
                options=options,
            )
            config.paths.append(path_config)
            created.append(path_config)

        self.store.mutate(apply)
        path_config = created[0]
        logger.info(
            "path_created",
            path_id=path_config.id,
            src=definition.src_chain_id,
            dst=definition.dst_chain_id,
        )
        return path_config
