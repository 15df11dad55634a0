"""
Tests for the config document store.
"""

import os
import threading
from pathlib import Path

import pytest
import yaml

from ibc_relayer.errors import ConfigFolderFailed, ConfigReadFailed, ConfigWriteFailed
from ibc_relayer.models import (
    ChainConfig,
    Connections,
    Endpoint,
    PacketHeights,
    Path as RelayPath,
    PathConfig,
    RelayerConfig,
)
from ibc_relayer.store import ConfigStore


def _chain(chain_id: str) -> ChainConfig:
    return ChainConfig(
        chain_id=chain_id,
        account="relayer",
        rpc_addr=f"http://{chain_id}:26657",
        address_prefix="cosmos",
        gas_price="0.025uatom",
        gas_limit=300_000,
    )


class TestLoad:
    """Tests for first use and reading."""

    def test_load_creates_empty_document(self, store: ConfigStore, config_path: Path) -> None:
        """First load persists an empty document immediately."""
        assert not config_path.exists()

        config = store.load()

        assert config_path.exists()
        assert config.chains == []
        assert config.paths == []
        assert config.mnemonic is None
        assert yaml.safe_load(config_path.read_text())["version"] == "2"

    def test_empty_file_is_empty_document(self, store: ConfigStore, config_path: Path) -> None:
        config_path.write_text("")
        assert store.load() == RelayerConfig()

    def test_malformed_yaml_fails(self, store: ConfigStore, config_path: Path) -> None:
        config_path.write_text("chains: [unclosed\n")
        with pytest.raises(ConfigReadFailed):
            store.load()

    def test_non_mapping_root_fails(self, store: ConfigStore, config_path: Path) -> None:
        config_path.write_text("- a\n- b\n")
        with pytest.raises(ConfigReadFailed, match="mapping"):
            store.load()

    def test_outdated_version_fails(self, store: ConfigStore, config_path: Path) -> None:
        """A document written by an older relayer must be rejected."""
        config_path.write_text("version: '1'\nchains: []\n")
        with pytest.raises(ConfigReadFailed, match="outdated"):
            store.load()

    def test_integer_version_is_accepted(self, store: ConfigStore, config_path: Path) -> None:
        """A hand-edited `version: 2` is read as the current version."""
        config_path.write_text("version: 2\nchains: []\n")
        assert store.load() == RelayerConfig()

    def test_invalid_schema_fails(self, store: ConfigStore, config_path: Path) -> None:
        config_path.write_text("version: '2'\nchains:\n  - chainId: x\n")
        with pytest.raises(ConfigReadFailed):
            store.load()

    def test_uncreatable_folder_fails(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(ConfigFolderFailed):
            ConfigStore(blocker / "relayer" / "config.yml")


class TestMutate:
    """Tests for atomic read-modify-write."""

    def test_round_trip(self, store: ConfigStore) -> None:
        """load() after mutate() returns what the updater produced."""

        def add_chain(config: RelayerConfig) -> None:
            config.chains.append(_chain("chain-a"))
            config.mnemonic = "secret words"

        updated = store.mutate(add_chain)

        assert store.load() == updated
        assert updated.chain_by_id("chain-a") is not None

    def test_updater_may_return_replacement(self, store: ConfigStore) -> None:
        replacement = RelayerConfig(chains=[_chain("chain-z")])
        store.mutate(lambda config: replacement)
        assert [c.chain_id for c in store.load().chains] == ["chain-z"]

    def test_updater_works_on_a_copy(self, store: ConfigStore) -> None:
        """A failing updater leaves the document untouched."""
        store.mutate(lambda config: config.chains.append(_chain("chain-a")))
        before = store.config_path.read_bytes()

        def broken(config: RelayerConfig) -> None:
            config.chains.clear()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.mutate(broken)

        assert store.config_path.read_bytes() == before

    def test_write_failure_keeps_previous_document(
        self, store: ConfigStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store.mutate(lambda config: config.chains.append(_chain("chain-a")))
        before = store.config_path.read_bytes()

        def failing_replace(src: str, dst: str) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", failing_replace)

        with pytest.raises(ConfigWriteFailed, match="disk full"):
            store.mutate(lambda config: config.chains.append(_chain("chain-b")))

        monkeypatch.undo()
        assert store.config_path.read_bytes() == before
        leftovers = [p for p in store.config_path.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_concurrent_mutations_do_not_lose_updates(self, store: ConfigStore) -> None:
        """Every thread's append survives, whatever the interleaving."""
        store.load()
        count = 20
        barrier = threading.Barrier(count)

        def worker(index: int) -> None:
            barrier.wait()
            store.mutate(lambda config: config.chains.append(_chain(f"chain-{index}")))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        ids = {chain.chain_id for chain in store.load().chains}
        assert ids == {f"chain-{i}" for i in range(count)}


class TestDocumentFormat:
    """The on-disk document uses the relayer's camelCase field names."""

    def test_field_names(self, store: ConfigStore, config_path: Path) -> None:
        path_config = PathConfig(
            path=RelayPath(
                id="p1",
                is_linked=True,
                src=Endpoint(chain_id="chain-a", port_id="transfer", channel_id="channel-0"),
                dst=Endpoint(chain_id="chain-b", port_id="transfer", channel_id="channel-1"),
            ),
            connections=Connections(src_connection="connection-0", dest_connection="connection-1"),
            relayer_data=PacketHeights(packet_height_a=10, ack_height_b=7),
        )
        store.mutate(lambda config: config.paths.append(path_config))

        document = yaml.safe_load(config_path.read_text())
        stored = document["paths"][0]

        assert stored["path"]["isLinked"] is True
        assert stored["path"]["src"] == {
            "chainID": "chain-a",
            "portID": "transfer",
            "channelID": "channel-0",
        }
        assert stored["connections"] == {
            "srcConnection": "connection-0",
            "destConnection": "connection-1",
        }
        assert stored["relayerData"]["packetHeightA"] == 10
        assert stored["relayerData"]["ackHeightB"] == 7
        assert store.load().paths[0] == path_config
