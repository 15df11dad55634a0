"""
Tests for the ibc-relayer command line.
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from ibc_relayer import __version__
from ibc_relayer.cli import app

runner = CliRunner()

MOCK_CLIENT = "ibc_relayer.chain:MockChainClient"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("IBC_RELAYER_CHAIN_CLIENT", raising=False)
    monkeypatch.delenv("IBC_RELAYER_CONFIG_DIR", raising=False)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    return tmp_path / "relayer"


def invoke(config_dir: Path, *args: str, env=None):
    return runner.invoke(
        app, ["--config-dir", str(config_dir), "--log-level", "ERROR", *args], env=env
    )


def setup_path(config_dir: Path) -> None:
    for chain_id, rpc, gas_price in (
        ("chain-a", "http://localhost:26657", "0.025uatom"),
        ("chain-b", "http://localhost:26659", "0.01stake"),
    ):
        result = invoke(
            config_dir,
            "chain-setup",
            chain_id,
            "--rpc",
            rpc,
            "--prefix",
            "cosmos",
            "--gas-price",
            gas_price,
        )
        assert result.exit_code == 0, result.output
    result = invoke(config_dir, "create-path", "chain-a", "chain-b")
    assert result.exit_code == 0, result.output


class TestSetupCommands:
    def test_chain_setup(self, config_dir: Path) -> None:
        result = invoke(
            config_dir,
            "chain-setup",
            "chain-a",
            "--rpc",
            "http://localhost:26657",
            "--prefix",
            "cosmos",
            "--gas-price",
            "0.025uatom",
        )
        assert result.exit_code == 0
        assert "Chain chain-a is set up" in result.output
        assert (config_dir / "config.yml").exists()

    def test_chain_setup_invalid_gas_price(self, config_dir: Path) -> None:
        result = invoke(
            config_dir,
            "chain-setup",
            "chain-a",
            "--rpc",
            "http://localhost:26657",
            "--prefix",
            "cosmos",
            "--gas-price",
            "free",
        )
        assert result.exit_code == 1
        assert "invalid gas price" in result.output

    def test_create_path(self, config_dir: Path) -> None:
        setup_path(config_dir)

        result = invoke(config_dir, "paths")

        assert result.exit_code == 0
        assert "chain-a-chain-b:" in result.output
        assert "(channel: -)" in result.output

    def test_create_path_unknown_chain(self, config_dir: Path) -> None:
        result = invoke(config_dir, "create-path", "chain-a", "chain-z")
        assert result.exit_code == 1
        assert "cannot be found" in result.output

    def test_no_paths(self, config_dir: Path) -> None:
        result = invoke(config_dir, "paths")
        assert result.exit_code == 0
        assert "No paths defined." in result.output

    def test_path_as_json(self, config_dir: Path) -> None:
        setup_path(config_dir)

        result = invoke(config_dir, "path", "chain-a-chain-b")

        assert result.exit_code == 0
        document = json.loads(result.output)
        assert document["path"]["isLinked"] is False
        assert document["path"]["src"]["chainID"] == "chain-a"
        assert document["options"]["ordering"] == "ORDER_UNORDERED"

    def test_unknown_path(self, config_dir: Path) -> None:
        result = invoke(config_dir, "path", "nope")
        assert result.exit_code == 1


class TestChainCommands:
    def test_link_requires_chain_client(self, config_dir: Path) -> None:
        setup_path(config_dir)

        result = invoke(config_dir, "link", "chain-a-chain-b")

        assert result.exit_code == 1
        assert "no chain client configured" in result.output

    def test_link_with_unloadable_chain_client(self, config_dir: Path) -> None:
        setup_path(config_dir)

        result = invoke(
            config_dir,
            "link",
            "chain-a-chain-b",
            env={"IBC_RELAYER_CHAIN_CLIENT": "no_such_module_here:Client"},
        )

        assert result.exit_code == 1
        assert "Error: cannot load chain client" in result.output
        assert "Traceback" not in result.output

    def test_link_reports_insufficient_balance(self, config_dir: Path) -> None:
        setup_path(config_dir)

        result = invoke(
            config_dir,
            "link",
            "chain-a-chain-b",
            env={"IBC_RELAYER_CHAIN_CLIENT": MOCK_CLIENT},
        )

        assert result.exit_code == 1
        assert "failedToLinkPaths" in result.output
        assert "insufficient balance: 56400 uatom (chain-a)" in result.output

    def test_balance(self, config_dir: Path) -> None:
        setup_path(config_dir)

        result = invoke(
            config_dir, "balance", "chain-a", env={"IBC_RELAYER_CHAIN_CLIENT": MOCK_CLIENT}
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == []

    def test_start_unlinked_path(self, config_dir: Path) -> None:
        setup_path(config_dir)

        result = invoke(
            config_dir, "start", "chain-a-chain-b", env={"IBC_RELAYER_CHAIN_CLIENT": MOCK_CLIENT}
        )

        assert result.exit_code == 1
        assert "is not linked" in result.output

    def test_connect_with_nothing_to_relay(self, config_dir: Path) -> None:
        setup_path(config_dir)

        result = invoke(config_dir, "connect", env={"IBC_RELAYER_CHAIN_CLIENT": MOCK_CLIENT})

        assert result.exit_code == 0
        assert "Failed to link chains in 1 paths." in result.output
        assert "No paths to connect." in result.output


class TestInfoCommands:
    def test_info(self, config_dir: Path) -> None:
        result = invoke(config_dir, "info")
        assert result.exit_code == 0
        assert f"Config: {config_dir / 'config.yml'}" in result.output

    def test_version(self, config_dir: Path) -> None:
        result = invoke(config_dir, "version")
        assert result.exit_code == 0
        assert f"ibc-relayer v{__version__}" in result.output
