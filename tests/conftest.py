"""Shared pytest fixtures for rollout tests."""

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from eth_account import Account
from eth_utils import to_checksum_address

from rollout.artifacts import ArtifactStore
from rollout.chain import ChainClient, DeploymentReceipt
from rollout.compiler import ProfileSelector
from rollout.exceptions import DeployError, VerifyError
from rollout.explorer import ExplorerClient, VerificationStatus
from rollout.ledger import DeploymentLedger, DeploymentRecord
from rollout.networks import NetworkConfig, Secret

# Common constants
PRIVATE_KEY = "0x" + "11" * 32
API_KEY = "EXPLORERKEY"
BUILD_INFO_ID = "5f1a2b3c4d5e6f"
BYTECODE = "0x6080604052348015600f57600080fd5b50"

CONTRACT_ABIS = {
    "Deployer": [],
    "Factory": [
        {
            "type": "constructor",
            "stateMutability": "nonpayable",
            "inputs": [{"name": "_poolDeployer", "type": "address", "internalType": "address"}],
        }
    ],
    "Router": [
        {
            "type": "constructor",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "_factory", "type": "address", "internalType": "address"},
                {"name": "_fee", "type": "uint24", "internalType": "uint24"},
            ],
        }
    ],
    "Vault": [
        {
            "type": "constructor",
            "stateMutability": "nonpayable",
            "inputs": [{"name": "_owner", "type": "address", "internalType": "address"}],
        }
    ],
}


def make_address(index: int) -> str:
    return to_checksum_address("0x" + f"{index:040x}")


def make_tx_hash(index: int) -> str:
    return "0x" + f"{index:064x}"


def default_settings(runs: int = 1_000_000, bytecode_hash: str = "none") -> Dict[str, Any]:
    return {
        "optimizer": {"enabled": True, "runs": runs},
        "metadata": {"bytecodeHash": bytecode_hash},
        "evmVersion": "istanbul",
        "outputSelection": {"*": {"*": ["abi", "evm.bytecode"]}},
    }


def write_artifact(
    artifacts_dir: Path,
    name: str,
    abi: List[Dict[str, Any]],
    source: Optional[str] = None,
    bytecode: str = BYTECODE,
    build_info_id: Optional[str] = BUILD_INFO_ID,
) -> Path:
    """Lays out an artifact the way hardhat does: <source>/<Name>.json plus its debug file."""
    source = source or f"contracts/{name}.sol"
    contract_dir = artifacts_dir / source
    contract_dir.mkdir(parents=True, exist_ok=True)

    artifact_filepath = contract_dir / f"{name}.json"
    artifact_filepath.write_text(
        json.dumps(
            {
                "_format": "hh-sol-artifact-1",
                "contractName": name,
                "sourceName": source,
                "abi": abi,
                "bytecode": bytecode,
                "deployedBytecode": bytecode,
            }
        )
    )
    if build_info_id:
        depth = len(Path(source).parts)
        build_info = "/".join([".."] * depth + ["build-info", f"{build_info_id}.json"])
        (contract_dir / f"{name}.dbg.json").write_text(
            json.dumps({"_format": "hh-sol-dbg-1", "buildInfo": build_info})
        )
    return artifact_filepath


def write_build_info(
    artifacts_dir: Path,
    build_info_id: str = BUILD_INFO_ID,
    solc_version: str = "0.7.6",
    settings: Optional[Dict[str, Any]] = None,
) -> Path:
    build_info_dir = artifacts_dir / "build-info"
    build_info_dir.mkdir(parents=True, exist_ok=True)
    filepath = build_info_dir / f"{build_info_id}.json"
    filepath.write_text(
        json.dumps(
            {
                "_format": "hh-sol-build-info-1",
                "id": build_info_id,
                "solcVersion": solc_version,
                "solcLongVersion": f"{solc_version}+commit.7338295f",
                "input": {
                    "language": "Solidity",
                    "sources": {
                        f"contracts/{name}.sol": {"content": f"contract {name} {{}}"}
                        for name in CONTRACT_ABIS
                    },
                    "settings": settings or default_settings(),
                },
            }
        )
    )
    return filepath


def write_params(filepath: Path, content: str) -> Path:
    filepath.write_text(content)
    return filepath


class FakeChainClient(ChainClient):
    """Records deployments and hands out sequential addresses."""

    def __init__(self, chain_id: int = 31337, fail_on=(), on_deploy=None):
        self._chain_id = chain_id
        self.fail_on = set(fail_on)
        self.on_deploy = on_deploy
        self.calls: List[tuple] = list()

    def chain_id(self) -> int:
        return self._chain_id

    def submit_deployment(self, profile, artifact, constructor_args, signer) -> DeploymentReceipt:
        if artifact.name in self.fail_on:
            raise DeployError(artifact.name, "execution reverted")
        self.calls.append((artifact.name, list(constructor_args), profile.name))
        index = len(self.calls)
        if self.on_deploy is not None:
            self.on_deploy(artifact.name)
        return DeploymentReceipt(address=make_address(0x1000 + index), tx_hash=make_tx_hash(index))


class FakeExplorer(ExplorerClient):
    """
    Replays scripted outcomes per contract address. Each script entry is
    either a VerificationStatus to return or an exception to raise.
    """

    def __init__(self, scripts: Optional[Dict[str, list]] = None, on_submit=None):
        self.scripts = {address: list(script) for address, script in (scripts or dict()).items()}
        self.on_submit = on_submit
        self.requests = list()
        self._lock = threading.Lock()

    def submit_verification(self, request, api_key):
        with self._lock:
            self.requests.append((request, api_key))
            script = self.scripts.get(request.address)
            outcome = script.pop(0) if script else VerificationStatus.VERIFIED
        if self.on_submit is not None:
            self.on_submit(request)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# Fixtures
@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    artifacts_dir = tmp_path / "artifacts"
    for name, abi in CONTRACT_ABIS.items():
        write_artifact(artifacts_dir, name, abi)
    write_build_info(artifacts_dir)
    return artifacts_dir


@pytest.fixture
def artifacts(artifacts_dir: Path) -> ArtifactStore:
    return ArtifactStore(artifacts_dir)


@pytest.fixture
def ledger_dir(tmp_path: Path) -> Path:
    return tmp_path / "deployments"


@pytest.fixture
def signer():
    return Account.from_key(PRIVATE_KEY)


@pytest.fixture
def network() -> NetworkConfig:
    return NetworkConfig(
        name="hardhat",
        rpc_url="http://127.0.0.1:8545",
        chain_id=31337,
        signer_key=Secret(PRIVATE_KEY),
    )


@pytest.fixture
def explorer_network() -> NetworkConfig:
    return NetworkConfig(
        name="bscTestnet",
        rpc_url="https://data-seed-prebsc-1-s1.binance.org:8545/",
        chain_id=97,
        signer_key=Secret(PRIVATE_KEY),
        explorer_api_key=Secret(API_KEY),
        explorer_api_url="https://api-testnet.bscscan.com/api",
        explorer_browser_url="https://testnet.bscscan.com",
    )


@pytest.fixture
def ledger(network: NetworkConfig, ledger_dir: Path) -> DeploymentLedger:
    return DeploymentLedger(network=network, filepath=ledger_dir / "hardhat.json")


@pytest.fixture
def profiles() -> ProfileSelector:
    return ProfileSelector()


@pytest.fixture
def chain_client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def params_filepath(tmp_path: Path) -> Path:
    return write_params(
        tmp_path / "params.yml",
        """
deployment:
  name: pancake-core
  chain_id: 31337

constants:
  FEE: 3000

contracts:
  - Router:
      constructor:
        _factory: $Factory
        _fee: $FEE
  - Factory:
      constructor:
        _poolDeployer: $Deployer
  - Deployer
""",
    )


@pytest.fixture
def verification_records(explorer_network: NetworkConfig) -> List[DeploymentRecord]:
    return [
        DeploymentRecord(
            name="Deployer",
            network=explorer_network.name,
            address=make_address(0x2001),
            constructor_args=[],
            tx_hash=make_tx_hash(1),
            timestamp=1700000000,
            profile="default",
            source="contracts/Deployer.sol",
        ),
        DeploymentRecord(
            name="Factory",
            network=explorer_network.name,
            address=make_address(0x2002),
            constructor_args=[make_address(0x2001)],
            tx_hash=make_tx_hash(2),
            timestamp=1700000001,
            profile="default",
            source="contracts/Factory.sol",
        ),
        DeploymentRecord(
            name="Router",
            network=explorer_network.name,
            address=make_address(0x2003),
            constructor_args=[make_address(0x2002), 3000],
            tx_hash=make_tx_hash(3),
            timestamp=1700000002,
            profile="default",
            source="contracts/Router.sol",
        ),
    ]


@pytest.fixture
def retryable_error():
    return VerifyError("Max rate limit reached", retryable=True)
