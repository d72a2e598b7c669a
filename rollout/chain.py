import logging
from abc import ABC, abstractmethod
from typing import Any, List, NamedTuple, Optional

import requests
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from rollout.artifacts import ContractArtifact
from rollout.compiler import CompilerProfile
from rollout.constants import DEPLOYMENT_TIMEOUT, RECEIPT_POLL_LATENCY
from rollout.exceptions import ConfigurationError, DeployError, MissingCredential
from rollout.networks import NetworkConfig

logger = logging.getLogger(__name__)


class DeploymentReceipt(NamedTuple):
    address: ChecksumAddress
    tx_hash: str


class ChainClient(ABC):
    """Boundary to the node that publishes deployment transactions."""

    @abstractmethod
    def chain_id(self) -> int:
        raise NotImplementedError

    def check_chain_id(self, network: NetworkConfig) -> None:
        """Refuses to talk to a node on a different chain than the configured network."""
        connected_chain_id = self.chain_id()
        if connected_chain_id != network.chain_id:
            raise ConfigurationError(
                f"RPC endpoint for '{network.name}' reports chain_id {connected_chain_id}, "
                f"expected {network.chain_id}."
            )

    @abstractmethod
    def submit_deployment(
        self,
        profile: CompilerProfile,
        artifact: ContractArtifact,
        constructor_args: List[Any],
        signer: LocalAccount,
    ) -> DeploymentReceipt:
        """Publishes the artifact's bytecode and waits for the contract address."""
        raise NotImplementedError


def load_signer(network: NetworkConfig) -> LocalAccount:
    """Builds the deployer account from the network's signer credential."""
    if network.signer_key is None:
        raise MissingCredential(network.name)
    try:
        return Account.from_key(network.signer_key.reveal())
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Signer key for network '{network.name}' is invalid") from e


class Web3ChainClient(ChainClient):
    """Deploys over JSON-RPC, signing transactions locally."""

    def __init__(
        self,
        network: NetworkConfig,
        timeout: float = DEPLOYMENT_TIMEOUT,
        poll_latency: float = RECEIPT_POLL_LATENCY,
        w3: Optional[Web3] = None,
    ):
        self.network = network
        self.timeout = timeout
        self.poll_latency = poll_latency
        self._w3 = w3

    @property
    def w3(self) -> Web3:
        if self._w3 is None:
            provider = Web3.HTTPProvider(
                self.network.rpc_url, request_kwargs={"timeout": self.timeout}
            )
            w3 = Web3(provider)
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            self._w3 = w3
        return self._w3

    def chain_id(self) -> int:
        try:
            return self.w3.eth.chain_id
        except (Web3Exception, requests.RequestException) as e:
            raise ConfigurationError(
                f"Cannot reach RPC endpoint for '{self.network.name}' ({self.network.rpc_url}): {e}"
            ) from e

    def submit_deployment(
        self,
        profile: CompilerProfile,
        artifact: ContractArtifact,
        constructor_args: List[Any],
        signer: LocalAccount,
    ) -> DeploymentReceipt:
        contract_name = artifact.name
        tx_hash = None
        try:
            factory = self.w3.eth.contract(abi=artifact.abi, bytecode=artifact.bytecode)
            transaction = factory.constructor(*constructor_args).build_transaction(
                {
                    "from": signer.address,
                    "nonce": self.w3.eth.get_transaction_count(signer.address, "pending"),
                    "chainId": self.network.chain_id,
                }
            )
            signed = signer.sign_transaction(transaction)
            tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))
            logger.info(
                "Sent %s deployment (profile %s) in transaction %s",
                contract_name,
                profile.name,
                tx_hash,
            )

            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.timeout, poll_latency=self.poll_latency
            )
        except TimeExhausted:
            raise DeployError(
                contract_name,
                f"no receipt after {self.timeout} seconds; check the transaction before re-running",
                tx_hash=tx_hash,
            )
        except (Web3Exception, requests.RequestException, ValueError) as e:
            raise DeployError(contract_name, str(e) or type(e).__name__, tx_hash=tx_hash) from e

        if receipt["status"] != 1:
            raise DeployError(contract_name, "transaction reverted", tx_hash=tx_hash)
        if not receipt.get("contractAddress"):
            raise DeployError(contract_name, "receipt has no contract address", tx_hash=tx_hash)

        return DeploymentReceipt(
            address=to_checksum_address(receipt["contractAddress"]),
            tx_hash=tx_hash,
        )
