import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address
from web3 import Web3

from rollout.artifacts import ArtifactStore, ContractArtifact
from rollout.chain import ChainClient
from rollout.compiler import ProfileSelector, check_artifact_settings
from rollout.exceptions import (
    ConfigurationError,
    DependencyCycle,
    DeploymentCancelled,
    UnresolvedDependency,
)
from rollout.ledger import DeploymentLedger, DeploymentRecord
from rollout.networks import NetworkConfig
from rollout.params import ContractSet, ContractSpec, ResolutionContext

logger = logging.getLogger(__name__)

# offline codec, used only for is_encodable checks
_w3 = Web3()

ConfirmCallback = Callable[[OrderedDict, str], None]


def topological_order(contract_set: ContractSet) -> List[ContractSpec]:
    """
    Orders contracts so that every contract comes after the contracts it references.
    Ties are broken by declaration order, so the result is stable across runs.
    """
    names = contract_set.names
    remaining = {name: set(contract_set.dependencies(name)) for name in names}
    ordered: List[ContractSpec] = list()

    while remaining:
        ready = next((name for name in names if name in remaining and not remaining[name]), None)
        if ready is None:
            raise DependencyCycle(name for name in names if name in remaining)
        del remaining[ready]
        for dependencies in remaining.values():
            dependencies.discard(ready)
        ordered.append(contract_set[ready])

    return ordered


def _checksum_addresses(abi_type: str, value: Any) -> Any:
    if abi_type.endswith("]") and isinstance(value, list):
        element_type = abi_type[: abi_type.rindex("[")]
        return [_checksum_addresses(element_type, v) for v in value]
    if abi_type == "address" and isinstance(value, str) and is_address(value):
        return to_checksum_address(value)
    return value


def _comparable(value: Any) -> Any:
    if isinstance(value, list):
        return [_comparable(v) for v in value]
    if isinstance(value, str):
        return value.lower()
    return value


def _normalize_arguments(abi_inputs: List[Dict[str, Any]], resolved: OrderedDict) -> OrderedDict:
    """Checksums address-typed arguments, since web3 rejects lowercase addresses."""
    normalized = OrderedDict()
    for abi_input, (name, value) in zip(abi_inputs, resolved.items()):
        normalized[name] = _checksum_addresses(abi_input["type"], value)
    for name in list(resolved)[len(abi_inputs) :]:
        normalized[name] = resolved[name]
    return normalized


def _validate_constructor_abi_inputs(
    contract_name: str,
    abi_inputs: List[Dict[str, Any]],
    resolved_parameters: OrderedDict,
) -> None:
    """Validates the constructor parameters against the constructor ABI."""
    if len(resolved_parameters) != len(abi_inputs):
        raise ConfigurationError(
            f"Constructor parameters length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, Got {len(resolved_parameters)}."
        )

    codex = enumerate(zip(abi_inputs, resolved_parameters.items()), start=0)
    for position, (abi_input, resolved_input) in codex:
        name, value = resolved_input
        if abi_input.get("name") and abi_input["name"] != name:
            raise ConfigurationError(
                f"{contract_name} constructor parameter '{name}' at position {position} does not "
                f"match the expected ABI name '{abi_input['name']}'."
            )
        abi_type = abi_input["type"]
        if not abi_type.startswith("tuple") and not _w3.is_encodable(abi_type, value):
            raise ConfigurationError(
                f"Constructor param name '{name}' at position {position} has a value '{value}' "
                f"whose type does not match expected ABI type '{abi_type}'"
            )


class DeploymentSequencer:
    """
    Deploys a contract set in dependency order, skipping anything the ledger
    already holds and recording every new deployment as soon as it succeeds.
    """

    def __init__(
        self,
        ledger: DeploymentLedger,
        chain_client: ChainClient,
        artifacts: ArtifactStore,
        profiles: ProfileSelector,
        signer: Optional[LocalAccount] = None,
        confirm: Optional[ConfirmCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.chain_client = chain_client
        self.artifacts = artifacts
        self.profiles = profiles
        self.signer = signer
        self.confirm = confirm
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self.deployed: List[str] = list()
        self.skipped: List[str] = list()

    @property
    def deployer_address(self) -> Optional[ChecksumAddress]:
        return self.signer.address if self.signer is not None else None

    def _addresses(self, produced: Dict[str, DeploymentRecord]) -> Dict[str, ChecksumAddress]:
        addresses = {record.name: record.address for record in self.ledger.all()}
        addresses.update({name: record.address for name, record in produced.items()})
        return addresses

    def deploy(self, network: NetworkConfig, contract_set: ContractSet) -> List[DeploymentRecord]:
        """Returns one record per contract in deployment order, reused or new."""
        if network.name != self.ledger.network.name:
            raise ConfigurationError(
                f"Ledger for '{self.ledger.network.name}' cannot track '{network.name}' deployments"
            )
        contract_set.validate_chain_id(network.chain_id)
        ordered = topological_order(contract_set)
        logger.info(
            "Deployment order on %s: %s", network.name, ", ".join(spec.name for spec in ordered)
        )

        produced: Dict[str, DeploymentRecord] = OrderedDict()
        for spec in ordered:
            existing = self.ledger.get(spec.name)
            if existing is not None:
                self._check_unchanged(spec, existing, produced)
                logger.info("%s already deployed at %s; skipping", spec.name, existing.address)
                produced[spec.name] = existing
                self.skipped.append(spec.name)
                continue

            if self.cancel_event.is_set():
                raise DeploymentCancelled(f"Cancelled before deploying {spec.name}")

            produced[spec.name] = self._deploy_one(network, spec, produced)
            self.deployed.append(spec.name)

        return list(produced.values())

    def _context(self, spec: ContractSpec, produced: Dict[str, DeploymentRecord]) -> ResolutionContext:
        return ResolutionContext(
            contract_name=spec.name,
            addresses=self._addresses(produced),
            deployer=self.deployer_address,
        )

    def _check_unchanged(
        self,
        spec: ContractSpec,
        existing: DeploymentRecord,
        produced: Dict[str, DeploymentRecord],
    ) -> None:
        try:
            resolved = list(spec.resolve(self._context(spec, produced)).values())
        except (UnresolvedDependency, ConfigurationError):
            return
        if _comparable(resolved) != _comparable(list(existing.constructor_args)):
            logger.warning(
                "%s was deployed with constructor arguments %s but the params now resolve to %s; "
                "keeping the existing deployment",
                spec.name,
                existing.constructor_args,
                resolved,
            )

    def _deploy_one(
        self,
        network: NetworkConfig,
        spec: ContractSpec,
        produced: Dict[str, DeploymentRecord],
    ) -> DeploymentRecord:
        resolved = spec.resolve(self._context(spec, produced))

        artifact: ContractArtifact = self.artifacts.load(spec.name, spec.source)
        profile = self.profiles.profile_for(spec.name)
        check_artifact_settings(profile, artifact)
        resolved = _normalize_arguments(artifact.constructor_inputs, resolved)
        _validate_constructor_abi_inputs(spec.name, artifact.constructor_inputs, resolved)

        if self.confirm is not None:
            self.confirm(resolved, spec.name)

        constructor_args = list(resolved.values())
        logger.info("Deploying %s to %s", spec.name, network.name)
        receipt = self.chain_client.submit_deployment(
            profile, artifact, constructor_args, self.signer
        )

        record = DeploymentRecord(
            name=spec.name,
            network=network.name,
            address=receipt.address,
            constructor_args=constructor_args,
            tx_hash=receipt.tx_hash,
            timestamp=int(self.clock()),
            profile=profile.name,
            source=artifact.source_name,
        )
        self.ledger.put(record)
        logger.info("%s deployed at %s", spec.name, record.address)
        return record
