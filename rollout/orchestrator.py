"""
Deployment and verification runs as plain functions returning result values.

Nothing here prints or exits; the CLI turns results into output and exit codes.
"""

import logging
from typing import Collection, Dict, List, NamedTuple, Optional, Sequence

from rollout.artifacts import ArtifactStore
from rollout.exceptions import ConfigurationError, DeploymentCancelled, DeploymentError
from rollout.ledger import DeploymentLedger, DeploymentRecord
from rollout.networks import NetworkConfig
from rollout.params import ContractSet
from rollout.sequencer import DeploymentSequencer
from rollout.utils import checksum_address
from rollout.verification import VerificationDriver, VerificationReport

logger = logging.getLogger(__name__)


class DeploymentResult(NamedTuple):
    records: List[DeploymentRecord]
    deployed: List[str]
    skipped: List[str]
    error: Optional[DeploymentError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, DeploymentCancelled)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


def run_deployment(
    network: NetworkConfig, contract_set: ContractSet, sequencer: DeploymentSequencer
) -> DeploymentResult:
    """
    Deploys the contract set. A deployment failure is returned, not raised;
    the ledger still holds every contract that completed before it.
    """
    try:
        records = sequencer.deploy(network, contract_set)
    except DeploymentError as e:
        logger.error("Deployment on %s stopped: %s", network.name, e)
        return DeploymentResult(
            records=sequencer.ledger.all(),
            deployed=list(sequencer.deployed),
            skipped=list(sequencer.skipped),
            error=e,
        )
    return DeploymentResult(
        records=records,
        deployed=list(sequencer.deployed),
        skipped=list(sequencer.skipped),
    )


def select_records(
    ledger: DeploymentLedger,
    names: Optional[Sequence[str]] = None,
    overridden: Collection[str] = (),
) -> List[DeploymentRecord]:
    """
    Ledger records in insertion order, optionally limited to the given contracts.
    Contracts in `overridden` are verified at a literal address, so they need
    no ledger record and are always selected when they have one.
    """
    records = ledger.all()
    if not names:
        return records

    unknown = [name for name in names if name not in ledger and name not in overridden]
    if unknown:
        raise ConfigurationError(
            f"Contract(s) {', '.join(unknown)} not found in the {ledger.network.name} ledger "
            f"({ledger.filepath})"
        )
    return [record for record in records if record.name in names or record.name in overridden]


def _transient_record(
    name: str, address: str, network: NetworkConfig, artifacts: ArtifactStore
) -> DeploymentRecord:
    address = checksum_address(address, label=f"address for {name}")
    artifact = artifacts.load(name)
    if artifact.constructor_inputs:
        raise ConfigurationError(
            f"{name} has no ledger record and its constructor takes arguments; "
            f"only contracts without constructor arguments can be verified at a literal address"
        )
    logger.warning("Verifying %s at %s without a ledger record", name, address)
    return DeploymentRecord(
        name=name,
        network=network.name,
        address=address,
        constructor_args=[],
        tx_hash="",
        timestamp=0,
        source=artifact.source_name,
    )


def apply_address_overrides(
    records: List[DeploymentRecord],
    overrides: Optional[Dict[str, str]],
    network: Optional[NetworkConfig] = None,
    artifacts: Optional[ArtifactStore] = None,
) -> List[DeploymentRecord]:
    """
    Swaps in operator-supplied addresses for verification only.

    An override naming a contract without a ledger record (a pool created
    by a factory, say) becomes a transient record built from its artifact
    when `network` and `artifacts` are given. Transient records follow the
    ledger records and are never written to the ledger.
    """
    if not overrides:
        return records

    by_name = {record.name: record for record in records}
    unknown = [name for name in overrides if name not in by_name]
    if unknown and (network is None or artifacts is None):
        raise ConfigurationError(
            f"Address override(s) for {', '.join(unknown)} do not match any ledger record"
        )

    result = list()
    for record in records:
        if record.name in overrides:
            address = checksum_address(overrides[record.name], label=f"address for {record.name}")
            if address != record.address:
                logger.warning(
                    "Verifying %s at overridden address %s instead of ledger address %s",
                    record.name,
                    address,
                    record.address,
                )
            record = record._replace(address=address)
        result.append(record)

    for name in unknown:
        result.append(_transient_record(name, overrides[name], network, artifacts))
    return result


def run_verification(
    network: NetworkConfig,
    records: List[DeploymentRecord],
    driver: VerificationDriver,
    overrides: Optional[Dict[str, str]] = None,
) -> VerificationReport:
    records = apply_address_overrides(records, overrides, network, driver.artifacts)
    outcomes = driver.verify(network, records)
    return VerificationReport(outcomes, cancelled=driver.cancel_event.is_set())
