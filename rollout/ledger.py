import json
import logging
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from rollout.exceptions import LedgerError
from rollout.networks import NetworkConfig
from rollout.utils import _load_json, write_json_atomic

logger = logging.getLogger(__name__)

ContractName = str

REQUIRED_ENTRY_FIELDS = ("address", "tx_hash", "constructor_args", "timestamp")


class DeploymentRecord(NamedTuple):
    """A single deployed contract on a single network."""

    name: ContractName
    network: str
    address: ChecksumAddress
    constructor_args: List[Any]
    tx_hash: str
    timestamp: int
    profile: Optional[str] = None
    source: Optional[str] = None


def _entry_from_record(record: DeploymentRecord) -> Dict[str, Any]:
    return {
        "address": record.address,
        "tx_hash": record.tx_hash,
        "constructor_args": list(record.constructor_args),
        "timestamp": int(record.timestamp),
        "profile": record.profile,
        "source": record.source,
    }


def _record_from_entry(network: str, name: str, entry: Any, filepath: Path) -> DeploymentRecord:
    if not isinstance(entry, dict):
        raise LedgerError(f"Malformed entry for {name} in {filepath}")
    missing = [field for field in REQUIRED_ENTRY_FIELDS if field not in entry]
    if missing:
        raise LedgerError(f"Entry for {name} in {filepath} is missing {', '.join(missing)}")
    if not is_address(entry["address"]):
        raise LedgerError(f"Entry for {name} in {filepath} has an invalid address")
    if not isinstance(entry["constructor_args"], list):
        raise LedgerError(f"Entry for {name} in {filepath} has malformed constructor_args")
    try:
        timestamp = int(entry["timestamp"])
    except (TypeError, ValueError):
        raise LedgerError(f"Entry for {name} in {filepath} has a malformed timestamp")
    return DeploymentRecord(
        name=name,
        network=network,
        address=to_checksum_address(entry["address"]),
        constructor_args=entry["constructor_args"],
        tx_hash=entry["tx_hash"],
        timestamp=timestamp,
        profile=entry.get("profile"),
        source=entry.get("source"),
    )


class DeploymentLedger:
    """
    Durable record of what has been deployed on one network.

    Every `put` is written through to disk before it returns, so an
    interrupted run leaves behind exactly the deployments that completed.
    """

    def __init__(self, network: NetworkConfig, filepath: Path):
        self.network = network
        self.filepath = filepath
        self._records: Dict[ContractName, DeploymentRecord] = dict()

    def __contains__(self, name: ContractName) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def get(self, name: ContractName) -> Optional[DeploymentRecord]:
        return self._records.get(name)

    def put(self, record: DeploymentRecord) -> None:
        """Stores a record, replacing any earlier deployment of the same contract."""
        if record.network != self.network.name:
            raise LedgerError(
                f"Cannot store a {record.network} deployment in the {self.network.name} ledger"
            )
        if record.name in self._records:
            logger.warning("Overwriting ledger entry for %s on %s", record.name, record.network)
        self._records[record.name] = record
        self.save()

    def all(self) -> List[DeploymentRecord]:
        return list(self._records.values())

    def save(self) -> Path:
        contracts = {name: _entry_from_record(r) for name, r in self._records.items()}
        data = {str(self.network.chain_id): contracts}
        write_json_atomic(data, self.filepath)
        logger.debug("Ledger written to %s", self.filepath)
        return self.filepath

    def _load(self) -> None:
        try:
            data = _load_json(self.filepath)
        except json.JSONDecodeError as e:
            raise LedgerError(f"Ledger at {self.filepath} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise LedgerError(f"Ledger at {self.filepath} must be a JSON object")
        if not data:
            return

        chain_keys = list(data)
        expected = str(self.network.chain_id)
        if chain_keys != [expected]:
            raise LedgerError(
                f"Ledger at {self.filepath} is for chain id(s) {', '.join(chain_keys)}, "
                f"expected only {expected} ({self.network.name})"
            )

        entries = data[expected]
        if not isinstance(entries, dict):
            raise LedgerError(f"Ledger at {self.filepath} has malformed contracts")
        for name, entry in entries.items():
            self._records[name] = _record_from_entry(
                self.network.name, name, entry, self.filepath
            )


def ledger_filepath(network: NetworkConfig, ledger_dir: Path) -> Path:
    return Path(ledger_dir) / f"{network.name}.json"


def load_ledger(network: NetworkConfig, ledger_dir: Path) -> DeploymentLedger:
    """Reads the ledger for a network; a missing file is an empty ledger."""
    filepath = ledger_filepath(network, ledger_dir)
    ledger = DeploymentLedger(network=network, filepath=filepath)
    if filepath.exists():
        ledger._load()
        logger.info("Loaded %d ledger entries from %s", len(ledger), filepath)
    else:
        logger.info("No ledger at %s; starting empty", filepath)
    return ledger
