import json

import pytest

from rollout.exceptions import LedgerError
from rollout.ledger import DeploymentLedger, DeploymentRecord, ledger_filepath, load_ledger
from rollout.utils import write_json_atomic
from tests.conftest import make_address, make_tx_hash


def _record(name, index, network="hardhat", args=None):
    return DeploymentRecord(
        name=name,
        network=network,
        address=make_address(index),
        constructor_args=args or [],
        tx_hash=make_tx_hash(index),
        timestamp=1700000000 + index,
        profile="default",
        source=f"contracts/{name}.sol",
    )


def test_missing_ledger_is_empty(network, ledger_dir):
    ledger = load_ledger(network, ledger_dir)
    assert len(ledger) == 0
    assert ledger.all() == []
    assert ledger.filepath == ledger_dir / "hardhat.json"
    assert not ledger.filepath.exists()


def test_put_writes_through(ledger):
    record = _record("Deployer", 1)
    ledger.put(record)

    with open(ledger.filepath) as file:
        data = json.load(file)
    assert list(data) == ["31337"]
    assert data["31337"]["Deployer"] == {
        "address": record.address,
        "tx_hash": record.tx_hash,
        "constructor_args": [],
        "timestamp": record.timestamp,
        "profile": "default",
        "source": "contracts/Deployer.sol",
    }


def test_reload_preserves_insertion_order(network, ledger_dir, ledger):
    ledger.put(_record("Factory", 2, args=[make_address(1)]))
    ledger.put(_record("Deployer", 1))
    ledger.put(_record("Router", 3, args=[make_address(2), 3000]))

    reloaded = load_ledger(network, ledger_dir)
    assert [r.name for r in reloaded.all()] == ["Factory", "Deployer", "Router"]
    assert reloaded.get("Router") == ledger.get("Router")
    assert "Deployer" in reloaded
    assert reloaded.get("Pool") is None


def test_overwrite_warns(ledger, caplog):
    ledger.put(_record("Deployer", 1))
    ledger.put(_record("Deployer", 9))
    assert "Overwriting ledger entry for Deployer" in caplog.text
    assert len(ledger) == 1
    assert ledger.get("Deployer").address == make_address(9)


def test_put_rejects_other_network(ledger):
    with pytest.raises(LedgerError, match="Cannot store a bscTestnet deployment"):
        ledger.put(_record("Deployer", 1, network="bscTestnet"))
    assert not ledger.filepath.exists()


def test_lowercase_addresses_are_checksummed_on_load(network, ledger_dir):
    address = make_address(0xABCDEF)
    filepath = ledger_filepath(network, ledger_dir)
    write_json_atomic(
        {
            "31337": {
                "Deployer": {
                    "address": address.lower(),
                    "tx_hash": make_tx_hash(1),
                    "constructor_args": [],
                    "timestamp": 1700000000,
                }
            }
        },
        filepath,
    )
    record = load_ledger(network, ledger_dir).get("Deployer")
    assert record.address == address
    assert record.profile is None


@pytest.mark.parametrize(
    "content,message",
    [
        ("{not json", "not valid JSON"),
        ("[]", "must be a JSON object"),
        ('{"97": {}}', "expected only 31337"),
        ('{"31337": {}, "97": {}}', "expected only 31337"),
        ('{"31337": []}', "malformed contracts"),
        ('{"31337": {"Deployer": {"address": "0x01"}}}', "missing tx_hash"),
        (
            '{"31337": {"Deployer": {"address": "0xnope", "tx_hash": "0x", '
            '"constructor_args": [], "timestamp": 1}}}',
            "invalid address",
        ),
        (
            '{"31337": {"Deployer": {"address": "0x' + "11" * 20 + '", "tx_hash": "0x", '
            '"constructor_args": [], "timestamp": "yesterday"}}}',
            "malformed timestamp",
        ),
    ],
)
def test_invalid_ledger_files(network, ledger_dir, content, message):
    filepath = ledger_filepath(network, ledger_dir)
    filepath.parent.mkdir(parents=True)
    filepath.write_text(content)
    with pytest.raises(LedgerError, match=message):
        load_ledger(network, ledger_dir)


def test_atomic_write_leaves_no_temporary_files(ledger):
    for index, name in enumerate(["Deployer", "Factory", "Router"], start=1):
        ledger.put(_record(name, index))
    assert [p.name for p in ledger.filepath.parent.iterdir()] == ["hardhat.json"]


def test_failed_write_keeps_previous_ledger(ledger, monkeypatch):
    ledger.put(_record("Deployer", 1))
    before = ledger.filepath.read_text()

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("rollout.utils.os.replace", broken_replace)
    with pytest.raises(OSError, match="disk full"):
        ledger.put(_record("Factory", 2))

    assert ledger.filepath.read_text() == before
    assert [p.name for p in ledger.filepath.parent.iterdir()] == ["hardhat.json"]


def test_ledgers_are_per_network(network, explorer_network, ledger_dir):
    DeploymentLedger(network, ledger_filepath(network, ledger_dir)).put(_record("Deployer", 1))
    other = load_ledger(explorer_network, ledger_dir)
    assert len(other) == 0
    assert other.filepath.name == "bscTestnet.json"
