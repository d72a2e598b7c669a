import json
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from rollout.exceptions import ConfigurationError

STANDARD_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def write_json_atomic(data: Any, filepath: Path) -> Path:
    """
    Writes JSON next to the destination and renames it into place,
    so readers only ever observe the old or the new file.
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w") as file:
            json.dump(data, file, **STANDARD_JSON_FORMAT)
            file.write("\n")
            file.flush()
            os.fsync(file.fileno())
        os.replace(temp_name, filepath)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
    return filepath


def checksum_address(value: Any, label: str = "address") -> ChecksumAddress:
    """Validates an address and returns its checksummed form."""
    if not isinstance(value, str) or not is_address(value):
        raise ConfigurationError(f"Invalid {label}: {value!r}")
    return to_checksum_address(value)
