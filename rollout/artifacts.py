"""Loading of hardhat-style compiled contract artifacts."""

import json
import logging
from functools import cached_property
from pathlib import Path
from typing import Any, Dict, List, Optional

from rollout.exceptions import ConfigurationError
from rollout.utils import _load_json

logger = logging.getLogger(__name__)

DEBUG_SUFFIX = ".dbg.json"


class ContractArtifact:
    """Compiled output for a single contract: ABI, creation bytecode and build info."""

    def __init__(
        self,
        name: str,
        source_name: str,
        abi: List[Dict[str, Any]],
        bytecode: str,
        build_info_path: Optional[Path] = None,
    ):
        self.name = name
        self.source_name = source_name
        self.abi = abi
        self.bytecode = bytecode
        self.build_info_path = build_info_path

    def __repr__(self) -> str:
        return f"ContractArtifact({self.fully_qualified_name})"

    @property
    def fully_qualified_name(self) -> str:
        """Contract path as understood by solc and block explorers."""
        return f"{self.source_name}:{self.name}"

    @property
    def constructor_inputs(self) -> List[Dict[str, Any]]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return list(entry.get("inputs", []))
        return []

    @cached_property
    def build_info(self) -> Optional[Dict[str, Any]]:
        if self.build_info_path is None:
            return None
        try:
            return _load_json(self.build_info_path)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Unreadable build info for {self.name} at {self.build_info_path}: {e}"
            ) from e

    @property
    def solc_version(self) -> Optional[str]:
        if not self.build_info:
            return None
        return self.build_info.get("solcVersion")

    @property
    def solc_long_version(self) -> Optional[str]:
        if not self.build_info:
            return None
        return self.build_info.get("solcLongVersion") or self.build_info.get("solcVersion")

    @property
    def compiler_input(self) -> Optional[Dict[str, Any]]:
        """Standard JSON input the artifact was compiled from."""
        if not self.build_info:
            return None
        return self.build_info.get("input")

    @property
    def compiler_settings(self) -> Optional[Dict[str, Any]]:
        compiler_input = self.compiler_input
        if not compiler_input:
            return None
        return compiler_input.get("settings", dict())


class ArtifactStore:
    """Finds contract artifacts under a hardhat `artifacts/` directory."""

    def __init__(self, artifacts_dir: Path):
        self.artifacts_dir = Path(artifacts_dir)
        self._cache: Dict[str, ContractArtifact] = dict()

    def _find(self, name: str, source: Optional[str]) -> Path:
        if source:
            filepath = self.artifacts_dir / source / f"{name}.json"
            if not filepath.exists():
                raise ConfigurationError(f"No artifact for {name} at {filepath}")
            return filepath

        candidates = [
            path
            for path in self.artifacts_dir.rglob(f"{name}.json")
            if "build-info" not in path.parts
        ]
        if not candidates:
            raise ConfigurationError(f"No artifact found for contract '{name}' in {self.artifacts_dir}")
        if len(candidates) != 1:
            sources = ", ".join(sorted(str(c.parent.relative_to(self.artifacts_dir)) for c in candidates))
            raise ConfigurationError(
                f"Artifact for '{name}' is ambiguous ({sources}); set 'source' in the params file."
            )
        return candidates[0]

    def load(self, name: str, source: Optional[str] = None) -> ContractArtifact:
        key = f"{source or ''}:{name}"
        if key in self._cache:
            return self._cache[key]

        filepath = self._find(name, source)
        try:
            data = _load_json(filepath)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Malformed artifact at {filepath}: {e}") from e

        for field in ("abi", "bytecode"):
            if field not in data:
                raise ConfigurationError(f"Artifact {filepath} is missing '{field}'.")
        if data["bytecode"] in ("", "0x"):
            raise ConfigurationError(
                f"{name} has no creation bytecode (abstract contract or interface?)"
            )

        source_name = data.get("sourceName") or str(filepath.parent.relative_to(self.artifacts_dir))
        artifact = ContractArtifact(
            name=data.get("contractName", name),
            source_name=source_name,
            abi=data["abi"],
            bytecode=data["bytecode"],
            build_info_path=self._build_info_path(filepath),
        )
        self._cache[key] = artifact
        return artifact

    @staticmethod
    def _build_info_path(artifact_filepath: Path) -> Optional[Path]:
        debug_filepath = artifact_filepath.with_name(artifact_filepath.stem + DEBUG_SUFFIX)
        if not debug_filepath.exists():
            logger.debug("No debug file for %s", artifact_filepath)
            return None
        try:
            debug = _load_json(debug_filepath)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Malformed debug file at {debug_filepath}: {e}") from e
        if not isinstance(debug, dict):
            raise ConfigurationError(f"Malformed debug file at {debug_filepath}")
        build_info = debug.get("buildInfo")
        if not build_info:
            return None
        return (debug_filepath.parent / build_info).resolve()
