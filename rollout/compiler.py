import logging
from typing import Any, Dict, Mapping, NamedTuple, Optional

from rollout.artifacts import ContractArtifact
from rollout.constants import COMPILER_OVERRIDES, COMPILER_PROFILES, DEFAULT_PROFILE
from rollout.exceptions import ConfigurationError, MissingCompilerProfile

logger = logging.getLogger(__name__)


class CompilerProfile(NamedTuple):
    """Build settings that must match between deployment and verification."""

    name: str
    version: str
    optimizer_enabled: bool = True
    optimizer_runs: int = 200
    bytecode_hash: str = "none"
    evm_version: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, settings: Mapping[str, Any]) -> "CompilerProfile":
        return cls(name=name, **settings)

    def solc_settings(self) -> Dict[str, Any]:
        """Renders the profile the way solc expects it in its `settings` input."""
        settings: Dict[str, Any] = {
            "optimizer": {"enabled": self.optimizer_enabled, "runs": self.optimizer_runs},
            "metadata": {"bytecodeHash": self.bytecode_hash},
        }
        if self.evm_version:
            settings["evmVersion"] = self.evm_version
        return settings


def _default_profiles() -> Dict[str, CompilerProfile]:
    return {
        name: CompilerProfile.from_dict(name, settings)
        for name, settings in COMPILER_PROFILES.items()
    }


class ProfileSelector:
    """
    Maps contract names to compiler profiles: an exact-match override table,
    falling back to a single default. Every name resolves to exactly one profile.
    """

    def __init__(
        self,
        profiles: Optional[Mapping[str, CompilerProfile]] = None,
        overrides: Optional[Mapping[str, str]] = None,
        default: str = DEFAULT_PROFILE,
    ):
        self.profiles = dict(profiles if profiles is not None else _default_profiles())
        self.overrides = dict(overrides if overrides is not None else COMPILER_OVERRIDES)
        if default not in self.profiles:
            raise MissingCompilerProfile(default)
        self.default = default
        for contract, profile_name in self.overrides.items():
            if profile_name not in self.profiles:
                raise MissingCompilerProfile(profile_name, contract=contract)

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "ProfileSelector":
        """Layers the optional `compiler` block of a params file over the static overrides."""
        compiler_config = (config or dict()).get("compiler") or dict()
        if not isinstance(compiler_config, dict):
            raise ConfigurationError("Malformed 'compiler' section in params file.")

        profiles = _default_profiles()
        for name, settings in (compiler_config.get("profiles") or dict()).items():
            try:
                profiles[name] = CompilerProfile.from_dict(name, settings)
            except TypeError as e:
                raise ConfigurationError(f"Malformed compiler profile '{name}': {e}") from e

        overrides = dict(COMPILER_OVERRIDES)
        overrides.update(compiler_config.get("overrides") or dict())
        return cls(
            profiles=profiles,
            overrides=overrides,
            default=compiler_config.get("default", DEFAULT_PROFILE),
        )

    def profile_for(self, contract_name: str) -> CompilerProfile:
        profile_name = self.overrides.get(contract_name, self.default)
        return self.profiles[profile_name]


def check_artifact_settings(profile: CompilerProfile, artifact: ContractArtifact) -> None:
    """Raises if an artifact was not compiled with the settings of its profile."""
    settings = artifact.compiler_settings
    if settings is None:
        logger.warning(
            "No build info for %s; cannot confirm it was compiled with profile '%s'",
            artifact.name,
            profile.name,
        )
        return

    mismatches = list()
    if artifact.solc_version and artifact.solc_version != profile.version:
        mismatches.append(f"solc {artifact.solc_version} != {profile.version}")

    optimizer = settings.get("optimizer", dict())
    if bool(optimizer.get("enabled", False)) != profile.optimizer_enabled:
        mismatches.append(
            f"optimizer enabled {optimizer.get('enabled', False)} != {profile.optimizer_enabled}"
        )
    if profile.optimizer_enabled and optimizer.get("runs") != profile.optimizer_runs:
        mismatches.append(f"optimizer runs {optimizer.get('runs')} != {profile.optimizer_runs}")

    bytecode_hash = settings.get("metadata", dict()).get("bytecodeHash", "ipfs")
    if bytecode_hash != profile.bytecode_hash:
        mismatches.append(f"bytecodeHash {bytecode_hash} != {profile.bytecode_hash}")

    if mismatches:
        raise ConfigurationError(
            f"{artifact.name} was not compiled with profile '{profile.name}': "
            + "; ".join(mismatches)
        )
