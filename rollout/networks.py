import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from rollout.constants import LOCAL_NETWORKS, NETWORKS
from rollout.exceptions import ConfigurationError, MissingCredential, UnknownNetwork
from rollout.utils import _load_yaml

NETWORK_SETTINGS_KEYS = {
    "rpc_url",
    "chain_id",
    "signer_env",
    "explorer_key_env",
    "explorer_api_url",
    "explorer_browser_url",
}


class Secret:
    """A credential that never shows its value in reprs or logs."""

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def reveal(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return "Secret('********')"

    __str__ = __repr__

    def __eq__(self, other) -> bool:
        return isinstance(other, Secret) and other._value == self._value

    def __hash__(self) -> int:
        return hash(self._value)


class NetworkConfig(NamedTuple):
    """Connection and verification parameters for a single network."""

    name: str
    rpc_url: str
    chain_id: int
    signer_key: Optional[Secret] = None
    explorer_api_key: Optional[Secret] = None
    explorer_api_url: Optional[str] = None
    explorer_browser_url: Optional[str] = None

    @property
    def can_deploy(self) -> bool:
        return self.signer_key is not None

    @property
    def can_verify(self) -> bool:
        return self.explorer_api_key is not None and bool(self.explorer_api_url)

    def address_url(self, address: str) -> Optional[str]:
        if not self.explorer_browser_url:
            return None
        return f"{self.explorer_browser_url.rstrip('/')}/address/{address}"


def is_local_network(network: NetworkConfig) -> bool:
    return network.name in LOCAL_NETWORKS


def _secret(environ: Mapping[str, str], envvar: Optional[str]) -> Optional[Secret]:
    if not envvar:
        return None
    value = environ.get(envvar)
    if not value:
        return None
    return Secret(value)


def _validate_settings(name: str, settings: Dict[str, Any]) -> None:
    unknown = set(settings) - NETWORK_SETTINGS_KEYS
    if unknown:
        raise ConfigurationError(
            f"Unknown settings for network '{name}': {', '.join(sorted(unknown))}"
        )
    for required in ("rpc_url", "chain_id"):
        if not settings.get(required):
            raise ConfigurationError(f"'{required}' is not set for network '{name}'.")
    try:
        settings["chain_id"] = int(settings["chain_id"])
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"chain_id for network '{name}' is not an integer: {settings['chain_id']!r}"
        )


class NetworkRegistry:
    """
    Static mapping of network identifiers to their connection parameters.

    Secrets are looked up once, at construction, from the environment mapping
    that is passed in; nothing reads the process environment afterwards.
    """

    def __init__(
        self,
        networks: Mapping[str, Dict[str, Any]],
        environ: Optional[Mapping[str, str]] = None,
    ):
        environ = environ or dict()
        self._networks: Dict[str, NetworkConfig] = dict()

        chain_ids: Dict[int, str] = dict()
        for name, raw_settings in networks.items():
            settings = dict(raw_settings)
            _validate_settings(name, settings)

            chain_id = settings["chain_id"]
            if chain_id in chain_ids:
                raise ConfigurationError(
                    f"Networks '{chain_ids[chain_id]}' and '{name}' share chain_id {chain_id}"
                )
            chain_ids[chain_id] = name

            self._networks[name] = NetworkConfig(
                name=name,
                rpc_url=settings["rpc_url"],
                chain_id=chain_id,
                signer_key=_secret(environ, settings.get("signer_env")),
                explorer_api_key=_secret(environ, settings.get("explorer_key_env")),
                explorer_api_url=settings.get("explorer_api_url"),
                explorer_browser_url=settings.get("explorer_browser_url"),
            )
        self._signer_envvars = {
            name: settings.get("signer_env") for name, settings in networks.items()
        }

    @classmethod
    def from_environment(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        overrides_filepath: Optional[Path] = None,
    ) -> "NetworkRegistry":
        """Builds the registry from the static table, optional YAML overrides and the environment."""
        networks = copy.deepcopy(NETWORKS)
        if overrides_filepath:
            networks = merge_network_overrides(networks, _load_yaml(overrides_filepath))
        if environ is None:
            environ = dict(os.environ)
        return cls(networks=networks, environ=environ)

    def names(self) -> List[str]:
        return list(self._networks)

    def resolve(self, name: str, deploy: bool = False) -> NetworkConfig:
        """
        Returns the configuration for a network.
        When `deploy` is set the network must also have a signer credential.
        """
        try:
            network = self._networks[name]
        except KeyError:
            raise UnknownNetwork(name)

        if deploy and not network.can_deploy:
            raise MissingCredential(name, envvar=self._signer_envvars.get(name))

        return network


def merge_network_overrides(
    networks: Dict[str, Dict[str, Any]], overrides: Optional[Dict[str, Any]]
) -> Dict[str, Dict[str, Any]]:
    """Layers per-network settings from a networks YAML file over the static table."""
    if not overrides:
        return networks
    if not isinstance(overrides, dict) or not isinstance(overrides.get("networks"), dict):
        raise ConfigurationError("Networks file must contain a 'networks' mapping.")

    merged = dict(networks)
    for name, settings in overrides["networks"].items():
        if not isinstance(settings, dict):
            raise ConfigurationError(f"Malformed settings for network '{name}'.")
        merged[name] = {**merged.get(name, dict()), **settings}
    return merged
