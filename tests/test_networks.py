import pytest

from rollout.constants import NETWORKS
from rollout.exceptions import ConfigurationError, MissingCredential, UnknownNetwork
from rollout.networks import NetworkConfig, NetworkRegistry, Secret, is_local_network
from tests.conftest import PRIVATE_KEY


def test_resolve_known_network():
    registry = NetworkRegistry(NETWORKS, environ={"KEY_TESTNET": PRIVATE_KEY})
    network = registry.resolve("bscTestnet", deploy=True)
    assert network.chain_id == 97
    assert network.signer_key.reveal() == PRIVATE_KEY
    assert network.explorer_api_key is None
    assert not network.can_verify


def test_resolve_unknown_network():
    registry = NetworkRegistry(NETWORKS, environ={})
    with pytest.raises(UnknownNetwork, match="Unknown network 'moonbase'"):
        registry.resolve("moonbase")


def test_deploy_requires_signer_credential():
    registry = NetworkRegistry(NETWORKS, environ={"ETHERSCAN_API_KEY": "key"})

    # read-only use of the network is fine
    network = registry.resolve("bscMainnet")
    assert network.can_verify
    assert not network.can_deploy

    with pytest.raises(MissingCredential) as exc_info:
        registry.resolve("bscMainnet", deploy=True)
    assert exc_info.value.envvar == "KEY_MAINNET"
    assert "KEY_MAINNET" in str(exc_info.value)


def test_empty_environment_values_are_not_credentials():
    registry = NetworkRegistry(NETWORKS, environ={"KEY_HARDHAT": "", "ETHERSCAN_API_KEY": ""})
    assert registry.resolve("hardhat").signer_key is None
    assert registry.resolve("eth").explorer_api_key is None


def test_duplicate_chain_ids_are_rejected():
    networks = {
        "one": {"rpc_url": "http://one", "chain_id": 7},
        "two": {"rpc_url": "http://two", "chain_id": "7"},
    }
    with pytest.raises(ConfigurationError, match="share chain_id 7"):
        NetworkRegistry(networks)


@pytest.mark.parametrize(
    "settings,message",
    [
        ({"chain_id": 7}, "'rpc_url' is not set"),
        ({"rpc_url": "http://node"}, "'chain_id' is not set"),
        ({"rpc_url": "http://node", "chain_id": "seven"}, "not an integer"),
        ({"rpc_url": "http://node", "chain_id": 7, "gas": 1}, "Unknown settings"),
    ],
)
def test_malformed_network_settings(settings, message):
    with pytest.raises(ConfigurationError, match=message):
        NetworkRegistry({"custom": settings})


def test_networks_file_overrides_and_extends(tmp_path):
    overrides = tmp_path / "networks.yml"
    overrides.write_text(
        """
networks:
  hardhat:
    rpc_url: http://10.0.0.5:8545
  opbnbTestnet:
    rpc_url: https://opbnb-testnet-rpc.bnbchain.org
    chain_id: 5611
    signer_env: KEY_OPBNB
"""
    )
    registry = NetworkRegistry.from_environment(
        environ={"KEY_OPBNB": PRIVATE_KEY}, overrides_filepath=overrides
    )

    hardhat = registry.resolve("hardhat")
    assert hardhat.rpc_url == "http://10.0.0.5:8545"
    assert hardhat.chain_id == 31337

    assert "opbnbTestnet" in registry.names()
    assert registry.resolve("opbnbTestnet", deploy=True).chain_id == 5611

    # the static table is not mutated by overrides
    assert NETWORKS["hardhat"]["rpc_url"] == "http://127.0.0.1:8545"


def test_networks_file_requires_networks_mapping(tmp_path):
    overrides = tmp_path / "networks.yml"
    overrides.write_text("hardhat:\n  rpc_url: http://node\n")
    with pytest.raises(ConfigurationError, match="'networks' mapping"):
        NetworkRegistry.from_environment(environ={}, overrides_filepath=overrides)


def test_secret_is_masked():
    secret = Secret(PRIVATE_KEY)
    assert PRIVATE_KEY not in repr(secret)
    assert PRIVATE_KEY not in str(secret)

    network = NetworkConfig(name="hardhat", rpc_url="http://node", chain_id=1, signer_key=secret)
    assert PRIVATE_KEY not in repr(network)
    assert secret == Secret(PRIVATE_KEY)


def test_address_url(explorer_network, network):
    address = "0x000000000000000000000000000000000000dEaD"
    assert explorer_network.address_url(address) == f"https://testnet.bscscan.com/address/{address}"
    assert network.address_url(address) is None
    assert is_local_network(network)
    assert not is_local_network(explorer_network)
