import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from eth_typing import ChecksumAddress

from rollout.exceptions import ConfigurationError, UnresolvedDependency
from rollout.utils import _load_yaml

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
CONTRACT_SOURCE_KEY = "source"
CONTRACT_KEYS = {CONTRACT_CONSTRUCTOR_PARAMETER_KEY, CONTRACT_SOURCE_KEY}


class ResolutionContext:
    """Addresses known at the time a contract's arguments are resolved."""

    def __init__(
        self,
        contract_name: str,
        addresses: typing.Mapping[str, ChecksumAddress],
        deployer: Optional[ChecksumAddress] = None,
    ):
        self.contract_name = contract_name
        self.addresses = addresses
        self.deployer = deployer


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, context: ResolutionContext) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        return isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)

    def __eq__(self, other) -> bool:
        return type(self) is type(other) and vars(self) == vars(other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({vars(self)})"


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is the special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, context: ResolutionContext) -> Any:
        if context.deployer is None:
            raise ConfigurationError(
                f"{context.contract_name} uses $deployer but no signer is available"
            )
        return context.deployer


class Constant(Variable):
    def __init__(self, constant_name: str, constants: typing.Mapping[str, Any]):
        try:
            self.constant_value = constants[constant_name]
        except KeyError:
            raise ConfigurationError(f"Constant '{constant_name}' not found in params file.")

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a params file constant."""
        return value.isupper()

    def resolve(self, context: ResolutionContext) -> Any:
        return self.constant_value


class ContractReference(Variable):
    """The deployed address of another contract on the same network."""

    def __init__(self, contract_name: str):
        self.contract_name = contract_name

    def resolve(self, context: ResolutionContext) -> Any:
        try:
            return context.addresses[self.contract_name]
        except KeyError:
            raise UnresolvedDependency(context.contract_name, self.contract_name)


def _variable_from_value(variable: str, constants: typing.Mapping[str, Any]) -> Variable:
    variable = variable[len(Variable.VARIABLE_PREFIX) :]
    if not variable:
        raise ConfigurationError("Empty variable name in params file.")
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif Constant.is_constant(variable):
        return Constant(variable, constants)
    else:
        return ContractReference(variable)


def _process_raw_value(value: Any, constants: typing.Mapping[str, Any]) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, constants) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, constants)

    return value


def _resolve_param(value: Any, context: ResolutionContext) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v, context) for v in value]

    if isinstance(value, Variable):
        return value.resolve(context)

    return value  # literally a value


def _references(value: Any) -> List[str]:
    if isinstance(value, list):
        return [name for v in value for name in _references(v)]
    if isinstance(value, ContractReference):
        return [value.contract_name]
    return []


class ContractSpec(typing.NamedTuple):
    """A contract to deploy: its artifact lookup and ordered constructor arguments."""

    name: str
    arguments: "OrderedDict[str, Any]"
    source: Optional[str] = None

    def references(self) -> List[str]:
        """Contracts whose addresses this contract's constructor needs, in argument order."""
        names: List[str] = list()
        for value in self.arguments.values():
            for name in _references(value):
                if name not in names:
                    names.append(name)
        return names

    def resolve(self, context: ResolutionContext) -> "OrderedDict[str, Any]":
        """Resolves all constructor arguments, keyed by parameter name."""
        resolved = OrderedDict()
        for name, value in self.arguments.items():
            resolved[name] = _resolve_param(value, context)
        return resolved


class ContractSet:
    """An ordered collection of contracts plus the deployment metadata of a params file."""

    def __init__(
        self,
        contracts: List[ContractSpec],
        name: Optional[str] = None,
        chain_id: Optional[int] = None,
        constants: Optional[Dict[str, Any]] = None,
        config: Optional[Dict[str, Any]] = None,
        path: Optional[Path] = None,
    ):
        self.name = name
        self.chain_id = chain_id
        self.constants = constants or dict()
        self.config = config or dict()
        self.path = path

        self._contracts: "OrderedDict[str, ContractSpec]" = OrderedDict()
        for spec in contracts:
            if spec.name in self._contracts:
                raise ConfigurationError(f"Contract '{spec.name}' is declared more than once.")
            self._contracts[spec.name] = spec

    def __iter__(self) -> typing.Iterator[ContractSpec]:
        return iter(self._contracts.values())

    def __len__(self) -> int:
        return len(self._contracts)

    def __contains__(self, name: str) -> bool:
        return name in self._contracts

    def __getitem__(self, name: str) -> ContractSpec:
        return self._contracts[name]

    @property
    def names(self) -> List[str]:
        return list(self._contracts)

    def dependencies(self, name: str) -> Set[str]:
        """Referenced contracts that are themselves part of this set."""
        return {ref for ref in self._contracts[name].references() if ref in self._contracts}

    def validate_chain_id(self, chain_id: int) -> None:
        if self.chain_id is not None and self.chain_id != chain_id:
            raise ConfigurationError(
                f"chain_id in params file ({self.chain_id}) does not match "
                f"chain_id of the selected network ({chain_id})."
            )

    @classmethod
    def from_config(cls, config: Dict[str, Any], path: Optional[Path] = None) -> "ContractSet":
        validate_config(config)
        deployment = config.get("deployment") or dict()
        constants = config.get("constants") or dict()
        if not isinstance(constants, dict):
            raise ConfigurationError("'constants' must be a mapping.")

        chain_id = deployment.get("chain_id")
        if chain_id is not None:
            try:
                chain_id = int(chain_id)
            except (TypeError, ValueError):
                raise ConfigurationError(f"chain_id in params file is not an integer: {chain_id!r}")

        contracts = [_contract_spec(info, constants) for info in config["contracts"]]
        return cls(
            contracts=contracts,
            name=deployment.get("name"),
            chain_id=chain_id,
            constants=constants,
            config=config,
            path=path,
        )

    @classmethod
    def from_yaml(cls, filepath: Path) -> "ContractSet":
        config = _load_yaml(filepath)
        if not isinstance(config, dict):
            raise ConfigurationError(f"Params file {filepath} must contain a mapping.")
        return cls.from_config(config, path=filepath)


def validate_config(config: Dict[str, Any]) -> None:
    deployment = config.get("deployment")
    if deployment is not None and not isinstance(deployment, dict):
        raise ConfigurationError("'deployment' must be a mapping.")

    contracts = config.get("contracts")
    if not contracts:
        raise ConfigurationError("Params file missing 'contracts' field.")
    if not isinstance(contracts, list):
        raise ConfigurationError("'contracts' must be a list.")


def _contract_spec(contract_info: Any, constants: Dict[str, Any]) -> ContractSpec:
    if isinstance(contract_info, str):
        return ContractSpec(name=contract_info, arguments=OrderedDict())

    if not isinstance(contract_info, dict) or len(contract_info) != 1:
        raise ConfigurationError("Malformed contracts entry in params file.")

    contract_name = list(contract_info.keys())[0]  # only one entry
    contract_data = contract_info[contract_name] or dict()
    if not isinstance(contract_data, dict):
        raise ConfigurationError(f"Malformed params for {contract_name}.")

    unknown = set(contract_data) - CONTRACT_KEYS
    if unknown:
        raise ConfigurationError(
            f"Unknown keys for {contract_name}: {', '.join(sorted(unknown))}"
        )

    raw_arguments = contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or dict()
    if not isinstance(raw_arguments, dict):
        raise ConfigurationError(
            f"Constructor parameters for {contract_name} must be a mapping of name to value."
        )

    arguments = OrderedDict()
    for name, value in raw_arguments.items():
        arguments[name] = _process_raw_value(value, constants)

    return ContractSpec(
        name=contract_name,
        arguments=arguments,
        source=contract_data.get(CONTRACT_SOURCE_KEY),
    )
