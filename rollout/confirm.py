"""Operator prompts shown during an interactive (non-autosigned) deployment."""

from collections import OrderedDict
from typing import Any, List

import click

from rollout.exceptions import DeploymentAborted

ZERO_ADDRESS = "0x" + "0" * 40


def _ask(question: str, reason: str) -> None:
    if not click.confirm(question, default=True):
        raise DeploymentAborted(reason)


def _continue() -> None:
    """Asks the operator whether to start the run at all."""
    _ask("Continue?", "Deployment declined")


def _zero_address_params(name: str, value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [p for index, v in enumerate(value) for p in _zero_address_params(f"{name}[{index}]", v)]
    if isinstance(value, str) and value.lower() == ZERO_ADDRESS:
        return [name]
    return []


def _confirm_resolution(resolved_params: OrderedDict, contract_name: str) -> None:
    """Shows the resolved constructor arguments of a contract and asks before deploying it."""
    if not resolved_params:
        click.echo(f"\n(i) No constructor parameters for {contract_name}")
    else:
        click.echo(f"\nConstructor parameters for {contract_name}")
        for name, value in resolved_params.items():
            click.echo(f"\t{name}={value}")

    _ask(f"Deploy {contract_name}?", f"Deployment of {contract_name} declined")

    zero_params = [p for name, value in resolved_params.items() for p in _zero_address_params(name, value)]
    if zero_params:
        click.secho(f"Zero address passed as {', '.join(zero_params)}", fg="yellow")
        _ask("Deploy anyway?", f"Zero address for {contract_name} declined")
