#!/usr/bin/python3

import logging
import os
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence

import click
from dotenv import dotenv_values

from rollout.artifacts import ArtifactStore
from rollout.chain import Web3ChainClient, load_signer
from rollout.compiler import ProfileSelector
from rollout.confirm import _confirm_resolution, _continue
from rollout.constants import (
    ARTIFACTS_DIR,
    ARTIFACTS_DIR_ENVVAR,
    DEFAULT_ENV_FILE,
    DEPLOYMENT_TIMEOUT,
    LEDGER_DIR,
    LEDGER_DIR_ENVVAR,
    NETWORKS_FILE_ENVVAR,
)
from rollout.exceptions import ConfigurationError, DeploymentAborted, LedgerError
from rollout.explorer import EtherscanClient, VerificationStatus
from rollout.ledger import DeploymentRecord, load_ledger
from rollout.networks import NetworkConfig, NetworkRegistry, is_local_network
from rollout.options import (
    address_override_option,
    autosign_option,
    contract_name_option,
    delay_option,
    network_argument,
    params_option,
    retries_option,
    workers_option,
)
from rollout.orchestrator import DeploymentResult, run_deployment, run_verification, select_records
from rollout.params import ContractSet
from rollout.sequencer import DeploymentSequencer
from rollout.verification import VerificationDriver, VerificationReport

CANCELLED_EXIT_CODE = 130

STATUS_COLORS = {
    VerificationStatus.VERIFIED: "green",
    VerificationStatus.ALREADY_VERIFIED: "green",
    VerificationStatus.FAILED: "red",
    VerificationStatus.PENDING: "yellow",
}


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("rollout").setLevel(level)


def _explorer_factory(network: NetworkConfig) -> EtherscanClient:
    return EtherscanClient(api_url=network.explorer_api_url)


@contextmanager
def _cancellation() -> Iterator[threading.Event]:
    """
    First Ctrl-C asks the run to stop after the operation in flight;
    a second one interrupts immediately.
    """
    cancel_event = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield cancel_event
        return

    def handler(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        click.secho("\nStopping after the current operation (Ctrl-C again to abort)...", fg="yellow")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield cancel_event
    finally:
        signal.signal(signal.SIGINT, previous)


def _registry(settings: dict) -> NetworkRegistry:
    return NetworkRegistry.from_environment(
        environ=settings["environ"], overrides_filepath=settings["networks_file"]
    )


def _print_deployment_info(
    network: NetworkConfig, signer_address: str, contract_set: ContractSet, ledger_filepath: Path
) -> None:
    click.echo(
        "\n".join(
            [
                f"Account: {signer_address}",
                f"Params: {contract_set.path}",
                f"Ledger: {ledger_filepath}",
                f"Network: {network.name}",
                f"Chain ID: {network.chain_id}",
                f"RPC: {network.rpc_url}",
            ]
        )
    )


def _print_deployment_result(result: DeploymentResult, network: NetworkConfig) -> None:
    for record in result.records:
        marker = "deployed" if record.name in result.deployed else "existing"
        click.secho(f"    {record.name} {record.address} ({marker})", fg="cyan")
    if result.error is None:
        click.secho(
            f"(i) {len(result.deployed)} deployed, {len(result.skipped)} already on {network.name}",
            fg="green",
        )
        return

    contract = getattr(result.error, "contract", None)
    if contract:
        click.secho(f"Deployment of {contract} failed: {result.error}", fg="red", err=True)
    else:
        click.secho(f"Deployment stopped: {result.error}", fg="red", err=True)


def _format_table(header: Sequence[str], rows: List[Sequence[str]]) -> List[str]:
    widths = [max(len(str(cell)) for cell in column) for column in zip(header, *rows)]
    lines = ["  ".join(str(cell).ljust(width) for cell, width in zip(header, widths)).rstrip()]
    lines.append("  ".join("-" * width for width in widths))
    for row in rows:
        lines.append("  ".join(str(cell).ljust(width) for cell, width in zip(row, widths)).rstrip())
    return lines


def _print_verification_report(report: VerificationReport) -> None:
    if not report.outcomes:
        click.echo("(i) Nothing verified.")
        return

    header = ("Contract", "Address", "Status", "Attempts", "Error")
    lines = _format_table(header, report.summary_rows())
    click.echo(lines[0])
    click.echo(lines[1])
    for outcome, line in zip(report.outcomes, lines[2:]):
        click.secho(line, fg=STATUS_COLORS[outcome.status])

    if report.cancelled:
        click.secho("Verification cancelled; pending contracts were not submitted.", fg="yellow")
    if report.failed:
        click.secho(f"{len(report.failed)} verification(s) failed.", fg="red", err=True)


def _verification_driver(settings: dict, network: NetworkConfig, cancel_event, **kwargs):
    return VerificationDriver(
        explorer=settings["explorer_factory"](network),
        artifacts=ArtifactStore(settings["artifacts_dir"]),
        cancel_event=cancel_event,
        **kwargs,
    )


@click.group()
@click.option(
    "--env-file",
    help="dotenv file with signer keys and explorer API keys",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_ENV_FILE,
    show_default=True,
)
@click.option(
    "--networks-file",
    help="YAML file overriding or adding network settings",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    envvar=NETWORKS_FILE_ENVVAR,
    default=None,
)
@click.option(
    "--ledger-dir",
    help="Directory holding one deployment ledger per network",
    type=click.Path(file_okay=False, path_type=Path),
    envvar=LEDGER_DIR_ENVVAR,
    default=LEDGER_DIR,
    show_default=True,
)
@click.option(
    "--artifacts-dir",
    help="Hardhat artifacts directory",
    type=click.Path(file_okay=False, path_type=Path),
    envvar=ARTIFACTS_DIR_ENVVAR,
    default=ARTIFACTS_DIR,
    show_default=True,
)
@click.option("--verbose", "-v", count=True, help="Log progress (-vv for debug output).")
@click.pass_context
def cli(ctx, env_file, networks_file, ledger_dir, artifacts_dir, verbose):
    """Deploy contract sets and verify them on block explorers."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    if "environ" not in ctx.obj:
        # real environment variables win over the dotenv file
        file_values = {k: v for k, v in dotenv_values(env_file).items() if v is not None}
        ctx.obj["environ"] = {**file_values, **os.environ}
    ctx.obj.setdefault("chain_client_factory", Web3ChainClient)
    ctx.obj.setdefault("explorer_factory", _explorer_factory)
    ctx.obj["networks_file"] = networks_file
    ctx.obj["ledger_dir"] = ledger_dir
    ctx.obj["artifacts_dir"] = artifacts_dir


@cli.command()
@network_argument
@params_option
@autosign_option
@click.option(
    "--verify/--no-verify",
    help="Verify the contracts after deployment; failures do not change the exit code.",
    default=False,
)
@click.option(
    "--timeout",
    help="Seconds to wait for each deployment transaction.",
    type=click.IntRange(min=1),
    default=DEPLOYMENT_TIMEOUT,
    show_default=True,
)
@click.pass_context
def deploy(ctx, network, params_filepath, autosign, verify, timeout):
    """Deploy the contracts in a params file to NETWORK, skipping those already deployed."""
    settings = ctx.obj
    try:
        network_config = _registry(settings).resolve(network, deploy=True)
        contract_set = ContractSet.from_yaml(params_filepath)
        contract_set.validate_chain_id(network_config.chain_id)
        profiles = ProfileSelector.from_config(contract_set.config)
        ledger = load_ledger(network_config, settings["ledger_dir"])
        signer = load_signer(network_config)
        chain_client = settings["chain_client_factory"](network_config, timeout=timeout)
        chain_client.check_chain_id(network_config)
    except (ConfigurationError, LedgerError) as e:
        raise click.ClickException(str(e))

    _print_deployment_info(network_config, signer.address, contract_set, ledger.filepath)
    if autosign and not is_local_network(network_config):
        click.secho("WARNING: Autosign is enabled. Transactions will be signed automatically.", fg="yellow")

    with _cancellation() as cancel_event:
        sequencer = DeploymentSequencer(
            ledger=ledger,
            chain_client=chain_client,
            artifacts=ArtifactStore(settings["artifacts_dir"]),
            profiles=profiles,
            signer=signer,
            confirm=None if autosign else _confirm_resolution,
            cancel_event=cancel_event,
        )
        try:
            if not autosign:
                _continue()
            result = run_deployment(network_config, contract_set, sequencer)
        except DeploymentAborted as e:
            click.secho(f"Aborting deployment! {e}", fg="red", err=True)
            ctx.exit(1)
        except (ConfigurationError, LedgerError) as e:
            raise click.ClickException(str(e))

        _print_deployment_result(result, network_config)
        if result.cancelled:
            ctx.exit(CANCELLED_EXIT_CODE)

        if verify and result.ok:
            driver = _verification_driver(settings, network_config, cancel_event)
            report = run_verification(network_config, result.records, driver)
            _print_verification_report(report)

    ctx.exit(result.exit_code)


@cli.command(name="verify")
@network_argument
@contract_name_option
@address_override_option
@delay_option
@retries_option
@workers_option
@click.pass_context
def verify_command(ctx, network, contract_names, address_overrides, delay, retries, workers):
    """Verify deployed contracts from the NETWORK ledger on its block explorer."""
    settings = ctx.obj
    try:
        network_config = _registry(settings).resolve(network)
        ledger = load_ledger(network_config, settings["ledger_dir"])
        overrides = dict(address_overrides)
        records = select_records(ledger, contract_names, overridden=overrides)
    except (ConfigurationError, LedgerError) as e:
        raise click.ClickException(str(e))

    if not network_config.can_verify:
        click.secho(f"(i) No explorer credentials for {network}; skipping verification.", fg="yellow")
        return
    if not records and not overrides:
        click.echo(f"(i) No deployments recorded for {network} in {ledger.filepath}.")
        return

    with _cancellation() as cancel_event:
        driver = _verification_driver(
            settings,
            network_config,
            cancel_event,
            delay=delay,
            max_attempts=retries,
            workers=workers,
        )
        try:
            report = run_verification(network_config, records, driver, overrides=overrides)
        except ConfigurationError as e:
            raise click.ClickException(str(e))

    _print_verification_report(report)
    ctx.exit(CANCELLED_EXIT_CODE if report.cancelled else report.exit_code)


def _display_records(network: NetworkConfig, records: List[DeploymentRecord]) -> None:
    click.secho(f"\n{network.name} (chain {network.chain_id})", fg="green")
    for index, record in enumerate(records, start=1):
        click.secho(f"    {index}. {record.name} {record.address}", fg="cyan")
        url = network.address_url(record.address)
        if url:
            click.echo(f"       {url}")


@cli.command(name="list-contracts")
@network_argument
@click.pass_context
def list_contracts(ctx, network):
    """List the contracts recorded in the NETWORK ledger."""
    settings = ctx.obj
    try:
        network_config = _registry(settings).resolve(network)
        ledger = load_ledger(network_config, settings["ledger_dir"])
    except (ConfigurationError, LedgerError) as e:
        raise click.ClickException(str(e))

    records = ledger.all()
    if not records:
        click.echo(f"(i) No deployments recorded for {network}.")
        return
    _display_records(network_config, records)


if __name__ == "__main__":
    cli()
