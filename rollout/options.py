from pathlib import Path

import click

from rollout.constants import (
    VERIFICATION_ATTEMPTS,
    VERIFICATION_DELAY,
    VERIFICATION_WORKERS,
)
from rollout.types import AddressOverride

network_argument = click.argument("network", type=click.STRING)

params_option = click.option(
    "--params",
    "-p",
    "params_filepath",
    help="Params YAML declaring the contracts to deploy and their constructor arguments",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)

autosign_option = click.option(
    "--autosign",
    help="Deploy without interactive confirmation prompts.",
    is_flag=True,
    default=False,
)

contract_name_option = click.option(
    "--contract-name",
    "-c",
    "contract_names",
    help="Contract to verify; repeat for several. Defaults to every ledger entry.",
    type=click.STRING,
    multiple=True,
)

address_override_option = click.option(
    "--address",
    "address_overrides",
    help="Verify NAME at ADDRESS (NAME=ADDRESS), with or without a ledger record.",
    type=AddressOverride(),
    multiple=True,
)

delay_option = click.option(
    "--delay",
    help="Seconds to wait between explorer requests.",
    type=click.FloatRange(min=0),
    default=VERIFICATION_DELAY,
    show_default=True,
)

retries_option = click.option(
    "--retries",
    help="Attempts per contract for transient explorer errors.",
    type=click.IntRange(min=1),
    default=VERIFICATION_ATTEMPTS,
    show_default=True,
)

workers_option = click.option(
    "--workers",
    help="Concurrent verification requests.",
    type=click.IntRange(min=1),
    default=VERIFICATION_WORKERS,
    show_default=True,
)
