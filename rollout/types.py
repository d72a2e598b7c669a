import click
from eth_utils import is_address, to_checksum_address


class AddressOverride(click.ParamType):
    """NAME=0xADDRESS pairs for verifying a contract at an address outside the ledger."""

    name = "name=address"

    def convert(self, value, param, ctx):
        if isinstance(value, tuple):
            return value
        name, sep, address = value.partition("=")
        name, address = name.strip(), address.strip()
        if not sep or not name or not address:
            self.fail(f"'{value}' is not in NAME=ADDRESS form", param, ctx)
        if not is_address(address):
            self.fail(f"'{address}' is not a valid ethereum address", param, ctx)
        return name, to_checksum_address(address)
