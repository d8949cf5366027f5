"""fxledger CLI entry point."""

from __future__ import annotations

from pathlib import Path

import click

from fxledger.__version__ import __version__
from fxledger.cli.book import book
from fxledger.cli.entry import entry
from fxledger.cli.summary import summary
from fxledger.cli.transfer import transfer


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="fxledger")
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    help="Path to the ledger database.",
)
@click.option("--currency", default=None, help="Override the default currency.")
@click.option("--offline", is_flag=True, help="Disable exchange rate API lookups.")
@click.pass_context
def main(ctx: click.Context, db_path: Path | None, currency: str | None, offline: bool) -> None:
    """fxledger CLI entry point."""
    ctx.obj = {
        "db_path": db_path,
        "currency": currency,
        "enable_forex_rates": not offline,
    }


main.add_command(book)
main.add_command(entry)
main.add_command(summary)
main.add_command(transfer)


if __name__ == "__main__":
    main()
