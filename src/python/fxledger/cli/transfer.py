"""Transfer CLI commands."""

from __future__ import annotations

import click

from fxledger.cli.common import get_client, parse_number
from fxledger.exceptions import BatchTransferError, NotFoundError
from fxledger.models import TRANSFER_MODES


@click.command()
@click.argument("source_book_id")
@click.argument("target_book_id")
@click.option("--entry", "entry_ids", multiple=True, required=True, help="Entry id; repeatable.")
@click.option("--mode", type=click.Choice(sorted(TRANSFER_MODES)), default="move", show_default=True)
@click.option("--rate", "rate_value", default=None, help="Conversion rate; defaults to the API rate.")
@click.option("--atomic", is_flag=True, help="Roll back every entry when one fails.")
@click.option("--yes", "assume_yes", is_flag=True, help="Skip the rate confirmation prompt.")
@click.pass_context
def transfer(
    ctx: click.Context,
    source_book_id: str,
    target_book_id: str,
    entry_ids: tuple[str, ...],
    mode: str,
    rate_value: str | None,
    atomic: bool,
    assume_yes: bool,
) -> None:
    """Move or copy entries into another book."""
    rate = parse_number(rate_value, "--rate")
    with get_client(ctx) as client:
        try:
            if rate is None:
                rate = client.quote_transfer_rate(source_book_id, target_book_id)
                if rate is None:
                    raise click.ClickException(
                        "No exchange rate available between the books; pass --rate."
                    )
                if not assume_yes:
                    click.confirm(f"Transfer at rate {rate}?", abort=True)
            result = client.transfer(
                entry_ids, source_book_id, target_book_id, mode, rate, atomic=atomic
            )
        except BatchTransferError as exc:
            for entry_id, error in exc.result.failed:
                click.echo(f"Failed {entry_id}: {error}", err=True)
            raise click.ClickException(str(exc)) from exc
        except (NotFoundError, ValueError) as exc:
            raise click.ClickException(f"Transfer failed: {exc}") from exc
    past = "Moved" if result.mode == "move" else "Copied"
    click.echo(f"{past} {len(result.succeeded)} entries at rate {result.rate}")
    for entry_id, warning in result.warnings:
        click.echo(f"Warning {entry_id}: {warning}", err=True)
