"""Entry CLI commands."""

from __future__ import annotations

import click

from fxledger.cli.common import format_amount, get_client, parse_date, parse_number
from fxledger.exceptions import NotFoundError
from fxledger.models import PAYMENT_MODES, EntryDTO, EntryRecord


def _format_entry(record: EntryRecord) -> str:
    normalized = ""
    if record.is_normalized:
        normalized = f"{format_amount(record.normalized_amount)} {record.normalized_currency}"
    return (
        f"{record.id}\t{record.date.isoformat()}\t{format_amount(record.amount)} {record.currency}"
        f"\t{normalized}\t{record.category}\t{record.party or ''}\t{record.remarks or ''}"
    )


@click.group()
def entry() -> None:
    """Entry commands."""


@entry.command("add")
@click.option("--book", "book_id", required=True, help="Book id.")
@click.option("--amount", "amount_value", required=True, help="Signed amount; negative for expenses.")
@click.option("--date", "date_value", required=True, help="Entry date in YYYY-MM-DD.")
@click.option("--category", required=True, help="Entry category.")
@click.option("--party", default=None, help="Counterparty.")
@click.option(
    "--payment-mode",
    type=click.Choice(sorted(PAYMENT_MODES)),
    default="cash",
    show_default=True,
    help="Payment mode.",
)
@click.option("--remarks", default=None, help="Free text remarks.")
@click.pass_context
def add_entry(
    ctx: click.Context,
    book_id: str,
    amount_value: str,
    date_value: str,
    category: str,
    party: str | None,
    payment_mode: str,
    remarks: str | None,
) -> None:
    """Add an entry to a book."""
    amount = parse_number(amount_value, "--amount")
    date = parse_date(date_value, "--date")
    try:
        entry_dto = EntryDTO(
            book_id=book_id,
            amount=amount,
            date=date,
            category=category,
            party=party,
            payment_mode=payment_mode,
            remarks=remarks,
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    with get_client(ctx) as client:
        try:
            record, result = client.add_entry(entry_dto)
        except NotFoundError as exc:
            raise click.ClickException(f"Entry add failed: book {book_id!r} not found.") from exc
    click.echo(f"Added entry {record.id}")
    if result.warning:
        click.echo(f"Warning: {result.warning}", err=True)


@entry.command("list")
@click.argument("book_id")
@click.option("--limit", type=int, default=None, help="Limit results.")
@click.pass_context
def list_entries(ctx: click.Context, book_id: str, limit: int | None) -> None:
    """List the entries of a book."""
    with get_client(ctx) as client:
        try:
            records = client.list_entries(book_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    if limit is not None:
        records = records[:limit]
    for record in records:
        click.echo(_format_entry(record))


@entry.command("get")
@click.argument("entry_id")
@click.pass_context
def get_entry(ctx: click.Context, entry_id: str) -> None:
    """Show an entry with its effective amount and conversion history."""
    with get_client(ctx) as client:
        try:
            record = client.get_entry(entry_id)
            effective = client.reconcile(entry_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
        default_currency = client.default_currency()
    click.echo(_format_entry(record))
    click.echo(f"Effective amount: {format_amount(effective)} {default_currency}")
    for conversion in record.conversion_history:
        click.echo(
            f"  {conversion.converted_at.isoformat()}\t{format_amount(conversion.from_amount)} "
            f"{conversion.from_currency} -> {format_amount(conversion.to_amount)} "
            f"{conversion.to_currency} at {conversion.exchange_rate}\t{conversion.reason}"
        )


@entry.command("update")
@click.argument("entry_id")
@click.option("--amount", "amount_value", default=None, help="Updated amount.")
@click.option("--date", "date_value", default=None, help="Updated date in YYYY-MM-DD.")
@click.option("--category", default=None, help="Updated category.")
@click.option("--party", default=None, help="Updated counterparty.")
@click.option("--payment-mode", type=click.Choice(sorted(PAYMENT_MODES)), default=None)
@click.option("--remarks", default=None, help="Updated remarks.")
@click.pass_context
def update_entry(
    ctx: click.Context,
    entry_id: str,
    amount_value: str | None,
    date_value: str | None,
    category: str | None,
    party: str | None,
    payment_mode: str | None,
    remarks: str | None,
) -> None:
    """Update an entry."""
    amount = parse_number(amount_value, "--amount")
    date = parse_date(date_value, "--date")
    with get_client(ctx) as client:
        try:
            record, result = client.update_entry(
                entry_id,
                amount=amount,
                date=date,
                category=category,
                party=party,
                payment_mode=payment_mode,
                remarks=remarks,
            )
        except (NotFoundError, ValueError) as exc:
            raise click.ClickException(f"Entry update failed: {exc}") from exc
    click.echo(f"Updated entry {record.id}")
    if result is not None and result.warning:
        click.echo(f"Warning: {result.warning}", err=True)


@entry.command("delete")
@click.argument("entry_id")
@click.pass_context
def delete_entry(ctx: click.Context, entry_id: str) -> None:
    """Delete an entry."""
    with get_client(ctx) as client:
        try:
            client.delete_entry(entry_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted entry {entry_id}")
