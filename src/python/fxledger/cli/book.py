"""Book CLI commands."""

from __future__ import annotations

import click

from fxledger.cli.common import get_client, parse_number, run_confirmed
from fxledger.exceptions import NotFoundError, RateUnavailableError
from fxledger.models import BookDTO, BookRecord, RenormalizeResult


def _format_book(record: BookRecord) -> str:
    lock = ""
    if record.lock is not None:
        lock = f"1 {record.currency} = {record.locked_rate} {record.target_currency}"
    return f"{record.id}\t{record.name}\t{record.currency}\t{lock}"


def _echo_renormalized(result: RenormalizeResult) -> None:
    click.echo(f"Renormalized {result.updated} entries")
    for entry_id in result.skipped:
        click.echo(f"Skipped {entry_id}: exchange rate unavailable", err=True)


@click.group()
def book() -> None:
    """Book commands."""


@book.command("create")
@click.argument("name")
@click.option("--currency", required=True, help="Book currency code.")
@click.option("--description", default=None, help="Book description.")
@click.option("--rate", "rate_value", default=None, help="Locked rate to the default currency.")
@click.option("--yes", "assume_yes", is_flag=True, help="Accept a rate far from the API rate.")
@click.pass_context
def create_book(
    ctx: click.Context,
    name: str,
    currency: str,
    description: str | None,
    rate_value: str | None,
    assume_yes: bool,
) -> None:
    """Create a book."""
    rate = parse_number(rate_value, "--rate")
    try:
        book_dto = BookDTO(name=name, currency=currency, description=description, locked_rate=rate)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    with get_client(ctx) as client:
        try:
            record = run_confirmed(
                lambda confirmed: client.create_book(book_dto, confirmed=confirmed), assume_yes
            )
        except ValueError as exc:
            raise click.ClickException(f"Book create failed: {exc}") from exc
    click.echo(f"Created book {record.id}")
    if record.lock is None and record.currency != client.default_currency():
        click.echo("Warning: no exchange rate available; book has no locked rate", err=True)


@book.command("list")
@click.pass_context
def list_books(ctx: click.Context) -> None:
    """List books."""
    with get_client(ctx) as client:
        records = client.list_books()
    for record in records:
        click.echo(_format_book(record))


@book.command("get")
@click.argument("book_id")
@click.pass_context
def get_book(ctx: click.Context, book_id: str) -> None:
    """Show a book and its currency history."""
    with get_client(ctx) as client:
        try:
            record = client.get_book(book_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(_format_book(record))
    for change in record.currency_history:
        click.echo(
            f"  {change.changed_at.isoformat()}\t{change.from_currency} -> {change.to_currency}"
            f"\t{change.exchange_rate or ''}\t{change.affected_entries} entries"
        )


@book.command("rate")
@click.argument("book_id")
@click.pass_context
def show_rate(ctx: click.Context, book_id: str) -> None:
    """Compare a book's locked rate with the current API rate."""
    with get_client(ctx) as client:
        try:
            quote = client.quote_rate(book_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    pair = f"{quote.book_currency} -> {quote.target_currency}"
    click.echo(f"{pair}\tlocked: {quote.locked_rate or 'none'}\tapi: {quote.api_rate or 'unavailable'}")
    if quote.percent_diff is not None:
        click.echo(f"Difference: {quote.percent_diff:.2f}%")
    if quote.is_stale:
        click.echo("Locked rate targets a previous default currency", err=True)


@book.command("set-rate")
@click.argument("book_id")
@click.option("--rate", "rate_value", required=True, help="Rate from the book currency to the default.")
@click.option("--yes", "assume_yes", is_flag=True, help="Accept a rate far from the API rate.")
@click.pass_context
def set_rate(ctx: click.Context, book_id: str, rate_value: str, assume_yes: bool) -> None:
    """Lock a manual rate on a book and renormalize its entries."""
    with get_client(ctx) as client:
        try:
            record, result = run_confirmed(
                lambda confirmed: client.edit_locked_rate(book_id, rate_value, confirmed=confirmed),
                assume_yes,
            )
        except (NotFoundError, ValueError) as exc:
            raise click.ClickException(f"Rate update failed: {exc}") from exc
    click.echo(f"Locked 1 {record.currency} = {record.locked_rate} {record.target_currency}")
    _echo_renormalized(result)


@book.command("revert-rate")
@click.argument("book_id")
@click.pass_context
def revert_rate(ctx: click.Context, book_id: str) -> None:
    """Replace a book's locked rate with the current API rate."""
    with get_client(ctx) as client:
        try:
            record, result = client.revert_to_api_rate(book_id)
        except (NotFoundError, RateUnavailableError, ValueError) as exc:
            raise click.ClickException(f"Rate revert failed: {exc}") from exc
    click.echo(f"Locked 1 {record.currency} = {record.locked_rate} {record.target_currency}")
    _echo_renormalized(result)


@book.command("currency")
@click.argument("book_id")
@click.argument("new_currency")
@click.option("--rate", "rate_value", default=None, help="Rate from the new currency to the default.")
@click.option("--yes", "assume_yes", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def change_currency(
    ctx: click.Context,
    book_id: str,
    new_currency: str,
    rate_value: str | None,
    assume_yes: bool,
) -> None:
    """Change a book's currency."""
    rate = parse_number(rate_value, "--rate")
    with get_client(ctx) as client:
        try:
            record, result = run_confirmed(
                lambda confirmed: client.update_book_currency(
                    book_id, new_currency, rate=rate, confirmed=confirmed
                ),
                assume_yes,
            )
        except (NotFoundError, ValueError) as exc:
            raise click.ClickException(f"Currency change failed: {exc}") from exc
    click.echo(f"Book {record.id} is now in {record.currency}")
    _echo_renormalized(result)


@book.command("repair")
@click.argument("book_id")
@click.pass_context
def repair_book(ctx: click.Context, book_id: str) -> None:
    """Persist corrected normalized amounts for stale entries."""
    with get_client(ctx) as client:
        try:
            repaired = client.repair_book(book_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Repaired {repaired} entries")


@book.command("delete")
@click.argument("book_id")
@click.confirmation_option(prompt="Delete this book and all of its entries?")
@click.pass_context
def delete_book(ctx: click.Context, book_id: str) -> None:
    """Delete a book."""
    with get_client(ctx) as client:
        try:
            client.delete_book(book_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted book {book_id}")
