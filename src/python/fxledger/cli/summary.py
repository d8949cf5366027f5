"""Summary CLI commands."""

from __future__ import annotations

import click

from fxledger.aggregate import combine_totals
from fxledger.cli.common import format_amount, get_client
from fxledger.exceptions import NotFoundError
from fxledger.models import ALL_BOOKS, BookTotals


def _format_totals(label: str, totals: BookTotals) -> str:
    return (
        f"{label}\t{format_amount(totals.total_income)}\t{format_amount(totals.total_expenses)}"
        f"\t{format_amount(totals.net_balance)}\t{totals.entry_count}"
    )


@click.command()
@click.option("--book", "book_id", default=ALL_BOOKS, show_default=True, help="Book id or 'all'.")
@click.pass_context
def summary(ctx: click.Context, book_id: str) -> None:
    """Show income, expenses and balance in the default currency."""
    with get_client(ctx) as client:
        try:
            if book_id == ALL_BOOKS:
                currency = client.default_currency()
                names = [record.name for record in client.list_books()]
                per_book = list(zip(names, client.summarize_books(currency)))
                grand_total = combine_totals((totals for _, totals in per_book), currency)
            else:
                grand_total = client.aggregate(book_id)
                per_book = [(client.get_book(book_id).name, grand_total)]
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Totals in {grand_total.currency}")
    click.echo("book\tincome\texpenses\tbalance\tentries")
    for name, totals in per_book:
        click.echo(_format_totals(name, totals))
    if book_id == ALL_BOOKS:
        click.echo(_format_totals("TOTAL", grand_total))
