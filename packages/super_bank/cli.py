"""CLI for the ``super_bank`` package.

A Typer console interface over :class:`~super_bank.session.SuperBankSession`
and the SQL stores. Environment variables (``SUPER_BANK_DATABASE_URL``,
``SUPER_BANK_USER_ID`` and friends, see :mod:`super_bank.config`) are loaded
from a local ``.env`` with ``python-dotenv`` before any command runs.

Errors are written to stderr as ``Error: ...`` and the command exits
non-zero; partial bulk failures report ``"N succeeded, M failed"``.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .aggregate import GroupBy, aggregate, totals
from .amounts import format_amount
from .bulk_tags import BulkState, BulkTagOperation
from .config import Settings
from .errors import SuperBankError
from .filters import sort_rows
from .logging_setup import configure_logging
from .models import AggregateStat, DateRange, FilterCriteria
from .reports import export_table
from .session import LoadedSession, load_session
from .stores import Stores
from .tags import find_by_name

# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str, code: int = 1) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(code)


def _settings() -> Settings:
    try:
        return Settings.from_env()
    except ValueError as e:
        raise _fail(str(e)) from None


def _user_id(settings: Settings, override: str | None) -> str:
    uid = override or settings.user_id
    if not uid:
        raise _fail("no user id: pass --user-id or set SUPER_BANK_USER_ID")
    return uid


def _stores(settings: Settings, database_url: str | None, user_id: str) -> Stores:
    # Deferred import keeps ``--help`` usable without a configured database.
    from .persistence import SqlBankMappingStore, SqlBulkUpdateSink, SqlTagStore, SqlTransactionSource

    url = database_url or settings.database_url
    return Stores(
        transactions=SqlTransactionSource(database_url=url),
        banks=SqlBankMappingStore(database_url=url),
        tags=SqlTagStore(user_id, database_url=url),
        sink=SqlBulkUpdateSink(user_id, database_url=url),
    )


def _load(database_url: str | None, user_id: str | None) -> tuple[Settings, Stores, LoadedSession]:
    settings = _settings()
    uid = _user_id(settings, user_id)
    stores = _stores(settings, database_url, uid)
    try:
        loaded = load_session(stores, user_id=uid, settings=settings)
    except SuperBankError as e:
        raise _fail(str(e)) from None
    return settings, stores, loaded


def _criteria(
    *,
    search: str,
    search_field: str,
    date_from: str | None,
    date_to: str | None,
    bank: str,
    account: str,
    dr_cr: str,
    tags: Sequence[str] | None,
    tagged: bool,
    untagged: bool,
) -> FilterCriteria:
    try:
        return FilterCriteria(
            search=search,
            search_field=search_field,
            date_range=DateRange(date_from, date_to) if (date_from or date_to) else None,
            bank_filter=bank,
            account_filter=account,
            dr_cr_filter=dr_cr.strip().upper(),
            tag_filters=tuple(tags or ()),
            tagged_only=tagged,
            untagged_only=untagged,
        )
    except ValueError as e:
        raise _fail(str(e)) from None


def _stat_line(stat: AggregateStat, grouping: str) -> str:
    return "\t".join(
        [
            stat.label,
            str(stat.total_transactions),
            format_amount(stat.total_credit, grouping),
            format_amount(stat.total_debit, grouping),
            format_amount(stat.balance, grouping),
            format_amount(stat.total_amount, grouping),
            f"{stat.tagged}/{stat.untagged}",
        ]
    )


_STAT_HEADER = "\t".join(["label", "transactions", "credit", "debit", "balance", "amount", "tagged/untagged"])


def _report_bulk(op: BulkTagOperation, *, assume_yes: bool) -> int:
    """Print the outcome; offer explicit retries while failures remain."""

    typer.echo(op.summary())
    while op.state is BulkState.PARTIALLY_FAILED:
        for f in op.failures:
            typer.echo(f"  failed {f.id}: {f.error}", err=True)
        if assume_yes or not typer.confirm("Retry failed transactions?", default=False):
            return 1
        op.retry()
        typer.echo(op.summary())
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Unified Super Bank view over bank statements: summaries, filtered listings, "
        "and bulk tagging. Loads settings from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults). Typer reads these from the Annotated metadata below.
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override SUPER_BANK_DATABASE_URL / DATABASE_URL."
)
USER_ID_OPTION: OptionInfo = typer.Option("--user-id", help="Override SUPER_BANK_USER_ID.")
SEARCH_OPTION: OptionInfo = typer.Option("--search", help="Case-insensitive substring to look for.")
SEARCH_FIELD_OPTION: OptionInfo = typer.Option(
    "--search-field", help="Column to search ('all', 'Bank Name' or a header column)."
)
DATE_FROM_OPTION: OptionInfo = typer.Option("--from", help="Inclusive start date (YYYY-MM-DD).")
DATE_TO_OPTION: OptionInfo = typer.Option("--to", help="Inclusive end date (YYYY-MM-DD).")
BANK_OPTION: OptionInfo = typer.Option("--bank", help="Bank display name.")
ACCOUNT_OPTION: OptionInfo = typer.Option("--account", help="Account number ('<account> - <bank>' accepted).")
DR_CR_OPTION: OptionInfo = typer.Option("--dr-cr", help="CR or DR.")
TAG_FILTER_OPTION: OptionInfo = typer.Option(
    "--tag", help="Tag name; repeat to match rows carrying any of them."
)
TAGGED_OPTION: OptionInfo = typer.Option("--tagged", help="Only tagged rows.")
UNTAGGED_OPTION: OptionInfo = typer.Option("--untagged", help="Only untagged rows.")
YES_OPTION: OptionInfo = typer.Option("--yes", "-y", help="Skip confirmation prompts (no retries).")


@app.command("init-db")
def init_db_cmd(database_url: Annotated[str | None, DATABASE_URL_OPTION] = None) -> None:
    """Create any missing Super Bank tables."""

    from db.client import create_schema

    settings = _settings()
    try:
        create_schema(database_url=database_url or settings.database_url)
    except Exception as e:
        raise _fail(f"schema creation failed: {e}") from None
    typer.echo("Schema ready.")


@app.command("bank-set")
def bank_set_cmd(
    file: Annotated[Path, typer.Argument(help="JSON file: {id, bankName, header, mapping, conditions}.")],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Create or replace a bank's field mapping (use bankName 'SUPER BANK' for the unified header)."""

    from db.client import session_scope

    from .persistence import save_bank

    settings = _settings()
    try:
        doc: dict[str, Any] = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise _fail(f"cannot read {file}: {e}") from None
    bank_name = str(doc.get("bankName") or "").strip()
    bank_id = str(doc.get("id") or bank_name).strip()
    if not bank_name:
        raise _fail("bankName is required")
    try:
        with session_scope(database_url=database_url or settings.database_url) as session:
            save_bank(
                session,
                bank_id=bank_id,
                bank_name=bank_name,
                header=doc.get("header") or [],
                mapping=doc.get("mapping") or {},
                conditions=doc.get("conditions") or [],
            )
    except Exception as e:
        raise _fail(f"saving bank failed: {e}") from None
    typer.echo(f"Saved bank {bank_name} ({bank_id}).")


@app.command("import")
def import_cmd(
    file: Annotated[Path, typer.Argument(help="JSON file holding a list of raw transaction records.")],
    bank_id: Annotated[str, typer.Option("--bank-id", help="Bank the records belong to.")],
    account_id: Annotated[str | None, typer.Option("--account-id")] = None,
    statement_id: Annotated[str | None, typer.Option("--statement-id")] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Store raw statement records for a bank."""

    from db.client import session_scope

    from .persistence import upsert_transactions

    settings = _settings()
    uid = _user_id(settings, user_id)
    try:
        records = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise _fail(f"cannot read {file}: {e}") from None
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        raise _fail("expected a JSON list of objects")
    try:
        with session_scope(database_url=database_url or settings.database_url) as session:
            n = upsert_transactions(
                session,
                user_id=uid,
                bank_id=bank_id,
                records=records,
                account_id=account_id,
                statement_id=statement_id,
            )
    except Exception as e:
        raise _fail(f"import failed: {e}") from None
    typer.echo(f"Imported {n} transaction(s).")


@app.command("summary")
def summary_cmd(
    group_by: Annotated[GroupBy, typer.Option("--group-by", help="bank, account or tag.")] = GroupBy.BANK,
    search: Annotated[str, SEARCH_OPTION] = "",
    search_field: Annotated[str, SEARCH_FIELD_OPTION] = "all",
    date_from: Annotated[str | None, DATE_FROM_OPTION] = None,
    date_to: Annotated[str | None, DATE_TO_OPTION] = None,
    bank: Annotated[str, BANK_OPTION] = "",
    account: Annotated[str, ACCOUNT_OPTION] = "",
    dr_cr: Annotated[str, DR_CR_OPTION] = "",
    tag: Annotated[list[str] | None, TAG_FILTER_OPTION] = None,
    tagged: Annotated[bool, TAGGED_OPTION] = False,
    untagged: Annotated[bool, UNTAGGED_OPTION] = False,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Grouped credit/debit totals followed by the overall line."""

    criteria = _criteria(
        search=search,
        search_field=search_field,
        date_from=date_from,
        date_to=date_to,
        bank=bank,
        account=account,
        dr_cr=dr_cr,
        tags=tag,
        tagged=tagged,
        untagged=untagged,
    )
    settings, _, loaded = _load(database_url, user_id)
    session = loaded.session
    rows = session.filtered(criteria)

    typer.echo(_STAT_HEADER)
    for stat in aggregate(rows, group_by).values():
        typer.echo(_stat_line(stat, settings.grouping))
    typer.echo(_stat_line(totals(rows, label="TOTAL"), settings.grouping))


@app.command("rows")
def rows_cmd(
    search: Annotated[str, SEARCH_OPTION] = "",
    search_field: Annotated[str, SEARCH_FIELD_OPTION] = "all",
    date_from: Annotated[str | None, DATE_FROM_OPTION] = None,
    date_to: Annotated[str | None, DATE_TO_OPTION] = None,
    bank: Annotated[str, BANK_OPTION] = "",
    account: Annotated[str, ACCOUNT_OPTION] = "",
    dr_cr: Annotated[str, DR_CR_OPTION] = "",
    tag: Annotated[list[str] | None, TAG_FILTER_OPTION] = None,
    tagged: Annotated[bool, TAGGED_OPTION] = False,
    untagged: Annotated[bool, UNTAGGED_OPTION] = False,
    sort: Annotated[str | None, typer.Option("--sort", help="Column to sort by (default: date).")] = None,
    desc: Annotated[bool, typer.Option("--desc", help="Sort descending.")] = False,
    limit: Annotated[int, typer.Option("--limit", min=0, help="Maximum rows to print (0 = all).")] = 0,
    with_ids: Annotated[bool, typer.Option("--ids", help="Prefix each row with its transaction id.")] = False,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Print the filtered rows as tab-separated values under the unified header."""

    criteria = _criteria(
        search=search,
        search_field=search_field,
        date_from=date_from,
        date_to=date_to,
        bank=bank,
        account=account,
        dr_cr=dr_cr,
        tags=tag,
        tagged=tagged,
        untagged=untagged,
    )
    _, _, loaded = _load(database_url, user_id)
    session = loaded.session
    rows = sort_rows(session.filtered(criteria), column=sort, descending=desc)
    if limit:
        rows = rows[:limit]
    header, body = export_table(rows, session.super_header)
    typer.echo("\t".join((["id"] if with_ids else []) + header))
    for row, cells in zip(rows, body, strict=True):
        typer.echo("\t".join(([row.id] if with_ids else []) + cells))


@app.command("tags")
def tags_cmd(
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """List the tag vocabulary."""

    settings = _settings()
    stores = _stores(settings, database_url, _user_id(settings, user_id))
    try:
        tags = stores.tags.list_tags()
    except Exception as e:
        raise _fail(f"listing tags failed: {e}") from None
    for t in tags:
        typer.echo(f"{t.id}\t{t.name}\t{t.color or ''}")


@app.command("tag-create")
def tag_create_cmd(
    name: Annotated[str, typer.Argument(help="Tag name.")],
    color: Annotated[str | None, typer.Option("--color", help="Hex colour (auto-assigned when omitted).")] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Create a tag; an existing case-insensitive match is reported and exits 1."""

    settings = _settings()
    stores = _stores(settings, database_url, _user_id(settings, user_id))
    try:
        res = stores.tags.create_tag(name, color)
    except SuperBankError as e:
        raise _fail(str(e)) from None
    if not res.created:
        raise _fail(f"tag {res.tag.name!r} already exists (id={res.tag.id})")
    typer.echo(f"Created tag {res.tag.name} ({res.tag.id}) {res.tag.color or ''}".rstrip())


@app.command("tag-update")
def tag_update_cmd(
    tag_id: Annotated[str, typer.Argument(help="Tag id.")],
    name: Annotated[str | None, typer.Option("--name", help="New name.")] = None,
    color: Annotated[str | None, typer.Option("--color", help="New colour ('' clears it).")] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Rename or recolour a tag."""

    if name is None and color is None:
        raise _fail("nothing to update: pass --name and/or --color")
    settings = _settings()
    stores = _stores(settings, database_url, _user_id(settings, user_id))
    try:
        tag = stores.tags.update_tag(tag_id, name=name, color=color)
    except SuperBankError as e:
        raise _fail(str(e)) from None
    typer.echo(f"Updated tag {tag.name} ({tag.id})")


@app.command("tag-delete")
def tag_delete_cmd(
    tag_id: Annotated[str, typer.Argument(help="Tag id.")],
    yes: Annotated[bool, YES_OPTION] = False,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Delete a tag and remove it from every transaction."""

    if not yes and not typer.confirm(f"Delete tag {tag_id} and strip it from all transactions?"):
        raise typer.Exit(1)
    settings = _settings()
    stores = _stores(settings, database_url, _user_id(settings, user_id))
    try:
        touched = stores.tags.delete_tag(tag_id)
    except SuperBankError as e:
        raise _fail(str(e)) from None
    typer.echo(f"Deleted tag {tag_id}; updated {touched} transaction(s).")


@app.command("tag-apply")
def tag_apply_cmd(
    tag_name: Annotated[str, typer.Option("--tag", help="Tag name to apply.")],
    match: Annotated[str | None, typer.Option("--match", help="Apply to every transaction containing this text.")] = None,
    ids: Annotated[list[str] | None, typer.Option("--id", help="Explicit transaction id; repeatable.")] = None,
    create: Annotated[bool, typer.Option("--create", help="Create the tag when it does not exist.")] = False,
    preview: Annotated[int, typer.Option("--preview", min=0, help="Matched rows to show before confirming.")] = 10,
    yes: Annotated[bool, YES_OPTION] = False,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Preview the matching transactions, then add the tag to all of them."""

    if not ids and not (match and match.strip()):
        raise _fail("pass --match TEXT or at least one --id")
    _, stores, loaded = _load(database_url, user_id)
    session = loaded.session

    tag = find_by_name(session.tags, tag_name)
    if tag is None:
        if not create:
            raise _fail(f"unknown tag {tag_name!r} (use --create to create it)")
        try:
            tag = stores.tags.create_tag(tag_name).tag
        except SuperBankError as e:
            raise _fail(str(e)) from None
        session.set_tags([*session.tags, tag])

    op = session.bulk_operation(stores.sink)
    targets = op.match(tag, transaction_ids=ids or None, text=None if ids else match)
    typer.echo(f"{len(targets)} transaction(s) match.")
    if not targets:
        return
    by_id = {r.id: r for r in session.rows()}
    for tid in targets[:preview]:
        r = by_id.get(tid)
        if r is not None:
            typer.echo(f"  {tid}\t{r.get('Date')}\t{r.get('Description')}\t{r.amount}\t{r.dr_cr}")
    if not yes and not typer.confirm(f"Apply tag {tag.name!r} to {len(targets)} transaction(s)?"):
        typer.echo("Aborted.")
        raise typer.Exit(1)
    op.apply()
    raise typer.Exit(_report_bulk(op, assume_yes=yes))


@app.command("tag-remove")
def tag_remove_cmd(
    tag_name: Annotated[str, typer.Option("--tag", help="Tag name to remove.")],
    ids: Annotated[list[str] | None, typer.Option("--id", help="Transaction id; repeatable.")] = None,
    all_tagged: Annotated[bool, typer.Option("--all", help="Remove from every transaction carrying the tag.")] = False,
    yes: Annotated[bool, YES_OPTION] = False,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Remove a tag from the given transactions."""

    if not ids and not all_tagged:
        raise _fail("pass --all or at least one --id")
    _, stores, loaded = _load(database_url, user_id)
    session = loaded.session
    tag = find_by_name(session.tags, tag_name)
    if tag is None:
        raise _fail(f"unknown tag {tag_name!r}")
    if all_tagged:
        targets = [r.id for r in session.rows() if tag.id in {t.id for t in r.tags}]
    else:
        targets = list(ids or [])
    if not yes and not typer.confirm(f"Remove tag {tag.name!r} from {len(targets)} transaction(s)?"):
        typer.echo("Aborted.")
        raise typer.Exit(1)
    op = session.bulk_operation(stores.sink)
    op.remove([tag.id], targets)
    raise typer.Exit(_report_bulk(op, assume_yes=yes))


@app.command("tags-summary")
def tags_summary_cmd(
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON instead of a table.")] = False,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    user_id: Annotated[str | None, USER_ID_OPTION] = None,
) -> None:
    """Per-tag credit/debit/balance with a per-bank breakdown."""

    settings, _, loaded = _load(database_url, user_id)
    summaries = loaded.session.tags_summary()
    if as_json:
        typer.echo(json.dumps([s.to_dict() for s in summaries], indent=2))
        return
    g = settings.grouping
    typer.echo("\t".join(["tag", "transactions", "credit", "debit", "balance"]))
    for s in summaries:
        typer.echo(
            "\t".join(
                [
                    s.tag_name,
                    str(s.transaction_count),
                    format_amount(s.credit, g),
                    format_amount(s.debit, g),
                    format_amount(s.balance, g),
                ]
            )
        )
        for bank_name, b in s.bank_breakdown.items():
            typer.echo(
                f"  {bank_name}\t{b.transaction_count}\t{format_amount(b.credit, g)}\t"
                f"{format_amount(b.debit, g)}\t{format_amount(b.balance, g)}\t{', '.join(b.accounts)}"
            )


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    log_level: Annotated[str | None, typer.Option("--log-level", help="Override SUPER_BANK_LOG_LEVEL.")] = None,
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    # Load environment from .env in CWD (override=False to keep existing env)
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging(log_level)

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m super_bank.cli`
    app()
