from __future__ import annotations

import argparse
import logging
from decimal import Decimal
from pathlib import Path
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from config import config
from db.db import init_db
from db.repositories import ProfileNotFoundError, ProfileRepository
from domain.ledger import ImportResult, ProfileConfig, TransactionDraft
from services.csv_export import export_transactions_csv
from services.enrichment import apply_prices_to_holdings, enrich_transactions
from services.import_pipeline import ImportPipeline
from services.ledger_service import LedgerService, TransactionNotFoundError
from services.price_service import build_default_service
from services.profile_context import ProfileContext, open_profile
from utils.formatting import format_decimal, format_timestamp
from utils.holdings_summary import render_expiring, render_holdings


def _context(session: Session, args: argparse.Namespace) -> ProfileContext:
    if not args.profile:
        raise ProfileNotFoundError("--profile is required for this command")
    return open_profile(session, args.profile)


def _print_import_result(result: ImportResult) -> None:
    print(f"Imported {result.imported} transactions")
    for message in result.errors:
        print(f"  {message}")


def cmd_profile(session: Session, args: argparse.Namespace) -> None:
    profiles = ProfileRepository(session)
    if args.profile_action == "create":
        profile = profiles.create(args.name)
        print(f"Created profile {profile.name} ({profile.id})")
    elif args.profile_action == "delete":
        context = open_profile(session, args.name)
        profiles.delete(context.profile_id)
        print(f"Deleted profile {context.profile.name}")
    else:
        for profile in profiles.list():
            print(f"{profile.id}  {profile.name}  {format_timestamp(profile.created_at)}")


def cmd_import(session: Session, args: argparse.Namespace) -> None:
    context = _context(session, args)
    oracle = None
    if not args.no_prices:
        oracle = build_default_service(api_key=context.config().coingecko_api_key)
    pipeline = ImportPipeline(context, oracle=oracle)
    handlers: dict[str, Callable[[Path], ImportResult]] = {
        "generic": pipeline.import_generic_csv,
        "binance": pipeline.import_binance_xlsx,
        "bitpanda": pipeline.import_bitpanda_csv,
    }
    _print_import_result(handlers[args.format](args.path))


def _draft_from_args(args: argparse.Namespace) -> TransactionDraft:
    return TransactionDraft(
        asset_symbol=args.asset,
        tx_type=args.type,
        amount=args.amount,
        timestamp=args.timestamp,
        price_fiat=args.price,
        fiat_currency=args.currency,
        source=args.source,
        note=args.note,
        tx_id=args.tx_id,
        linked_tx_prev_id=args.prev,
        linked_tx_next_id=args.next,
    )


def cmd_save(session: Session, args: argparse.Namespace) -> None:
    service = LedgerService(_context(session, args))
    saved = service.save_transaction(_draft_from_args(args), tx_id=getattr(args, "id", None))
    print(f"Saved transaction {saved.id}")


def cmd_delete(session: Session, args: argparse.Namespace) -> None:
    LedgerService(_context(session, args)).delete_transaction(args.id)
    print(f"Deleted transaction {args.id}")


def cmd_list(session: Session, args: argparse.Namespace) -> None:
    context = _context(session, args)
    for tx in LedgerService(context).load():
        links = f" prev={tx.linked_tx_prev_id or '-'} next={tx.linked_tx_next_id or '-'}"
        explorer = context.catalog.explorer_url(tx.asset_symbol, tx.tx_id)
        print(
            f"{tx.id:>5} {format_timestamp(tx.timestamp)} {tx.tx_type:<17} "
            f"{format_decimal(tx.amount)} {tx.asset_symbol}{links}"
            + (f" {explorer}" if explorer else "")
        )


def cmd_holdings(session: Session, args: argparse.Namespace) -> None:
    context = _context(session, args)
    items = LedgerService(context).holdings()
    if args.with_prices:
        profile_config = context.config()
        oracle = build_default_service(api_key=profile_config.coingecko_api_key)
        items = apply_prices_to_holdings(items, oracle, profile_config.base_currency)
    render_holdings(items)


def cmd_expiring(session: Session, args: argparse.Namespace) -> None:
    service = LedgerService(_context(session, args))
    render_expiring(service.expiring(), service.config().upcoming_holding_window_days)


def cmd_enrich(session: Session, args: argparse.Namespace) -> None:
    context = _context(session, args)
    service = LedgerService(context)
    transactions = service.load()
    profile_config = context.config()
    oracle = build_default_service(api_key=profile_config.coingecko_api_key)
    count = enrich_transactions(transactions, oracle, profile_config.base_currency)
    if count:
        context.transactions.replace_all(transactions)
    print(f"Enriched {count} transactions")


def cmd_export(session: Session, args: argparse.Namespace) -> None:
    context = _context(session, args)
    transactions = LedgerService(context).load()
    target = export_transactions_csv(transactions, context.config(), args.path)
    print(f"Exported {len(transactions)} transactions to {target}")


def cmd_config(session: Session, args: argparse.Namespace) -> None:
    service = LedgerService(_context(session, args))
    current = service.config()
    updates = {
        key: value
        for key, value in (
            ("holding_period_days", args.holding_period_days),
            ("upcoming_holding_window_days", args.window_days),
            ("base_currency", args.base_currency),
            ("price_fetch_enabled", args.price_fetch),
            ("coingecko_api_key", args.coingecko_api_key),
        )
        if value is not None
    }
    if updates:
        current = ProfileConfig.model_validate(current.model_dump() | updates)
        service.save_config(current)
    for key, value in current.model_dump().items():
        if key == "coingecko_api_key" and value:
            value = "***"
        print(f"{key}: {value}")


def _add_transaction_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--asset", required=True)
    parser.add_argument("--type", required=True, help="BUY, SELL, TRANSFER_IN, ...")
    parser.add_argument("--amount", type=Decimal, required=True)
    parser.add_argument("--timestamp", required=True, help="ISO-8601, naive values are UTC")
    parser.add_argument("--price", type=Decimal)
    parser.add_argument("--currency", default="EUR")
    parser.add_argument("--source")
    parser.add_argument("--note")
    parser.add_argument("--tx-id")
    parser.add_argument("--prev", type=int, help="id of the linked predecessor")
    parser.add_argument("--next", type=int, help="id of the linked successor")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crypto portfolio ledger.")
    parser.add_argument("--db-file", type=Path, default=None)
    parser.add_argument("--profile", help="profile name or id")
    subparsers = parser.add_subparsers(dest="command", required=True)

    profile = subparsers.add_parser("profile", help="manage profiles")
    profile_actions = profile.add_subparsers(dest="profile_action", required=True)
    profile_actions.add_parser("list")
    profile_actions.add_parser("create").add_argument("name")
    profile_actions.add_parser("delete").add_argument("name")
    profile.set_defaults(handler=cmd_profile)

    import_parser = subparsers.add_parser("import", help="import an export file")
    import_parser.add_argument("format", choices=("generic", "binance", "bitpanda"))
    import_parser.add_argument("path", type=Path)
    import_parser.add_argument("--no-prices", action="store_true", help="skip historical price enrichment")
    import_parser.set_defaults(handler=cmd_import)

    add = subparsers.add_parser("add", help="create a transaction")
    _add_transaction_arguments(add)
    add.set_defaults(handler=cmd_save)

    edit = subparsers.add_parser("edit", help="replace a transaction")
    edit.add_argument("id", type=int)
    _add_transaction_arguments(edit)
    edit.set_defaults(handler=cmd_save)

    delete = subparsers.add_parser("delete", help="delete a transaction")
    delete.add_argument("id", type=int)
    delete.set_defaults(handler=cmd_delete)

    subparsers.add_parser("list", help="list transactions").set_defaults(handler=cmd_list)

    holdings = subparsers.add_parser("holdings", help="show current holdings")
    holdings.add_argument("--with-prices", action="store_true")
    holdings.set_defaults(handler=cmd_holdings)

    subparsers.add_parser("expiring", help="show holding periods ending soon").set_defaults(handler=cmd_expiring)
    subparsers.add_parser("enrich", help="fill missing fiat values").set_defaults(handler=cmd_enrich)

    export = subparsers.add_parser("export", help="export the ledger as CSV")
    export.add_argument("path", type=Path)
    export.set_defaults(handler=cmd_export)

    config_parser = subparsers.add_parser("config", help="show or update profile settings")
    config_parser.add_argument("--holding-period-days", type=int)
    config_parser.add_argument("--window-days", type=int)
    config_parser.add_argument("--base-currency", choices=("EUR", "USD"))
    config_parser.add_argument("--price-fetch", action=argparse.BooleanOptionalAction, default=None)
    config_parser.add_argument("--coingecko-api-key")
    config_parser.set_defaults(handler=cmd_config)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    session = init_db(args.db_file or config().db_file)
    try:
        args.handler(session, args)
    except (ProfileNotFoundError, TransactionNotFoundError) as err:
        parser.exit(1, f"error: {err.args[0] if err.args else err}\n")
    except ValueError as err:
        parser.exit(2, f"error: {err}\n")
    finally:
        session.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, config().log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    main()
