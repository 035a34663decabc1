#!/usr/bin/env python3
"""
Operator command line for the fleet ledger.

Each command runs in its own ``session_scope``: it commits on success and
rolls back on any error.  Typed ledger errors are printed as
``error [CODE]: message`` with exit status 1.

Usage:
    python3 scripts/ledger_cli.py init-db
    python3 scripts/ledger_cli.py truck add TN09AB1234 --daily-fixed-cost 1500
    python3 scripts/ledger_cli.py trip create --truck TN09AB1234 \\
        --source Chennai --destination Madurai --rate 100
    python3 scripts/ledger_cli.py trip start <trip-id>
    python3 scripts/ledger_cli.py expense add <trip-id> --category fuel \\
        --amount 200 --bill receipt.pdf
    python3 scripts/ledger_cli.py trip set-qty <trip-id> 10
    python3 scripts/ledger_cli.py payment add <trip-id> --amount 1000 \\
        --type settlement --mode upi
    python3 scripts/ledger_cli.py trip close <trip-id>
"""

import argparse
import mimetypes
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

import yaml

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fleet_config import LedgerConfig, load_config  # noqa: E402
from fleet_kernel.db.engine import (  # noqa: E402
    create_tables,
    init_engine_from_url,
    session_scope,
)
from fleet_kernel.db.immutability import register_immutability_listeners  # noqa: E402
from fleet_kernel.db.types import format_money  # noqa: E402
from fleet_kernel.domain.enums import TripStatus  # noqa: E402
from fleet_kernel.exceptions import FleetLedgerError, NotFoundError  # noqa: E402
from fleet_kernel.logging_config import configure_logging  # noqa: E402
from fleet_kernel.selectors import TripSelector, TruckSelector  # noqa: E402
from fleet_kernel.services import (  # noqa: E402
    ExpenseService,
    PaymentService,
    TripService,
    TruckService,
)
from fleet_kernel.storage import BillUpload, FilesystemObjectStore  # noqa: E402


class _Context:
    """What every command handler needs."""

    def __init__(self, config: LedgerConfig, session, out):
        self.config = config
        self.session = session
        self.out = out
        self.store = FilesystemObjectStore(
            config.bill_storage_root,
            secret=config.storage_secret,
            base_url=config.bill_url_base,
        )

    def money(self, value) -> str:
        if value is None:
            return "-"
        return format_money(value, self.config.currency_symbol)

    def print(self, *args) -> None:
        print(*args, file=self.out)

    def trip_service(self) -> TripService:
        return TripService(
            self.session,
            require_settlement=self.config.close_requires_settlement,
            default_closed_by=self.config.default_closed_by,
            currency_symbol=self.config.currency_symbol,
        )

    def resolve_truck_id(self, ref: str) -> UUID:
        """Accept either a truck id or a number plate."""
        try:
            return UUID(ref)
        except ValueError:
            truck = TruckSelector(self.session).get_by_plate(ref)
            if truck is None:
                raise NotFoundError("Truck", ref) from None
            return truck.id


def _read_bill(path: str) -> BillUpload:
    bill_path = Path(path)
    content_type = mimetypes.guess_type(bill_path.name)[0] or "application/octet-stream"
    return BillUpload(
        filename=bill_path.name,
        content=bill_path.read_bytes(),
        content_type=content_type,
    )


# ---------------------------------------------------------------------------
# Trucks
# ---------------------------------------------------------------------------


def cmd_truck_add(ctx: _Context, args) -> None:
    service = TruckService(ctx.session, company_name=ctx.config.default_company_name)
    truck = service.register_truck(args.number_plate, args.daily_fixed_cost)
    ctx.print(f"truck {truck.id} {truck.number_plate}")


def cmd_truck_list(ctx: _Context, args) -> None:
    for truck in TruckSelector(ctx.session).list_trucks():
        ctx.print(f"{truck.id}  {truck.number_plate:<12}  {ctx.money(truck.daily_fixed_cost)}/day")


def cmd_truck_set_cost(ctx: _Context, args) -> None:
    truck_id = ctx.resolve_truck_id(args.truck)
    truck = TruckService(ctx.session).update_daily_fixed_cost(truck_id, args.cost)
    ctx.print(f"truck {truck.number_plate} daily fixed cost {ctx.money(truck.daily_fixed_cost)}")


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------


def cmd_trip_create(ctx: _Context, args) -> None:
    trip = ctx.trip_service().create_trip(
        truck_id=ctx.resolve_truck_id(args.truck),
        source=args.source,
        destination=args.destination,
        estimated_qty=args.estimated_qty,
        rate_per_unit=args.rate,
    )
    ctx.print(f"trip {trip.id} {trip.status.value}")


def cmd_trip_list(ctx: _Context, args) -> None:
    status = TripStatus(args.status) if args.status else None
    for row in TripSelector(ctx.session).list_trips(status=status):
        started = row.start_date.date().isoformat() if row.start_date else "-"
        ctx.print(
            f"{row.id}  {row.truck_plate:<12}  {row.route:<30}  "
            f"{row.status.value:<8}  {started:<10}  {ctx.money(row.result)}"
        )


def cmd_trip_show(ctx: _Context, args) -> None:
    selector = TripSelector(ctx.session)
    ledger = selector.get_ledger(args.trip_id)
    trip = ledger.trip

    ctx.print(f"trip {trip.id} [{trip.status.value}] version {trip.version}")
    ctx.print(f"  truck        {ledger.truck_plate}")
    ctx.print(f"  route        {trip.source} -> {trip.destination}")
    ctx.print(f"  actual qty   {trip.actual_qty if trip.actual_qty is not None else '-'}")
    ctx.print(f"  rate         {ctx.money(trip.rate_per_unit)}")
    ctx.print(f"  revenue      {ctx.money(ledger.revenue)}")
    ctx.print(f"  expenses     {ctx.money(ledger.total_expenses)}")
    ctx.print(f"  payments     {ctx.money(ledger.total_payments)}")
    ctx.print(f"  balance      {ctx.money(ledger.balance)}")
    ctx.print(f"  outstanding  {ctx.money(ledger.outstanding)}")
    if trip.is_closed:
        ctx.print(f"  closed       {trip.closed_at.isoformat()} by {trip.closed_by}")

    urls = {
        link.expense_id: link.url
        for link in selector.bill_urls(
            trip.id, ctx.store, ttl_seconds=ctx.config.bill_url_ttl_seconds
        )
    }
    for expense in ledger.expenses:
        bill = urls.get(expense.id) or ""
        ctx.print(
            f"  expense {expense.id}  {expense.expense_date}  "
            f"{expense.category.value:<9}  {ctx.money(expense.amount)}  {bill}"
        )
    for payment in ledger.payments:
        ctx.print(
            f"  payment {payment.id}  {payment.payment_date}  "
            f"{payment.payment_type.value}/{payment.mode.value}  {ctx.money(payment.amount)}"
        )


def cmd_trip_start(ctx: _Context, args) -> None:
    trip = ctx.trip_service().start_trip(args.trip_id)
    ctx.print(f"trip {trip.id} {trip.status.value}")


def cmd_trip_close(ctx: _Context, args) -> None:
    trip = ctx.trip_service().close_trip(
        args.trip_id,
        actor=args.actor,
        expected_version=args.expected_version,
    )
    ctx.print(
        f"trip {trip.id} closed: revenue {ctx.money(trip.final_revenue)}, "
        f"expenses {ctx.money(trip.final_expenses)}, balance {ctx.money(trip.final_balance)}"
    )


def cmd_trip_set_qty(ctx: _Context, args) -> None:
    trip = ctx.trip_service().update_actual_qty(args.trip_id, args.quantity)
    ctx.print(f"trip {trip.id} actual qty {trip.actual_qty}")


def cmd_trip_set_rate(ctx: _Context, args) -> None:
    trip = ctx.trip_service().update_rate_per_unit(args.trip_id, args.rate)
    ctx.print(f"trip {trip.id} rate {ctx.money(trip.rate_per_unit)}")


# ---------------------------------------------------------------------------
# Expenses and payments
# ---------------------------------------------------------------------------


def cmd_expense_add(ctx: _Context, args) -> None:
    bill = _read_bill(args.bill) if args.bill else None
    expense = ExpenseService(ctx.session, ctx.store).add_expense(
        args.trip_id,
        category=args.category,
        amount=args.amount,
        expense_date=args.date,
        note=args.note,
        bill=bill,
    )
    ctx.print(f"expense {expense.id} {expense.category.value} {ctx.money(expense.amount)}")


def cmd_expense_replace_bill(ctx: _Context, args) -> None:
    expense = ExpenseService(ctx.session, ctx.store).replace_bill(
        args.expense_id, _read_bill(args.bill)
    )
    ctx.print(f"expense {expense.id} bill {expense.bill_path}")


def cmd_expense_delete(ctx: _Context, args) -> None:
    ExpenseService(ctx.session, ctx.store).delete_expense(args.expense_id)
    ctx.print(f"expense {args.expense_id} deleted")


def cmd_payment_add(ctx: _Context, args) -> None:
    payment = PaymentService(ctx.session).add_payment(
        args.trip_id,
        amount=args.amount,
        payment_type=args.type,
        mode=args.mode,
        payment_date=args.date,
        note=args.note,
    )
    ctx.print(
        f"payment {payment.id} {payment.payment_type.value}/{payment.mode.value} "
        f"{ctx.money(payment.amount)}"
    )


def cmd_dashboard(ctx: _Context, args) -> None:
    summary = TripSelector(ctx.session).dashboard()
    ctx.print(f"active trips   {summary.active_trips}")
    ctx.print(f"cash deployed  {ctx.money(summary.cash_deployed)}")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ledger", description="Fleet trip ledger")
    parser.add_argument("--config", help="YAML settings file")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="create tables")

    truck = commands.add_parser("truck").add_subparsers(dest="action", required=True)
    p = truck.add_parser("add")
    p.add_argument("number_plate")
    p.add_argument("--daily-fixed-cost")
    p.set_defaults(handler=cmd_truck_add)
    truck.add_parser("list").set_defaults(handler=cmd_truck_list)
    p = truck.add_parser("set-cost")
    p.add_argument("truck", help="truck id or number plate")
    p.add_argument("cost")
    p.set_defaults(handler=cmd_truck_set_cost)

    trip = commands.add_parser("trip").add_subparsers(dest="action", required=True)
    p = trip.add_parser("create")
    p.add_argument("--truck", required=True, help="truck id or number plate")
    p.add_argument("--source", required=True)
    p.add_argument("--destination", required=True)
    p.add_argument("--estimated-qty")
    p.add_argument("--rate")
    p.set_defaults(handler=cmd_trip_create)
    p = trip.add_parser("list")
    p.add_argument("--status", choices=[s.value for s in TripStatus])
    p.set_defaults(handler=cmd_trip_list)
    for name, handler in (
        ("show", cmd_trip_show),
        ("start", cmd_trip_start),
    ):
        p = trip.add_parser(name)
        p.add_argument("trip_id", type=UUID)
        p.set_defaults(handler=handler)
    p = trip.add_parser("close")
    p.add_argument("trip_id", type=UUID)
    p.add_argument("--actor")
    p.add_argument("--expected-version", type=int)
    p.set_defaults(handler=cmd_trip_close)
    p = trip.add_parser("set-qty")
    p.add_argument("trip_id", type=UUID)
    p.add_argument("quantity")
    p.set_defaults(handler=cmd_trip_set_qty)
    p = trip.add_parser("set-rate")
    p.add_argument("trip_id", type=UUID)
    p.add_argument("rate")
    p.set_defaults(handler=cmd_trip_set_rate)

    expense = commands.add_parser("expense").add_subparsers(dest="action", required=True)
    p = expense.add_parser("add")
    p.add_argument("trip_id", type=UUID)
    p.add_argument("--category", required=True)
    p.add_argument("--amount", required=True)
    p.add_argument("--date", type=date.fromisoformat)
    p.add_argument("--note")
    p.add_argument("--bill", help="bill document to upload")
    p.set_defaults(handler=cmd_expense_add)
    p = expense.add_parser("replace-bill")
    p.add_argument("expense_id", type=UUID)
    p.add_argument("bill")
    p.set_defaults(handler=cmd_expense_replace_bill)
    p = expense.add_parser("delete")
    p.add_argument("expense_id", type=UUID)
    p.set_defaults(handler=cmd_expense_delete)

    payment = commands.add_parser("payment").add_subparsers(dest="action", required=True)
    p = payment.add_parser("add")
    p.add_argument("trip_id", type=UUID)
    p.add_argument("--amount", required=True)
    p.add_argument("--type", required=True)
    p.add_argument("--mode", required=True)
    p.add_argument("--date", type=date.fromisoformat)
    p.add_argument("--note")
    p.set_defaults(handler=cmd_payment_add)

    commands.add_parser("dashboard").set_defaults(handler=cmd_dashboard)
    return parser


def main(argv: list[str] | None = None, out=None) -> int:
    args = build_parser().parse_args(argv)
    out = out or sys.stdout

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"error [CONFIG]: {exc}", file=sys.stderr)
        return 1

    configure_logging(level=config.log_level_number)
    init_engine_from_url(config.database_url, echo=config.echo_sql)

    if args.command == "init-db":
        create_tables()
        print("tables created", file=out)
        return 0

    register_immutability_listeners()
    try:
        with session_scope() as session:
            args.handler(_Context(config, session, out), args)
    except FleetLedgerError as exc:
        print(f"error [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"error [IO]: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
