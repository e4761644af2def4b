"""Command-line entry points for the salesdesk toolkit.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business,
report and export layers. Keeping the CLI thin ensures the same parser
configuration can be reused by tests, scripts, or any alternative front-end
that wants to expose the package capabilities.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, exporters, log, reports
from .constants import ExportFormat, ReportType
from .errors import BusinessRuleViolation, DeliveryFailedError, InvalidRequestError


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    persists: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="salesdesk-cli",
        description="Command-line tools for the salesdesk store workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    parser.add_argument(
        "--owner",
        default=None,
        help="Owner whose records are used (defaults to [Defaults] DefaultOwner).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and their revisions."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "add-customer": register_add_customer_command(subparsers),
        "sale": register_sale_command(subparsers),
        "revise-sale": register_revise_sale_command(subparsers),
        "remove-sale": register_remove_sale_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports and exports."""
    specs = {
        "sales-report": register_sales_report_command(subparsers),
        "items-report": register_items_report_command(subparsers),
        "ledger-report": register_ledger_report_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_date_range_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--from", dest="date_from", required=required, help="First day, YYYY-MM-DD.")
    parser.add_argument("--to", dest="date_to", required=required, help="Last day, YYYY-MM-DD.")


def _add_sale_target_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
    product = parser.add_mutually_exclusive_group(required=required)
    product.add_argument("--product-id")
    product.add_argument("--product-name")
    customer = parser.add_mutually_exclusive_group(required=required)
    customer.add_argument("--customer-id")
    customer.add_argument("--customer-name")


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product in the Products sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-name", required=True)
        parser.add_argument("--description", default="")
        parser.add_argument("--stock", required=True)
        parser.add_argument("--price", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product, persists=True)


def register_add_customer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-customer``."""
    name = "add-customer"
    help_text = "Register a new customer in the Customers sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--customer-name", required=True)
        parser.add_argument("--email", required=True)
        parser.add_argument("--phone", dest="phone_number", default="")
        parser.add_argument("--address", default="")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_customer, persists=True)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale and deduct its quantity from stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_sale_target_arguments(parser, required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--total-price", required=True)
        parser.add_argument("--sale-date", default=None, help="ISO date or datetime (defaults to now).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale, persists=True)


def register_revise_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``revise-sale``."""
    name = "revise-sale"
    help_text = "Replace the details of a sale, rebalancing stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        _add_sale_target_arguments(parser, required=False)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--total-price", required=True)
        parser.add_argument("--sale-date", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_revise_sale, persists=True)


def register_remove_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``remove-sale``."""
    name = "remove-sale"
    help_text = "Soft-delete a sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        restore = parser.add_mutually_exclusive_group()
        restore.add_argument(
            "--restore-stock",
            dest="restore_stock",
            action="store_true",
            default=None,
            help="Return the sold quantity to stock.",
        )
        restore.add_argument(
            "--keep-stock",
            dest="restore_stock",
            action="store_false",
            help="Leave stock untouched.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_remove_sale, persists=True)


def register_sales_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales-report``."""
    name = "sales-report"
    help_text = "Display the sales summary for a range of days."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_date_range_arguments(parser, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sales_report)


def register_items_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``items-report``."""
    name = "items-report"
    help_text = "Display stock and inventory value."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_items_report)


def register_ledger_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``ledger-report``."""
    name = "ledger-report"
    help_text = "Display per-customer purchase totals for a range of days."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_date_range_arguments(parser, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_ledger_report)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Render a report as HTML, spreadsheet or PDF, or email it."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--report-type", choices=[member.value for member in ReportType], required=True)
        parser.add_argument("--format", dest="export_format", choices=[member.value for member in ExportFormat], required=True)
        _add_date_range_arguments(parser, required=False)
        parser.add_argument("--email", default=None, help="Recipient for the email format.")
        parser.add_argument(
            "--output",
            type=Path,
            default=None,
            help="Directory or file to write the artifact to (defaults to the working directory).",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def resolve_owner(context: core_logic.RuntimeContext, args: argparse.Namespace) -> str:
    return getattr(args, "owner", None) or context.settings.default_owner_id


def parse_decimal(raw: str, label: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise InvalidRequestError(f"{label} must be a number, got {raw!r}") from exc


def parse_quantity(raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidRequestError(f"Quantity must be a whole number, got {raw!r}") from exc


def parse_sale_date(raw: Optional[str]) -> Optional[datetime]:
    if raw is None:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid sale date: {raw!r}") from exc


def translate_add_product(args: argparse.Namespace, owner_id: str) -> Mapping[str, Any]:
    """Translate CLI args into an add-product request."""
    return {
        "owner_id": owner_id,
        "product_name": args.product_name,
        "description": args.description,
        "stock": parse_quantity(args.stock),
        "price": parse_decimal(args.price, "Price"),
    }


def translate_add_customer(args: argparse.Namespace, owner_id: str) -> Mapping[str, Any]:
    """Translate CLI args into an add-customer request."""
    return {
        "owner_id": owner_id,
        "customer_name": args.customer_name,
        "email": args.email,
        "phone_number": args.phone_number,
        "address": args.address,
    }


def translate_sale(args: argparse.Namespace, owner_id: str) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        owner_id=owner_id,
        product_id=args.product_id,
        product_name=args.product_name,
        customer_id=args.customer_id,
        customer_name=args.customer_name,
        quantity=parse_quantity(args.quantity),
        total_price=parse_decimal(args.total_price, "Total price"),
        sale_date=parse_sale_date(args.sale_date),
    )


def translate_revise_sale(args: argparse.Namespace) -> core_logic.ReviseSaleCommand:
    """Translate CLI args into a sale revision command object."""
    return core_logic.ReviseSaleCommand(
        product_id=args.product_id,
        product_name=args.product_name,
        customer_id=args.customer_id,
        customer_name=args.customer_name,
        quantity=parse_quantity(args.quantity),
        total_price=parse_decimal(args.total_price, "Total price"),
        sale_date=parse_sale_date(args.sale_date),
    )


def translate_export(args: argparse.Namespace) -> exporters.ExportRequest:
    """Translate CLI args into a validated export request."""
    return exporters.parse_export_request(
        args.report_type,
        args.export_format,
        date_from=args.date_from,
        date_to=args.date_to,
        email=args.email,
    )


def print_json(payload: Mapping[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    payload = translate_add_product(args, resolve_owner(context, args))
    product = core_logic.register_product(context, **payload)
    print(product.product_id)
    return 0


def run_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-customer workflow in the BLL."""
    payload = translate_add_customer(args, resolve_owner(context, args))
    customer = core_logic.register_customer(context, **payload)
    print(customer.customer_id)
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    command = translate_sale(args, resolve_owner(context, args))
    view = core_logic.record_sale(context, command)
    print(view.sale_id)
    return 0


def run_revise_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale revision workflow via the BLL."""
    command = translate_revise_sale(args)
    core_logic.revise_sale(context, args.sale_id, command)
    return 0


def run_remove_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale removal workflow via the BLL."""
    core_logic.remove_sale(context, args.sale_id, restore_stock=args.restore_stock)
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sales reporting workflow."""
    report = reports.compute_sales_report(context, resolve_owner(context, args), args.date_from, args.date_to)
    print_json(reports.report_to_dict(report))
    return 0


def run_items_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the inventory reporting workflow."""
    report = reports.compute_items_report(context, resolve_owner(context, args))
    print_json(reports.report_to_dict(report))
    return 0


def run_ledger_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the customer ledger reporting workflow."""
    report = reports.compute_customer_ledger(context, resolve_owner(context, args), args.date_from, args.date_to)
    print_json(reports.report_to_dict(report))
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the export workflow, writing the artifact unless it was emailed."""
    request = translate_export(args)
    result = exporters.export_report(context, resolve_owner(context, args), request)
    if request.export_format is ExportFormat.EMAIL:
        print(f"Report sent to {request.email}")
        return 0

    destination = write_export(result, args.output)
    print(destination)
    return 0


def write_export(result: exporters.ExportResult, output: Optional[Path]) -> Path:
    """Write an export result to ``output`` (a file or directory)."""
    target = Path(output) if output is not None else Path.cwd()
    if target.is_dir():
        target = target / result.filename
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(result.content, bytes):
        target.write_bytes(result.content)
    else:
        target.write_text(result.content, encoding="utf-8")
    log.info("Wrote export to '%s'", target)
    return target


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, InvalidRequestError):
        log.error("%s", error)
        return 4
    if isinstance(error, DeliveryFailedError):
        log.error("%s", error)
        return 5
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].persists:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
