"""Shared pytest fixtures and utilities for salesdesk tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, List
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from salesdesk import cli, constants, core_logic, data_manager  # noqa: E402
from salesdesk.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_OWNER_ID = "U-DEFAULT"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "StoreName = {store_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "DefaultOwner = {default_owner_id}\n\n"
    "[Sales]\n"
    "RestoreStockOnDelete = {restore_stock_on_delete}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    default_owner_id: str
    schema_version: str
    store_name: str


@dataclass
class RecordingDeliveryChannel:
    """Stand-in delivery channel that keeps every message it is asked to send."""

    sent: List[dict] = field(default_factory=list)
    error: Exception | None = None

    def send_attachment_email(
        self,
        to_address: str,
        subject: str,
        body: str,
        attachment: bytes,
        attachment_filename: str,
        *,
        html_body: str | None = None,
    ) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(
            {
                "to": to_address,
                "subject": subject,
                "body": body,
                "attachment": attachment,
                "filename": attachment_filename,
                "html_body": html_body,
            }
        )


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the repository root path."""

    return PROJECT_ROOT


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized store workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "store_data.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh store workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        store_name: str = "Test Store",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        default_owner_id: str = DEFAULT_OWNER_ID,
        restore_stock_on_delete: bool = False,
        extra: str = "",
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                store_name=store_name,
                schema_version=schema_version,
                default_owner_id=default_owner_id,
                restore_stock_on_delete=str(restore_stock_on_delete).lower(),
            )
            + extra
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            default_owner_id=default_owner_id,
            schema_version=schema_version,
            store_name=store_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def delivery_channel() -> RecordingDeliveryChannel:
    return RecordingDeliveryChannel()


@pytest.fixture
def mail_context(
    runtime_context: core_logic.RuntimeContext,
    delivery_channel: RecordingDeliveryChannel,
) -> core_logic.RuntimeContext:
    """Runtime context wired to the recording delivery channel."""

    return core_logic.RuntimeContext(
        settings=runtime_context.settings,
        workbook=runtime_context.workbook,
        delivery_channel=delivery_channel,
    )


@pytest.fixture
def seed_store() -> Callable[..., dict]:
    """Register a small catalog and customer directory on a real context."""

    def _seed(context: core_logic.RuntimeContext, owner_id: str = DEFAULT_OWNER_ID) -> dict:
        widget = core_logic.register_product(
            context,
            owner_id=owner_id,
            product_name="Widget",
            description="Standard widget",
            stock=10,
            price=Decimal("5.00"),
        )
        gadget = core_logic.register_product(
            context,
            owner_id=owner_id,
            product_name="Gadget",
            description="Deluxe gadget",
            stock=20,
            price=Decimal("2.00"),
        )
        alice = core_logic.register_customer(
            context,
            owner_id=owner_id,
            customer_name="Alice",
            email="alice@example.com",
            phone_number="555-0100",
            address="1 Main St",
        )
        bob = core_logic.register_customer(
            context,
            owner_id=owner_id,
            customer_name="Bob",
            email="bob@example.com",
            phone_number="555-0101",
            address="2 Main St",
        )
        return {"widget": widget, "gadget": gadget, "alice": alice, "bob": bob}

    return _seed


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="salesdesk-cli", description="salesdesk CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "store_data.xlsx",
        store_name="Test Store",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        default_owner_id=DEFAULT_OWNER_ID,
    )


@pytest.fixture
def workbook() -> Mock:
    """Return a mock workbook object for business logic tests."""

    return Mock(name="workbook")


@pytest.fixture
def context(settings: data_manager.ConfigSettings, workbook: Mock) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and workbook mocks."""

    return core_logic.RuntimeContext(settings=settings, workbook=workbook)


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime.now`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime(datetime):
            @classmethod
            def now(cls, tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
