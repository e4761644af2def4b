"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from salesdesk import constants, data_manager  # noqa: E402

PRODUCTS = constants.SheetName.PRODUCTS.value
CUSTOMERS = constants.SheetName.CUSTOMERS.value
SALES = constants.SheetName.SALES.value


def _sale_row(sale_id: str = "S1", **overrides) -> data_manager.SaleRow:
    values = dict(
        sale_id=sale_id,
        owner_id="U1",
        product_id="P1",
        customer_id="C1",
        product_name="Widget",
        customer_name="Alice",
        quantity=3,
        total_price=Decimal("15.00"),
        sale_date_iso="2025-03-01T10:00:00+00:00",
        is_deleted=False,
    )
    values.update(overrides)
    return data_manager.SaleRow(**values)


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_cwd(tmp_path, monkeypatch):
    """Auto-discovery should locate config.ini in the working directory tree."""

    config_dir = tmp_path / "nested"
    config_dir.mkdir(parents=True)
    config_file = config_dir / "config.ini"
    config_file.write_text("[System]\nDataFile=store_data.xlsx")
    monkeypatch.chdir(config_dir)

    result = data_manager.find_config_file()
    assert result == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    """read_config should return a populated ConfigParser."""

    parser = data_manager.read_config(config_file)
    assert parser.get("System", "StoreName") == "Test Store"
    assert parser.get("Defaults", "DefaultOwner") == "U-DEFAULT"


def test_read_config_missing_file_raises(tmp_path):
    """Missing files should propagate a FileNotFoundError."""

    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    parser = configparser.ConfigParser()
    bundle = config_factory(make_relative=True)
    parser.read(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)
    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.default_owner_id == "U-DEFAULT"
    assert settings.restore_stock_on_delete is False
    assert settings.mail is None


def test_parse_settings_reads_sales_and_mail_sections(tmp_path):
    """Optional sections should be parsed into typed settings."""

    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile = data.xlsx\nStoreName = Shop\nSchemaVersion = 1.0.0\n"
        "[Defaults]\nDefaultOwner = U1\n"
        "[Sales]\nRestoreStockOnDelete = yes\n"
        "[Mail]\nHost = smtp.example.com\nPort = 2525\nUseTLS = false\n"
        "Username = reports\nSender = reports@example.com\n"
    )

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.restore_stock_on_delete is True
    assert settings.mail == data_manager.MailSettings(
        host="smtp.example.com",
        port=2525,
        use_tls=False,
        username="reports",
        sender="reports@example.com",
    )


def test_parse_settings_rejects_incomplete_mail_section(tmp_path):
    """A [Mail] section missing an option should raise KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile = data.xlsx\nStoreName = Shop\nSchemaVersion = 1.0.0\n"
        "[Defaults]\nDefaultOwner = U1\n"
        "[Mail]\nHost = smtp.example.com\nPort = 25\n"
    )
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    """open_workbook should hand back a loaded Workbook object."""

    workbook = data_manager.open_workbook(master_workbook_path)
    assert isinstance(workbook, OpenpyxlWorkbook)
    assert set(workbook.sheetnames) == {PRODUCTS, CUSTOMERS, SALES}


def test_open_workbook_missing_file_raises(tmp_path):
    """Missing workbook files should yield FileNotFoundError."""

    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_save_workbook_with_destination_creates_copy(master_workbook_path, tmp_path):
    """Providing a destination should create a new file independent of the source."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[CUSTOMERS].append(["C2", "U1", "Jordan", "j@example.com", "555", "Elm St"])
    copy_path = tmp_path / "nested" / "copy.xlsx"
    data_manager.save_workbook(workbook, destination=copy_path)

    copy = openpyxl.load_workbook(copy_path)
    rows = list(copy[CUSTOMERS].iter_rows(min_row=2, values_only=True))
    assert ("C2", "U1", "Jordan", "j@example.com", "555", "Elm St") in rows


def test_refresh_workbook_returns_new_instance(master_workbook_path):
    """refresh_workbook should return a freshly loaded workbook from disk."""

    original = data_manager.open_workbook(master_workbook_path)
    original[PRODUCTS].append(["P200", "U1", "Bars", "", 4, 4.5, False])
    data_manager.save_workbook(original, master_workbook_path)

    refreshed = data_manager.refresh_workbook(master_workbook_path)
    assert refreshed is not original
    assert [row.product_id for row in data_manager.iter_products(refreshed)] == ["P200"]


def test_iter_products_yields_typed_rows(master_workbook_path):
    """iter_products should coerce stock to int and price to Decimal."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[PRODUCTS].append(["P300", "U1", "Soda", "Can", 12, 1.25, False])
    data_manager.save_workbook(workbook, master_workbook_path)

    refreshed = data_manager.open_workbook(master_workbook_path)
    rows = list(data_manager.iter_products(refreshed))
    assert rows == [
        data_manager.ProductRow(
            product_id="P300",
            owner_id="U1",
            product_name="Soda",
            description="Can",
            stock=12,
            price=Decimal("1.25"),
            is_deleted=False,
        )
    ]


def test_iter_sales_skips_blank_rows(master_workbook_path):
    """Fully empty rows between records should be ignored."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale_row("S1"))
    workbook[SALES].append([None] * 10)
    data_manager.append_sale(workbook, _sale_row("S2", quantity=1))

    rows = list(data_manager.iter_sales(workbook))
    assert [row.sale_id for row in rows] == ["S1", "S2"]
    assert rows[1].quantity == 1


def test_append_sale_round_trips_through_disk(master_workbook_path):
    """A saved sale should keep its identity, quantity and money values."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale_row("S7", total_price=Decimal("12.50")))
    data_manager.save_workbook(workbook, master_workbook_path)

    rows = list(data_manager.iter_sales(data_manager.open_workbook(master_workbook_path)))
    assert rows[0].sale_id == "S7"
    assert rows[0].quantity == 3
    assert rows[0].total_price == Decimal("12.5")
    assert rows[0].is_deleted is False


def test_append_customer_adds_row(master_workbook_path):
    """append_customer should append the record to the Customers sheet."""

    workbook = data_manager.open_workbook(master_workbook_path)
    record = data_manager.CustomerRow(
        customer_id="C9",
        owner_id="U1",
        customer_name="Jamie",
        email="jamie@example.com",
        phone_number="",
        address="",
    )
    data_manager.append_customer(workbook, record)

    assert list(data_manager.iter_customers(workbook)) == [record]


def test_update_product_modifies_existing_row(master_workbook_path):
    """update_product should mutate only the named columns."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[PRODUCTS].append(["P500", "U1", "Old", "Desc", 5, 1.0, False])

    data_manager.update_product(workbook, "P500", field_values={"Stock": 2})

    (row,) = list(data_manager.iter_products(workbook))
    assert row.stock == 2
    assert row.product_name == "Old"


def test_update_product_missing_raises(master_workbook_path):
    """Updating a nonexistent product should surface a KeyError."""

    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.update_product(workbook, "NOPE", field_values={"Stock": 1})


def test_update_sale_unknown_field_leaves_row_intact(master_workbook_path):
    """An unknown column should be rejected before any cell is written."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale_row("S1"))

    with pytest.raises(KeyError):
        data_manager.update_sale(workbook, "S1", field_values={"Quantity": 9, "Bogus": 1})

    (row,) = list(data_manager.iter_sales(workbook))
    assert row.quantity == 3


def test_update_sale_marks_deleted(master_workbook_path):
    """Soft deletion is a plain column update."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale_row("S1"))

    data_manager.update_sale(workbook, "S1", field_values={"IsDeleted": True})

    (row,) = list(data_manager.iter_sales(workbook))
    assert row.is_deleted is True


def test_locate_row_returns_row_index(master_workbook_path):
    """locate_row should return the worksheet index of the matching key."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[PRODUCTS].append(["P600", "U1", "Snack", "", 2, 2.0, False])

    row_index = data_manager.locate_row(workbook, PRODUCTS, "ProductID", "P600")
    assert row_index == 2


def test_locate_row_returns_none_when_missing(master_workbook_path):
    """locate_row should return None if the key is not present."""

    workbook = data_manager.open_workbook(master_workbook_path)
    assert data_manager.locate_row(workbook, PRODUCTS, "ProductID", "NOPE") is None


def test_locate_row_unknown_column_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, PRODUCTS, "Missing", "P1")


def test_serialize_product_preserves_order():
    """serialize_product should follow the column ordering defined by setup."""

    record = data_manager.ProductRow("P1", "U1", "Name", "Desc", 4, Decimal("1.25"), False)
    assert data_manager.serialize_product(record) == ["P1", "U1", "Name", "Desc", 4, Decimal("1.25"), False]


def test_serialize_sale_preserves_order():
    """serialize_sale should output the Sales column order."""

    assert data_manager.serialize_sale(_sale_row("S3")) == [
        "S3",
        "U1",
        "P1",
        "C1",
        "Widget",
        "Alice",
        3,
        Decimal("15.00"),
        "2025-03-01T10:00:00+00:00",
        False,
    ]


def test_deserialize_product_coerces_excel_numbers():
    """Floats handed back by Excel should become int stock and Decimal price."""

    record = data_manager.deserialize_product(["P9", "U1", "Bar", None, 7.0, 2.75, None])
    assert record.stock == 7
    assert record.price == Decimal("2.75")
    assert record.description == ""
    assert record.is_deleted is False


def test_deserialize_customer_defaults_missing_text():
    record = data_manager.deserialize_customer(["C9", "U1", "Alex", None, None, None])
    assert record.customer_name == "Alex"
    assert record.email == ""
    assert record.address == ""
