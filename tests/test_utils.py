import openpyxl
import pytest

from lpb_dashboard.loaders.utils import (
    clean_numeric,
    date_group_key,
    find_header_row,
    fix_scientific,
    is_scientific,
    natural_sort_key,
    to_snake_case,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("1234", 1234.0),
        ("-0,305", -0.305),
        ("100.375", 100.375),
        ("1.500.000", 1_500_000.0),
        ("2,000,000", 2_000_000.0),
        ("Rp 1.250.000,50", 1_250_000.5),
        (" 0 ", 0.0),
        (42, 42.0),
        (3.5, 3.5),
    ],
)
def test_clean_numeric_locale_formats(raw, expected):
    assert clean_numeric(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["", "   ", None, "-", "n/a", float("nan")])
def test_clean_numeric_empty_is_none_not_zero(raw):
    assert clean_numeric(raw) is None


def test_clean_numeric_reads_scientific_notation():
    assert clean_numeric("1.5E+3") == 1500.0


def test_fix_scientific_expands_exponent_form():
    assert fix_scientific("1.23457E+11") == "123457000000"
    assert fix_scientific("1,23457E+11") == "123457000000"
    assert fix_scientific("5.5E+6") == "5500000"


def test_fix_scientific_round_trips_integers_up_to_2_53():
    for value in [123456789012, 2**53, 987654321098765]:
        text = fix_scientific(f"{value:.15E}")
        assert "E" not in text
        assert "." not in text
        assert int(text) == value


def test_fix_scientific_leaves_plain_ids_alone():
    assert fix_scientific(" 532110012345 ") == "532110012345"
    assert fix_scientific("AB-1234") == "AB-1234"
    assert fix_scientific(532110012345) == "532110012345"
    assert fix_scientific(532110012345.0) == "532110012345"
    assert fix_scientific(None) == ""


def test_is_scientific():
    assert is_scientific("1.23457E+11")
    assert is_scientific("2e5")
    assert not is_scientific("123457000000")
    assert not is_scientific(1.2e11)


def test_to_snake_case_header_spellings():
    assert to_snake_case("KOORDINAT X") == "koordinat_x"
    assert to_snake_case("No. Meter") == "no_meter"
    assert to_snake_case("TotalLembar") == "total_lembar"
    assert to_snake_case("  IDPEL ") == "idpel"


def test_date_group_key_is_string_identity():
    assert date_group_key(" 01/10/2024 ") == "01/10/2024"
    assert date_group_key("1/10/2024") != date_group_key("01/10/2024")
    assert date_group_key(None) == ""


def test_natural_sort_key_orders_numbers_numerically():
    dates = ["10/10/2024", "2/10/2024", "1/10/2024"]
    assert sorted(dates, key=natural_sort_key) == ["1/10/2024", "2/10/2024", "10/10/2024"]


def test_find_header_row_skips_title_block():
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["LAPORAN SURVEY APP"])
    ws.append([None])
    ws.append(["IDPEL", "NAMA", "KOORDINAT X"])
    ws.append(["123456789012", "JOHN DOE", 100.375])

    assert find_header_row(ws, {"idpel", "nama", "koordinat_x"}) == 3
    assert find_header_row(ws, {"unknown", "headers"}) is None
