import openpyxl
import pytest

from lpb_dashboard.errors import ParseError, ValidationError
from lpb_dashboard.loaders.delimited import parse_delimited
from lpb_dashboard.records import MeterRecord, ValidationStatus
from lpb_dashboard.transforms import (
    build_record,
    dedupe_for_upload,
    records_from_file,
    records_from_objects,
    records_from_rows,
    records_to_frame,
)


def test_scientific_id_and_coordinates_scenario():
    text = "IDPEL,NAMA,KOORDINAT X,KOORDINAT Y\n1.23457E+11,JOHN DOE,100.375,-0.305\n"
    result = records_from_rows(parse_delimited(text))

    assert result.rejected == 0
    assert len(result.records) == 1
    record = result.records[0]
    assert record.customer_id == "123457000000"
    assert record.customer_name == "JOHN DOE"
    assert record.longitude == 100.375
    assert record.latitude == -0.305


def test_rows_without_identity_are_counted_not_kept():
    text = "IDPEL;NAMA\n123456789012;A\n12345;B\n;C\n987654321098;D\n"
    result = records_from_rows(parse_delimited(text))

    assert [r.customer_name for r in result.records] == ["A", "D"]
    assert result.rejected == 2


def test_header_only_payload_gives_no_records():
    assert records_from_rows([["IDPEL", "NAMA"]]).records == ()
    assert records_from_rows([]).records == ()


def test_build_record_applies_defaults():
    record = build_record({"customer_id": "123456789012", "customer_name": "", "paid_direct": None})
    assert record.customer_name == "TANPA NAMA"
    assert record.unit == "-"
    assert record.officer_name == "-"
    assert record.indicator == "NORMAL"
    assert record.voltage == "0"
    assert record.paid_direct == 0.0
    assert record.validation_status is ValidationStatus.UNVALIDATED


def test_build_record_rejects_missing_identity():
    with pytest.raises(ValidationError):
        build_record({"customer_id": "ABC"})


def test_partial_or_out_of_range_coordinates_mean_no_location():
    only_lat = build_record({"customer_id": "123456789012", "latitude": -0.3, "longitude": None})
    assert (only_lat.latitude, only_lat.longitude) == (0.0, 0.0)
    assert not only_lat.is_mappable

    swapped = build_record({"customer_id": "123456789012", "latitude": 100.4, "longitude": -0.3})
    assert (swapped.latitude, swapped.longitude) == (0.0, 0.0)


def test_normalizing_canonical_output_is_a_no_op():
    text = (
        "UNIT;IDPEL;NAMA;DAYA;VALIDASI;KOORDINAT X;KOORDINAT Y;PETUGAS;TGL;TOTALLEMBAR;LUNAS MANDIRI\n"
        "BASO;1.23457E+11;SITI;1.300,00;TIDAK VALID;100,48;-0,28;FAJAR;03/10/2024;150.000,00;75.000,00\n"
        "BASO;532110012345;;;;;;;;;\n"
    )
    first = records_from_rows(parse_delimited(text)).records
    second = records_from_objects(r.to_row() for r in first).records

    assert second == first


def test_dedupe_keeps_last_value_in_first_position():
    a1 = MeterRecord(customer_id="111111111111", customer_name="OLD")
    b = MeterRecord(customer_id="222222222222")
    a2 = MeterRecord(customer_id="111111111111", customer_name="NEW")

    unique, dropped = dedupe_for_upload([a1, b, a2])

    assert dropped == 1
    assert [r.customer_id for r in unique] == ["111111111111", "222222222222"]
    assert unique[0].customer_name == "NEW"


def test_records_to_frame_has_derived_total(sample_records):
    df = records_to_frame(sample_records)
    assert len(df) == 4
    assert df.loc[0, "validation_status"] == "VALID"
    assert df.loc[0, "total_realized"] == pytest.approx(175_000.0)


def test_records_to_frame_empty():
    df = records_to_frame([])
    assert df.empty
    assert "customer_id" in df.columns
    assert "total_realized" in df.columns


def test_records_from_csv_file(tmp_path):
    path = tmp_path / "export.csv"
    path.write_text("IDPEL;NAMA;PEGAWAI\n532110012345;SITI;RINA\n", encoding="utf-8")

    result = records_from_file(path)

    assert result.records[0].officer_name == "RINA"


def test_records_from_xlsx_file_with_title_rows(tmp_path):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["DATA SURVEY UP3"])
    ws.append([])
    ws.append(["IDPEL", "NAMA", "KOORDINAT X", "KOORDINAT Y"])
    ws.append([123456789012, "JOHN DOE", 100.375, -0.305])
    ws.append([None, None, None, None])
    path = tmp_path / "export.xlsx"
    wb.save(path)

    result = records_from_file(path)

    assert len(result.records) == 1
    record = result.records[0]
    assert record.customer_id == "123456789012"
    assert record.latitude == -0.305


def test_unsupported_upload_file_type(tmp_path):
    path = tmp_path / "export.pdf"
    path.write_bytes(b"%PDF-1.4")
    with pytest.raises(ParseError):
        records_from_file(path)
