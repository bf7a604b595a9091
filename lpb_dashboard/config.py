"""
Configuration: field synonym table, validation labels, fetch/cache tunables.

FIELD_SYNONYMS maps each canonical record field to the header spellings the
survey exports and backends are known to use, in priority order. When more
than one matching column carries a value, the earliest spelling wins.
"""

import os
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Region identity
# ---------------------------------------------------------------------------
REGION_NAME = "UP3 Bukittinggi"
DEFAULT_TABLE = "lpb_data"

# ---------------------------------------------------------------------------
# Fetch / cache tunables
# ---------------------------------------------------------------------------
CACHE_TTL_SECONDS = 300
AUTO_REFRESH_SECONDS = 600
FILTER_DEBOUNCE_SECONDS = 0.4

POSTGREST_PAGE_SIZE = 1000
MAX_FETCH_ROWS = 500_000

HTTP_TIMEOUT_SECONDS = 30
# The spreadsheet export returns the whole sheet as one text body
CSV_TIMEOUT_SECONDS = 60

UPLOAD_CHUNK_SIZE = 250

# Identity keys must be strictly longer than this (alphanumeric characters)
MIN_IDENTITY_LENGTH = 5

# ---------------------------------------------------------------------------
# Field synonym table
# ---------------------------------------------------------------------------
# Spellings are compared after snake-casing, so "KOORDINAT X", "koordinat_x"
# and "Koordinat-X" are the same header.
FIELD_SYNONYMS: dict[str, list[str]] = {
    "unit": ["unit", "ulp", "nama unit"],
    "customer_id": ["idpel", "id pelanggan", "id_pel", "customer id"],
    "customer_name": ["nama", "nama pelanggan", "customer name"],
    "address": ["alamat", "address"],
    "meter_number": ["no meter", "nomor meter", "no_meter", "meter number"],
    "tariff_class": ["tarif", "tariff"],
    "capacity_va": ["daya", "capacity"],
    "power_limit": ["power limit"],
    "rbm_code": ["kode rbm", "rbm"],
    "tariff_index": ["tarif index"],
    "period": ["blth", "periode", "period"],
    "validation_status": ["validasi", "status validasi", "validation"],
    "voltage": ["tegangan", "voltage"],
    "current": ["arus", "current"],
    "cosphi": ["cosphi", "cos phi"],
    "kwh_cumulative": ["kwh kumulatif", "kwh"],
    "indicator": ["indikator"],
    "remaining_kwh": ["sisa kwh"],
    "temper": ["temper"],
    "meter_cover": ["tutup meter"],
    "seal": ["segel"],
    "lcd": ["lcd"],
    "keypad": ["keypad"],
    "terminal_count": ["jml terminal", "jumlah terminal"],
    "temper_indicator": ["indi temper"],
    "relay": ["relay"],
    "longitude": ["koordinat x", "longitude", "lng", "lon", "x"],
    "latitude": ["koordinat y", "latitude", "lat", "y"],
    "officer_name": ["petugas", "pegawai", "nama petugas"],
    "date": ["tgl", "tanggal", "date"],
    "notes": ["catatan", "keterangan", "notes"],
    "visit_time": ["waktu jam", "jam"],
    "total_work_orders": ["totallembar", "total lembar", "total wo"],
    "paid_direct": ["lunas mandiri"],
    "paid_offline": ["lunas offline"],
    "paid_promise": ["janji bayar"],
}

# Backend column name for each canonical field (used when encoding upload rows)
BACKEND_COLUMNS: dict[str, str] = {
    "unit": "unit",
    "customer_id": "idpel",
    "customer_name": "nama",
    "address": "alamat",
    "meter_number": "no_meter",
    "tariff_class": "tarif",
    "capacity_va": "daya",
    "power_limit": "power_limit",
    "rbm_code": "kode_rbm",
    "tariff_index": "tarif_index",
    "period": "blth",
    "validation_status": "validasi",
    "voltage": "tegangan",
    "current": "arus",
    "cosphi": "cosphi",
    "kwh_cumulative": "kwh_kumulatif",
    "indicator": "indikator",
    "remaining_kwh": "sisa_kwh",
    "temper": "temper",
    "meter_cover": "tutup_meter",
    "seal": "segel",
    "lcd": "lcd",
    "keypad": "keypad",
    "terminal_count": "jml_terminal",
    "temper_indicator": "indi_temper",
    "relay": "relay",
    "longitude": "longitude",
    "latitude": "latitude",
    "officer_name": "petugas",
    "date": "tanggal",
    "notes": "catatan",
    "visit_time": "waktu_jam",
    "total_work_orders": "totallembar",
    "paid_direct": "lunas_mandiri",
    "paid_offline": "lunas_offline",
    "paid_promise": "janji_bayar",
}

# Fields cleaned with clean_numeric; everything else is kept as text
NUMERIC_FIELDS = {
    "capacity_va",
    "power_limit",
    "latitude",
    "longitude",
    "total_work_orders",
    "paid_direct",
    "paid_offline",
    "paid_promise",
}

# Identifier fields: scientific-notation repair, trimmed and uppercased
IDENTIFIER_FIELDS = {"customer_id", "meter_number"}

# ---------------------------------------------------------------------------
# Validation labels
# ---------------------------------------------------------------------------
# Source label (uppercased, whitespace collapsed) -> closed status set
VALIDATION_SYNONYMS: dict[str, str] = {
    "VALID": "VALID",
    "TERVALIDASI": "VALID",
    "SUDAH VALIDASI": "VALID",
    "INVALID": "INVALID",
    "TIDAK VALID": "INVALID",
    "TDK VALID": "INVALID",
    "T.VALID": "INVALID",
    "UNVALIDATED": "UNVALIDATED",
    "BELUM VALIDASI": "UNVALIDATED",
    "BELUM": "UNVALIDATED",
}

# Display label used by the regional office for each status
VALIDATION_LABELS: dict[str, str] = {
    "VALID": "VALID",
    "INVALID": "TIDAK VALID",
    "UNVALIDATED": "BELUM VALIDASI",
}

UNIT_COLORS: dict[str, str] = {
    "BUKITTINGGI": "#6366f1",
    "PADANG PANJANG": "#10b981",
    "BASO": "#f59e0b",
    "LUBUK BASUNG": "#f43f5e",
    "PAYAKUMBUH": "#06b6d4",
    "DEFAULT": "#94a3b8",
}


# ---------------------------------------------------------------------------
# Deployment settings (environment)
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Settings:
    """Endpoint settings for the configured backends.

    A backend whose URL is empty is left out of the source strategy list.
    """

    supabase_url: str = ""
    supabase_key: str = ""
    sheet_csv_url: str = ""
    edge_url: str = ""
    table: str = DEFAULT_TABLE
    cache_ttl: float = CACHE_TTL_SECONDS


def load_settings(environ: dict | None = None) -> Settings:
    """Read Settings from LPB_* environment variables."""
    env = os.environ if environ is None else environ
    ttl_raw = env.get("LPB_CACHE_TTL", "")
    try:
        ttl = float(ttl_raw) if ttl_raw else float(CACHE_TTL_SECONDS)
    except ValueError:
        ttl = float(CACHE_TTL_SECONDS)
    return Settings(
        supabase_url=env.get("LPB_SUPABASE_URL", "").strip().rstrip("/"),
        supabase_key=env.get("LPB_SUPABASE_KEY", "").strip(),
        sheet_csv_url=env.get("LPB_SHEET_CSV_URL", "").strip(),
        edge_url=env.get("LPB_EDGE_URL", "").strip(),
        table=env.get("LPB_TABLE", "").strip() or DEFAULT_TABLE,
        cache_ttl=ttl,
    )
