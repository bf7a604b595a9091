"""
Simulated data generator for the meter survey dashboard.

Generates realistic field-survey rows for the units of the region, laid
out the way the spreadsheet export delivers them (semicolon separated,
comma decimals, long IDs occasionally mangled into scientific notation).
All values are synthetic; no customer data is used.
"""

import logging
from typing import Sequence

import numpy as np

from .config import UNIT_COLORS
from .loaders.delimited import parse_delimited
from .transforms import AssemblyResult, records_from_objects, records_from_rows

logger = logging.getLogger(__name__)

# Seed for reproducibility
_RNG = np.random.default_rng(42)

# ---------------------------------------------------------------------------
# Typical survey parameters
# ---------------------------------------------------------------------------
_UNITS = [u for u in UNIT_COLORS if u != "DEFAULT"]

# Approximate service-area centre per unit (lat, lng)
_UNIT_CENTRES = {
    "BUKITTINGGI": (-0.305, 100.375),
    "PADANG PANJANG": (-0.466, 100.401),
    "BASO": (-0.280, 100.480),
    "LUBUK BASUNG": (-0.327, 100.071),
    "PAYAKUMBUH": (-0.224, 100.632),
}

_OFFICERS = {
    "BUKITTINGGI": ["ANDI SAPUTRA", "RINA WAHYUNI"],
    "PADANG PANJANG": ["DEDI KURNIAWAN", "SITI RAHMA"],
    "BASO": ["FAJAR HIDAYAT"],
    "LUBUK BASUNG": ["YUSUF MAULANA", "NOVI ANDRIANI"],
    "PAYAKUMBUH": ["HENDRA GUNAWAN", "LINDA PERMATA"],
}

_TARIFFS = [("R1", 900), ("R1", 1300), ("R1", 2200), ("R2", 3500), ("B1", 5500)]

# Spreadsheet labels, weighted towards work still in progress
_VALIDATION_LABELS = ["VALID", "TIDAK VALID", "BELUM VALIDASI", ""]
_VALIDATION_WEIGHTS = [0.55, 0.15, 0.2, 0.1]

_HEADERS = [
    "UNIT", "IDPEL", "NAMA", "ALAMAT", "NO METER", "TARIF", "DAYA", "BLTH",
    "VALIDASI", "TEGANGAN", "ARUS", "COSPHI", "KOORDINAT X", "KOORDINAT Y",
    "PETUGAS", "TGL", "TOTALLEMBAR", "LUNAS MANDIRI", "LUNAS OFFLINE",
    "JANJI BAYAR", "CATATAN",
]


def _id_text(customer_id: int, rng: np.random.Generator) -> str:
    # Roughly one in ten IDs comes back from the sheet as 1.23457E+11
    if rng.random() < 0.1:
        return f"{customer_id:.5E}"
    return str(customer_id)


def _locale_number(value: float) -> str:
    """Format with '.' thousands and ',' decimals, as the sheet does."""
    text = f"{value:,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def generate_survey_rows(
    n_rows: int = 400,
    period: str = "202410",
    n_days: int = 12,
    rng: np.random.Generator | None = None,
) -> list[list[str]]:
    """Generate a header row plus `n_rows` survey rows as text cells.

    A few rows carry no usable customer ID, and a few repeat an earlier
    ID with updated readings, as real exports do.
    """
    rng = rng or _RNG
    rows = [list(_HEADERS)]
    issued_ids: list[str] = []

    for i in range(n_rows):
        unit = _UNITS[int(rng.integers(len(_UNITS)))]
        officers = _OFFICERS[unit]
        officer = officers[int(rng.integers(len(officers)))]
        tariff, capacity = _TARIFFS[int(rng.integers(len(_TARIFFS)))]
        lat0, lng0 = _UNIT_CENTRES[unit]

        roll = rng.random()
        if roll < 0.02:
            id_cell = "-"
        elif roll < 0.05 and issued_ids:
            id_cell = issued_ids[int(rng.integers(len(issued_ids)))]
        else:
            id_cell = _id_text(int(rng.integers(100_000_000_000, 999_999_999_999)), rng)
            issued_ids.append(id_cell)

        has_location = rng.random() > 0.08
        work_orders = float(rng.integers(1, 6)) * 150_000
        paid_share = rng.dirichlet([4, 2, 1, 2])
        paid = [round(work_orders * share, -3) for share in paid_share[:3]]

        rows.append([
            unit,
            id_cell,
            f"PELANGGAN {i + 1:04d}",
            f"JL. PASAR NO. {int(rng.integers(1, 200))}",
            str(int(rng.integers(10_000_000, 99_999_999))),
            tariff,
            _locale_number(capacity),
            period,
            _VALIDATION_LABELS[int(rng.choice(len(_VALIDATION_LABELS), p=_VALIDATION_WEIGHTS))],
            f"{rng.normal(220, 4):.1f}".replace(".", ","),
            f"{abs(rng.normal(2.5, 1.2)):.2f}".replace(".", ","),
            f"{rng.uniform(0.8, 1.0):.2f}".replace(".", ","),
            f"{lng0 + rng.normal(0, 0.03):.6f}" if has_location else "",
            f"{lat0 + rng.normal(0, 0.03):.6f}" if has_location else "",
            officer,
            f"{int(rng.integers(1, n_days + 1)):02d}/{period[4:]}/{period[:4]}",
            _locale_number(work_orders),
            _locale_number(paid[0]),
            _locale_number(paid[1]),
            _locale_number(paid[2]),
            "",
        ])

    return rows


def generate_survey_csv(
    n_rows: int = 400,
    period: str = "202410",
    rng: np.random.Generator | None = None,
) -> str:
    """Semicolon-separated export text for the generated rows."""
    lines = []
    for row in generate_survey_rows(n_rows, period=period, rng=rng):
        cells = []
        for cell in row:
            if ";" in cell or '"' in cell:
                cell = '"' + cell.replace('"', '""') + '"'
            cells.append(cell)
        lines.append(";".join(cells))
    return "\r\n".join(lines) + "\r\n"


class SimulatedSource:
    """Offline stand-in for a backend, with the same surface as the HTTP sources.

    Serves a generated export through the regular parse/assemble path and
    keeps uploaded rows in memory so they show up on the next fetch.
    """

    name = "simulated"
    online_message = "Simulator Online"
    supports_bounds = False
    supports_upload = True

    def __init__(self, n_rows: int = 400, period: str = "202410", seed: int = 42):
        self.n_rows = n_rows
        self.period = period
        self.seed = seed
        self.uploaded: dict[str, dict] = {}

    def __repr__(self) -> str:
        return f"SimulatedSource(n_rows={self.n_rows}, seed={self.seed})"

    def cache_key(self, source_key: str) -> str:
        return f"simulated://{self.seed}_{source_key}"

    def ping(self) -> tuple[bool, str]:
        return True, self.online_message

    def fetch(self, source_key: str) -> AssemblyResult:
        text = generate_survey_csv(
            self.n_rows, period=self.period, rng=np.random.default_rng(self.seed)
        )
        generated = records_from_rows(parse_delimited(text))
        if not self.uploaded:
            return generated

        uploaded = records_from_objects(self.uploaded.values())
        uploaded_ids = {r.customer_id for r in uploaded.records}
        kept = tuple(r for r in generated.records if r.customer_id not in uploaded_ids)
        logger.info("Merged %d uploaded records into simulated data", len(uploaded.records))
        return AssemblyResult(
            records=kept + uploaded.records,
            rejected=generated.rejected + uploaded.rejected,
        )

    def upload_rows(self, rows: Sequence[dict], source_key: str) -> int:
        for row in rows:
            self.uploaded[str(row.get("idpel", ""))] = dict(row)
        return len(rows)
