"""
Canonical record types shared by every stage of the pipeline.

MeterRecord is the normalized, field-complete representation of one
meter survey entry or invoice line. Records are frozen: downstream
consumers read them, a refresh replaces them wholesale.
"""

from dataclasses import asdict, dataclass, fields
from enum import Enum

from .config import BACKEND_COLUMNS


class ValidationStatus(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    UNVALIDATED = "UNVALIDATED"


@dataclass(frozen=True)
class MeterRecord:
    """One canonical survey/invoice record.

    Text readings default to the strings the field forms use ("0",
    "NORMAL", "-"); numeric fields default to 0.0. latitude/longitude are
    either both 0.0 (no location) or both a valid coordinate.
    """

    customer_id: str
    unit: str = "-"
    customer_name: str = "TANPA NAMA"
    address: str = ""
    meter_number: str = ""
    tariff_class: str = ""
    capacity_va: float = 0.0
    power_limit: float = 0.0
    rbm_code: str = ""
    tariff_index: str = ""
    period: str = ""
    validation_status: ValidationStatus = ValidationStatus.UNVALIDATED
    voltage: str = "0"
    current: str = "0"
    cosphi: str = "0"
    kwh_cumulative: str = ""
    indicator: str = "NORMAL"
    remaining_kwh: str = ""
    temper: str = "0"
    meter_cover: str = ""
    seal: str = ""
    lcd: str = ""
    keypad: str = ""
    terminal_count: str = ""
    temper_indicator: str = ""
    relay: str = ""
    longitude: float = 0.0
    latitude: float = 0.0
    officer_name: str = "-"
    date: str = ""
    notes: str = ""
    visit_time: str = ""
    total_work_orders: float = 0.0
    paid_direct: float = 0.0
    paid_offline: float = 0.0
    paid_promise: float = 0.0

    @property
    def total_realized(self) -> float:
        return self.paid_direct + self.paid_offline + self.paid_promise

    @property
    def is_mappable(self) -> bool:
        return self.latitude != 0 and self.longitude != 0

    def to_row(self) -> dict:
        """Encode with the backend's lowercase column names for upload."""
        row = {}
        for name, value in asdict(self).items():
            if isinstance(value, ValidationStatus):
                value = value.value
            row[BACKEND_COLUMNS[name]] = value
        return row


RECORD_FIELDS = tuple(f.name for f in fields(MeterRecord))


@dataclass(frozen=True)
class Bounds:
    """Geographic bounding box for viewport-scoped map queries."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def is_valid(self) -> bool:
        values = (self.min_lat, self.max_lat, self.min_lng, self.max_lng)
        # NaN compares unequal to itself
        if any(v != v for v in values):
            return False
        return self.min_lat <= self.max_lat and self.min_lng <= self.max_lng

    def contains(self, record: MeterRecord) -> bool:
        return (
            record.is_mappable
            and self.min_lat <= record.latitude <= self.max_lat
            and self.min_lng <= record.longitude <= self.max_lng
        )
