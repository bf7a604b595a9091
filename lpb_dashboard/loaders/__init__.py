"""Data ingestion for field-survey exports: delimited text, field mapping, upload files."""

from .delimited import ParserService, detect_delimiter, parse_delimited
from .fields import HeaderIndex, clean_field, has_identity, normalize_mapping, normalize_row
from .fields import normalize_validation
from .upload_file import load_upload_rows
from .utils import clean_numeric, fix_scientific, is_scientific

__all__ = [
    "ParserService",
    "detect_delimiter",
    "parse_delimited",
    "HeaderIndex",
    "clean_field",
    "has_identity",
    "normalize_mapping",
    "normalize_row",
    "normalize_validation",
    "load_upload_rows",
    "clean_numeric",
    "fix_scientific",
    "is_scientific",
]
