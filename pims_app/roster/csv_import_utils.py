import csv
import datetime
import io
import logging
import secrets
from collections.abc import Mapping, Sequence
from typing import Any

from dateutil import parser
from django import forms
from django.conf import settings
from django.core.cache import cache
from django.core.files.uploadedfile import UploadedFile
from django.urls import reverse
from tablib import Dataset

from roster.exceptions import CSVParseError, InvalidFileType

logger = logging.getLogger(__name__)

AUTO_DETECT_CHOICE: tuple[str, str] = ("", "Auto-detect")

SKIPPED_CSV_CACHE_TIMEOUT = 60 * 60


def normalize_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def build_csv_header_choices(headers: Sequence[str]) -> list[tuple[str, str]]:
    return [AUTO_DETECT_CHOICE, *[(header, header) for header in headers]]


def set_form_column_field_choices(
    *,
    form: forms.Form,
    field_names: Sequence[str],
    headers: Sequence[str],
) -> None:
    choices = build_csv_header_choices(headers)
    for field_name in field_names:
        if field_name in form.fields:
            form.fields[field_name].choices = choices


def norm_csv_header(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch.isalnum())


def resolve_column_header(
    field_name: str,
    headers: Sequence[str],
    header_by_norm: Mapping[str, str],
    column_overrides: Mapping[str, str],
    *fallback_norms: str,
) -> str | None:
    override = normalize_str(column_overrides.get(field_name, ""))
    if override:
        if override in headers:
            return override

        resolved_override = header_by_norm.get(norm_csv_header(override))
        if resolved_override:
            return resolved_override

        raise CSVParseError(f"Column '{override}' not found in CSV headers")

    for fallback in fallback_norms:
        resolved = header_by_norm.get(norm_csv_header(fallback))
        if resolved:
            return resolved
    return None


def is_blank_row(row: Mapping[str, Any]) -> bool:
    return all(not normalize_str(value) for value in row.values())


def sanitize_csv_cell(value: str) -> str:
    """Prefix formula-starting characters to prevent spreadsheet formula injection."""
    if value and value[0] in ("=", "+", "-", "@", "\t", "\r"):
        return f"'{value}"
    return value


def parse_csv_bool(value: object) -> bool:
    return normalize_str(value).lower() in {"1", "y", "yes", "true", "t"}


def parse_csv_date(value: object) -> datetime.date | None:
    raw = normalize_str(value)
    if not raw:
        return None

    try:
        parsed = parser.parse(raw, dayfirst=False, yearfirst=False)
    except (parser.ParserError, TypeError, ValueError, OverflowError):
        return None

    return parsed.date()


def validate_csv_upload(uploaded: UploadedFile) -> None:
    name = str(getattr(uploaded, "name", "") or "")
    content_type = str(getattr(uploaded, "content_type", "") or "").split(";")[0].strip().lower()
    if not name.lower().endswith(".csv") and content_type != "text/csv":
        raise InvalidFileType("Invalid file type. Please upload a CSV file.")

    max_bytes = int(settings.PIMS_IMPORT_MAX_UPLOAD_BYTES)
    size = getattr(uploaded, "size", None)
    if isinstance(size, int) and size > max_bytes:
        raise InvalidFileType(f"CSV file is too large ({size} bytes; limit is {max_bytes}).")


def _decode_csv_bytes(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("utf-8", errors="replace")


def _sniff_delimiter(text: str) -> str:
    try:
        return csv.Sniffer().sniff(text[: 64 * 1024], delimiters=",;\t|").delimiter
    except csv.Error:
        return ","


def load_csv_dataset(content: bytes | str) -> Dataset:
    """Parse CSV content into a tablib Dataset whose headers are trimmed."""

    text = _decode_csv_bytes(content) if isinstance(content, bytes) else content.removeprefix("\ufeff")
    if not text.strip():
        raise CSVParseError("CSV file is empty or invalid.")

    try:
        rows = list(csv.reader(io.StringIO(text), delimiter=_sniff_delimiter(text)))
    except csv.Error as exc:
        raise CSVParseError(f"Failed to parse CSV file: {exc}") from exc

    headers = [normalize_str(header) for header in rows[0]] if rows else []
    if not any(headers):
        raise CSVParseError("CSV has no headers")

    dataset = Dataset(headers=headers)
    width = len(headers)
    for row in rows[1:]:
        # Pad short rows and drop trailing extras so every row matches the header.
        cells = [*row[:width], *([""] * (width - len(row)))]
        dataset.append(cells)

    logger.debug("Loaded CSV dataset: headers=%r rows=%d", headers, len(dataset))
    return dataset


def extract_csv_headers_from_uploaded_file(uploaded: UploadedFile) -> list[str]:
    uploaded.seek(0)
    sample = uploaded.read(64 * 1024)
    uploaded.seek(0)

    text = _decode_csv_bytes(sample)
    if not text.strip():
        return []

    reader = csv.reader(io.StringIO(text), delimiter=_sniff_delimiter(text))
    headers = next(reader, [])
    return [h.strip() for h in headers if str(h).strip()]


def attach_skipped_csv_to_result(
    result: Any,
    dataset: Dataset,
    cache_key_prefix: str,
    reverse_url_name: str,
) -> None:
    token = secrets.token_urlsafe(16)
    cache_key = f"{cache_key_prefix}:{token}"
    csv_content = dataset.export("csv")
    cache.set(cache_key, csv_content, timeout=SKIPPED_CSV_CACHE_TIMEOUT)

    download_url = reverse(reverse_url_name, kwargs={"token": token})
    # `Result` is a third-party import-export type with no extension hook;
    # dynamic attributes are used as a lightweight duck-typed contract.
    setattr(result, "skipped_csv_content", csv_content)
    setattr(result, "skipped_download_url", download_url)
