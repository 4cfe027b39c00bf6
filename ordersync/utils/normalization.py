"""Deterministic normalization — pure Python, no I/O.

Canonicalizes free-text business references and contact fields so that
equivalent values compare equal everywhere an order is keyed or stored:
  - "  CT-2024   0042 " → "CT-2024 0042"
  - None → ""

Design: the same function is used by the loader, the importer and the
write path. Any divergence between them breaks merge-key stability.
"""

import re
from typing import Any

_WHITESPACE_RUN = re.compile(r"\s+")

# Order fields that are normalized on load and on every write
REFERENCE_FIELDS = ("contract_ref", "company_name", "phone")
OPTIONAL_REFERENCE_FIELDS = (
    "external_ref",
    "landline_number",
    "serial_number",
)
FORM_TEXT_FIELDS = (
    "contract_ref",
    "company_name",
    "phone",
    "city",
    "offer",
    "landline_number",
    "serial_number",
    "verified_serial_number",
)


def normalize_reference(raw: Any) -> str:
    """Trim and collapse internal whitespace. Absent input becomes ''."""
    if raw is None:
        return ""
    return _WHITESPACE_RUN.sub(" ", str(raw)).strip()


def normalize_optional(raw: Any) -> str | None:
    """Like normalize_reference, but keeps an absent/empty value absent."""
    if not raw:
        return raw
    return normalize_reference(raw)


def clean_order_fields(data: dict) -> dict:
    """Return a copy of a raw order dict with reference fields normalized.

    Used on load only — the cleaned copy lives in memory and is never
    written back as a side effect of reading.
    """
    cleaned = dict(data)
    for field in REFERENCE_FIELDS:
        cleaned[field] = normalize_reference(cleaned.get(field))
    for field in OPTIONAL_REFERENCE_FIELDS:
        if field in cleaned:
            cleaned[field] = normalize_optional(cleaned[field])
    return cleaned
