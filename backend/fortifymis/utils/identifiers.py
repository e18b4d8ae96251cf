from __future__ import annotations

import os
import secrets
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    UUIDv7 layout per draft:
    - 48-bit Unix timestamp in milliseconds
    - 4-bit version (0b0111)
    - 74-bit randomness
    """
    ts_ms = int(time.time() * 1000)
    ts_bytes = ts_ms.to_bytes(6, "big", signed=False)
    rand_bytes = os.urandom(10)
    raw = bytearray(ts_bytes + rand_bytes)
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def random_code(length: int = 6) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def sequence_reference(prefix: str, sequence: int, *, year: Optional[int] = None) -> str:
    """Yearly running references such as ``RFP-2026-000042``."""
    year = year or datetime.now(timezone.utc).year
    return f"{prefix}-{year}-{sequence:06d}"


def compliance_certificate_number(mill_code: str, issued_at: Optional[datetime] = None) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    return f"CERT-{mill_code.upper()}-{int(issued_at.timestamp() * 1000)}"


def training_certificate_number(issued_at: Optional[datetime] = None) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    return f"TC-{issued_at:%Y%m%d}-{random_code(6)}"


def trip_number(issued_at: Optional[datetime] = None) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    return f"TRIP-{issued_at:%Y%m%d}-{random_code(5)}"


def verification_code() -> str:
    return secrets.token_hex(8).upper()
