from __future__ import annotations

import math

BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_bytes(num_bytes: float) -> str:
    """Render a byte count with a 1024-based unit, e.g. ``1536 -> "1.5 KB"``.

    Counts of 1024 TB and above stay in TB.
    """
    if not num_bytes or num_bytes <= 0:
        return "0 Bytes"
    # floor(log1024(n)) without float error at exact powers of 1024
    exponent = 0
    while exponent < len(BYTE_UNITS) - 1 and num_bytes >= 1024 ** (exponent + 1):
        exponent += 1
    value = round(num_bytes / math.pow(1024, exponent), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {BYTE_UNITS[exponent]}"


def round_percent(value: float | None) -> int:
    """Round half-up to an integer percentage in [0, 100]."""
    if value is None:
        return 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(value) or math.isinf(value):
        return 0
    return min(max(int(math.floor(value + 0.5)), 0), 100)


def percent_of(part: float, total: float) -> int:
    if not total:
        return 0
    return round_percent(part / total * 100)
