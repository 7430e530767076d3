import re
from datetime import UTC, datetime
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Final

KIB: Final[int] = 1024
MIB: Final[int] = KIB * 1024
GIB: Final[int] = MIB * 1024
TIB: Final[int] = GIB * 1024
PIB: Final[int] = TIB * 1024
EIB: Final[int] = PIB * 1024

KB: Final[int] = 1000
MB: Final[int] = KB * 1000
GB: Final[int] = MB * 1000
TB: Final[int] = GB * 1000
PB: Final[int] = TB * 1000
EB: Final[int] = PB * 1000

# Order matters: two-letter binary suffixes must be tried before the decimal ones.
_QUANTITY_SUFFIXES: dict[str, int] = {
    "Ki": KIB,
    "Mi": MIB,
    "Gi": GIB,
    "Ti": TIB,
    "Pi": PIB,
    "Ei": EIB,
    "k": KB,
    "M": MB,
    "G": GB,
    "T": TB,
    "P": PB,
    "E": EB,
}

_BINARY_SUFFIXES: tuple[tuple[str, int], ...] = (
    ("Ei", EIB),
    ("Pi", PIB),
    ("Ti", TIB),
    ("Gi", GIB),
    ("Mi", MIB),
    ("Ki", KIB),
)
_DECIMAL_SUFFIXES: tuple[tuple[str, int], ...] = (
    ("E", EB),
    ("P", PB),
    ("T", TB),
    ("G", GB),
    ("M", MB),
    ("k", KB),
)

_SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9-]")


def quantity_to_bytes(value: str | int | None) -> int | None:
    """Convert a Kubernetes-style quantity string (e.g. '10Gi', '512Mi') to bytes.

    Returns ``None`` for empty or malformed values, leaving the caller responsible for handling
    unexpected formats. Fractional byte counts are rounded up, as the API server does.
    """

    if value is None:
        return None
    if isinstance(value, int):
        return value

    quantity = value.strip()
    if not quantity:
        return None

    for suffix, factor in _QUANTITY_SUFFIXES.items():
        if quantity.endswith(suffix):
            number = quantity[: -len(suffix)]
            try:
                return _ceil(Decimal(number) * factor)
            except (InvalidOperation, ValueError):
                return None

    try:
        return _ceil(Decimal(quantity))
    except (InvalidOperation, ValueError):
        return None


def _ceil(value: Decimal) -> int:
    if not value.is_finite():
        raise ValueError(value)
    return int(value.to_integral_value(rounding=ROUND_CEILING))


def bytes_to_quantity(value: int) -> str:
    """Render a byte count with the largest suffix that represents it exactly."""
    if value == 0:
        return "0"
    for suffixes in (_BINARY_SUFFIXES, _DECIMAL_SUFFIXES):
        for suffix, factor in suffixes:
            if value % factor == 0:
                return f"{value // factor}{suffix}"
    return str(value)


def normalize_iso_timestamp(value: datetime | None = None) -> str:
    """Return a UTC RFC 3339 string with second precision, as Kubernetes stores timestamps."""
    if value is None:
        value = datetime.now(UTC)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def sanitize_name(name: str) -> str:
    """Turn an arbitrary plugin name into something usable as an object name."""
    sanitized = _SANITIZE_PATTERN.sub("-", name)
    if sanitized.endswith("-"):
        sanitized += "X"
    return sanitized


def object_key(namespace: str | None, name: str) -> str:
    """Cache and queue key of an object: ``namespace/name`` or just ``name`` when cluster scoped."""
    return f"{namespace}/{name}" if namespace else name
