"""Decoding on-chain account state and checking it against expectations.

Numeric fields are compared as bytes: the expected value is encoded at the
field's width, little-endian, and compared with the bytes the account holds.
An expected value that does not fit the field (negative, too wide) therefore
reports a mismatch instead of raising.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from solders.pubkey import Pubkey

from layout_codec import FieldKind, Layout
from program_errors import AccountNotInitialized, FieldTypeMismatch, ValidationMismatch


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    field: Optional[str] = None
    expected: Any = None
    actual: Any = None

    def __bool__(self) -> bool:
        return self.ok

    def raise_for_mismatch(self) -> None:
        if not self.ok:
            raise ValidationMismatch(self.field, self.expected, self.actual)


OK = ValidationResult(True)


def decode_account(layout: Layout, raw: bytes) -> Dict[str, Any]:
    return layout.decode(raw)


def require_initialized(raw: Optional[bytes], layout: Layout) -> Dict[str, Any]:
    if raw is None or len(raw) == 0:
        raise AccountNotInitialized(layout.name)
    return decode_account(layout, raw)


def _expected_bytes(layout: Layout, name: str, expected: Any) -> Optional[bytes]:
    spec = layout.field(name)
    if spec.kind is FieldKind.PUBKEY and isinstance(expected, str):
        try:
            expected = Pubkey.from_string(expected)
        except Exception:  # noqa: BLE001
            return None
    try:
        return layout.field_bytes(name, expected)
    except FieldTypeMismatch:
        return None


def validate(actual: Mapping[str, Any], expected: Mapping[str, Any], layout: Layout) -> ValidationResult:
    """Compare ``actual`` with ``expected`` in layout order, stopping at the first difference."""
    for name in expected:
        layout.field(name)
    for name in layout.names:
        if name not in expected:
            continue
        want = expected[name]
        have = actual.get(name)
        have_bytes = layout.field_bytes(name, have) if have is not None else None
        if have_bytes is None or _expected_bytes(layout, name, want) != have_bytes:
            return ValidationResult(False, name, want, have)
    return OK


def check_account_state(layout: Layout, raw: Optional[bytes], expected: Mapping[str, Any]) -> Dict[str, Any]:
    record = require_initialized(raw, layout)
    validate(record, expected, layout).raise_for_mismatch()
    return record
