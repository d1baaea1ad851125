"""Fixed-layout binary records for account state and instruction payloads.

A ``Layout`` is an ordered tuple of ``FieldSpec``. Field order and widths are the
wire contract with the on-chain program: u8 and u64 little-endian integers, a
one byte bool (0 or 1), raw fixed-size byte strings, 32 byte public keys and borsh
strings (u32 little-endian length followed by UTF-8).

Encoding and decoding go field by field so that errors name the field that
failed. Decoding never pads a short buffer, and ignores bytes after the last
field since accounts are usually allocated larger than the record they hold.
"""

from dataclasses import dataclass
from enum import Enum
import io
from typing import Any, Dict, Iterable, Optional, Tuple

import construct
from borsh_construct import Bool, String, U8, U64
from solders.pubkey import Pubkey

from program_errors import BufferTooShort, FieldMissing, FieldTypeMismatch

U8_MAX = 2**8 - 1
U64_MAX = 2**64 - 1
PUBKEY_LEN = 32
STRING_PREFIX_LEN = 4


class _PubkeyAdapter(construct.Adapter):
    def _decode(self, obj, context, path):
        return Pubkey.from_bytes(obj)

    def _encode(self, obj, context, path):
        return bytes(obj)


PubkeyField = _PubkeyAdapter(construct.Bytes(PUBKEY_LEN))


class FieldKind(Enum):
    U8 = "u8"
    U64 = "u64"
    BOOL = "bool"
    FIXED_BYTES = "bytes"
    PUBKEY = "pubkey"
    STRING = "string"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind
    size: int = 0

    @property
    def width(self) -> Optional[int]:
        """Static byte width, or None when it depends on the value."""
        if self.kind is FieldKind.U8 or self.kind is FieldKind.BOOL:
            return 1
        if self.kind is FieldKind.U64:
            return 8
        if self.kind is FieldKind.PUBKEY:
            return PUBKEY_LEN
        if self.kind is FieldKind.FIXED_BYTES:
            return self.size
        return None

    @property
    def con(self) -> construct.Construct:
        if self.kind is FieldKind.U8:
            return U8
        if self.kind is FieldKind.U64:
            return U64
        if self.kind is FieldKind.BOOL:
            return Bool
        if self.kind is FieldKind.PUBKEY:
            return PubkeyField
        if self.kind is FieldKind.FIXED_BYTES:
            return construct.Bytes(self.size)
        return String

    def describe(self) -> str:
        if self.kind is FieldKind.FIXED_BYTES:
            return f"bytes[{self.size}]"
        return self.kind.value


def u8(name: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.U8)


def u64(name: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.U64)


def boolean(name: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.BOOL)


def fixed_bytes(name: str, size: int) -> FieldSpec:
    if size <= 0:
        raise ValueError("fixed byte fields need a positive size")
    return FieldSpec(name, FieldKind.FIXED_BYTES, size)


def pubkey(name: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.PUBKEY, PUBKEY_LEN)


def string(name: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.STRING)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_utf8(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def check_value(layout_name: str, field: FieldSpec, value: Any) -> Any:
    """Return ``value`` in the form the field's construct builds from."""
    kind = field.kind
    if kind is FieldKind.U8:
        if _is_int(value) and 0 <= value <= U8_MAX:
            return value
    elif kind is FieldKind.U64:
        if _is_int(value) and 0 <= value <= U64_MAX:
            return value
    elif kind is FieldKind.BOOL:
        if isinstance(value, bool):
            return value
    elif kind is FieldKind.PUBKEY:
        if isinstance(value, Pubkey):
            return value
        if isinstance(value, (bytes, bytearray)) and len(value) == PUBKEY_LEN:
            return Pubkey.from_bytes(bytes(value))
    elif kind is FieldKind.FIXED_BYTES:
        if isinstance(value, (bytes, bytearray)) and len(value) == field.size:
            return bytes(value)
    elif kind is FieldKind.STRING:
        if isinstance(value, str) and _is_utf8(value):
            return value
    raise FieldTypeMismatch(layout_name, field.name, field.describe(), value)


class Layout:
    """Named, ordered and immutable sequence of fields."""

    def __init__(self, name: str, fields: Iterable[FieldSpec]):
        self.name = name
        self.fields: Tuple[FieldSpec, ...] = tuple(fields)
        names = [f.name for f in self.fields]
        if len(set(names)) != len(names):
            raise ValueError(f"{name}: duplicate field names in layout")
        self._by_name = {f.name: f for f in self.fields}

    def __repr__(self) -> str:
        return f"Layout({self.name!r}, {[f.name for f in self.fields]!r})"

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def field(self, name: str) -> FieldSpec:
        try:
            return self._by_name[name]
        except KeyError:
            raise FieldMissing(self.name, name) from None

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def size(self) -> Optional[int]:
        total = 0
        for f in self.fields:
            if f.width is None:
                return None
            total += f.width
        return total

    def _values(self, record: Dict[str, Any]):
        for f in self.fields:
            if f.name not in record:
                raise FieldMissing(self.name, f.name)
            yield f, check_value(self.name, f, record[f.name])

    def encode(self, record: Dict[str, Any]) -> bytes:
        return b"".join(f.con.build(value) for f, value in self._values(record))

    def encode_into(self, record: Dict[str, Any], buffer: bytearray, offset: int = 0) -> int:
        data = self.encode(record)
        if offset + len(data) > len(buffer):
            raise ValueError(f"{self.name}: buffer too small for {len(data)} byte record")
        buffer[offset:offset + len(data)] = data
        return len(data)

    def span(self, record: Dict[str, Any]) -> int:
        total = 0
        for f, value in self._values(record):
            if f.kind is FieldKind.STRING:
                total += STRING_PREFIX_LEN + len(value.encode("utf-8"))
            else:
                total += f.width
        return total

    def decode(self, data: bytes) -> Dict[str, Any]:
        record, _ = self.decode_prefix(data)
        return record

    def decode_prefix(self, data: bytes) -> Tuple[Dict[str, Any], int]:
        """Decode the record at the start of ``data`` and return it with its span."""
        data = bytes(data)
        stream = io.BytesIO(data)
        record: Dict[str, Any] = {}
        for f in self.fields:
            offset = stream.tell()
            try:
                record[f.name] = f.con.parse_stream(stream)
            except construct.StreamError:
                raise BufferTooShort(self.name, f.name, offset, len(data)) from None
            except UnicodeDecodeError as exc:
                raise FieldTypeMismatch(self.name, f.name, f.describe(), data[offset:stream.tell()]) from exc
            if f.kind is FieldKind.BOOL:
                if data[offset] > 1:
                    raise FieldTypeMismatch(self.name, f.name, f.describe(), data[offset:offset + 1])
                record[f.name] = bool(record[f.name])
        return record, stream.tell()

    def field_bytes(self, name: str, value: Any) -> bytes:
        """Encoding of a single field value, as it sits in the record."""
        f = self.field(name)
        return f.con.build(check_value(self.name, f, value))


def encode(layout: Layout, record: Dict[str, Any]) -> bytes:
    return layout.encode(record)


def encode_into(layout: Layout, record: Dict[str, Any], buffer: bytearray, offset: int = 0) -> int:
    return layout.encode_into(record, buffer, offset)


def decode(layout: Layout, data: bytes) -> Dict[str, Any]:
    return layout.decode(data)


def span_of(layout: Layout, record: Dict[str, Any]) -> int:
    return layout.span(record)
