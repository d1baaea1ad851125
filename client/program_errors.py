"""Errors raised by the protocol layer.

Everything here is structural: a bad record, a short buffer, a seed set with no
off-curve address, an account list that does not match the program's schema.
None of these are retried.
"""

from typing import Any, Optional


class ProtocolError(ValueError):
    pass


class FieldMissing(ProtocolError):
    def __init__(self, layout: str, field: str):
        super().__init__(f"{layout}: record is missing field '{field}'")
        self.layout = layout
        self.field = field


class FieldTypeMismatch(ProtocolError):
    def __init__(self, layout: str, field: str, kind: str, value: Any):
        super().__init__(f"{layout}.{field}: {value!r} is not a valid {kind}")
        self.layout = layout
        self.field = field
        self.kind = kind
        self.value = value


class BufferTooShort(ProtocolError):
    def __init__(self, layout: str, field: str, offset: int, length: int):
        super().__init__(
            f"{layout}: buffer of {length} bytes ends while reading '{field}' at offset {offset}"
        )
        self.layout = layout
        self.field = field
        self.offset = offset
        self.length = length


class InvalidSeeds(ProtocolError):
    pass


class NoValidBumpFound(ProtocolError):
    pass


class AccountNotInitialized(ProtocolError):
    def __init__(self, layout: Optional[str] = None):
        what = f"{layout} account" if layout else "account"
        super().__init__(f"{what} has not been initialized")
        self.layout = layout


class UnknownInstruction(ProtocolError):
    pass


class AccountSchemaMismatch(ProtocolError):
    def __init__(self, instruction: str, position: int, reason: str):
        super().__init__(f"{instruction}: account {position} {reason}")
        self.instruction = instruction
        self.position = position
        self.reason = reason


class MissingSigner(ProtocolError):
    def __init__(self, missing):
        keys = ", ".join(sorted(str(k) for k in missing))
        super().__init__(f"transaction requires signatures from: {keys}")
        self.missing = frozenset(missing)


class ValidationMismatch(ProtocolError):
    def __init__(self, field: str, expected: Any, actual: Any):
        super().__init__(f"[{field}] : expected value is {expected}, but current value is {actual}")
        self.field = field
        self.expected = expected
        self.actual = actual
