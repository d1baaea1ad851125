import unittest

from solders.keypair import Keypair

from layout_codec import FieldKind, Layout, decode, encode, encode_into, fixed_bytes, span_of, u8, u64
from program_errors import BufferTooShort, FieldMissing, FieldTypeMismatch
from program_schemas import (
    ACCOUNT_LAYOUTS,
    REGISTRY,
    REVIEW_STATE_LAYOUT,
    SALE_ACCOUNT_LAYOUT,
    STAKE,
    STAKE_ACCOUNT_LAYOUT,
    TOKEN_SALE,
)


def sale_record(**overrides):
    record = {
        "is_initialized": 1,
        "seller_pubkey": Keypair().pubkey(),
        "ido_token_account_pubkey": Keypair().pubkey(),
        "total_sale_token": 1000,
        "price": 10_000,
        "start_time": 1_700_000_000,
        "end_time": 1_701_000_000,
    }
    record.update(overrides)
    return record


def sample_record(layout, variant=None):
    record = {}
    for f in layout.fields:
        if f.kind is FieldKind.PUBKEY:
            record[f.name] = Keypair().pubkey()
        elif f.kind is FieldKind.FIXED_BYTES:
            record[f.name] = bytes(i % 256 for i in range(f.size))
        elif f.kind is FieldKind.U8:
            record[f.name] = 7
        elif f.kind is FieldKind.U64:
            record[f.name] = 2**40 + 3
        elif f.kind is FieldKind.BOOL:
            record[f.name] = True
        else:
            record[f.name] = "caf\u00e9 review"
    if variant is not None:
        record["variant"] = variant
    return record


class LayoutCodecTests(unittest.TestCase):
    def test_stake_instruction_round_trip(self) -> None:
        layout = REGISTRY.get(STAKE, 0).layout
        record = {"variant": 0, "duration": 7, "stake_amount": 1_000_000_000}
        data = encode(layout, record)
        self.assertEqual(len(data), 17)
        self.assertEqual(decode(layout, data), record)

    def test_buy_payload_bytes(self) -> None:
        layout = REGISTRY.get(TOKEN_SALE, 1).layout
        data = encode(layout, {"variant": 1, "sol_amount": 1_123_000_000})
        self.assertEqual(data, b"\x01" + (1_123_000_000).to_bytes(8, "little"))

    def test_sale_account_round_trip(self) -> None:
        record = sale_record(total_sale_token=2**64 - 1)
        data = encode(SALE_ACCOUNT_LAYOUT, record)
        self.assertEqual(len(data), 97)
        self.assertEqual(data[1:33], bytes(record["seller_pubkey"]))
        self.assertEqual(decode(SALE_ACCOUNT_LAYOUT, data), record)

    def test_stake_account_round_trip(self) -> None:
        record = {
            "is_initialized": 1,
            "duration": 7,
            "stake_amount": 2_000_000_000,
            "reward_stake_amount": 140_000_000,
            "start_time": 1_700_000_000,
            "end_time": 1_700_604_800,
            "is_claimed": True,
        }
        data = encode(STAKE_ACCOUNT_LAYOUT, record)
        self.assertEqual(data[-1:], b"\x01")
        self.assertEqual(decode(STAKE_ACCOUNT_LAYOUT, data), record)

    def test_strings_are_length_prefixed(self) -> None:
        record = {"is_initialized": True, "rating": 5, "description": "A great movie", "title": "config-prize"}
        data = encode(REVIEW_STATE_LAYOUT, record)
        expected = (
            b"\x01\x05"
            + (13).to_bytes(4, "little")
            + b"A great movie"
            + (12).to_bytes(4, "little")
            + b"config-prize"
        )
        self.assertEqual(data, expected)
        self.assertEqual(span_of(REVIEW_STATE_LAYOUT, record), len(expected))
        self.assertEqual(decode(REVIEW_STATE_LAYOUT, data), record)

    def test_span_of_counts_utf8_bytes(self) -> None:
        record = {"is_initialized": True, "rating": 1, "description": "café", "title": ""}
        self.assertEqual(span_of(REVIEW_STATE_LAYOUT, record), 2 + 4 + 5 + 4)

    def test_oversized_buffer_truncates_to_span(self) -> None:
        record = sale_record()
        buffer = bytearray(1000)
        written = encode_into(SALE_ACCOUNT_LAYOUT, record, buffer)
        span = span_of(SALE_ACCOUNT_LAYOUT, record)
        self.assertEqual(written, span)
        payload = bytes(buffer[:span])
        self.assertEqual(len(payload), span)
        self.assertEqual(decode(SALE_ACCOUNT_LAYOUT, payload), decode(SALE_ACCOUNT_LAYOUT, bytes(buffer)))
        self.assertEqual(decode(SALE_ACCOUNT_LAYOUT, payload), record)

    def test_encode_into_rejects_small_buffer(self) -> None:
        with self.assertRaises(ValueError):
            encode_into(SALE_ACCOUNT_LAYOUT, sale_record(), bytearray(10))

    def test_missing_field(self) -> None:
        record = sale_record()
        del record["price"]
        with self.assertRaises(FieldMissing) as ctx:
            encode(SALE_ACCOUNT_LAYOUT, record)
        self.assertEqual(ctx.exception.field, "price")

    def test_type_mismatches(self) -> None:
        cases = [
            ("price", -1),
            ("price", 2**64),
            ("price", True),
            ("price", "10"),
            ("is_initialized", 256),
            ("seller_pubkey", "not-a-key"),
            ("seller_pubkey", b"\x00" * 31),
        ]
        for field, value in cases:
            with self.subTest(field=field, value=value):
                with self.assertRaises(FieldTypeMismatch) as ctx:
                    encode(SALE_ACCOUNT_LAYOUT, sale_record(**{field: value}))
                self.assertEqual(ctx.exception.field, field)

    def test_bool_field_rejects_int(self) -> None:
        record = {"is_initialized": 1, "rating": 5, "description": "", "title": ""}
        with self.assertRaises(FieldTypeMismatch):
            encode(REVIEW_STATE_LAYOUT, record)

    def test_raw_pubkey_bytes_are_accepted(self) -> None:
        key = Keypair().pubkey()
        data = encode(SALE_ACCOUNT_LAYOUT, sale_record(seller_pubkey=bytes(key)))
        self.assertEqual(decode(SALE_ACCOUNT_LAYOUT, data)["seller_pubkey"], key)

    def test_short_buffer_names_field(self) -> None:
        data = encode(SALE_ACCOUNT_LAYOUT, sale_record())
        with self.assertRaises(BufferTooShort) as ctx:
            decode(SALE_ACCOUNT_LAYOUT, data[:40])
        self.assertEqual(ctx.exception.field, "ido_token_account_pubkey")
        self.assertEqual(ctx.exception.offset, 33)

    def test_short_buffer_is_not_zero_padded(self) -> None:
        data = encode(SALE_ACCOUNT_LAYOUT, sale_record())
        with self.assertRaises(BufferTooShort) as ctx:
            decode(SALE_ACCOUNT_LAYOUT, data[:-1])
        self.assertEqual(ctx.exception.field, "end_time")

    def test_empty_buffer(self) -> None:
        with self.assertRaises(BufferTooShort) as ctx:
            decode(SALE_ACCOUNT_LAYOUT, b"")
        self.assertEqual(ctx.exception.field, "is_initialized")

    def test_string_prefix_past_end(self) -> None:
        data = b"\x01\x05" + (50).to_bytes(4, "little") + b"short"
        with self.assertRaises(BufferTooShort) as ctx:
            decode(REVIEW_STATE_LAYOUT, data)
        self.assertEqual(ctx.exception.field, "description")

    def test_trailing_bytes_ignored(self) -> None:
        record = sale_record()
        data = encode(SALE_ACCOUNT_LAYOUT, record) + bytes(903)
        self.assertEqual(decode(SALE_ACCOUNT_LAYOUT, data), record)
        _, consumed = SALE_ACCOUNT_LAYOUT.decode_prefix(data)
        self.assertEqual(consumed, 97)

    def test_fixed_bytes_field(self) -> None:
        layout = Layout("seeded", [u8("variant"), fixed_bytes("seed_hash", 32), u64("amount")])
        record = {"variant": 3, "seed_hash": bytes(range(32)), "amount": 5}
        self.assertEqual(decode(layout, encode(layout, record)), record)
        with self.assertRaises(FieldTypeMismatch):
            encode(layout, {**record, "seed_hash": bytes(16)})

    def test_static_size(self) -> None:
        self.assertEqual(SALE_ACCOUNT_LAYOUT.size, 97)
        self.assertEqual(STAKE_ACCOUNT_LAYOUT.size, 1 + 8 * 5 + 1)
        self.assertIsNone(REVIEW_STATE_LAYOUT.size)

    def test_duplicate_field_names_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Layout("dup", [u8("a"), u64("a")])

    def test_every_layout_round_trips(self) -> None:
        cases = [(layout.name, layout, sample_record(layout)) for layout in ACCOUNT_LAYOUTS.values()]
        cases += [(s.label, s.layout, sample_record(s.layout, s.variant)) for s in REGISTRY]
        for name, layout, record in cases:
            with self.subTest(layout=name):
                data = encode(layout, record)
                self.assertEqual(decode(layout, data), record)
                self.assertEqual(span_of(layout, record), len(data))

    def test_unencodable_string(self) -> None:
        record = {"is_initialized": True, "rating": 5, "description": "\ud800", "title": "t"}
        with self.assertRaises(FieldTypeMismatch) as ctx:
            encode(REVIEW_STATE_LAYOUT, record)
        self.assertEqual(ctx.exception.field, "description")
        with self.assertRaises(FieldTypeMismatch):
            span_of(REVIEW_STATE_LAYOUT, record)

    def test_bool_byte_must_be_zero_or_one(self) -> None:
        record = sample_record(STAKE_ACCOUNT_LAYOUT)
        data = bytearray(encode(STAKE_ACCOUNT_LAYOUT, record))
        data[-1] = 2
        with self.assertRaises(FieldTypeMismatch) as ctx:
            decode(STAKE_ACCOUNT_LAYOUT, bytes(data))
        self.assertEqual(ctx.exception.field, "is_claimed")


if __name__ == "__main__":
    unittest.main()
