"""Account layouts and the instruction schema registry.

Each on-chain program family gets a versioned table of instruction schemas:
the payload layout for a variant plus the positional account roles the program
reads with ``next_account_info``. Newer program versions register a new
schema under the same variant rather than a new builder.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from layout_codec import Layout, boolean, pubkey, string, u8, u64
from program_errors import UnknownInstruction

TOKEN_SALE = "token_sale"
STAKE = "stake"
PRIZE = "prize"
REVIEW = "review"

# Account state.

SALE_ACCOUNT_LAYOUT = Layout(
    "sale_account",
    [
        u8("is_initialized"),
        pubkey("seller_pubkey"),
        pubkey("ido_token_account_pubkey"),
        u64("total_sale_token"),
        u64("price"),
        u64("start_time"),
        u64("end_time"),
    ],
)

IDO_CONFIG_LAYOUT = Layout(
    "ido_config",
    [
        boolean("is_initialized"),
        u64("total_sale_token"),
        u64("current_sale_token"),
        u64("total_sale_sol"),
        u64("current_sale_sol"),
    ],
)

STAKE_ACCOUNT_V1_LAYOUT = Layout(
    "stake_account_v1",
    [
        u8("is_initialized"),
        u64("duration"),
        u64("stake_amount"),
        u64("start_time"),
        u64("end_time"),
        boolean("is_claimed"),
    ],
)

STAKE_ACCOUNT_LAYOUT = Layout(
    "stake_account",
    [
        u8("is_initialized"),
        u64("duration"),
        u64("stake_amount"),
        u64("reward_stake_amount"),
        u64("start_time"),
        u64("end_time"),
        boolean("is_claimed"),
    ],
)

_PRIZE_FIELDS = [
    u64("total_prize"),
    u64("first_prize"),
    u64("second_prize"),
    u64("third_prize"),
    pubkey("first_account"),
    pubkey("second_account"),
    pubkey("third_account"),
    boolean("is_first_claimed"),
    boolean("is_second_claimed"),
    boolean("is_third_claimed"),
    u64("start_time"),
    u64("end_time"),
]

PRIZE_CONFIG_LAYOUT = Layout("prize_config", [boolean("is_initialized"), *_PRIZE_FIELDS])

REVIEW_STATE_LAYOUT = Layout(
    "review_state",
    [
        boolean("is_initialized"),
        u8("rating"),
        string("description"),
        string("title"),
    ],
)

ACCOUNT_LAYOUTS: Dict[str, Layout] = {
    layout.name: layout
    for layout in (
        SALE_ACCOUNT_LAYOUT,
        IDO_CONFIG_LAYOUT,
        STAKE_ACCOUNT_V1_LAYOUT,
        STAKE_ACCOUNT_LAYOUT,
        PRIZE_CONFIG_LAYOUT,
        REVIEW_STATE_LAYOUT,
    )
}


@dataclass(frozen=True)
class AccountRole:
    name: str
    is_signer: bool = False
    is_writable: bool = False

    def flags(self) -> str:
        return ("S" if self.is_signer else "-") + ("W" if self.is_writable else "-")


def signer(name: str, writable: bool = False) -> AccountRole:
    return AccountRole(name, True, writable)


def writable(name: str) -> AccountRole:
    return AccountRole(name, False, True)


def readonly(name: str) -> AccountRole:
    return AccountRole(name, False, False)


@dataclass(frozen=True)
class InstructionSchema:
    family: str
    name: str
    variant: int
    layout: Layout
    accounts: Tuple[AccountRole, ...]
    version: int = 1

    @property
    def label(self) -> str:
        return f"{self.family}.{self.name} v{self.version}"

    def role_names(self) -> Tuple[str, ...]:
        return tuple(role.name for role in self.accounts)


def instruction_layout(name: str, *fields) -> Layout:
    return Layout(name, [u8("variant"), *fields])


class SchemaRegistry:
    def __init__(self, schemas: Iterable[InstructionSchema] = ()):
        self._schemas: Dict[Tuple[str, int, int], InstructionSchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: InstructionSchema) -> InstructionSchema:
        key = (schema.family, schema.variant, schema.version)
        if key in self._schemas:
            raise ValueError(f"{schema.label} is already registered")
        if schema.layout.fields[0].name != "variant":
            raise ValueError(f"{schema.label}: instruction layouts must start with 'variant'")
        self._schemas[key] = schema
        return schema

    def versions(self, family: str) -> Tuple[int, ...]:
        return tuple(sorted({v for f, _, v in self._schemas if f == family}))

    def get(self, family: str, variant: int, version: Optional[int] = None) -> InstructionSchema:
        if version is None:
            candidates = [v for f, var, v in self._schemas if f == family and var == variant]
            if not candidates:
                raise UnknownInstruction(f"no schema registered for {family} variant {variant}")
            version = max(candidates)
        try:
            return self._schemas[(family, variant, version)]
        except KeyError:
            raise UnknownInstruction(f"no schema registered for {family} variant {variant} v{version}") from None

    def by_name(self, family: str, name: str, version: Optional[int] = None) -> InstructionSchema:
        matches = [
            s for s in self._schemas.values()
            if s.family == family and s.name == name and (version is None or s.version == version)
        ]
        if not matches:
            raise UnknownInstruction(f"no schema named {name} for {family}")
        return max(matches, key=lambda s: s.version)

    def __iter__(self):
        return iter(sorted(self._schemas.values(), key=lambda s: (s.family, s.version, s.variant)))


_STAKE_LEGACY_ACCOUNTS = (
    signer("staker"),
    writable("stake_position"),
    readonly("system_program"),
)

_STAKE_PAYLOAD = (u64("duration"), u64("stake_amount"))

_PRIZE_CONFIG_ACCOUNTS = (
    signer("initializer"),
    writable("prize_config"),
    readonly("system_program"),
)

_REVIEW_ACCOUNTS = (
    signer("reviewer"),
    writable("review"),
    readonly("system_program"),
)

_REVIEW_PAYLOAD = (string("title"), u8("rating"), string("description"))

REGISTRY = SchemaRegistry(
    [
        InstructionSchema(
            TOKEN_SALE,
            "start_sale",
            0,
            instruction_layout("start_sale", u64("total_sale_token"), u64("start_time"), u64("end_time")),
            (signer("seller"), readonly("rent"), readonly("token_program")),
        ),
        InstructionSchema(
            TOKEN_SALE,
            "buy_tokens",
            1,
            instruction_layout("buy_tokens", u64("sol_amount")),
            (
                signer("buyer", writable=True),
                writable("seller"),
                writable("ido_token_account"),
                readonly("token_sale_account"),
                readonly("system_program"),
                writable("buyer_token_account"),
                readonly("token_program"),
                readonly("sale_authority"),
                writable("ido_config"),
            ),
        ),
        InstructionSchema(STAKE, "stake", 0, instruction_layout("stake", *_STAKE_PAYLOAD), _STAKE_LEGACY_ACCOUNTS),
        InstructionSchema(STAKE, "withdraw", 1, instruction_layout("withdraw"), _STAKE_LEGACY_ACCOUNTS),
        InstructionSchema(
            STAKE,
            "stake",
            0,
            instruction_layout("stake", *_STAKE_PAYLOAD),
            (
                *_STAKE_LEGACY_ACCOUNTS,
                writable("staker_token_account"),
                writable("reward_pool"),
                readonly("token_program"),
                writable("stake_authority"),
                writable("prize_pool_token_account"),
            ),
            version=2,
        ),
        InstructionSchema(STAKE, "withdraw", 1, instruction_layout("withdraw"), _STAKE_LEGACY_ACCOUNTS, version=2),
        InstructionSchema(PRIZE, "init_config", 0, instruction_layout("init_config", *_PRIZE_FIELDS), _PRIZE_CONFIG_ACCOUNTS),
        InstructionSchema(PRIZE, "update_config", 1, instruction_layout("update_config", *_PRIZE_FIELDS), _PRIZE_CONFIG_ACCOUNTS),
        InstructionSchema(
            PRIZE,
            "claim",
            2,
            instruction_layout("claim"),
            (
                readonly("owner"),
                writable("prize_config"),
                signer("claimer", writable=True),
                readonly("system_program"),
            ),
        ),
        InstructionSchema(REVIEW, "init_review", 0, instruction_layout("init_review", *_REVIEW_PAYLOAD), _REVIEW_ACCOUNTS),
        InstructionSchema(REVIEW, "update_review", 1, instruction_layout("update_review", *_REVIEW_PAYLOAD), _REVIEW_ACCOUNTS),
    ]
)

# Account layout each stake program version writes.
STAKE_ACCOUNT_LAYOUTS = {1: STAKE_ACCOUNT_V1_LAYOUT, 2: STAKE_ACCOUNT_LAYOUT}
