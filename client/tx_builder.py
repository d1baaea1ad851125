import logging
from typing import Any, Dict, Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from client_settings import RENT_SYSVAR_ID, SYS_PROGRAM_ID, ProgramAddresses
from pda import prize_config_pda, review_pda, sale_authority_pda, stake_authority_pda, stake_position_pda
from program_errors import AccountSchemaMismatch
from program_schemas import PRIZE, REGISTRY, REVIEW, STAKE, TOKEN_SALE, InstructionSchema, SchemaRegistry

logger = logging.getLogger("tokensale")

PAYLOAD_BUFFER_SIZE = 1000

# Roles whose address is the same on every cluster.
WELL_KNOWN_ROLES = {
    "system_program": SYS_PROGRAM_ID,
    "token_program": TOKEN_PROGRAM_ID,
    "rent": RENT_SYSVAR_ID,
}


def check_accounts(schema: InstructionSchema, accounts: Sequence[AccountMeta]) -> None:
    if len(accounts) != len(schema.accounts):
        raise AccountSchemaMismatch(
            schema.label,
            min(len(accounts), len(schema.accounts)),
            f"list has {len(accounts)} entries, schema expects {len(schema.accounts)}",
        )
    for idx, (meta, role) in enumerate(zip(accounts, schema.accounts)):
        if meta.is_signer != role.is_signer or meta.is_writable != role.is_writable:
            got = ("S" if meta.is_signer else "-") + ("W" if meta.is_writable else "-")
            raise AccountSchemaMismatch(schema.label, idx, f"({role.name}) flags are {got}, expected {role.flags()}")
        known = WELL_KNOWN_ROLES.get(role.name)
        if known is not None and meta.pubkey != known:
            raise AccountSchemaMismatch(schema.label, idx, f"({role.name}) must be {known}, got {meta.pubkey}")


class InstructionBuilder:
    """Builds instructions for one deployed program of a given family."""

    def __init__(
        self,
        program_id: Pubkey,
        family: str,
        registry: SchemaRegistry = REGISTRY,
        version: Optional[int] = None,
    ):
        self.program_id = program_id
        self.family = family
        self.registry = registry
        self.version = version

    def schema(self, variant: int) -> InstructionSchema:
        return self.registry.get(self.family, variant, self.version)

    def encode_payload(self, variant: int, payload: Optional[Dict[str, Any]] = None) -> bytes:
        layout = self.schema(variant).layout
        record = {**(payload or {}), "variant": variant}
        buffer = bytearray(max(PAYLOAD_BUFFER_SIZE, layout.span(record)))
        span = layout.encode_into(record, buffer)
        return bytes(buffer[:span])

    def build(
        self,
        accounts: Sequence[AccountMeta],
        variant: int,
        payload: Optional[Dict[str, Any]] = None,
        enforce_schema: bool = True,
    ) -> Instruction:
        schema = self.schema(variant)
        if enforce_schema:
            check_accounts(schema, accounts)
        data = self.encode_payload(variant, payload)
        return Instruction(self.program_id, data, list(accounts))

    def build_named(self, variant: int, payload: Optional[Dict[str, Any]] = None, **addresses: Pubkey) -> Instruction:
        """Build with accounts given by role; order and flags come from the schema."""
        schema = self.schema(variant)
        missing = [role.name for role in schema.accounts if role.name not in addresses and role.name not in WELL_KNOWN_ROLES]
        if missing:
            raise ValueError(f"{schema.label} needs accounts: {', '.join(missing)}")
        unknown = sorted(set(addresses) - set(schema.role_names()))
        if unknown:
            raise ValueError(f"{schema.label} has no account roles: {', '.join(unknown)}")
        accounts = [
            AccountMeta(
                pubkey=addresses.get(role.name, WELL_KNOWN_ROLES.get(role.name)),
                is_signer=role.is_signer,
                is_writable=role.is_writable,
            )
            for role in schema.accounts
        ]
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s accounts:", schema.label)
            for idx, (role, meta) in enumerate(zip(schema.accounts, accounts)):
                logger.debug("%s: %s = %s", idx, role.name, meta.pubkey)
        return self.build(accounts, variant, payload)


def sale_builder(addresses: ProgramAddresses) -> InstructionBuilder:
    return InstructionBuilder(addresses.require("token_sale_program"), TOKEN_SALE)


def stake_builder(addresses: ProgramAddresses) -> InstructionBuilder:
    return InstructionBuilder(addresses.require("stake_program"), STAKE, version=addresses.stake_version)


def prize_builder(addresses: ProgramAddresses) -> InstructionBuilder:
    return InstructionBuilder(addresses.require("prize_program"), PRIZE)


def review_builder(addresses: ProgramAddresses) -> InstructionBuilder:
    return InstructionBuilder(addresses.require("review_program"), REVIEW)


def build_start_sale_ix(
    addresses: ProgramAddresses,
    seller: Pubkey,
    total_sale_token: int,
    start_time: int,
    end_time: int,
) -> Instruction:
    payload = {"total_sale_token": total_sale_token, "start_time": start_time, "end_time": end_time}
    return sale_builder(addresses).build_named(0, payload, seller=seller)


def build_buy_tokens_ix(
    addresses: ProgramAddresses,
    buyer: Pubkey,
    seller: Pubkey,
    ido_token_account: Pubkey,
    token_sale_account: Pubkey,
    ido_config: Pubkey,
    sol_amount: int,
) -> Instruction:
    program_id = addresses.require("token_sale_program")
    buyer_token_account = get_associated_token_address(buyer, addresses.require("token_mint"))
    return sale_builder(addresses).build_named(
        1,
        {"sol_amount": sol_amount},
        buyer=buyer,
        seller=seller,
        ido_token_account=ido_token_account,
        token_sale_account=token_sale_account,
        buyer_token_account=buyer_token_account,
        sale_authority=sale_authority_pda(program_id),
        ido_config=ido_config,
    )


def build_stake_ix(addresses: ProgramAddresses, staker: Pubkey, duration: int, stake_amount: int) -> Instruction:
    program_id = addresses.require("stake_program")
    builder = stake_builder(addresses)
    payload = {"duration": duration, "stake_amount": stake_amount}
    accounts: Dict[str, Pubkey] = {
        "staker": staker,
        "stake_position": stake_position_pda(program_id, staker),
    }
    if "reward_pool" in builder.schema(0).role_names():
        mint = addresses.require("token_mint")
        accounts.update(
            staker_token_account=get_associated_token_address(staker, mint),
            reward_pool=addresses.require("reward_pool"),
            stake_authority=stake_authority_pda(program_id),
            prize_pool_token_account=get_associated_token_address(addresses.require("prize_pool_owner"), mint),
        )
    return builder.build_named(0, payload, **accounts)


def build_withdraw_ix(addresses: ProgramAddresses, staker: Pubkey) -> Instruction:
    program_id = addresses.require("stake_program")
    return stake_builder(addresses).build_named(
        1,
        staker=staker,
        stake_position=stake_position_pda(program_id, staker),
    )


def _prize_payload(
    total_prize: int,
    prizes: Sequence[int],
    winners: Sequence[Pubkey],
    start_time: int,
    end_time: int,
    claimed: Sequence[bool] = (False, False, False),
) -> Dict[str, Any]:
    if len(prizes) != 3 or len(winners) != 3 or len(claimed) != 3:
        raise ValueError("prize config needs exactly three prizes, winners and claim flags")
    return {
        "total_prize": total_prize,
        "first_prize": prizes[0],
        "second_prize": prizes[1],
        "third_prize": prizes[2],
        "first_account": winners[0],
        "second_account": winners[1],
        "third_account": winners[2],
        "is_first_claimed": claimed[0],
        "is_second_claimed": claimed[1],
        "is_third_claimed": claimed[2],
        "start_time": start_time,
        "end_time": end_time,
    }


def build_prize_config_ix(
    addresses: ProgramAddresses,
    initializer: Pubkey,
    total_prize: int,
    prizes: Sequence[int],
    winners: Sequence[Pubkey],
    start_time: int,
    end_time: int,
    claimed: Sequence[bool] = (False, False, False),
    update: bool = False,
) -> Instruction:
    if start_time > end_time:
        raise ValueError("Start time cannot be higher than End time")
    program_id = addresses.require("prize_program")
    payload = _prize_payload(total_prize, prizes, winners, start_time, end_time, claimed)
    return prize_builder(addresses).build_named(
        1 if update else 0,
        payload,
        initializer=initializer,
        prize_config=prize_config_pda(program_id, initializer),
    )


def build_prize_claim_ix(addresses: ProgramAddresses, owner: Pubkey, claimer: Pubkey) -> Instruction:
    program_id = addresses.require("prize_program")
    return prize_builder(addresses).build_named(
        2,
        owner=owner,
        prize_config=prize_config_pda(program_id, owner),
        claimer=claimer,
    )


def build_review_ix(
    addresses: ProgramAddresses,
    reviewer: Pubkey,
    title: str,
    rating: int,
    description: str,
    update: bool = False,
) -> Instruction:
    program_id = addresses.require("review_program")
    return review_builder(addresses).build_named(
        1 if update else 0,
        {"title": title, "rating": rating, "description": description},
        reviewer=reviewer,
        review=review_pda(program_id, reviewer, title),
    )

