"""End-to-end flows against the sale, stake, prize and review programs.

Each flow reads whatever on-chain state it depends on, builds the
instructions, submits one transaction through a ``LedgerClient`` and returns
the signature. Reads go through ``require_initialized`` so a missing account
stops the flow before anything is signed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from spl.token._layouts import ACCOUNT_LAYOUT
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeAccountParams,
    create_associated_token_account,
    get_associated_token_address,
    initialize_account,
)

from account_state import check_account_state, require_initialized
from client_settings import ProgramAddresses
from ledger_client import LedgerClient
from pda import prize_config_pda, review_pda, stake_position_pda
from program_schemas import (
    IDO_CONFIG_LAYOUT,
    PRIZE_CONFIG_LAYOUT,
    REVIEW_STATE_LAYOUT,
    SALE_ACCOUNT_LAYOUT,
    STAKE_ACCOUNT_LAYOUTS,
)
from tx_assembler import assemble
from tx_builder import (
    build_buy_tokens_ix,
    build_prize_claim_ix,
    build_prize_config_ix,
    build_review_ix,
    build_stake_ix,
    build_start_sale_ix,
    build_withdraw_ix,
)

logger = logging.getLogger("tokensale")

TOKEN_ACCOUNT_SIZE = ACCOUNT_LAYOUT.sizeof()


@dataclass
class NewAccountResult:
    signature: str
    account: Pubkey


def to_ui_amount(raw: int, decimals: int = 9) -> float:
    return raw / 10**decimals


def _submit(ledger: LedgerClient, name: str, instructions: Sequence[Instruction], payer: Keypair, *extra: Keypair) -> str:
    tx = assemble(instructions, payer.pubkey())
    signature = ledger.submit(tx, [payer, *extra])
    logger.info("%s_submitted payer=%s ixs=%s sig=%s", name, payer.pubkey(), len(instructions), signature)
    return signature


def _configured(addresses: ProgramAddresses, name: str, value: Optional[Pubkey]) -> Pubkey:
    return addresses.require(name) if value is None else value


def _ensure_ata_ix(ledger: LedgerClient, payer: Pubkey, owner: Pubkey, mint: Pubkey) -> List[Instruction]:
    ata = get_associated_token_address(owner, mint)
    if ledger.get_account_bytes(ata) is not None:
        return []
    logger.info("create_ata owner=%s ata=%s", owner, ata)
    return [create_associated_token_account(payer, owner, mint)]


def _create_account_ix(ledger: LedgerClient, payer: Pubkey, account: Pubkey) -> Instruction:
    return create_account(
        CreateAccountParams(
            from_pubkey=payer,
            to_pubkey=account,
            lamports=ledger.get_rent_exempt_balance(TOKEN_ACCOUNT_SIZE),
            space=TOKEN_ACCOUNT_SIZE,
            owner=TOKEN_PROGRAM_ID,
        )
    )


def _new_token_account_ixs(
    ledger: LedgerClient, payer: Pubkey, account: Pubkey, mint: Pubkey, owner: Pubkey
) -> List[Instruction]:
    return [
        _create_account_ix(ledger, payer, account),
        initialize_account(
            InitializeAccountParams(program_id=TOKEN_PROGRAM_ID, account=account, mint=mint, owner=owner)
        ),
    ]


def create_reward_pool(ledger: LedgerClient, addresses: ProgramAddresses, owner: Keypair) -> NewAccountResult:
    """Create and initialize the token account the stake program pays rewards from."""
    pool = Keypair()
    ixs = _new_token_account_ixs(ledger, owner.pubkey(), pool.pubkey(), addresses.require("token_mint"), owner.pubkey())
    signature = _submit(ledger, "create_reward_pool", ixs, owner, pool)
    return NewAccountResult(signature, pool.pubkey())


def start_sale(
    ledger: LedgerClient,
    addresses: ProgramAddresses,
    seller: Keypair,
    total_sale_token: int,
    start_time: int,
    end_time: int,
) -> str:
    """Open the sale window. The sale account itself is set up by the program deployer."""
    if start_time > end_time:
        raise ValueError("Start time cannot be higher than End time")
    ix = build_start_sale_ix(addresses, seller.pubkey(), total_sale_token, start_time, end_time)
    return _submit(ledger, "start_sale", [ix], seller)


def fetch_sale(ledger: LedgerClient, token_sale_account: Pubkey) -> Dict[str, Any]:
    return require_initialized(ledger.get_account_bytes(token_sale_account), SALE_ACCOUNT_LAYOUT)


def fetch_ido_config(ledger: LedgerClient, ido_config: Pubkey) -> Dict[str, Any]:
    return require_initialized(ledger.get_account_bytes(ido_config), IDO_CONFIG_LAYOUT)


def buy_tokens(
    ledger: LedgerClient,
    addresses: ProgramAddresses,
    buyer: Keypair,
    token_sale_account: Optional[Pubkey],
    ido_config: Optional[Pubkey],
    sol_amount: int,
    expected_sale: Optional[Mapping[str, Any]] = None,
) -> str:
    """Buy tokens for ``sol_amount`` lamports; ``None`` accounts fall back to the configured ones."""
    token_sale_account = _configured(addresses, "sale_account", token_sale_account)
    ido_config = _configured(addresses, "ido_config", ido_config)
    raw = ledger.get_account_bytes(token_sale_account)
    if expected_sale:
        sale = check_account_state(SALE_ACCOUNT_LAYOUT, raw, expected_sale)
    else:
        sale = require_initialized(raw, SALE_ACCOUNT_LAYOUT)
    ixs = _ensure_ata_ix(ledger, buyer.pubkey(), buyer.pubkey(), addresses.require("token_mint"))
    ixs.append(
        build_buy_tokens_ix(
            addresses,
            buyer=buyer.pubkey(),
            seller=sale["seller_pubkey"],
            ido_token_account=sale["ido_token_account_pubkey"],
            token_sale_account=token_sale_account,
            ido_config=ido_config,
            sol_amount=sol_amount,
        )
    )
    return _submit(ledger, "buy_tokens", ixs, buyer)


def sale_balances(
    ledger: LedgerClient, addresses: ProgramAddresses, token_sale_account: Optional[Pubkey], buyer: Pubkey
) -> Dict[str, float]:
    """Token and SOL balances of both sides of a sale, in whole units."""
    token_sale_account = _configured(addresses, "sale_account", token_sale_account)
    sale = fetch_sale(ledger, token_sale_account)
    buyer_ata = get_associated_token_address(buyer, addresses.require("token_mint"))
    balances = {
        "ido_token_account": to_ui_amount(ledger.get_token_balance(sale["ido_token_account_pubkey"])),
        "buyer_token_account": to_ui_amount(ledger.get_token_balance(buyer_ata)),
        "seller_sol": to_ui_amount(ledger.get_balance(sale["seller_pubkey"])),
        "buyer_sol": to_ui_amount(ledger.get_balance(buyer)),
    }
    logger.info("sale_balances %s", " ".join(f"{k}={v}" for k, v in balances.items()))
    return balances


def stake_tokens(
    ledger: LedgerClient, addresses: ProgramAddresses, staker: Keypair, duration: int, stake_amount: int
) -> str:
    ixs: List[Instruction] = []
    if addresses.stake_version >= 2:
        ixs.extend(_ensure_ata_ix(ledger, staker.pubkey(), staker.pubkey(), addresses.require("token_mint")))
    ixs.append(build_stake_ix(addresses, staker.pubkey(), duration, stake_amount))
    return _submit(ledger, "stake", ixs, staker)


def withdraw_stake(ledger: LedgerClient, addresses: ProgramAddresses, staker: Keypair) -> str:
    fetch_stake(ledger, addresses, staker.pubkey())
    return _submit(ledger, "withdraw", [build_withdraw_ix(addresses, staker.pubkey())], staker)


def fetch_stake(ledger: LedgerClient, addresses: ProgramAddresses, staker: Pubkey) -> Dict[str, Any]:
    position = stake_position_pda(addresses.require("stake_program"), staker)
    layout = STAKE_ACCOUNT_LAYOUTS[addresses.stake_version]
    return require_initialized(ledger.get_account_bytes(position), layout)


def init_prize_config(
    ledger: LedgerClient,
    addresses: ProgramAddresses,
    initializer: Keypair,
    total_prize: int,
    prizes: Sequence[int],
    winners: Sequence[Pubkey],
    start_time: int,
    end_time: int,
) -> str:
    ix = build_prize_config_ix(addresses, initializer.pubkey(), total_prize, prizes, winners, start_time, end_time)
    return _submit(ledger, "init_prize_config", [ix], initializer)


def update_prize_config(
    ledger: LedgerClient,
    addresses: ProgramAddresses,
    initializer: Keypair,
    total_prize: int,
    prizes: Sequence[int],
    winners: Sequence[Pubkey],
    start_time: int,
    end_time: int,
    claimed: Tuple[bool, bool, bool] = (False, False, False),
) -> str:
    fetch_prize_config(ledger, addresses, initializer.pubkey())
    ix = build_prize_config_ix(
        addresses, initializer.pubkey(), total_prize, prizes, winners, start_time, end_time, claimed, update=True
    )
    return _submit(ledger, "update_prize_config", [ix], initializer)


def fetch_prize_config(ledger: LedgerClient, addresses: ProgramAddresses, owner: Pubkey) -> Dict[str, Any]:
    config = prize_config_pda(addresses.require("prize_program"), owner)
    return require_initialized(ledger.get_account_bytes(config), PRIZE_CONFIG_LAYOUT)


def claim_prize(ledger: LedgerClient, addresses: ProgramAddresses, owner: Pubkey, claimer: Keypair) -> str:
    config = fetch_prize_config(ledger, addresses, owner)
    winners = {config["first_account"], config["second_account"], config["third_account"]}
    if claimer.pubkey() not in winners:
        raise ValueError(f"{claimer.pubkey()} is not a winner")
    return _submit(ledger, "claim_prize", [build_prize_claim_ix(addresses, owner, claimer.pubkey())], claimer)


def save_review(
    ledger: LedgerClient,
    addresses: ProgramAddresses,
    reviewer: Keypair,
    title: str,
    rating: int,
    description: str,
    update: bool = False,
) -> str:
    ix = build_review_ix(addresses, reviewer.pubkey(), title, rating, description, update=update)
    return _submit(ledger, "update_review" if update else "init_review", [ix], reviewer)


def fetch_review(ledger: LedgerClient, addresses: ProgramAddresses, reviewer: Pubkey, title: str) -> Dict[str, Any]:
    review = review_pda(addresses.require("review_program"), reviewer, title)
    return require_initialized(ledger.get_account_bytes(review), REVIEW_STATE_LAYOUT)
