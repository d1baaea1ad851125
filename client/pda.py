"""Program derived addresses.

An address is ``sha256(seeds.. || bump || program_id || "ProgramDerivedAddress")``
for the highest bump in 255..0 whose digest is not a point on the ed25519
curve, so no private key can exist for it.
"""

import hashlib
from typing import Sequence, Tuple

from solders.pubkey import Pubkey

from program_errors import InvalidSeeds, NoValidBumpFound

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LEN = 32
MAX_SEEDS = 16

STAKE_SEED = b"stake"
TOKEN_SALE_SEED = b"token_sale"
PRIZE_CONFIG_SEED = b"config-prize"


def _is_on_curve(candidate: Pubkey) -> bool:
    return candidate.is_on_curve()


def _check_seeds(seeds: Sequence[bytes], limit: int = MAX_SEEDS) -> None:
    if len(seeds) > limit:
        raise InvalidSeeds(f"at most {limit} seeds are allowed, got {len(seeds)}")
    for idx, seed in enumerate(seeds):
        if not isinstance(seed, (bytes, bytearray)):
            raise InvalidSeeds(f"seed {idx} must be bytes, got {type(seed).__name__}")
        if len(seed) > MAX_SEED_LEN:
            raise InvalidSeeds(f"seed {idx} is {len(seed)} bytes, limit is {MAX_SEED_LEN}")


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Hash ``seeds`` (the bump already included) into an address."""
    _check_seeds(seeds)
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(bytes(seed))
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    candidate = Pubkey.from_bytes(hasher.digest())
    if _is_on_curve(candidate):
        raise InvalidSeeds("seeds produce an address on the ed25519 curve")
    return candidate


def derive(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    _check_seeds(seeds, MAX_SEEDS - 1)
    seeds = [bytes(s) for s in seeds]
    for bump in range(255, -1, -1):
        try:
            return create_program_address([*seeds, bytes([bump])], program_id), bump
        except InvalidSeeds:
            continue
    raise NoValidBumpFound(f"no bump in 0..255 yields an off-curve address for program {program_id}")


def derive_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    return derive(seeds, program_id)[0]


def stake_position_pda(program_id: Pubkey, staker: Pubkey) -> Pubkey:
    return derive_address([bytes(staker), STAKE_SEED], program_id)


def stake_authority_pda(program_id: Pubkey) -> Pubkey:
    return derive_address([STAKE_SEED], program_id)


def sale_authority_pda(program_id: Pubkey) -> Pubkey:
    return derive_address([TOKEN_SALE_SEED], program_id)


def prize_config_pda(program_id: Pubkey, owner: Pubkey) -> Pubkey:
    return derive_address([bytes(owner), PRIZE_CONFIG_SEED], program_id)


def review_pda(program_id: Pubkey, reviewer: Pubkey, title: str) -> Pubkey:
    try:
        seed = title.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InvalidSeeds(f"review title is not valid UTF-8: {exc}") from exc
    return derive_address([bytes(reviewer), seed], program_id)
