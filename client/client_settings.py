import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from solders.keypair import Keypair
from solders.pubkey import Pubkey

SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
RENT_SYSVAR_ID = Pubkey.from_string("SysvarRent111111111111111111111111111111111")
DEFAULT_RPC = "https://api.devnet.solana.com"
SIGNER_ROLES = ("seller", "buyer", "staker", "claim", "owner")


class Settings(BaseSettings):
    solana_rpc: str = DEFAULT_RPC
    token_sale_program_id: Optional[str] = None
    stake_program_id: Optional[str] = None
    stake_program_version: int = 2
    prize_program_id: Optional[str] = None
    review_program_id: Optional[str] = None
    token_pubkey: Optional[str] = None
    reward_pool_account: Optional[str] = None
    prize_pool_owner: Optional[str] = None
    token_sale_program_account_pubkey: Optional[str] = None
    ido_config_account_pubkey: Optional[str] = None
    seller_private_key: Optional[str] = None
    buyer_private_key: Optional[str] = None
    staker_private_key: Optional[str] = None
    claim_private_key: Optional[str] = None
    owner_private_key: Optional[str] = None
    keypair_path: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def signer(self, role: str) -> Keypair:
        """Keypair for a script role, from its base58 secret or else ``keypair_path``."""
        if role not in SIGNER_ROLES:
            raise ValueError(f"unknown signer role {role!r}, expected one of {', '.join(SIGNER_ROLES)}")
        secret = getattr(self, f"{role}_private_key")
        if secret:
            return keypair_from_secret(secret, f"{role.upper()}_PRIVATE_KEY")
        if self.keypair_path:
            return load_keypair(self.keypair_path)
        raise RuntimeError(f"{role.upper()}_PRIVATE_KEY or KEYPAIR_PATH must be set")


def parse_pubkey(value: Optional[str], name: str) -> Pubkey:
    if not value:
        raise RuntimeError(f"{name} must be set to a valid pubkey")
    try:
        return Pubkey.from_string(value)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"{name} is not a valid pubkey: {exc}") from exc


def optional_pubkey(value: Optional[str], name: str) -> Optional[Pubkey]:
    if not value:
        return None
    return parse_pubkey(value, name)


def load_keypair(path: str) -> Keypair:
    keypair_path = Path(path).expanduser()
    if not keypair_path.exists():
        raise FileNotFoundError(f"Missing keypair at {keypair_path}")
    raw = json.loads(keypair_path.read_text(encoding="utf-8"))
    if isinstance(raw, list):
        secret = bytes(raw)
    elif isinstance(raw, dict) and "secretKey" in raw:
        secret = bytes(raw["secretKey"])
    else:
        raise ValueError("Unsupported keypair file format")
    return Keypair.from_bytes(secret)


def keypair_from_secret(secret: Optional[str], name: str) -> Keypair:
    """Keypair from a base58 encoded 64 byte secret, as kept in ``.env``."""
    if not secret:
        raise RuntimeError(f"{name} must be set")
    try:
        return Keypair.from_base58_string(secret.strip())
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"{name} is not a valid base58 keypair: {exc}") from exc


@dataclass(frozen=True)
class ProgramAddresses:
    """Program ids and fixed accounts the builders need, injected rather than hardcoded."""

    token_sale_program: Optional[Pubkey] = None
    stake_program: Optional[Pubkey] = None
    prize_program: Optional[Pubkey] = None
    review_program: Optional[Pubkey] = None
    token_mint: Optional[Pubkey] = None
    reward_pool: Optional[Pubkey] = None
    prize_pool_owner: Optional[Pubkey] = None
    sale_account: Optional[Pubkey] = None
    ido_config: Optional[Pubkey] = None
    stake_version: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProgramAddresses":
        return cls(
            token_sale_program=optional_pubkey(settings.token_sale_program_id, "TOKEN_SALE_PROGRAM_ID"),
            stake_program=optional_pubkey(settings.stake_program_id, "STAKE_PROGRAM_ID"),
            prize_program=optional_pubkey(settings.prize_program_id, "PRIZE_PROGRAM_ID"),
            review_program=optional_pubkey(settings.review_program_id, "REVIEW_PROGRAM_ID"),
            token_mint=optional_pubkey(settings.token_pubkey, "TOKEN_PUBKEY"),
            reward_pool=optional_pubkey(settings.reward_pool_account, "REWARD_POOL_ACCOUNT"),
            prize_pool_owner=optional_pubkey(settings.prize_pool_owner, "PRIZE_POOL_OWNER"),
            sale_account=optional_pubkey(settings.token_sale_program_account_pubkey, "TOKEN_SALE_PROGRAM_ACCOUNT_PUBKEY"),
            ido_config=optional_pubkey(settings.ido_config_account_pubkey, "IDO_CONFIG_ACCOUNT_PUBKEY"),
            stake_version=settings.stake_program_version,
        )

    def require(self, name: str) -> Pubkey:
        value = getattr(self, name)
        if value is None:
            raise RuntimeError(f"{name} is not configured")
        return value
