import logging
from typing import Optional, Protocol, Sequence

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from client_settings import Settings
from tx_assembler import Transaction

logger = logging.getLogger("tokensale")


class Signer(Protocol):
    def pubkey(self) -> Pubkey:
        ...

    def sign_message(self, message: bytes) -> Signature:
        ...


class LedgerClient(Protocol):
    def get_account_bytes(self, address: Pubkey) -> Optional[bytes]:
        ...

    def submit(self, tx: Transaction, signers: Sequence[Signer]) -> str:
        ...

    def get_balance(self, address: Pubkey) -> int:
        ...

    def get_token_balance(self, token_account: Pubkey) -> int:
        ...

    def get_rent_exempt_balance(self, space: int) -> int:
        ...


class RpcLedgerClient:
    """LedgerClient over solana-py's JSON RPC client."""

    def __init__(self, client: Client, confirm: bool = True):
        self.client = client
        self.confirm = confirm

    @classmethod
    def from_url(cls, rpc_url: str, confirm: bool = True) -> "RpcLedgerClient":
        return cls(Client(rpc_url, commitment=Confirmed), confirm=confirm)

    @classmethod
    def from_settings(cls, settings: Settings, confirm: bool = True) -> "RpcLedgerClient":
        return cls.from_url(settings.solana_rpc, confirm=confirm)

    def get_account_bytes(self, address: Pubkey) -> Optional[bytes]:
        resp = self.client.get_account_info(address, commitment=Confirmed)
        if resp.value is None or resp.value.data is None:
            return None
        return bytes(resp.value.data)

    def get_balance(self, address: Pubkey) -> int:
        return self.client.get_balance(address, commitment=Confirmed).value

    def get_token_balance(self, token_account: Pubkey) -> int:
        return int(self.client.get_token_account_balance(token_account, commitment=Confirmed).value.amount)

    def get_rent_exempt_balance(self, space: int) -> int:
        return self.client.get_minimum_balance_for_rent_exemption(space, commitment=Confirmed).value

    def latest_blockhash(self) -> Hash:
        return self.client.get_latest_blockhash(commitment=Confirmed).value.blockhash

    def submit(self, tx: Transaction, signers: Sequence[Signer]) -> str:
        signed = tx.sign(signers, self.latest_blockhash())
        try:
            resp = self.client.send_raw_transaction(
                bytes(signed),
                opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed),
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("send_transaction_failed payer=%s error=%s", tx.fee_payer, exc, exc_info=True)
            raise RuntimeError(f"send_transaction failed: {exc}") from exc
        signature = resp.value
        if self.confirm:
            self.client.confirm_transaction(signature, commitment=Confirmed)
        logger.info("transaction_submitted payer=%s sig=%s", tx.fee_payer, signature)
        return str(signature)
