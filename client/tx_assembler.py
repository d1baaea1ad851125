"""Ordering instructions into one atomic transaction.

Nothing here embeds a timestamp or nonce: the same instructions and fee payer
always produce the same transaction, and for a given blockhash the same
message bytes. Recency comes only from the blockhash the caller supplies at
signing time.
"""

import base64
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Sequence, Tuple, Union

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from program_errors import MissingSigner


def _as_hash(blockhash: Union[Hash, str]) -> Hash:
    if isinstance(blockhash, Hash):
        return blockhash
    return Hash.from_string(blockhash)


@dataclass(frozen=True)
class Transaction:
    instructions: Tuple[Instruction, ...]
    fee_payer: Pubkey

    def required_signers(self) -> FrozenSet[Pubkey]:
        return required_signers(self)

    def all_signers(self) -> FrozenSet[Pubkey]:
        """Signer accounts plus the fee payer, which always signs."""
        return self.required_signers() | {self.fee_payer}

    def message(self, blockhash: Union[Hash, str]) -> MessageV0:
        return MessageV0.try_compile(self.fee_payer, list(self.instructions), [], _as_hash(blockhash))

    def to_b64(self, blockhash: Union[Hash, str]) -> str:
        return base64.b64encode(bytes(self.message(blockhash))).decode()

    def sign(self, signers: Iterable[Keypair], blockhash: Union[Hash, str]) -> VersionedTransaction:
        needed = self.all_signers()
        chosen = {}
        for kp in signers:
            key = kp.pubkey()
            if key in needed and key not in chosen:
                chosen[key] = kp
        missing = needed - set(chosen)
        if missing:
            raise MissingSigner(missing)
        return VersionedTransaction(self.message(blockhash), list(chosen.values()))


def assemble(instructions: Sequence[Instruction], fee_payer: Pubkey) -> Transaction:
    if not instructions:
        raise ValueError("a transaction needs at least one instruction")
    return Transaction(tuple(instructions), fee_payer)


def required_signers(tx: Transaction) -> FrozenSet[Pubkey]:
    return frozenset(meta.pubkey for ix in tx.instructions for meta in ix.accounts if meta.is_signer)
