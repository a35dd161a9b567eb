"""
Signed contexts for claims.

The order book accepts `SignedContextV1 {signer, context, signature}` where the
signature is an EIP-191 personal signature over keccak256(abi.encodePacked(context)).
For a claim the context is `[ledgerRowId, amount, ...proof]`.
"""

from typing import Optional

import eth_utils as eth
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes

from payouts.models import EthereumAddress, HexStr, SignedContext


def context_hash(context: list[int]) -> bytes:
    # abi.encodePacked(uint256[]) pads every element to 32 bytes
    return eth.keccak(b"".join(v.to_bytes(32, "big") for v in context))


def claim_context(row_id: int, amount: int, proof: list[HexStr]) -> list[int]:
    return [row_id, amount, *(int(node, 16) for node in proof)]


class ContextSigner:
    """Signs claim contexts. Uses a fresh random key when no account is given."""

    def __init__(self, account: Optional[LocalAccount] = None):
        self.account = account if account is not None else Account.create()

    @property
    def address(self) -> EthereumAddress:
        return self.account.address

    def sign(self, context: list[int]) -> SignedContext:
        message = encode_defunct(primitive=context_hash(context))
        signed = self.account.sign_message(message)
        return SignedContext(
            signer=self.account.address,
            context=list(context),
            signature=signed.signature,
        )


def recover_signer(signed: SignedContext) -> EthereumAddress:
    message = encode_defunct(primitive=context_hash(signed.context))
    return Account.recover_message(message, signature=bytes(HexBytes(signed.signature)))
