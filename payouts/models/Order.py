from __future__ import annotations

import eth_utils as eth
from hexbytes import HexBytes
from pydantic import BaseModel, field_validator

from payouts.models.types import EthereumAddress, HexStr


def _hex(value) -> HexStr:
    return HexBytes(value).to_0x_hex()


class IO(BaseModel):
    token: EthereumAddress
    decimals: int
    vaultId: int

    @field_validator("token")
    @classmethod
    def checksum_token(cls, addr: str):
        return eth.to_checksum_address(addr)

    def as_abi(self) -> tuple:
        return (self.token, self.decimals, self.vaultId)


class Evaluable(BaseModel):
    interpreter: EthereumAddress
    store: EthereumAddress
    bytecode: HexStr

    @field_validator("interpreter", "store")
    @classmethod
    def checksum(cls, addr: str):
        return eth.to_checksum_address(addr)

    @field_validator("bytecode", mode="before")
    @classmethod
    def to_hex(cls, b):
        return _hex(b)

    def as_abi(self) -> tuple:
        return (self.interpreter, self.store, HexBytes(self.bytecode))


class OrderDescriptor(BaseModel):
    """
    An OrderV3 struct as stored on the order book. Decoded from the raw `orderBytes`
    returned by the subgraph and passed back verbatim in a take-orders call.
    """

    owner: EthereumAddress
    evaluable: Evaluable
    validInputs: list[IO]
    validOutputs: list[IO]
    nonce: HexStr

    @field_validator("owner")
    @classmethod
    def checksum_owner(cls, addr: str):
        return eth.to_checksum_address(addr)

    @field_validator("nonce", mode="before")
    @classmethod
    def nonce_to_hex(cls, n):
        return _hex(n)

    @staticmethod
    def from_abi(decoded: tuple) -> OrderDescriptor:
        owner, (interpreter, store, bytecode), inputs, outputs, nonce = decoded
        return OrderDescriptor(
            owner=owner,
            evaluable=Evaluable(interpreter=interpreter, store=store, bytecode=bytecode),
            validInputs=[IO(token=t, decimals=d, vaultId=v) for t, d, v in inputs],
            validOutputs=[IO(token=t, decimals=d, vaultId=v) for t, d, v in outputs],
            nonce=nonce,
        )

    def as_abi(self) -> tuple:
        return (
            self.owner,
            self.evaluable.as_abi(),
            [io.as_abi() for io in self.validInputs],
            [io.as_abi() for io in self.validOutputs],
            HexBytes(self.nonce),
        )


class SignedContext(BaseModel):
    """
    SignedContextV1: `context` signed by `signer`. The order book checks the
    signature and exposes `context` to the order's expression, which in turn
    checks the merkle proof it contains.
    """

    signer: EthereumAddress
    context: list[int]
    signature: HexStr

    @field_validator("signature", mode="before")
    @classmethod
    def signature_to_hex(cls, s):
        return _hex(s)

    def as_abi(self) -> tuple:
        return (self.signer, self.context, HexBytes(self.signature))


class OrderDetails(BaseModel):
    """An order as returned by the order book subgraph, with its bytes decoded"""

    orderHash: HexStr
    orderbook: EthereumAddress
    order: OrderDescriptor
