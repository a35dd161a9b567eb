from __future__ import annotations

import re

import eth_utils as eth
from pydantic import BaseModel, field_validator

from payouts.errors import BadConfigException
from payouts.models.types import EthereumAddress, HexStr

HEX_32 = re.compile(r"^0x[0-9a-fA-F]{64}$")


def _check_hex_32(value: str, name: str) -> str:
    value = value.strip()
    if not HEX_32.match(value):
        raise BadConfigException(f"{name} must be 0x followed by 64 hex characters")
    return value.lower()


class Claim(BaseModel):
    """
    One settlement window for a token.
    :param `orderHash`: hash of the order on the order book that pays out this window
    :param `csvLink`: stable URL of the published ledger
    :param `expectedMerkleRoot`: root published for the ledger, proofs are built against it
    :param `expectedContentHash`: keccak256 of the raw ledger bytes
    """

    orderHash: HexStr
    csvLink: str
    expectedMerkleRoot: HexStr
    expectedContentHash: HexStr

    @field_validator("orderHash")
    @classmethod
    def validate_order_hash(cls, h: str):
        return _check_hex_32(h, "orderHash")

    @field_validator("expectedMerkleRoot")
    @classmethod
    def validate_root(cls, r: str):
        return _check_hex_32(r, "expectedMerkleRoot")

    @field_validator("expectedContentHash")
    @classmethod
    def validate_content_hash(cls, h: str):
        return _check_hex_32(h, "expectedContentHash")

    @field_validator("csvLink")
    @classmethod
    def validate_link(cls, link: str):
        if not link.strip():
            raise BadConfigException("csvLink cannot be empty")
        return link.strip()


class SftToken(BaseModel):
    address: EthereumAddress
    claims: list[Claim] = []

    @field_validator("address")
    @classmethod
    def checksum_token(cls, addr: EthereumAddress):
        return eth.to_checksum_address(addr)


class EnergyField(BaseModel):
    name: str
    sftTokens: list[SftToken]

    @field_validator("sftTokens")
    @classmethod
    def validate_unique_tokens(cls, tokens: list[SftToken]):
        addresses = [t.address for t in tokens]
        if len(addresses) != len(set(addresses)):
            raise BadConfigException("Passed duplicate token addresses for a field")
        return tokens


class Config(BaseModel):
    """The static `EnergyField -> SftToken -> Claim` tree, loaded once at start up"""

    energyFields: list[EnergyField]

    @field_validator("energyFields")
    @classmethod
    def validate_unique_fields(cls, fields: list[EnergyField]):
        names = [f.name for f in fields]
        if len(names) != len(set(names)):
            raise BadConfigException("Passed duplicate energy field names")
        return fields

    def triples(self) -> list[tuple[EnergyField, SftToken, Claim]]:
        return [
            (field, token, claim)
            for field in self.energyFields
            for token in field.sftTokens
            for claim in token.claims
        ]
