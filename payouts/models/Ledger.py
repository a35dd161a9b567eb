import eth_utils as eth
from pydantic import BaseModel, ConfigDict, field_validator

from payouts.models.types import EthereumAddress

# ids and amounts are hashed as uint256 leaves
UINT256_LIMIT = 2**256


class LedgerRow(BaseModel):
    """
    One parsed row of a claim ledger.
    :param `id`: the ledger index of the row, unique within one ledger
    :param `address`: wallet entitled to the payout
    :param `amount`: entitlement in the smallest token unit
    """

    model_config = ConfigDict(frozen=True)

    id: int
    address: EthereumAddress
    amount: int

    @field_validator("address")
    @classmethod
    def checksum_address(cls, addr: str):
        return eth.to_checksum_address(addr)

    @field_validator("id", "amount")
    @classmethod
    def within_uint256(cls, value: int):
        if value < 0:
            raise ValueError("Ledger ids and amounts cannot be negative")
        if value >= UINT256_LIMIT:
            raise ValueError("Ledger ids and amounts must fit in a uint256")
        return value

    def belongs_to(self, wallet: EthereumAddress) -> bool:
        return self.address.lower() == wallet.lower()
