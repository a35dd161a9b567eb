from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, model_validator

from payouts.models.Amount import TokenAmount
from payouts.models.Order import OrderDescriptor, SignedContext
from payouts.models.types import EthereumAddress, HexStr

# (field name, token address, order hash)
TripleKey = tuple[str, EthereumAddress, HexStr]


class ClaimTotals(BaseModel):
    """
    :param `earned`: everything the ledgers entitle the wallet to
    :param `claimed`: rows already settled on chain
    :param `unclaimed`: rows that can still be claimed
    """

    earned: TokenAmount
    claimed: TokenAmount
    unclaimed: TokenAmount

    @model_validator(mode="after")
    def check_additive(self):
        if self.earned != self.claimed + self.unclaimed:
            raise ValueError("earned must equal claimed + unclaimed")
        return self

    @staticmethod
    def zero() -> ClaimTotals:
        return ClaimTotals.from_parts(TokenAmount.zero(), TokenAmount.zero())

    @staticmethod
    def from_parts(claimed: TokenAmount, unclaimed: TokenAmount) -> ClaimTotals:
        return ClaimTotals(
            earned=claimed + unclaimed, claimed=claimed, unclaimed=unclaimed
        )

    def __add__(self, other: ClaimTotals) -> ClaimTotals:
        return ClaimTotals.from_parts(
            self.claimed + other.claimed, self.unclaimed + other.unclaimed
        )


class Holding(BaseModel):
    """An unclaimed ledger row together with everything needed to settle it"""

    fieldName: str
    tokenAddress: EthereumAddress
    orderHash: HexStr
    ledgerRowId: int
    unclaimedAmount: TokenAmount
    proof: list[HexStr]
    order: OrderDescriptor
    signedContext: SignedContext
    orderBookAddress: EthereumAddress


class ClaimHistoryEntry(BaseModel):
    fieldName: str
    tokenAddress: EthereumAddress
    orderHash: HexStr
    ledgerRowId: int
    amount: TokenAmount
    transactionHash: HexStr
    timestamp: Optional[int] = None
    status: Literal["completed"] = "completed"


class ClaimOutcome(BaseModel):
    """Everything a single (field, token, claim) triple contributes to a wallet's result"""

    fieldName: str
    tokenAddress: EthereumAddress
    orderHash: HexStr
    holdings: list[Holding]
    history: list[ClaimHistoryEntry]
    totals: ClaimTotals

    @property
    def key(self) -> TripleKey:
        return (self.fieldName, self.tokenAddress.lower(), self.orderHash.lower())


class HoldingsGroup(BaseModel):
    fieldName: str
    holdings: list[Holding]
    totals: ClaimTotals


class ClaimsResult(BaseModel):
    holdings: list[HoldingsGroup]
    claimHistory: list[ClaimHistoryEntry]
    totals: ClaimTotals

    @staticmethod
    def empty() -> ClaimsResult:
        return ClaimsResult(holdings=[], claimHistory=[], totals=ClaimTotals.zero())

    def all_holdings(self) -> list[Holding]:
        return [h for group in self.holdings for h in group.holdings]

    def summary(self) -> dict:
        """Display values (decimal strings) for reporting"""
        return {
            "earned": str(self.totals.earned),
            "claimed": str(self.totals.claimed),
            "unclaimed": str(self.totals.unclaimed),
            "fields": {
                g.fieldName: {
                    "earned": str(g.totals.earned),
                    "claimed": str(g.totals.claimed),
                    "unclaimed": str(g.totals.unclaimed),
                    "holdings": len(g.holdings),
                }
                for g in self.holdings
            },
            "claims": len(self.claimHistory),
        }
