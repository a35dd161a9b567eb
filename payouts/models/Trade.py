from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel

from payouts.models.types import EthereumAddress, HexStr


class Trade(BaseModel):
    """A settlement (take order) event against an order, as indexed by the order book subgraph"""

    orderHash: HexStr
    orderBytes: HexStr
    sender: EthereumAddress
    orderbook: EthereumAddress
    transactionHash: HexStr
    blockNumber: int
    timestamp: int

    @staticmethod
    def from_graphql(trade: dict[str, Any]) -> Trade:
        transaction = trade["tradeEvent"]["transaction"]
        return Trade(
            orderHash=trade["order"]["orderHash"].lower(),
            orderBytes=trade["order"]["orderBytes"],
            sender=trade["tradeEvent"]["sender"].lower(),
            orderbook=trade["orderbook"]["id"].lower(),
            transactionHash=transaction["id"].lower(),
            blockNumber=int(transaction["blockNumber"]),
            timestamp=int(transaction["timestamp"]),
        )


class SettledClaim(BaseModel):
    """
    Decoded `Context` event emitted while a trade was settled. The signed context
    column holds the ledger row id and amount that the trade paid out.
    """

    ledgerRowId: int
    sender: EthereumAddress
    amount: int
    transactionHash: HexStr
    blockNumber: Optional[int] = None
    timestamp: Optional[int] = None
