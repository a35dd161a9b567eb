from __future__ import annotations

from payouts.models import (
    EthereumAddress,
    HexStr,
    LedgerRow,
    OrderDescriptor,
    OrderDetails,
    SettledClaim,
    Trade,
)
from payouts.network import DEFAULT_RETRY_POLICY, RetryPolicy
from payouts.queries import (
    get_order_details,
    get_settled_claims,
    get_trades_for_claim,
    validate_order_hash,
)

ClaimedRow = tuple[LedgerRow, SettledClaim]


class TradeReconciler:
    """
    Reads settlement history for a wallet. Kept as an object so the aggregator
    can be handed a fake in tests.
    """

    def __init__(self, policy: RetryPolicy = DEFAULT_RETRY_POLICY):
        self.policy = policy

    def get_trades_for_claim(
        self, order_hash: HexStr, wallet: EthereumAddress
    ) -> list[Trade]:
        return get_trades_for_claim(order_hash, wallet, self.policy)

    def get_order(self, order_hash: HexStr) -> OrderDescriptor:
        return self.get_order_details(order_hash).order

    def get_order_details(self, order_hash: HexStr) -> OrderDetails:
        return get_order_details(order_hash, self.policy)

    def get_settled_claims(
        self, trades: list[Trade], orderbook: EthereumAddress
    ) -> list[SettledClaim]:
        return get_settled_claims(trades, orderbook, self.policy)


def partition_rows(
    rows: list[LedgerRow],
    wallet: EthereumAddress,
    order_hash: HexStr,
    trades: list[Trade],
    settled: list[SettledClaim],
) -> tuple[list[ClaimedRow], list[LedgerRow]]:
    """
    Split the wallet's ledger rows into claimed and unclaimed.

    A row is claimed when a settled claim for its id was emitted in the same
    transaction as one of the wallet's trades against `order_hash`. A row is
    either fully claimed or not at all. Every wallet row lands in exactly one
    of the two lists, in ledger order.
    """
    clean_hash = validate_order_hash(order_hash)
    owner = wallet.lower()

    wallet_tx = {
        t.transactionHash.lower()
        for t in trades
        if t.orderHash.lower() == clean_hash and t.sender.lower() == owner
    }
    settled_by_row: dict[int, SettledClaim] = {}
    for s in sorted(settled, key=lambda s: s.blockNumber or 0):
        if s.transactionHash.lower() in wallet_tx and s.sender.lower() == owner:
            # keep the earliest settlement if a row shows up twice
            settled_by_row.setdefault(s.ledgerRowId, s)

    claimed: list[ClaimedRow] = []
    unclaimed: list[LedgerRow] = []
    for row in rows:
        if not row.belongs_to(wallet):
            continue
        if row.id in settled_by_row:
            claimed.append((row, settled_by_row[row.id]))
        else:
            unclaimed.append(row)
    return claimed, unclaimed
