"""
Per-wallet claims view.

Each (energy field, token, claim window) triple is processed on its own: verify
the ledger, rebuild and check the merkle root, read the wallet's settlements,
split its rows into claimed and unclaimed and build a proof plus signed context
for every unclaimed row. A triple that fails any check contributes nothing.

Triples are independent, so they are mapped (optionally on a thread pool) and the
outcomes are then reduced by `merge_outcomes`, which does not depend on the order
outcomes arrive in.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import eth_utils as eth
from pydantic import ValidationError

from payouts.errors import (
    DecodeError,
    GraphQLError,
    IntegrityError,
    InvalidOrderHash,
    LeafNotFound,
    NetworkError,
    OrderNotFound,
    TooManyLoopsError,
)
from payouts.ledger import LedgerLoader
from payouts.merkle import build_tree, proof, row_leaf, verify_root
from payouts.models import (
    Claim,
    ClaimHistoryEntry,
    ClaimOutcome,
    ClaimsResult,
    ClaimTotals,
    Config,
    EnergyField,
    EthereumAddress,
    Holding,
    HoldingsGroup,
    SftToken,
    TokenAmount,
    sum_amounts,
)
from payouts.reconcile import TradeReconciler, partition_rows
from payouts.signing import ContextSigner, claim_context

logger = logging.getLogger(__name__)

# failures that are contained to the triple being processed
TRIPLE_ERRORS = (
    IntegrityError,
    InvalidOrderHash,
    OrderNotFound,
    DecodeError,
    NetworkError,
    GraphQLError,
    TooManyLoopsError,
    ValidationError,
)


def merge_outcomes(outcomes: Iterable[Optional[ClaimOutcome]]) -> ClaimsResult:
    """
    Reduce triple outcomes into one result. Outcomes are keyed by triple, so
    merging the same outcome twice changes nothing, and sorted by key, so the
    result is the same whatever order they complete in.
    """
    unique: dict = {}
    for outcome in outcomes:
        if outcome is not None:
            unique[outcome.key] = outcome

    groups: dict[str, HoldingsGroup] = {}
    history: list[ClaimHistoryEntry] = []
    for key in sorted(unique):
        outcome = unique[key]
        group = groups.get(outcome.fieldName)
        if group is None:
            group = HoldingsGroup(
                fieldName=outcome.fieldName, holdings=[], totals=ClaimTotals.zero()
            )
            groups[outcome.fieldName] = group
        group.holdings.extend(outcome.holdings)
        group.totals = group.totals + outcome.totals
        history.extend(outcome.history)

    totals = ClaimTotals.zero()
    for group in groups.values():
        totals = totals + group.totals

    return ClaimsResult(
        holdings=list(groups.values()), claimHistory=history, totals=totals
    )


class ClaimsAggregator:
    def __init__(
        self,
        config: Config,
        loader: Optional[LedgerLoader] = None,
        reconciler: Optional[TradeReconciler] = None,
        signer: Optional[ContextSigner] = None,
        max_workers: int = 1,
    ):
        self.config = config
        self.loader = loader if loader is not None else LedgerLoader()
        self.reconciler = reconciler if reconciler is not None else TradeReconciler()
        self.signer = signer if signer is not None else ContextSigner()
        self.max_workers = max_workers

    def load_claims_for_wallet(self, wallet: Optional[EthereumAddress]) -> ClaimsResult:
        if not wallet:
            return ClaimsResult.empty()
        if not eth.is_hex_address(wallet):
            raise ValueError(f"Invalid wallet address: {wallet!r}")

        triples = self.config.triples()
        if self.max_workers > 1 and len(triples) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(
                    pool.map(lambda t: self.process_claim(*t, wallet), triples)
                )
        else:
            outcomes = [self.process_claim(*t, wallet) for t in triples]

        result = merge_outcomes(outcomes)
        logger.info(
            "Loaded claims for %s: %d/%d windows, earned %s, unclaimed %s",
            wallet,
            len([o for o in outcomes if o is not None]),
            len(triples),
            result.totals.earned,
            result.totals.unclaimed,
        )
        return result

    def process_claim(
        self,
        field: EnergyField,
        token: SftToken,
        claim: Claim,
        wallet: EthereumAddress,
    ) -> Optional[ClaimOutcome]:
        """Outcome for one triple, or None if any check fails"""
        try:
            return self._process_claim(field, token, claim, wallet)
        except TRIPLE_ERRORS as e:
            logger.warning(
                "Skipping claim %s for %s (%s): %s: %s",
                claim.orderHash,
                token.address,
                field.name,
                type(e).__name__,
                e,
            )
            return None

    def _process_claim(
        self,
        field: EnergyField,
        token: SftToken,
        claim: Claim,
        wallet: EthereumAddress,
    ) -> Optional[ClaimOutcome]:
        rows = self.loader.load_ledger(
            claim.csvLink, claim.expectedMerkleRoot, claim.expectedContentHash
        )
        if rows is None:
            return None

        # checked once per ledger, every proof below relies on it
        tree = build_tree(rows)
        verify_root(tree, claim.expectedMerkleRoot)

        trades = self.reconciler.get_trades_for_claim(claim.orderHash, wallet)
        details = self.reconciler.get_order_details(claim.orderHash)
        settled = self.reconciler.get_settled_claims(trades, details.orderbook)

        claimed, unclaimed = partition_rows(
            rows, wallet, claim.orderHash, trades, settled
        )

        holdings: list[Holding] = []
        for row in unclaimed:
            try:
                row_proof = proof(tree, row_leaf(row))
            except LeafNotFound:
                logger.debug("No leaf for row %d in %s", row.id, claim.csvLink)
                continue
            holdings.append(
                Holding(
                    fieldName=field.name,
                    tokenAddress=token.address,
                    orderHash=claim.orderHash,
                    ledgerRowId=row.id,
                    unclaimedAmount=TokenAmount(wei=row.amount),
                    proof=row_proof,
                    order=details.order,
                    signedContext=self.signer.sign(
                        claim_context(row.id, row.amount, row_proof)
                    ),
                    orderBookAddress=details.orderbook,
                )
            )

        history = [
            ClaimHistoryEntry(
                fieldName=field.name,
                tokenAddress=token.address,
                orderHash=claim.orderHash,
                ledgerRowId=row.id,
                amount=TokenAmount(wei=row.amount),
                transactionHash=settlement.transactionHash,
                timestamp=settlement.timestamp,
            )
            for row, settlement in claimed
        ]

        return ClaimOutcome(
            fieldName=field.name,
            tokenAddress=token.address,
            orderHash=claim.orderHash,
            holdings=holdings,
            history=history,
            totals=ClaimTotals.from_parts(
                sum_amounts(h.amount for h in history),
                sum_amounts(h.unclaimedAmount for h in holdings),
            ),
        )
