"""
Claim submission.

All unclaimed holdings that settle on the same order book are bundled into one
`takeOrders2` call. The call is simulated first and only sent if the simulation
succeeds. Nothing here is ever retried: a failed simulation or transaction is
raised to the caller as is.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any

from eth_account.signers.local import LocalAccount
from pydantic import BaseModel
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3RPCError

from payouts.errors import NoHoldingsError, SimulationFailure, TransactionReverted
from payouts.models import (
    EthereumAddress,
    HexStr,
    Holding,
    HoldingsGroup,
    TokenAmount,
    sum_amounts,
)

logger = logging.getLogger(__name__)

MAX_UINT256 = 2**256 - 1

_IO = """[
    {"name": "token", "type": "address"},
    {"name": "decimals", "type": "uint8"},
    {"name": "vaultId", "type": "uint256"}
]"""

# simplified ABI containing just the fragment we want to use
ORDERBOOK_TAKE_ORDERS_ABI = json.loads(
    f"""
    [{{
      "type": "function",
      "name": "takeOrders2",
      "stateMutability": "nonpayable",
      "inputs": [{{
        "name": "config",
        "type": "tuple",
        "internalType": "struct TakeOrdersConfigV3",
        "components": [
          {{"name": "minimumInput", "type": "uint256"}},
          {{"name": "maximumInput", "type": "uint256"}},
          {{"name": "maximumIORatio", "type": "uint256"}},
          {{
            "name": "orders",
            "type": "tuple[]",
            "internalType": "struct TakeOrderConfigV3[]",
            "components": [
              {{
                "name": "order",
                "type": "tuple",
                "internalType": "struct OrderV3",
                "components": [
                  {{"name": "owner", "type": "address"}},
                  {{
                    "name": "evaluable",
                    "type": "tuple",
                    "internalType": "struct EvaluableV3",
                    "components": [
                      {{"name": "interpreter", "type": "address"}},
                      {{"name": "store", "type": "address"}},
                      {{"name": "bytecode", "type": "bytes"}}
                    ]
                  }},
                  {{"name": "validInputs", "type": "tuple[]", "internalType": "struct IO[]", "components": {_IO}}},
                  {{"name": "validOutputs", "type": "tuple[]", "internalType": "struct IO[]", "components": {_IO}}},
                  {{"name": "nonce", "type": "bytes32"}}
                ]
              }},
              {{"name": "inputIOIndex", "type": "uint256"}},
              {{"name": "outputIOIndex", "type": "uint256"}},
              {{
                "name": "signedContext",
                "type": "tuple[]",
                "internalType": "struct SignedContextV1[]",
                "components": [
                  {{"name": "signer", "type": "address"}},
                  {{"name": "context", "type": "uint256[]"}},
                  {{"name": "signature", "type": "bytes"}}
                ]
              }}
            ]
          }},
          {{"name": "data", "type": "bytes"}}
        ]
      }}],
      "outputs": [
        {{"name": "totalTakerInput", "type": "uint256"}},
        {{"name": "totalTakerOutput", "type": "uint256"}}
      ]
    }}]
    """
)

# one lock per signing account, never evicted. Bounded by the number of
# accounts a process signs with (the CLI uses exactly one).
_submission_locks: dict[str, threading.Lock] = {}
_submission_locks_guard = threading.Lock()


def _wallet_lock(wallet: EthereumAddress) -> threading.Lock:
    with _submission_locks_guard:
        return _submission_locks.setdefault(wallet.lower(), threading.Lock())


def select_orderbook(
    groups: list[HoldingsGroup],
) -> tuple[EthereumAddress, list[Holding], list[Holding]]:
    """
    One call can only target one order book. Picks the order book of the first
    holding and returns (order book, holdings to claim now, holdings left over).
    """
    holdings = [h for g in groups for h in g.holdings]
    if len(holdings) == 0:
        raise NoHoldingsError("No holdings to claim")

    orderbook = holdings[0].orderBookAddress
    selected = [h for h in holdings if h.orderBookAddress.lower() == orderbook.lower()]
    skipped = [h for h in holdings if h.orderBookAddress.lower() != orderbook.lower()]
    if skipped:
        logger.warning(
            "Claiming %d holdings on %s, %d holdings on other order books left unclaimed",
            len(selected),
            orderbook,
            len(skipped),
        )
    return orderbook, selected, skipped


def build_take_orders_config(holdings: list[Holding]) -> dict[str, Any]:
    """
    TakeOrdersConfigV3 for a set of holdings. The bounds accept any fill: the
    signed contexts alone decide what is paid out.
    """
    if len(holdings) == 0:
        raise NoHoldingsError("No holdings to claim")
    return {
        "minimumInput": 0,
        "maximumInput": MAX_UINT256,
        "maximumIORatio": MAX_UINT256,
        "orders": [
            {
                "order": h.order,
                "inputIOIndex": 0,
                "outputIOIndex": 0,
                "signedContext": [h.signedContext],
            }
            for h in holdings
        ],
        "data": b"",
    }


def take_orders_args(config: dict[str, Any]) -> tuple:
    """Positional struct for web3"""
    return (
        config["minimumInput"],
        config["maximumInput"],
        config["maximumIORatio"],
        [
            (
                o["order"].as_abi(),
                o["inputIOIndex"],
                o["outputIOIndex"],
                [ctx.as_abi() for ctx in o["signedContext"]],
            )
            for o in config["orders"]
        ],
        config["data"],
    )


class ClaimSubmission(BaseModel):
    """A sent claim transaction and the holdings it did and did not settle"""

    txHash: HexStr
    orderbook: EthereumAddress
    submitted: list[Holding]
    skipped: list[Holding]

    @property
    def amount(self) -> TokenAmount:
        return sum_amounts(h.unclaimedAmount for h in self.submitted)

    @property
    def skipped_amount(self) -> TokenAmount:
        return sum_amounts(h.unclaimedAmount for h in self.skipped)


class ClaimSubmitter:
    def __init__(self, w3: Web3, account: LocalAccount, receipt_timeout: int = 120):
        self.w3 = w3
        self.account = account
        self.receipt_timeout = receipt_timeout

    def build_and_submit_claim(self, groups: list[HoldingsGroup]) -> ClaimSubmission:
        """
        Simulate then send a `takeOrders2` call for every holding on one order book.
        Holdings on other order books are returned as `skipped`. Submissions for
        the same wallet never overlap.
        """
        orderbook, holdings, skipped = select_orderbook(groups)
        args = take_orders_args(build_take_orders_config(holdings))
        sender = self.account.address

        with _wallet_lock(sender):
            contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(orderbook),
                abi=ORDERBOOK_TAKE_ORDERS_ABI,
            )
            take_orders = contract.functions.takeOrders2(args)

            try:
                take_orders.call({"from": sender})
            except (ContractLogicError, Web3RPCError) as e:
                raise SimulationFailure(f"takeOrders2 simulation failed: {e}") from e

            tx = take_orders.build_transaction(
                {"from": sender, "nonce": self.w3.eth.get_transaction_count(sender)}
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            tx_hex = "0x" + bytes(tx_hash).hex()
            logger.info("Sent claim transaction %s for %d holdings", tx_hex, len(holdings))

            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
            if receipt["status"] != 1:
                raise TransactionReverted(f"Claim transaction {tx_hex} reverted")

        return ClaimSubmission(
            txHash=tx_hex, orderbook=orderbook, submitted=holdings, skipped=skipped
        )
