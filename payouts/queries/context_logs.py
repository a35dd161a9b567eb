"""
Settled claims, recovered from the order book's `Context` events.

A trade does not say which ledger row it paid out. The order book emits
`Context(address sender, uint256[][] context)` while evaluating a take order, and
column 6 of that context is the first signed context: `[rowId, amount, ...proof]`.
Logs are read from HyperSync over the block range spanned by the wallet's trades
and joined back to the trades by transaction hash.
"""

import logging
from typing import Any, Optional, Union

import eth_utils as eth
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes

from payouts.env import CONTEXT_EVENT_TOPIC, HYPERSYNC_URL
from payouts.errors import DecodeError, TooManyLoopsError
from payouts.models import EthereumAddress, SettledClaim, Trade
from payouts.network import DEFAULT_RETRY_POLICY, RetryPolicy, fetch_json_with_retry

logger = logging.getLogger(__name__)

SIGNED_CONTEXT_COLUMN = 6
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _as_int(value: Union[str, int]) -> int:
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    return int(value)


def get_block_range_from_trades(trades: list[Trade]) -> tuple[int, int]:
    """Lowest and highest block of the trades, (0, 0) when there are none"""
    if len(trades) == 0:
        return (0, 0)
    blocks = [t.blockNumber for t in trades]
    return (min(blocks), max(blocks))


def fetch_context_logs(
    orderbook: EthereumAddress,
    from_block: int,
    to_block: int,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    url: Optional[str] = None,
    max_loops: int = 1000,
) -> list[dict[str, Any]]:
    """
    Page through HyperSync for Context logs emitted by `orderbook` between
    `from_block` and `to_block` inclusive. Each log gets the `timestamp` of its block.
    """
    url = url or HYPERSYNC_URL
    logs: list[dict[str, Any]] = []
    current = from_block
    loops = 0

    while current <= to_block:
        if loops >= max_loops:
            raise TooManyLoopsError("fetch_context_logs")
        body = {
            "from_block": current,
            "to_block": to_block + 1,
            "logs": [{"address": [orderbook], "topics": [[CONTEXT_EVENT_TOPIC]]}],
            "field_selection": {
                "log": [
                    "block_number",
                    "log_index",
                    "transaction_index",
                    "transaction_hash",
                    "data",
                    "address",
                    "topic0",
                ],
                "block": ["number", "timestamp"],
            },
        }
        response = fetch_json_with_retry(url, "POST", policy, json=body)

        for entry in response.get("data") or []:
            timestamps = {
                _as_int(b["number"]): _as_int(b["timestamp"])
                for b in entry.get("blocks") or []
            }
            for log in entry.get("logs") or []:
                logs.append(
                    {**log, "timestamp": timestamps.get(_as_int(log["block_number"]))}
                )

        next_block = response.get("next_block")
        if not next_block or next_block <= current:
            break
        current = next_block
        loops += 1

    return logs


def decode_context_log(data: Union[str, bytes]) -> tuple[EthereumAddress, int, int]:
    """Returns (sender, ledger row id, amount) from Context event data"""
    try:
        sender, context = decode(["address", "uint256[][]"], bytes(HexBytes(data)))
    except (DecodingError, ValueError, TypeError) as e:
        raise DecodeError(f"Could not decode context log: {e}") from e

    if len(context) <= SIGNED_CONTEXT_COLUMN or len(context[SIGNED_CONTEXT_COLUMN]) < 2:
        raise DecodeError("Context log has no signed context column")

    signed = context[SIGNED_CONTEXT_COLUMN]
    return (eth.to_checksum_address(sender), signed[0], signed[1])


def get_settled_claims(
    trades: list[Trade],
    orderbook: EthereumAddress,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> list[SettledClaim]:
    """Ledger rows paid out by `trades`, one entry per decodable Context log"""
    if len(trades) == 0:
        return []

    lowest, highest = get_block_range_from_trades(trades)
    tx_hashes = {t.transactionHash.lower() for t in trades}

    settled: list[SettledClaim] = []
    for log in fetch_context_logs(orderbook, lowest, highest, policy):
        tx_hash = (log.get("transaction_hash") or "").lower()
        if tx_hash not in tx_hashes:
            continue
        try:
            sender, row_id, amount = decode_context_log(log.get("data") or "0x")
        except DecodeError as e:
            logger.debug("Skipping context log in %s: %s", tx_hash, e)
            continue
        if sender == ZERO_ADDRESS:
            continue
        settled.append(
            SettledClaim(
                ledgerRowId=row_id,
                sender=sender,
                amount=amount,
                transactionHash=tx_hash,
                blockNumber=_as_int(log["block_number"]),
                timestamp=log.get("timestamp"),
            )
        )
    return settled
