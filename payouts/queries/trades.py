import logging
import re

import eth_utils as eth

from payouts.env import SUBGRAPHS
from payouts.errors import InvalidOrderHash, OrderNotFound
from payouts.models import EthereumAddress, HexStr, OrderDescriptor, OrderDetails, Trade
from payouts.network import DEFAULT_RETRY_POLICY, RetryPolicy
from payouts.orders import decode_order
from payouts.queries.common import graphql_iterate_query, graphql_with_retry

logger = logging.getLogger(__name__)

ORDER_HASH = re.compile(r"^0x[0-9a-f]{64}$")


def validate_order_hash(order_hash: str) -> HexStr:
    """
    Clean an order hash and check it is 0x + 64 hex chars.
    Raised before any query is built so nothing malformed reaches the network.
    """
    clean = order_hash.strip().lower() if isinstance(order_hash, str) else ""
    if not ORDER_HASH.match(clean):
        raise InvalidOrderHash(f"Invalid orderHash format: {order_hash!r}")
    return clean


def _validate_wallet(wallet: EthereumAddress) -> EthereumAddress:
    if not eth.is_hex_address(wallet):
        raise ValueError(f"Invalid wallet address: {wallet!r}")
    return wallet.lower()


def get_trades_for_claim(
    order_hash: HexStr,
    wallet: EthereumAddress,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> list[Trade]:
    """
    Every trade against `order_hash` taken by `wallet`.
    The subgraph filter is repeated client side: exact hash, case-insensitive sender.
    """
    clean_hash = validate_order_hash(order_hash)
    sender = _validate_wallet(wallet)

    query = """
      query ($orderHash: String!, $sender: String!, $skip: Int) {
        trades(
          first: 1000
          skip: $skip
          where: {
            and: [
              { order_: { orderHash: $orderHash } },
              { tradeEvent_: { sender: $sender } }
            ]
          }
        ) {
          order { orderBytes orderHash }
          orderbook { id }
          tradeEvent {
            transaction { id blockNumber timestamp }
            sender
          }
        }
      }
    """
    raw_trades = graphql_iterate_query(
        SUBGRAPHS.ORDERBOOK,
        ["trades"],
        dict(query=query, variables={"orderHash": clean_hash, "sender": sender}),
        policy=policy,
    )
    trades = [Trade.from_graphql(t) for t in raw_trades]
    return [t for t in trades if t.orderHash == clean_hash and t.sender == sender]


def get_order_details(
    order_hash: HexStr, policy: RetryPolicy = DEFAULT_RETRY_POLICY
) -> OrderDetails:
    """
    Fetch an order and decode its bytes.
    Raises `OrderNotFound` if the subgraph has no such order and `DecodeError`
    if the bytes are malformed.
    """
    clean_hash = validate_order_hash(order_hash)

    query = """
      query ($orderHash: String!) {
        orders(where: { orderHash: $orderHash }) {
          orderBytes
          orderHash
          orderbook { id }
        }
      }
    """
    response = graphql_with_retry(
        SUBGRAPHS.ORDERBOOK, query, {"orderHash": clean_hash}, policy
    )
    orders = response["data"].get("orders") or []
    if len(orders) == 0:
        raise OrderNotFound(f"No order found for {clean_hash}")
    if len(orders) > 1:
        logger.warning("Found %d orders for %s, using the first", len(orders), clean_hash)

    return OrderDetails(
        orderHash=clean_hash,
        orderbook=eth.to_checksum_address(orders[0]["orderbook"]["id"]),
        order=decode_order(orders[0]["orderBytes"]),
    )


def get_order(
    order_hash: HexStr, policy: RetryPolicy = DEFAULT_RETRY_POLICY
) -> OrderDescriptor:
    return get_order_details(order_hash, policy).order
