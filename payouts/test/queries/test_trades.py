from unittest.mock import Mock

import pytest

from payouts.errors import DecodeError, InvalidOrderHash, OrderNotFound
from payouts.orders import encode_order
from payouts.queries import (
    get_order,
    get_order_details,
    get_trades_for_claim,
    validate_order_hash,
)
from payouts.test.conftest import (
    FAST_POLICY,
    LIVE_CALLS_DISABLED,
    ORDER_HASH,
    ORDERBOOK,
    SKIP_REASON,
    WALLET_W,
    WALLET_X,
)


def graphql_trade(order_hash: str, sender: str, tx: str, block: int = 100) -> dict:
    return {
        "order": {"orderHash": order_hash, "orderBytes": "0x"},
        "orderbook": {"id": ORDERBOOK.lower()},
        "tradeEvent": {
            "transaction": {"id": tx, "blockNumber": str(block), "timestamp": "1700000000"},
            "sender": sender,
        },
    }


@pytest.mark.parametrize(
    "order_hash",
    [
        "",
        "0x",
        "ab" * 32,
        "0x" + "ab" * 31,
        "0x" + "ab" * 33,
        "0x" + "zz" * 32,
        None,
    ],
)
def test_invalid_order_hash_raises_before_querying(monkeypatch, order_hash):
    query = Mock()
    monkeypatch.setattr("payouts.queries.trades.graphql_iterate_query", query)
    monkeypatch.setattr("payouts.queries.trades.graphql_with_retry", query)

    with pytest.raises(InvalidOrderHash):
        get_trades_for_claim(order_hash, WALLET_W)
    with pytest.raises(InvalidOrderHash):
        get_order_details(order_hash)
    query.assert_not_called()


def test_validate_order_hash_cleans():
    assert validate_order_hash("  0x" + "AB" * 32 + " ") == "0x" + "ab" * 32


def test_invalid_order_hash_is_a_value_error():
    with pytest.raises(ValueError):
        validate_order_hash("0x1234")


def test_trades_filtered_client_side(monkeypatch):
    other_hash = "0x" + "cd" * 32
    raw = [
        graphql_trade("0x" + "AB" * 32, "0x" + WALLET_W[2:].upper(), "0x" + "01" * 32),
        graphql_trade(other_hash, WALLET_W.lower(), "0x" + "02" * 32),
        graphql_trade(ORDER_HASH, WALLET_X.lower(), "0x" + "03" * 32),
        graphql_trade(ORDER_HASH, WALLET_W.lower(), "0x" + "04" * 32, block=120),
    ]
    query = Mock(return_value=raw)
    monkeypatch.setattr("payouts.queries.trades.graphql_iterate_query", query)

    trades = get_trades_for_claim(ORDER_HASH, WALLET_W, FAST_POLICY)

    assert [t.transactionHash for t in trades] == ["0x" + "01" * 32, "0x" + "04" * 32]
    assert all(t.orderHash == ORDER_HASH for t in trades)
    assert trades[1].blockNumber == 120

    variables = query.call_args.args[2]["variables"]
    assert variables == {"orderHash": ORDER_HASH, "sender": WALLET_W.lower()}


def test_trades_rejects_bad_wallet(monkeypatch):
    query = Mock()
    monkeypatch.setattr("payouts.queries.trades.graphql_iterate_query", query)
    with pytest.raises(ValueError, match="wallet"):
        get_trades_for_claim(ORDER_HASH, "0xnotawallet")
    query.assert_not_called()


def test_get_order_details_decodes_order(monkeypatch, order):
    order_bytes = "0x" + encode_order(order).hex()
    monkeypatch.setattr(
        "payouts.queries.trades.graphql_with_retry",
        Mock(
            return_value={
                "data": {
                    "orders": [
                        {
                            "orderBytes": order_bytes,
                            "orderHash": ORDER_HASH,
                            "orderbook": {"id": ORDERBOOK.lower()},
                        }
                    ]
                }
            }
        ),
    )

    details = get_order_details(ORDER_HASH, FAST_POLICY)

    assert details.orderbook == ORDERBOOK
    assert details.orderHash == ORDER_HASH
    assert details.order == order
    assert get_order(ORDER_HASH, FAST_POLICY) == order


def test_get_order_details_not_found(monkeypatch):
    monkeypatch.setattr(
        "payouts.queries.trades.graphql_with_retry",
        Mock(return_value={"data": {"orders": []}}),
    )
    with pytest.raises(OrderNotFound):
        get_order_details(ORDER_HASH)


def test_get_order_details_bad_bytes(monkeypatch):
    monkeypatch.setattr(
        "payouts.queries.trades.graphql_with_retry",
        Mock(
            return_value={
                "data": {
                    "orders": [
                        {
                            "orderBytes": "0xdeadbeef",
                            "orderHash": ORDER_HASH,
                            "orderbook": {"id": ORDERBOOK.lower()},
                        }
                    ]
                }
            }
        ),
    )
    with pytest.raises(DecodeError):
        get_order_details(ORDER_HASH)


@pytest.mark.skipif(LIVE_CALLS_DISABLED, reason=SKIP_REASON)
def test_live_trades_query():
    assert isinstance(get_trades_for_claim(ORDER_HASH, WALLET_W), list)
