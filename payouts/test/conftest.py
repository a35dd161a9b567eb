import os
from dataclasses import dataclass, field
from typing import Any, Optional
from unittest.mock import Mock

import pytest
from eth_account import Account
from eth_utils import to_checksum_address

from payouts.ledger import LedgerCache, LedgerLoader, content_hash, parse_ledger
from payouts.merkle import build_tree
from payouts.models import (
    IO,
    Claim,
    Config,
    EnergyField,
    Evaluable,
    OrderDescriptor,
    OrderDetails,
    SettledClaim,
    SftToken,
    Trade,
)
from payouts.network import RetryPolicy
from payouts.signing import ContextSigner

WALLET_W = to_checksum_address("0x742d35cc6634c0532925a3b844bc454e4438f44e")
WALLET_X = to_checksum_address("0x9bc33f6155efacc290c3c50e9b5b24b668562732")
ORDERBOOK = to_checksum_address("0x" + "77" * 20)
TOKEN = to_checksum_address("0xd5316ca888491575befc0273a00de2186c53f760")
ORDER_HASH = "0x" + "ab" * 32
TX_ROW_A = "0x" + "aa" * 32
CSV_LINK = "https://gateway.example/ipfs/ledger-1.csv"

# rowA, rowB belong to W, rowC to X
LEDGER_CSV = (
    "index,address,amount\n"
    f"1,{WALLET_W},100\n"
    f"2,{WALLET_W.lower()},50\n"
    f"3,{WALLET_X},200\n"
).encode()

# no retries or sleeping in unit tests
FAST_POLICY = RetryPolicy(max_retries=0, initial_delay=0, jitter=0)


@dataclass
class MockResponse:
    res: Any = None
    status_code: int = 200
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        return self.res


LIVE_CALLS_DISABLED = os.environ.get("PYTEST_LIVE_CALLS_ENABLED") != "TRUE"
SKIP_REASON = (
    "API Calls disabled: set PYTEST_LIVE_CALLS_ENABLED=TRUE in .env to run this test"
)


def mock_ledger_fetch(monkeypatch, files: dict[str, bytes]) -> Mock:
    """Serve ledger bytes by url instead of hitting the network"""
    fetch = Mock(side_effect=lambda url, policy=None: files[url])
    monkeypatch.setattr("payouts.ledger.fetch_bytes_with_retry", fetch)
    return fetch


def make_claim(
    raw: bytes = LEDGER_CSV,
    csv_link: str = CSV_LINK,
    order_hash: str = ORDER_HASH,
    merkle_root: Optional[str] = None,
) -> Claim:
    return Claim(
        orderHash=order_hash,
        csvLink=csv_link,
        expectedMerkleRoot=merkle_root or build_tree(parse_ledger(raw)).root,
        expectedContentHash=content_hash(raw),
    )


def make_config(claims: dict[str, list[Claim]]) -> Config:
    return Config(
        energyFields=[
            EnergyField(name=name, sftTokens=[SftToken(address=TOKEN, claims=cs)])
            for name, cs in claims.items()
        ]
    )


def make_trade(
    tx_hash: str = TX_ROW_A,
    sender: str = WALLET_W,
    order_hash: str = ORDER_HASH,
    block: int = 100,
) -> Trade:
    return Trade(
        orderHash=order_hash,
        orderBytes="0x",
        sender=sender.lower(),
        orderbook=ORDERBOOK.lower(),
        transactionHash=tx_hash,
        blockNumber=block,
        timestamp=1700000000,
    )


def make_settled(
    row_id: int, amount: int, tx_hash: str = TX_ROW_A, sender: str = WALLET_W
) -> SettledClaim:
    return SettledClaim(
        ledgerRowId=row_id,
        sender=sender,
        amount=amount,
        transactionHash=tx_hash,
        blockNumber=100,
        timestamp=1700000000,
    )


@dataclass
class FakeReconciler:
    """Settlement history served from memory, keyed by order hash"""

    order: OrderDescriptor
    trades: dict[str, list[Trade]] = field(default_factory=dict)
    settled: dict[str, list[SettledClaim]] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)
    orderbook: str = ORDERBOOK

    def get_trades_for_claim(self, order_hash, wallet):
        if order_hash in self.errors:
            raise self.errors[order_hash]
        return [
            t
            for t in self.trades.get(order_hash, [])
            if t.sender.lower() == wallet.lower()
        ]

    def get_order_details(self, order_hash):
        return OrderDetails(
            orderHash=order_hash, orderbook=self.orderbook, order=self.order
        )

    def get_settled_claims(self, trades, orderbook):
        tx = {t.transactionHash for t in trades}
        order_hashes = {t.orderHash for t in trades}
        return [
            s
            for h in order_hashes
            for s in self.settled.get(h, [])
            if s.transactionHash in tx
        ]


@pytest.fixture
def order() -> OrderDescriptor:
    return OrderDescriptor(
        owner="0x" + "11" * 20,
        evaluable=Evaluable(
            interpreter="0x" + "22" * 20, store="0x" + "33" * 20, bytecode="0x1234"
        ),
        validInputs=[IO(token="0x" + "44" * 20, decimals=18, vaultId=1)],
        validOutputs=[IO(token="0x" + "55" * 20, decimals=18, vaultId=2)],
        nonce="0x" + "66" * 32,
    )


@pytest.fixture
def signer() -> ContextSigner:
    return ContextSigner(Account.create())


@pytest.fixture
def loader() -> LedgerLoader:
    return LedgerLoader(LedgerCache(), FAST_POLICY)


@pytest.fixture
def rows():
    return parse_ledger(LEDGER_CSV)
