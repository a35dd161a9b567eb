import pytest

from payouts.errors import ContentHashMismatch, LedgerFormatError, NetworkError
from payouts.ledger import (
    LedgerCache,
    LedgerLoader,
    content_hash,
    parse_ledger,
    verify_content_hash,
)
from payouts.merkle import build_tree
from payouts.test.conftest import (
    CSV_LINK,
    FAST_POLICY,
    LEDGER_CSV,
    WALLET_W,
    WALLET_X,
    mock_ledger_fetch,
)


def expected(raw: bytes = LEDGER_CSV) -> tuple[str, str]:
    return build_tree(parse_ledger(raw)).root, content_hash(raw)


def test_parse_ledger(rows):
    assert [(r.id, r.address, r.amount) for r in rows] == [
        (1, WALLET_W, 100),
        (2, WALLET_W, 50),
        (3, WALLET_X, 200),
    ]


def test_parse_ledger_headers_case_insensitive_and_extra_columns():
    raw = (
        "\ufeffName, INDEX ,Amount,Address\n"
        f"alice,1,100,{WALLET_W}\n"
        "\n"
        f"bob,2,5,{WALLET_X}\n"
    ).encode()
    rows = parse_ledger(raw)
    assert [(r.id, r.amount) for r in rows] == [(1, 100), (2, 5)]


def test_parse_ledger_keeps_file_order():
    raw = f"index,address,amount\n9,{WALLET_X},1\n2,{WALLET_W},1\n".encode()
    assert [r.id for r in parse_ledger(raw)] == [9, 2]


@pytest.mark.parametrize(
    "raw, match",
    [
        (b"", "empty"),
        (b"index,amount\n1,2\n", "missing"),
        (f"index,address,amount\n1,{WALLET_W},10\n1,{WALLET_X},5\n".encode(), "Duplicate"),
        (b"index,address,amount\n1,0x1234,10\n", "address"),
        (f"index,address,amount\n1,{WALLET_W},-10\n".encode(), "amount"),
        (f"index,address,amount\n1,{WALLET_W},1.5\n".encode(), "amount"),
        (f"index,address,amount\nx,{WALLET_W},1\n".encode(), "index"),
        (f"index,address,amount\n1,{WALLET_W}\n".encode(), "Too few"),
        (f"index,address,amount\n1,{WALLET_W},{2**256}\n".encode(), "uint256"),
        (f"index,address,amount\n{2**256},{WALLET_W},1\n".encode(), "uint256"),
        (b"\xff\xfe\x00", "utf-8"),
    ],
)
def test_parse_ledger_rejects(raw, match):
    with pytest.raises(LedgerFormatError, match=match):
        parse_ledger(raw)


def test_verify_content_hash():
    verify_content_hash(LEDGER_CSV, content_hash(LEDGER_CSV).upper().replace("0X", "0x"))
    with pytest.raises(ContentHashMismatch):
        verify_content_hash(LEDGER_CSV + b"\n", content_hash(LEDGER_CSV))


def test_load_ledger(monkeypatch, loader):
    mock_ledger_fetch(monkeypatch, {CSV_LINK: LEDGER_CSV})
    rows = loader.load_ledger(CSV_LINK, *expected())
    assert [r.id for r in rows] == [1, 2, 3]


def test_content_hash_mismatch_fails_closed(monkeypatch, loader):
    """Tampered bytes are never parsed and never cached"""
    tampered = LEDGER_CSV.replace(b",50\n", b",5000\n")
    mock_ledger_fetch(monkeypatch, {CSV_LINK: tampered})

    def _parse(raw):
        raise AssertionError("parse_ledger must not run on unverified bytes")

    monkeypatch.setattr("payouts.ledger.parse_ledger", _parse)

    assert loader.load_ledger(CSV_LINK, *expected()) is None
    assert CSV_LINK not in loader.cache


def test_malformed_ledger_is_not_cached(monkeypatch, loader):
    raw = b"index,address,amount\n1,0x1234,10\n"
    mock_ledger_fetch(monkeypatch, {CSV_LINK: raw})
    assert loader.load_ledger(CSV_LINK, "0x" + "00" * 32, content_hash(raw)) is None
    assert len(loader.cache) == 0


def test_cache_hit_skips_network(monkeypatch, loader):
    fetch = mock_ledger_fetch(monkeypatch, {CSV_LINK: LEDGER_CSV})

    first = loader.load_ledger(CSV_LINK, *expected())
    second = loader.load_ledger(CSV_LINK, *expected())

    assert first == second
    assert fetch.call_count == 1


def test_cached_rows_cannot_be_mutated_by_callers(monkeypatch, loader):
    mock_ledger_fetch(monkeypatch, {CSV_LINK: LEDGER_CSV})
    rows = loader.load_ledger(CSV_LINK, *expected())
    rows.clear()
    assert len(loader.load_ledger(CSV_LINK, *expected())) == 3


def test_network_errors_propagate(monkeypatch, loader):
    def _fetch(url, policy=None):
        raise NetworkError("HTTP 500")

    monkeypatch.setattr("payouts.ledger.fetch_bytes_with_retry", _fetch)
    with pytest.raises(NetworkError):
        loader.load_ledger(CSV_LINK, *expected())


def test_cache_first_writer_wins(rows):
    cache = LedgerCache()
    stored = cache.put(CSV_LINK, rows)
    again = cache.put(CSV_LINK, rows[:1])
    assert again == stored
    assert len(cache.get(CSV_LINK)) == 3
    cache.clear()
    assert cache.get(CSV_LINK) is None


def test_loaders_do_not_share_caches(monkeypatch):
    fetch = mock_ledger_fetch(monkeypatch, {CSV_LINK: LEDGER_CSV})
    LedgerLoader(policy=FAST_POLICY).load_ledger(CSV_LINK, *expected())
    LedgerLoader(policy=FAST_POLICY).load_ledger(CSV_LINK, *expected())
    assert fetch.call_count == 2
