"""
Claim ledgers: fetching, content-hash verification, parsing and caching.

A ledger is a CSV with at least the columns `index`, `address` and `amount`
(header names are case insensitive, extra columns are ignored). Amounts are in
the smallest token unit. Rows are kept in file order because the published merkle
root was computed over that order.
"""

from __future__ import annotations

import csv
import io
import logging
import threading
from typing import Optional

import eth_utils as eth
from pydantic import ValidationError

from payouts.errors import ContentHashMismatch, LedgerFormatError
from payouts.models import HexStr, LedgerRow
from payouts.network import DEFAULT_RETRY_POLICY, RetryPolicy, fetch_bytes_with_retry

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("index", "address", "amount")


def content_hash(raw: bytes) -> HexStr:
    """keccak256 of the raw ledger bytes, as published alongside the claim"""
    return "0x" + eth.keccak(raw).hex()


def verify_content_hash(raw: bytes, expected_content_hash: HexStr) -> None:
    actual = content_hash(raw)
    if actual.lower() != expected_content_hash.strip().lower():
        raise ContentHashMismatch(
            f"Ledger content hash {actual} does not match expected {expected_content_hash}"
        )


def _parse_int(value: str, column: str, line: int) -> int:
    value = (value or "").strip()
    if not (value.isascii() and value.isdigit()):
        raise LedgerFormatError(f"Invalid {column} on line {line}: {value!r}")
    return int(value)


def parse_ledger(raw: bytes) -> list[LedgerRow]:
    """Parse verified ledger bytes. Any malformed row rejects the whole ledger."""
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise LedgerFormatError("Ledger is not valid utf-8") from e

    reader = csv.reader(io.StringIO(text))
    header = next(reader, None)
    if header is None:
        raise LedgerFormatError("Ledger is empty")

    columns = [h.strip().lower() for h in header]
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        raise LedgerFormatError(f"Ledger is missing columns: {missing}")
    position = {c: columns.index(c) for c in REQUIRED_COLUMNS}

    rows: list[LedgerRow] = []
    seen: set[int] = set()
    # header is line 1
    for line, values in enumerate(reader, start=2):
        if not any(v.strip() for v in values):
            continue
        if len(values) < len(columns):
            raise LedgerFormatError(f"Too few values on line {line}")

        row_id = _parse_int(values[position["index"]], "index", line)
        amount = _parse_int(values[position["amount"]], "amount", line)
        address = values[position["address"]].strip()
        if not eth.is_hex_address(address):
            raise LedgerFormatError(f"Invalid address on line {line}: {address!r}")
        if row_id in seen:
            raise LedgerFormatError(f"Duplicate ledger index {row_id} on line {line}")

        try:
            rows.append(LedgerRow(id=row_id, address=address, amount=amount))
        except ValidationError as e:
            raise LedgerFormatError(f"Invalid row on line {line}: {e}") from e
        seen.add(row_id)

    return rows


class LedgerCache:
    """
    Verified ledgers keyed by csv link. Entries are immutable once inserted and
    are only inserted after verification, so readers never see partial state.
    """

    def __init__(self):
        self._rows: dict[str, tuple[LedgerRow, ...]] = {}
        self._lock = threading.Lock()

    def get(self, csv_link: str) -> Optional[tuple[LedgerRow, ...]]:
        return self._rows.get(csv_link)

    def put(self, csv_link: str, rows: list[LedgerRow]) -> tuple[LedgerRow, ...]:
        with self._lock:
            # first writer wins, both writers verified the same bytes
            return self._rows.setdefault(csv_link, tuple(rows))

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def __contains__(self, csv_link: str) -> bool:
        return csv_link in self._rows

    def __len__(self) -> int:
        return len(self._rows)


class LedgerLoader:
    def __init__(
        self,
        cache: Optional[LedgerCache] = None,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self.cache = cache if cache is not None else LedgerCache()
        self.policy = policy

    def load_ledger(
        self,
        csv_link: str,
        expected_merkle_root: HexStr,
        expected_content_hash: HexStr,
    ) -> Optional[list[LedgerRow]]:
        """
        Fetch and verify a ledger. Returns None if the bytes do not hash to
        `expected_content_hash` or do not parse; nothing is cached in that case.

        `expected_merkle_root` is not checked here: the caller builds the tree and
        compares roots, so both checks stay mandatory and independent.

        Network failures propagate as `NetworkError` / `RetryExhausted`.
        """
        cached = self.cache.get(csv_link)
        if cached is not None:
            return list(cached)

        raw = fetch_bytes_with_retry(csv_link, self.policy)

        try:
            verify_content_hash(raw, expected_content_hash)
            rows = parse_ledger(raw)
        except (ContentHashMismatch, LedgerFormatError) as e:
            logger.warning("Rejecting ledger %s: %s", csv_link, e)
            return None

        logger.debug(
            "Verified ledger %s (%d rows, expected root %s)",
            csv_link,
            len(rows),
            expected_merkle_root,
        )
        return list(self.cache.put(csv_link, rows))


_default_loader = LedgerLoader()


def load_ledger(
    csv_link: str, expected_merkle_root: HexStr, expected_content_hash: HexStr
) -> Optional[list[LedgerRow]]:
    return _default_loader.load_ledger(
        csv_link, expected_merkle_root, expected_content_hash
    )
