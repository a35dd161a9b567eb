"""
Merkle trees over claim ledgers.

Leaves match the order book expression that checks claims on chain:

    leaf = keccak256(abi.encodePacked(uint256 index, uint256(uint160(account)), uint256 amount))

The tree follows OpenZeppelin's `SimpleMerkleTree` array layout (so proofs verify
with `MerkleProof.verify`) with one difference: leaves are NOT sorted. They stay
in ledger order, which is the order the published root was computed over.

For n leaves the tree is an array of 2n - 1 nodes. Leaf i lives at index
`2n - 2 - i`, the children of node k are 2k + 1 and 2k + 2 and every parent is
the keccak256 of its two children sorted bytewise.
"""

from __future__ import annotations

from typing import Iterable, Union

import eth_utils as eth
from hexbytes import HexBytes
from web3 import Web3

from payouts.errors import LeafNotFound, LedgerFormatError, MerkleRootMismatch
from payouts.models import EthereumAddress, HexStr, LedgerRow, TokenAmount

UintLike = Union[int, str, TokenAmount]


def _to_uint(value: UintLike, name: str) -> int:
    if isinstance(value, TokenAmount):
        return value.wei
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    if isinstance(value, int):
        n = value
    else:
        s = str(value).strip()
        if not (s.isascii() and s.isdigit()):
            raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        n = int(s)
    if n < 0 or n >= 2**256:
        raise ValueError(f"{name} out of uint256 range: {n}")
    return n


def _to_bytes(node: Union[HexStr, bytes]) -> bytes:
    return bytes(HexBytes(node))


def _to_hex(node: bytes) -> HexStr:
    return "0x" + node.hex()


def leaf(row_id: UintLike, wallet_address: EthereumAddress, amount: UintLike) -> HexStr:
    """
    Hash a (row id, wallet, amount) triple. Address case and numeric formatting
    ("007" vs 7) do not change the result.
    """
    if not eth.is_hex_address(wallet_address):
        raise ValueError(f"Invalid address: {wallet_address!r}")
    return _to_hex(
        bytes(
            Web3.solidity_keccak(
                ["uint256", "uint256", "uint256"],
                [
                    _to_uint(row_id, "row id"),
                    int(wallet_address, 16),
                    _to_uint(amount, "amount"),
                ],
            )
        )
    )


def row_leaf(row: LedgerRow) -> HexStr:
    return leaf(row.id, row.address, row.amount)


def hash_pair(a: bytes, b: bytes) -> bytes:
    # commutative, so a proof does not need to record left/right
    return eth.keccak(a + b if a < b else b + a)


class MerkleTree:
    def __init__(self, leaves: Iterable[HexStr]):
        self.leaves: list[HexStr] = [_to_hex(_to_bytes(l)) for l in leaves]
        if len(self.leaves) == 0:
            raise LedgerFormatError("Cannot build a merkle tree without leaves")

        n = len(self.leaves)
        nodes: list[bytes] = [b""] * (2 * n - 1)
        for i, l in enumerate(self.leaves):
            nodes[len(nodes) - 1 - i] = _to_bytes(l)
        for k in range(len(nodes) - 1 - n, -1, -1):
            nodes[k] = hash_pair(nodes[2 * k + 1], nodes[2 * k + 2])

        self._nodes = nodes
        self._positions: dict[HexStr, int] = {}
        for i, l in enumerate(self.leaves):
            self._positions.setdefault(l, i)

    @property
    def root(self) -> HexStr:
        return _to_hex(self._nodes[0])

    def __len__(self) -> int:
        return len(self.leaves)

    def __contains__(self, leaf_value: HexStr) -> bool:
        return _to_hex(_to_bytes(leaf_value)) in self._positions

    def index_of(self, leaf_value: HexStr) -> int:
        try:
            return self._positions[_to_hex(_to_bytes(leaf_value))]
        except KeyError:
            raise LeafNotFound(f"Leaf {leaf_value} not found in the tree")

    def get_proof(self, leaf_index: int) -> list[HexStr]:
        if not 0 <= leaf_index < len(self.leaves):
            raise LeafNotFound(f"Leaf index {leaf_index} out of range")
        k = len(self._nodes) - 1 - leaf_index
        siblings = []
        while k > 0:
            sibling = k + 1 if k % 2 == 1 else k - 1
            siblings.append(_to_hex(self._nodes[sibling]))
            k = (k - 1) // 2
        return siblings


def build_tree(rows: Iterable[LedgerRow]) -> MerkleTree:
    """Build the tree over `rows` in the order given. Never re-sorts."""
    return MerkleTree(row_leaf(r) for r in rows)


def proof(tree: MerkleTree, leaf_value: HexStr) -> list[HexStr]:
    """Inclusion proof for `leaf_value`, raises `LeafNotFound` if it is absent"""
    return tree.get_proof(tree.index_of(leaf_value))


def verify_proof(root: HexStr, leaf_value: HexStr, proof_nodes: list[HexStr]) -> bool:
    computed = _to_bytes(leaf_value)
    for node in proof_nodes:
        computed = hash_pair(computed, _to_bytes(node))
    return computed == _to_bytes(root)


def verify_root(tree: MerkleTree, expected_root: HexStr) -> None:
    if tree.root.lower() != expected_root.strip().lower():
        raise MerkleRootMismatch(
            f"Computed merkle root {tree.root} does not match expected {expected_root}"
        )
