"""
Commitment Ledger

Contributions are stored on chain as a sorted singly-linked list of node
outputs. The head node has no key; every other node is keyed by the owner's
public key hash and a per-owner index, ordered by the hash bytes first and the
index second. Every operation reads a fresh snapshot from the indexer.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import pycardano as pc

from .datums import decode_utxo
from .errors import DuplicateKeyError, ListExhaustedError, NotFoundError, TooRecentError
from .indexer import Indexer
from .types import NodeDatum, NodeKey, maybe_node_key, node_key_or_none

logger = logging.getLogger(__name__)

SortKey = Tuple[int, bytes, int]


def node_sort_key(key: Optional[NodeKey]) -> SortKey:
    """Total order of node keys, the head (no key) first"""
    if key is None:
        return (0, b"", 0)
    return (1, key.pub_key_hash, key.index)


def _same_key(a: Optional[NodeKey], b: Optional[NodeKey]) -> bool:
    return node_sort_key(a) == node_sort_key(b)


@dataclass(frozen=True)
class CommitmentNode:
    """A node of the commitment list"""

    tx_input: pc.TransactionInput
    key: Optional[NodeKey]
    next: Optional[NodeKey]
    created_time: int
    committed: int
    spent: bool = False
    utxo: Optional[pc.UTxO] = field(default=None, compare=False, repr=False)

    @property
    def is_head(self) -> bool:
        return self.key is None

    @property
    def owner_pub_key_hash(self) -> Optional[bytes]:
        return self.key.pub_key_hash if self.key else None

    @property
    def index(self) -> Optional[int]:
        return self.key.index if self.key else None

    @property
    def sort_key(self) -> SortKey:
        return node_sort_key(self.key)

    def datum(self) -> NodeDatum:
        return NodeDatum(
            key=maybe_node_key(self.key),
            next=maybe_node_key(self.next),
            created_time=self.created_time,
            committed=self.committed,
        )

    def with_next(self, next_key: Optional[NodeKey]) -> NodeDatum:
        """Datum of this node re-emitted with a new next key"""
        return NodeDatum(
            key=maybe_node_key(self.key),
            next=maybe_node_key(next_key),
            created_time=self.created_time,
            committed=self.committed,
        )


def parse_node_utxo(utxo: pc.UTxO) -> Optional[CommitmentNode]:
    """Commitment node of an output, None if its datum is not a node datum"""
    datum = decode_utxo(NodeDatum, utxo)
    if datum is None:
        return None
    return CommitmentNode(
        tx_input=utxo.input,
        key=node_key_or_none(datum.key),
        next=node_key_or_none(datum.next),
        created_time=datum.created_time,
        committed=datum.committed,
        utxo=utxo,
    )


class CommitmentLedger:
    """Reads and navigates the commitment list of launches"""

    def __init__(self, indexer: Indexer, nodes_inactivity_period: int):
        """
        Initialize ledger

        Args:
            indexer: Chain indexer
            nodes_inactivity_period: Time (ms) a node has to exist before it can be removed
        """
        self.indexer = indexer
        self.nodes_inactivity_period = nodes_inactivity_period

    def nodes(self, launch_tx_id: str) -> List[CommitmentNode]:
        """Unspent nodes of a launch, sorted by key"""
        nodes = []
        for utxo in self.indexer.commitment_nodes(launch_tx_id):
            node = parse_node_utxo(utxo)
            if node is None:
                logger.warning(f"Skipping output {utxo.input} of launch {launch_tx_id}: not a node datum")
                continue
            nodes.append(node)
        return sorted(nodes, key=lambda n: n.sort_key)

    def node(self, launch_tx_id: str, tx_input: pc.TransactionInput) -> CommitmentNode:
        """
        Raises:
            NotFoundError: If no unspent node exists at the input
        """
        for node in self.nodes(launch_tx_id):
            if node.tx_input == tx_input:
                return node
        raise NotFoundError(f"No unspent node at {tx_input}")

    def owner_nodes(self, launch_tx_id: str, owner_pub_key_hash: bytes) -> List[CommitmentNode]:
        """Unspent nodes of one owner, by index"""
        return [n for n in self.nodes(launch_tx_id) if n.owner_pub_key_hash == owner_pub_key_hash]

    def find_insertion_predecessor(self, launch_tx_id: str, new_key: NodeKey) -> CommitmentNode:
        """
        Node after which a node with `new_key` has to be inserted

        Returns:
            The node with the greatest key strictly less than `new_key`

        Raises:
            DuplicateKeyError: If a node with `new_key` exists
            ListExhaustedError: If no node sorts before `new_key`
        """
        new_sort_key = node_sort_key(new_key)
        predecessor = None
        for node in self.nodes(launch_tx_id):
            if node.sort_key == new_sort_key:
                raise DuplicateKeyError(
                    f"Node {new_key.pub_key_hash.hex()}#{new_key.index} already exists at {node.tx_input}"
                )
            if node.sort_key < new_sort_key:
                predecessor = node
        if predecessor is None:
            raise ListExhaustedError(f"No node sorts before {new_key.pub_key_hash.hex()}#{new_key.index}")
        return predecessor

    def next_key_for_owner(self, launch_tx_id: str, owner_pub_key_hash: bytes) -> Tuple[NodeKey, CommitmentNode]:
        """
        Key of the next node of an owner and the node to insert it after

        The new node goes right after the owner's last node, taking the next
        index, or after the last node of smaller owners with index 0.
        """
        nodes = self.nodes(launch_tx_id)
        candidates = [n for n in nodes if n.is_head or n.owner_pub_key_hash <= owner_pub_key_hash]
        if not candidates:
            raise ListExhaustedError(f"No node sorts before owner {owner_pub_key_hash.hex()}")
        last = candidates[-1]
        index = last.index + 1 if last.owner_pub_key_hash == owner_pub_key_hash else 0
        new_key = NodeKey(owner_pub_key_hash, index)

        predecessor = self.find_insertion_predecessor(launch_tx_id, new_key)
        if predecessor.tx_input != last.tx_input:
            raise DuplicateKeyError(f"Owner {owner_pub_key_hash.hex()} already has node index {index}")
        return new_key, predecessor

    def find_removal_predecessor(self, launch_tx_id: str, node: CommitmentNode) -> CommitmentNode:
        """
        Node whose next key points at `node`

        Raises:
            NotFoundError: If no unspent node points at `node`
        """
        if node.is_head:
            raise NotFoundError("The head node has no predecessor")
        for candidate in self.nodes(launch_tx_id):
            if candidate.next is not None and _same_key(candidate.next, node.key):
                return candidate
        raise NotFoundError(f"No node points at {node.key.pub_key_hash.hex()}#{node.key.index}")

    def validate_removal(self, node: CommitmentNode, now: int) -> None:
        """
        Check the node may be removed at `now` (POSIX ms)

        Raises:
            NotFoundError: If the node is the head node
            TooRecentError: If the node is still inside its inactivity period
        """
        if node.is_head:
            raise NotFoundError("The head node cannot be removed")
        removable_after = node.created_time + self.nodes_inactivity_period
        if now <= removable_after:
            raise TooRecentError(f"Node {node.tx_input} can be removed after {removable_after}, now is {now}")
