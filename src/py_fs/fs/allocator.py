"""Block-chain allocator and free-space tracker.

A file's bytes live in a singly linked chain of nodes, each pointing at
one fixed-size raw block::

    entry.first_node = 3
    node[3] → block 0, next 7
    node[7] → block 4, next -1   (end of chain)

There is no separate free bitmap.  A node is free when it points at no
block, and a raw block is free when no in-use node points at it.  Both
views are derived by scanning the node table, so they can never drift
apart.

Allocation is deterministic: every block of a new chain takes the
lowest-index free node and the lowest-index free raw block.
"""

from __future__ import annotations

from collections.abc import Iterator

from py_fs.fs.errors import ErrorKind, FileSystemError
from py_fs.fs.structures import NO_REF, ChainNode


class BlockAllocator:
    """Own the chain-node table and the raw-block table.

    Both tables have the same number of slots.  The allocator never
    looks at file entries — it only knows chains by their first node.
    """

    def __init__(
        self,
        *,
        block_size: int,
        nodes: list[ChainNode],
        blocks: list[bytearray],
    ) -> None:
        """Wrap existing node and block tables.

        Args:
            block_size: Size of every raw block in bytes.
            nodes: The chain-node table (mutated in place).
            blocks: The raw-block table (mutated in place).

        Raises:
            ValueError: If the tables differ in length or a block has
                the wrong size.

        """
        if len(nodes) != len(blocks):
            msg = f"Node table ({len(nodes)}) and block table ({len(blocks)}) differ in size"
            raise ValueError(msg)
        if any(len(block) != block_size for block in blocks):
            msg = f"Every raw block must be {block_size} bytes"
            raise ValueError(msg)
        self._block_size = block_size
        self._nodes = nodes
        self._blocks = blocks

    @property
    def block_size(self) -> int:
        """Return the raw block size in bytes."""
        return self._block_size

    @property
    def nodes(self) -> list[ChainNode]:
        """Return the live node table."""
        return self._nodes

    @property
    def blocks(self) -> list[bytearray]:
        """Return the live raw-block table."""
        return self._blocks

    # -- Free-space tracking -------------------------------------------------

    def blocks_needed(self, length: int) -> int:
        """Return how many blocks a payload of *length* bytes occupies."""
        return -(-length // self._block_size)

    def free_count(self) -> int:
        """Return the number of unused chain nodes."""
        return sum(1 for node in self._nodes if not node.in_use)

    def free_blocks(self) -> list[int]:
        """Return indices of raw blocks no in-use node refers to, lowest first."""
        used = {node.data_block for node in self._nodes if node.in_use}
        return [i for i in range(len(self._blocks)) if i not in used]

    def _free_nodes(self) -> list[int]:
        return [i for i, node in enumerate(self._nodes) if not node.in_use]

    # -- Chain walking -------------------------------------------------------

    def chain(self, first_node: int) -> Iterator[int]:
        """Yield the node indices of a chain in order."""
        current = first_node
        while current != NO_REF:
            yield current
            current = self._nodes[current].next_node

    def chain_length(self, first_node: int) -> int:
        """Return the number of nodes in a chain (0 for ``NO_REF``)."""
        return sum(1 for _ in self.chain(first_node))

    def read_chain(self, first_node: int, size: int) -> bytes:
        """Collect exactly *size* bytes from a chain.

        Each node contributes up to ``block_size`` bytes; the padding in
        the final block is never returned.
        """
        data = bytearray()
        for index in self.chain(first_node):
            if len(data) >= size:
                break
            take = min(self._block_size, size - len(data))
            data += self._blocks[self._nodes[index].data_block][:take]
        return bytes(data)

    # -- Allocation ----------------------------------------------------------

    def release_chain(self, first_node: int) -> None:
        """Return every node and raw block of a chain to the free pool.

        Raw blocks are zeroed so no data lingers after a delete or an
        overwrite.  Releasing ``NO_REF`` does nothing.
        """
        # Collect first: clearing a node erases its next pointer.
        for index in list(self.chain(first_node)):
            node = self._nodes[index]
            self._blocks[node.data_block][:] = bytes(self._block_size)
            node.clear()

    def allocate_chain(self, payload: bytes) -> int:
        """Store *payload* in a fresh chain and return its first node.

        Args:
            payload: The bytes to store.  An empty payload needs no
                blocks and yields ``NO_REF``.

        Returns:
            The index of the chain's first node.

        Raises:
            FileSystemError: INSUFFICIENT_SPACE if not enough nodes and
                raw blocks are jointly free.  Nothing is modified.

        """
        needed = self.blocks_needed(len(payload))
        free_nodes = self._free_nodes()
        free_blocks = self.free_blocks()
        if needed > min(len(free_nodes), len(free_blocks)):
            raise FileSystemError(
                ErrorKind.INSUFFICIENT_SPACE,
                detail=f"need {needed} blocks, {min(len(free_nodes), len(free_blocks))} free",
            )

        first = NO_REF
        previous = NO_REF
        for i in range(needed):
            node_index = free_nodes[i]
            block_index = free_blocks[i]
            chunk = payload[i * self._block_size : (i + 1) * self._block_size]
            block = self._blocks[block_index]
            block[:] = bytes(self._block_size)
            block[: len(chunk)] = chunk

            node = self._nodes[node_index]
            node.data_block = block_index
            node.next_node = NO_REF
            if previous == NO_REF:
                first = node_index
            else:
                self._nodes[previous].next_node = node_index
            previous = node_index
        return first
