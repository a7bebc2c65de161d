"""Flat, append-only message store with parent-pointer children index."""

import logging
import time

from chat.models import MessageNode, Role

logger = logging.getLogger(__name__)


class MessageStore:
    """Authoritative collection of message nodes.

    Nodes are kept in insertion order; ``children()`` preserves that order,
    which is the canonical sibling ordering used for branch indices.
    """

    def __init__(self):
        self._nodes: dict[str, MessageNode] = {}
        self._children: dict[str | None, list[str]] = {}
        self._last_ts = 0.0
        self.version = 0  # bumped on every mutation

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self):
        return iter(list(self._nodes.values()))

    def now(self) -> float:
        """Epoch milliseconds, never lower than the last issued timestamp."""
        self._last_ts = max(self._last_ts, time.time() * 1000)
        return self._last_ts

    def add(self, node: MessageNode) -> str:
        if node.id in self._nodes:
            raise ValueError(f"Duplicate message id: {node.id}")
        self._nodes[node.id] = node
        self._children.setdefault(node.parent_id, []).append(node.id)
        self.version += 1
        logger.debug("Added %s message %s (parent=%s)", node.role.value, node.id, node.parent_id)
        return node.id

    def find(self, node_id: str | None) -> MessageNode | None:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def children(self, parent_id: str | None, role: Role | None = None) -> list[MessageNode]:
        nodes = [self._nodes[i] for i in self._children.get(parent_id, [])]
        if role is None:
            return nodes
        return [n for n in nodes if n.role == role]

    def delete_subtree(self, root_id: str) -> set[str]:
        """Remove ``root_id`` and every descendant. Returns the removed ids.

        Unknown ids remove nothing.
        """
        if root_id not in self._nodes:
            return set()

        removed: set[str] = set()
        stack = [root_id]
        while stack:
            node_id = stack.pop()
            if node_id in removed:
                continue
            removed.add(node_id)
            stack.extend(self._children.get(node_id, []))

        for node_id in removed:
            node = self._nodes.pop(node_id)
            self._children.pop(node_id, None)
            siblings = self._children.get(node.parent_id)
            if siblings is not None and node.parent_id not in removed:
                siblings.remove(node_id)
                if not siblings:
                    del self._children[node.parent_id]

        self.version += 1
        logger.debug("Deleted subtree %s (%d nodes)", root_id, len(removed))
        return removed

    def clear(self) -> None:
        self._nodes.clear()
        self._children.clear()
        self.version += 1
