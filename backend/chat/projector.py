"""Projection of the conversation tree onto the single displayed path."""

from chat.branches import BranchSelector, clamp
from chat.models import ROOT_KEY, MessageNode, Role
from chat.store import MessageStore


class TreeProjector:
    """Walks the tree from the active root along active branches.

    The result is a pure function of the store and the selector; it is cached
    on their version counters so repeated reads between mutations are free.
    """

    def __init__(self, store: MessageStore, branches: BranchSelector):
        self._store = store
        self._branches = branches
        self._cache_key: tuple[int, int] | None = None
        self._cache: tuple[MessageNode, ...] = ()

    def project(self) -> list[MessageNode]:
        key = (self._store.version, self._branches.version)
        if key != self._cache_key:
            self._cache = tuple(self._walk())
            self._cache_key = key
        return list(self._cache)

    def _pick(self, candidates: list[MessageNode], key: str) -> MessageNode:
        return candidates[clamp(self._branches.get(key), len(candidates))]

    def _walk(self) -> list[MessageNode]:
        result: list[MessageNode] = []
        seen: set[str] = set()

        roots = self._store.children(None, Role.USER)
        if not roots:
            return result
        current = self._pick(roots, ROOT_KEY)

        while current.id not in seen:
            seen.add(current.id)
            result.append(current)

            # At most one assistant reply per user message
            replies = self._store.children(current.id, Role.ASSISTANT)
            if not replies:
                break
            reply = replies[0]
            result.append(reply)
            seen.add(reply.id)

            follow_ups = self._store.children(reply.id, Role.USER)
            if not follow_ups:
                break
            current = self._pick(follow_ups, reply.id)

        return result
