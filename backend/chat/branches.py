"""Active-branch selection, keyed by branch point."""

from collections.abc import Iterable

from chat.models import ROOT_KEY


class BranchSelector:
    """Remembers which sibling index is displayed at each branch point.

    Keys are ``"root"`` for top-level user messages or the id of the parent
    whose children branch. Indices are stored unchecked; readers clamp.
    """

    def __init__(self):
        self._active: dict[str, int] = {}
        self.version = 0

    def get(self, key: str) -> int:
        return self._active.get(key, 0)

    def set(self, key: str, index: int) -> None:
        self._active[key] = index
        self.version += 1

    def prune(self, removed_ids: Iterable[str]) -> None:
        """Drop entries whose branch-point node no longer exists."""
        stale = [k for k in removed_ids if k != ROOT_KEY and k in self._active]
        for key in stale:
            del self._active[key]
        if stale:
            self.version += 1

    def clear(self) -> None:
        self._active.clear()
        self.version += 1

    def as_dict(self) -> dict[str, int]:
        return dict(self._active)


def clamp(index: int, count: int) -> int:
    """Clamp ``index`` into ``[0, count - 1]``; ``count`` must be positive."""
    return max(0, min(index, count - 1))
