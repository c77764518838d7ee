"""LMD-GHOST fork choice over an archive of blocks, and a backend wrapper for it."""

from __future__ import annotations

from typing import Any, Hashable, Iterable, Protocol


class _Block(Protocol):
    def id(self) -> Any: ...

    def parent_id(self) -> Any: ...


class _ChainQuery(Protocol):
    def depth_at(self, block_id: Any) -> int: ...

    def block_at(self, block_id: Any) -> _Block: ...

    def children_at(self, block_id: Any) -> list: ...


def ancestor_at(backend: _ChainQuery, block_id: Any, depth: int) -> Any:
    """Walk parents of ``block_id`` until reaching ``depth``.

    A block already at or above ``depth`` is returned unchanged.
    """
    current = block_id
    while backend.depth_at(current) > depth:
        parent = backend.block_at(current).parent_id()
        if parent is None:
            raise RuntimeError(
                f"block {current} has no parent but depth above {depth}"
            )
        current = parent
    return current


class NoCacheAncestorQuery:
    """Ancestor lookup that walks the chain on every call."""

    def __init__(self, backend: _ChainQuery) -> None:
        self._backend = backend

    def ancestor_at(self, block_id: Any, depth: int) -> Any:
        return ancestor_at(self._backend, block_id, depth)


class ArchiveGhost:
    """Latest-message-driven GHOST fork choice.

    Committed votes live in ``votes``; votes from a block being imported are
    kept in an overlay until the import either commits or is abandoned.
    The backend must offer ``depth_at``, ``children_at`` and ``ancestor_at``.
    """

    def __init__(self, backend: Any) -> None:
        self.backend = backend
        self.votes: dict[Hashable, Any] = {}
        self.overlayed_votes: dict[Hashable, Any] = {}

    def update_overlay(self, validator_id: Hashable, target_root: Any) -> None:
        self.overlayed_votes[validator_id] = target_root

    def commit_overlay(self) -> None:
        overlay, self.overlayed_votes = self.overlayed_votes, {}
        self.votes.update(overlay)

    def reset_overlay(self) -> None:
        self.overlayed_votes = {}

    def update_active(self, active_validators: Iterable[Hashable]) -> None:
        """Drop committed votes of validators that are no longer active."""
        active = set(active_validators)
        self.votes = {v: t for v, t in self.votes.items() if v in active}

    def vote_count(self, block: Any, block_depth: int) -> int:
        """Votes whose target descends from ``block`` (at ``block_depth``)."""
        total = sum(
            1
            for target in self.overlayed_votes.values()
            if self.backend.ancestor_at(target, block_depth) == block
        )
        total += sum(
            1
            for validator, target in self.votes.items()
            if validator not in self.overlayed_votes
            and self.backend.ancestor_at(target, block_depth) == block
        )
        return total

    def head(self, justified: Any) -> Any:
        """Follow the most-voted child from ``justified`` down to a leaf."""
        head = justified
        head_depth = self.backend.depth_at(justified)
        while True:
            children = self.backend.children_at(head)
            if not children:
                return head
            best = children[0]
            best_score = 0
            for child in children:
                score = self.vote_count(child, head_depth + 1)
                if score > best_score:
                    best, best_score = child, score
            head = best
            head_depth += 1


class ChainBackend:
    """Wraps a block store and adds ancestor queries to it."""

    def __init__(self, backend: Any) -> None:
        self._inner = backend

    def genesis(self) -> Any:
        return self._inner.genesis()

    def head(self) -> Any:
        return self._inner.head()

    def contains(self, block_id: Any) -> bool:
        return self._inner.contains(block_id)

    def is_canon(self, block_id: Any) -> bool:
        return self._inner.is_canon(block_id)

    def lookup_canon_depth(self, depth: int) -> Any:
        return self._inner.lookup_canon_depth(depth)

    def auxiliary(self, key: Any) -> Any:
        return self._inner.auxiliary(key)

    def depth_at(self, block_id: Any) -> int:
        return self._inner.depth_at(block_id)

    def children_at(self, block_id: Any) -> list:
        return self._inner.children_at(block_id)

    def state_at(self, block_id: Any) -> Any:
        return self._inner.state_at(block_id)

    def block_at(self, block_id: Any) -> Any:
        return self._inner.block_at(block_id)

    def ancestor_at(self, block_id: Any, depth: int) -> Any:
        return NoCacheAncestorQuery(self._inner).ancestor_at(block_id, depth)

    def commit(self, operation: Any) -> None:
        self._inner.commit(operation)