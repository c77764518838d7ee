"""Answers peers' status and block range queries from the local chain."""

from __future__ import annotations

import logging
import threading
from typing import Any, ContextManager, Optional

from .messages import BeaconBlocksRequest, HelloMessage
from .primitives import H256

log = logging.getLogger(__name__)


class Handler:
    """Serves chain data to the network layer.

    The backend offers the chain queries of a block store; the states it
    returns expose ``slot``, ``finalized_checkpoint`` (``root``, ``epoch``) and
    ``fork.current_version``. Blocks are returned as the backend stores them.
    """

    def __init__(self, backend: Any, import_lock: Optional[ContextManager] = None) -> None:
        self._backend = backend
        self._import_lock = import_lock if import_lock is not None else threading.RLock()

    def status(self) -> HelloMessage:
        """Handshake message describing the local head."""
        head_hash = self._backend.head()
        state = self._backend.state_at(head_hash)
        return HelloMessage(
            fork_version=state.fork.current_version,
            finalized_root=state.finalized_checkpoint.root,
            finalized_epoch=state.finalized_checkpoint.epoch,
            head_root=head_hash,
            head_slot=state.slot,
        )

    def head_request(self, count: int) -> BeaconBlocksRequest:
        """Request for ``count`` blocks following the local head."""
        head_hash = self._backend.head()
        head_slot = self._backend.state_at(head_hash).slot
        log.info("Chain head: %s (slot: %s)", head_hash, head_slot)
        return BeaconBlocksRequest(
            head_block_root=head_hash,
            start_slot=head_slot + 1,
            count=count,
            step=1,
        )

    def _blocks_by_depth(self, start_depth: int, count: int) -> list:
        blocks = []
        for depth in range(start_depth, start_depth + count):
            try:
                block_id = self._backend.lookup_canon_depth(depth)
            except Exception:
                # A failed lookup ends the range, like a missing one.
                break
            if block_id is None:
                break
            blocks.append(self._backend.block_at(block_id))
        return blocks

    def blocks_by_depth(self, start_depth: int, count: int) -> list:
        """Up to ``count`` canonical blocks starting at ``start_depth``."""
        with self._import_lock:
            return self._blocks_by_depth(start_depth, count)

    def blocks_by_slot(self, start_hash: Any, start_slot: int, count: int) -> list:
        """Canonical blocks from the ancestor of ``start_hash`` at or below ``start_slot``.

        An unknown or zero ``start_hash`` starts right after genesis; a
        non-canonical one yields nothing.
        """
        with self._import_lock:
            if not self._backend.contains(start_hash) or start_hash == H256.zero():
                return self._blocks_by_depth(1, count)

            if not self._backend.is_canon(start_hash):
                return []

            try:
                state = self._backend.state_at(start_hash)
            except Exception:
                return []

            while state.slot > start_slot:
                parent = self._backend.block_at(start_hash).parent_id()
                if parent is None:
                    break
                start_hash = parent
                try:
                    state = self._backend.state_at(start_hash)
                except Exception:
                    return []

            start_depth = self._backend.depth_at(start_hash)
            return self._blocks_by_depth(start_depth, count)