"""Pool of attestations waiting to be included in a block."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Iterator, Sequence


@dataclass
class Attestation:
    """An attestation with its aggregation and custody bitfields."""

    aggregation_bits: list[bool]
    data: Any
    custody_bits: list[bool]
    signature: Any = None

    def copy(self) -> "Attestation":
        return Attestation(
            list(self.aggregation_bits), self.data, list(self.custody_bits), self.signature
        )


@dataclass
class AttestationPool:
    """Attestations grouped by the hash of their data.

    ``aggregate_signatures`` combines a list of signatures into one; ``key``
    maps attestation data to the grouping hash (the data itself by default).
    """

    aggregate_signatures: Callable[[Sequence[Any]], Any]
    key: Callable[[Any], Hashable] = lambda data: data
    _pool: dict = field(default_factory=dict, init=False, repr=False)

    def push(self, attestation: Attestation) -> None:
        """Add an attestation, aggregating it into an existing one if possible."""
        attestation = attestation.copy()
        digest = self.key(attestation.data)
        existings = self._pool.get(digest)
        if existings is None:
            self._pool[digest] = [attestation]
            return

        for existing in existings:
            has_duplicate = any(
                attestation.aggregation_bits[i]
                for i in range(len(existing.aggregation_bits))
            )
            if has_duplicate:
                continue
            if any(attestation.custody_bits[: len(existing.custody_bits)]):
                raise ValueError("custody bits must not be set")
            for i, bit in enumerate(attestation.aggregation_bits):
                existing.aggregation_bits[i] |= bit
            for i, bit in enumerate(attestation.custody_bits):
                existing.custody_bits[i] |= bit
            existing.signature = self.aggregate_signatures(
                [existing.signature, attestation.signature]
            )
            return

        existings.append(attestation)

    def pop(self, key: Hashable) -> None:
        """Remove every attestation stored under ``key``."""
        self._pool.pop(key, None)

    def __iter__(self) -> Iterator[tuple[Hashable, Attestation]]:
        for digest, attestations in self._pool.items():
            for attestation in attestations:
                yield digest, attestation

    def __len__(self) -> int:
        return sum(len(group) for group in self._pool.values())