"""Deterministic, seed-driven winner selection."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import secrets
from typing import Callable, Dict, Optional, Sequence

from .errors import SelectionError
from .pool import compute_pool_hash

SEED_BYTES = 32
DIGEST_BITS = 256
MAX_REJECTION_ROUNDS = 64
DEFAULT_ALGORITHM_KEY = "sha256-rejection-v1"


@dataclass(frozen=True)
class Selection:
    """Outcome of a selection.

    Attributes
    ----------
    index : int
        Position of the winner in the canonical pool.
    token : str
        Winning draw token.
    pool_hash : str
        Commitment to the pool the selection ran on.
    digest : str
        Hex digest whose integer value produced ``index``.
    rounds : int
        Number of hashes computed; 1 unless rejection sampling re-hashed.
    """

    index: int
    token: str
    pool_hash: str
    digest: str
    rounds: int


def generate_seed() -> bytes:
    """Return a fresh 256-bit seed from the operating system CSPRNG."""
    return secrets.token_bytes(SEED_BYTES)


def seed_from_hex(value: str) -> bytes:
    """Decode a disclosed hex seed, enforcing its length."""
    try:
        seed = bytes.fromhex(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("seed must be a hex string") from exc
    if len(seed) != SEED_BYTES:
        raise ValueError(f"seed must be exactly {SEED_BYTES} bytes")
    return seed


def _sha256_rejection(seed: bytes, pool: Sequence[str]) -> Selection:
    """Map ``SHA-256(seed || pool_hash)`` onto the pool without modulo bias."""
    if not isinstance(seed, (bytes, bytearray)):
        raise TypeError("seed must be bytes")
    if len(seed) != SEED_BYTES:
        raise ValueError(f"seed must be exactly {SEED_BYTES} bytes")
    size = len(pool)
    if size == 0:
        raise ValueError("cannot select from an empty pool")

    pool_hash = compute_pool_hash(pool)
    digest = hashlib.sha256(bytes(seed) + bytes.fromhex(pool_hash)).digest()
    limit = ((1 << DIGEST_BITS) // size) * size

    rounds = 1
    value = int.from_bytes(digest, "big")
    while value >= limit:
        if rounds >= MAX_REJECTION_ROUNDS:
            raise SelectionError(
                f"Rejection sampling did not converge within {MAX_REJECTION_ROUNDS} rounds"
            )
        digest = hashlib.sha256(digest).digest()
        value = int.from_bytes(digest, "big")
        rounds += 1

    index = value % size
    return Selection(
        index=index,
        token=pool[index],
        pool_hash=pool_hash,
        digest=digest.hex(),
        rounds=rounds,
    )


@dataclass(frozen=True)
class SelectionAlgorithm:
    """Definition of a selection procedure.

    Attributes
    ----------
    key : str
        Identifier stored on every draw record produced with the algorithm.
    selector : Callable[[bytes, Sequence[str]], Selection]
        Callable taking the seed and the canonical pool.
    description : Optional[str]
        Human-readable summary, reproduced in audit reports.
    """

    key: str
    selector: Callable[[bytes, Sequence[str]], Selection]
    description: Optional[str] = None

    def select(self, seed: bytes, pool: Sequence[str]) -> Selection:
        return self.selector(seed, pool)


class AlgorithmRegistry:
    """Mutable registry mapping algorithm keys to definitions."""

    def __init__(self) -> None:
        self._algorithms: Dict[str, SelectionAlgorithm] = {}

    def register(self, algorithm: SelectionAlgorithm, *, replace: bool = False) -> None:
        """Register a selection algorithm under its key.

        Parameters
        ----------
        algorithm : SelectionAlgorithm
            Algorithm to add to the registry.
        replace : bool, default: False
            When ``True`` an existing registration with the same key is
            overwritten. Otherwise a duplicate raises :class:`ValueError`.
        """
        if not replace and algorithm.key in self._algorithms:
            raise ValueError(f"Algorithm '{algorithm.key}' is already registered")
        self._algorithms[algorithm.key] = algorithm

    def get(self, key: str) -> SelectionAlgorithm:
        """Return the algorithm registered under ``key``."""
        try:
            return self._algorithms[key]
        except KeyError as exc:
            raise KeyError(f"Unknown selection algorithm '{key}'") from exc

    def available_algorithms(self) -> Dict[str, SelectionAlgorithm]:
        """Return a copy of the registered algorithms keyed by identifier."""
        return dict(self._algorithms)


DEFAULT_SELECTION_REGISTRY = AlgorithmRegistry()
DEFAULT_SELECTION_REGISTRY.register(
    SelectionAlgorithm(
        key=DEFAULT_ALGORITHM_KEY,
        selector=_sha256_rejection,
        description=(
            "Sort and de-duplicate the draw tokens. Hash the pool with SHA-256, "
            "framing every UTF-8 token with a 4-byte big-endian length. Compute "
            "SHA-256(seed || pool_hash) and read it as a 256-bit unsigned "
            "integer r. With N candidates, while r >= floor(2^256 / N) * N, "
            "replace the digest by its own SHA-256 and re-read r. The winner is "
            "the token at position r mod N of the sorted pool."
        ),
    )
)


def select_winner(
    seed: bytes,
    pool: Sequence[str],
    *,
    algorithm_key: str = DEFAULT_ALGORITHM_KEY,
    registry: Optional[AlgorithmRegistry] = None,
) -> Selection:
    """Select one winner from the canonical ``pool`` using ``seed``.

    The result depends on nothing but the seed and the pool members, so any
    party holding both can recompute it.

    Raises
    ------
    ValueError
        If the seed is not 32 bytes or the pool is empty.
    SelectionError
        If rejection sampling exhausts its round cap.
    """
    active_registry = registry or DEFAULT_SELECTION_REGISTRY
    return active_registry.get(algorithm_key).select(seed, pool)


__all__ = [
    "AlgorithmRegistry",
    "DEFAULT_ALGORITHM_KEY",
    "DEFAULT_SELECTION_REGISTRY",
    "MAX_REJECTION_ROUNDS",
    "SEED_BYTES",
    "Selection",
    "SelectionAlgorithm",
    "generate_seed",
    "seed_from_hex",
    "select_winner",
]
