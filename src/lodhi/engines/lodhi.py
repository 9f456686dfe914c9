"""
Gap-weighted subsequence kernel (Lodhi et al., 2002) evaluated over the match positions of an alignment.

All matches are treated as mutually matching symbols, so only their positions (and the gaps between them) affect
the score. For subsequence order ``k`` and decay ``λ`` the kernel sums, over every increasing ``k``-tuple of match
positions, ``λ`` raised to the span of the tuple plus one. The score is the raw, unnormalised kernel value.

The recurrence runs in ``O(m·k)`` time for ``m`` matches. Powers of ``λ`` are advanced incrementally with
per-gap jump multipliers rather than recomputed at each position, which is faster but accumulates rounding error
over very long alignments. ``λ`` is not range-checked beyond a ``DecayWarning``: ``λ == 0`` or extreme spans
produce ``inf``, ``nan`` or ``0.0`` following IEEE semantics.

Examples:
    >>> from lodhi.core.cigar import Cigar
    >>> compute(Cigar.parse(b'2=1D3='), k=3, lambda_decay=0.5)
    0.421875
"""
from typing import Iterable, Optional, Union
from concurrent.futures import Executor
from numbers import Integral
from warnings import warn

import numpy as np

from lodhi.core.cigar import Cigar, CigarOp
from lodhi.utils.protocols import HasCigar
from lodhi.utils.resources import RESOURCES, LodhiWarning, jit


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class KernelError(ValueError):
    """Raised when kernel parameters are invalid, e.g. a subsequence order that is not a positive integer."""


class DecayWarning(LodhiWarning):
    """Issued when the decay factor lies outside (0, 1]. The value is still used as given."""


# Constants ------------------------------------------------------------------------------------------------------------
_MATCH = int(CigarOp.MATCH)
_POS_DTYPE = np.int64
_SCORE_DTYPE = np.float64
_CHUNK_SIZE = 256


# Classes --------------------------------------------------------------------------------------------------------------
class Lodhi:
    """
    Reusable kernel evaluator.

    Keeps its working buffers (match positions, jump multipliers and two DP levels) between calls so that scoring
    many alignments avoids repeated allocation. Buffers grow to the largest alignment seen and are never shrunk;
    each call only reads the entries it has just written, so results are identical to :func:`compute`.

    Instances are not thread-safe; use one per thread.

    Attributes:
        k (int): Default subsequence order.
        lambda_decay (float): Default decay factor.

    Examples:
        >>> lodhi = Lodhi(3, 0.5)
        >>> lodhi.compute(Cigar.parse(b'2=1D3='))
        0.421875
        >>> lodhi.compute(Cigar.parse(b'4=1D1='), k=2)
        1.296875
    """
    __slots__ = ('_k', '_lambda_decay', '_match_pos', '_lam_jumps', '_dp_prev', '_dp')

    def __init__(self, k: int, lambda_decay: float = 0.5):
        """
        Args:
            k: Default subsequence order, must be a positive integer.
            lambda_decay: Default decay factor.

        Raises:
            KernelError: If ``k`` is not a positive integer.
        """
        self._k = _check_k(k)
        self._lambda_decay = _check_decay(lambda_decay)
        self._match_pos = np.empty(0, dtype=_POS_DTYPE)
        self._lam_jumps = np.empty(0, dtype=_SCORE_DTYPE)
        self._dp_prev = np.empty(0, dtype=_SCORE_DTYPE)
        self._dp = np.empty(0, dtype=_SCORE_DTYPE)

    def __repr__(self): return f"Lodhi(k={self._k}, lambda_decay={self._lambda_decay})"
    def __call__(self, cigar: Union[Cigar, HasCigar, bytes, str], **kwargs) -> float: return self.compute(cigar, **kwargs)

    @property
    def k(self) -> int: return self._k
    @k.setter
    def k(self, value: int): self._k = _check_k(value)

    @property
    def lambda_decay(self) -> float: return self._lambda_decay
    @lambda_decay.setter
    def lambda_decay(self, value: float): self._lambda_decay = _check_decay(value)

    @property
    def capacity(self) -> int:
        """Number of matches the buffers can currently hold without reallocating."""
        return len(self._match_pos)

    def compute(self, cigar: Union[Cigar, HasCigar, bytes, str], k: Optional[int] = None,
                lambda_decay: Optional[float] = None) -> float:
        """
        Scores an edit script, reusing this evaluator's buffers.

        Args:
            cigar: The edit script, an object carrying one, or CIGAR text.
            k: Subsequence order for this call, defaults to ``self.k``.
            lambda_decay: Decay factor for this call, defaults to ``self.lambda_decay``.

        Returns:
            The kernel score, ``0.0`` if the script has fewer than ``k`` matches.

        Raises:
            KernelError: If ``k`` is not a positive integer, before any buffer is touched.
        """
        k = self._k if k is None else _check_k(k)
        lambda_decay = self._lambda_decay if lambda_decay is None else _check_decay(lambda_decay)
        return self._compute(_as_cigar(cigar), k, lambda_decay)

    def _compute(self, cigar: Cigar, k: int, lambda_decay: float) -> float:
        m = cigar.n_matches
        self._match_pos = _grow(self._match_pos, m)
        match_pos = self._match_pos[:m]
        _match_positions_kernel(cigar.ops, cigar.counts, _MATCH, match_pos)
        if m < k: return 0.0
        if k == 1: return m * lambda_decay

        self._lam_jumps = _grow(self._lam_jumps, m)
        self._dp_prev = _grow(self._dp_prev, m)
        self._dp = _grow(self._dp, m)
        return _evaluate(match_pos, k, lambda_decay, self._lam_jumps[:m - 1], self._dp_prev[:m], self._dp[:m])


# Functions ------------------------------------------------------------------------------------------------------------
def match_positions(cigar: Union[Cigar, HasCigar, bytes, str]) -> np.ndarray:
    """
    Returns the strictly increasing positions of MATCH operations in the script's position space.

    Examples:
        >>> match_positions(Cigar.parse(b'2=1D3=')).tolist()
        [0, 1, 3, 4, 5]
    """
    cigar = _as_cigar(cigar)
    out = np.empty(cigar.n_matches, dtype=_POS_DTYPE)
    _match_positions_kernel(cigar.ops, cigar.counts, _MATCH, out)
    return out


def compute(cigar: Union[Cigar, HasCigar, bytes, str], k: int, lambda_decay: float) -> float:
    """
    Computes the gap-weighted subsequence kernel over the match positions of an edit script.

    Args:
        cigar: The edit script, an object carrying one, or CIGAR text.
        k: Subsequence order, a positive integer.
        lambda_decay: Decay factor, conventionally in (0, 1].

    Returns:
        The kernel score. ``0.0`` when the script has fewer than ``k`` matches, ``m * lambda_decay`` when ``k == 1``.

    Raises:
        KernelError: If ``k`` is not a positive integer.
    """
    k = _check_k(k)
    lambda_decay = _check_decay(lambda_decay)
    match_pos = match_positions(cigar)
    m = len(match_pos)
    if m < k: return 0.0
    if k == 1: return m * lambda_decay
    return _evaluate(match_pos, k, lambda_decay, np.empty(m - 1, dtype=_SCORE_DTYPE),
                     np.empty(m, dtype=_SCORE_DTYPE), np.empty(m, dtype=_SCORE_DTYPE))


def compute_many(cigars: Iterable[Union[Cigar, HasCigar, bytes, str]], k: int, lambda_decay: float,
                 pool: Optional[Executor] = None) -> np.ndarray:
    """
    Scores many edit scripts in parallel.

    Work is split into chunks, each scored by its own :class:`Lodhi` so no evaluator is shared between threads.

    Args:
        cigars: Edit scripts, objects carrying them, or CIGAR text.
        k: Subsequence order, a positive integer.
        lambda_decay: Decay factor.
        pool: Executor to run on, defaults to the shared ``RESOURCES.pool``.

    Returns:
        ``float64`` array of scores in input order.
    """
    k = _check_k(k)
    lambda_decay = _check_decay(lambda_decay)
    cigars = [_as_cigar(c) for c in cigars]
    scores = np.empty(len(cigars), dtype=_SCORE_DTYPE)
    if not cigars: return scores
    if pool is None: pool = RESOURCES.pool

    tasks = [(cigars[i:i + _CHUNK_SIZE], k, lambda_decay) for i in range(0, len(cigars), _CHUNK_SIZE)]
    start = 0
    for chunk_scores in pool.map(_score_chunk, tasks):
        scores[start:start + len(chunk_scores)] = chunk_scores
        start += len(chunk_scores)
    return scores


def _score_chunk(args: tuple) -> list[float]:
    """Worker function, scores one chunk with a private evaluator."""
    cigars, k, lambda_decay = args
    lodhi = Lodhi(k)
    return [lodhi._compute(cigar, k, lambda_decay) for cigar in cigars]


def _as_cigar(obj: Union[Cigar, HasCigar, bytes, str]) -> Cigar:
    if isinstance(obj, Cigar): return obj
    if isinstance(obj, (bytes, str)): return Cigar.parse(obj)
    if isinstance(obj, HasCigar): return _as_cigar(obj.cigar)
    raise TypeError(f'Cannot interpret {type(obj).__name__} as an edit script')


def _check_k(k: int) -> int:
    if isinstance(k, bool) or not isinstance(k, Integral): raise KernelError(f'k must be an integer, got {k!r}')
    if k <= 0: raise KernelError(f'k must be greater than 0, got {k}')
    return int(k)


def _check_decay(lambda_decay: float) -> float:
    lambda_decay = float(lambda_decay)
    if not 0.0 < lambda_decay <= 1.0:
        warn(f'Decay factor {lambda_decay} is outside (0, 1]', DecayWarning, stacklevel=3)
    return lambda_decay


def _grow(buffer: np.ndarray, n: int) -> np.ndarray:
    return buffer if len(buffer) >= n else np.empty(n, dtype=buffer.dtype)


def _evaluate(match_pos: np.ndarray, k: int, lambda_decay: float, lam_jumps: np.ndarray, dp_prev: np.ndarray,
              dp: np.ndarray) -> float:
    # Division by zero and over/underflow are accepted floating-point outcomes
    with np.errstate(all='ignore'):
        return float(_lodhi_kernel(match_pos, k, np.float64(lambda_decay), lam_jumps, dp_prev, dp))


# Kernels --------------------------------------------------------------------------------------------------------------
@jit
def _match_positions_kernel(ops, counts, match_code, out):
    """Writes the positions of match runs into out, returns the number written."""
    m = 0; cursor = 0
    for i in range(len(ops)):
        n = int(counts[i])
        if ops[i] == match_code:
            for offset in range(n):
                out[m] = cursor + offset
                m += 1
        cursor += n
    return m


@jit(error_model='numpy')
def _lodhi_kernel(match_pos, k, lambda_decay, lam_jumps, dp_prev, dp):
    """
    Evaluates the kernel for k >= 2 over m >= k match positions.
    dp_l[i] = λ^pos[i] * sum_{j < i} (dp_{l-1}[j] * λ^-pos[j]), with dp_1[i] = λ.
    Powers are taken relative to pos[0], which cancels in every term, so a leading gap cannot underflow them.
    dp_prev and dp hold m entries, lam_jumps m - 1; all are overwritten.
    """
    m = len(match_pos)
    for i in range(m): dp_prev[i] = lambda_decay

    # Jump multipliers λ^(pos[i+1] - pos[i])
    for i in range(m - 1): lam_jumps[i] = lambda_decay ** (match_pos[i + 1] - match_pos[i])

    for _ in range(2, k + 1):
        running = 0.0
        lam_cur = 1.0
        lam_cur_inv = 1.0
        for i in range(m):
            dp[i] = lam_cur * running
            running += dp_prev[i] * lam_cur_inv
            if i + 1 < m:
                jump = lam_jumps[i]
                lam_cur *= jump
                lam_cur_inv /= jump
        dp_prev, dp = dp, dp_prev

    total = 0.0
    for i in range(m): total += dp_prev[i]
    return total
