"""
Module for representing alignment edit scripts as run-length encoded CIGARs.
"""
from typing import Iterable, Generator, Union
from enum import IntEnum

import numpy as np

from lodhi.utils.resources import jit


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class CigarError(ValueError):
    """Raised when an edit script is malformed (unknown operation, non-positive run length, bad CIGAR text)."""


# Classes --------------------------------------------------------------------------------------------------------------
class CigarOp(IntEnum):
    """Closed set of alignment edit operations. Only MATCH positions contribute to kernel scores."""
    MATCH = 0
    SUB = 1
    INS = 2
    DEL = 3

    @property
    def symbol(self) -> bytes:
        """Returns the extended CIGAR symbol for this operation."""
        return Cigar._OP_BYTES_LOOKUP[self]

    @classmethod
    def from_symbol(cls, symbol: Union[bytes, str]) -> 'CigarOp':
        if isinstance(symbol, str): symbol = symbol.encode('ascii')
        if len(symbol) != 1 or (op := Cigar._BYTE_TO_OP[symbol[0]]) == Cigar._INVALID:
            raise CigarError(f'Unknown CIGAR operation {symbol!r}')
        return cls(int(op))


class Cigar:
    """
    Immutable run-length encoded edit script.

    Stored as two parallel arrays: operation codes (``uint8``) and positive run lengths (``int32``).
    Uses the extended CIGAR alphabet (``=``, ``X``, ``I``, ``D``); the ambiguous SAM ``M`` operation is not
    accepted as it does not distinguish matches from substitutions.

    Examples:
        >>> c = Cigar.parse(b'2=1D3=')
        >>> c.n_matches, c.length
        (5, 6)
        >>> Cigar.from_ops([CigarOp.MATCH, CigarOp.MATCH, CigarOp.DEL]) == Cigar.parse('2=1D')
        True
    """
    __slots__ = ('_ops', '_counts')
    _OP_DTYPE = np.uint8
    _COUNT_DTYPE = np.int32
    _INVALID = np.iinfo(_OP_DTYPE).max
    _OP_BYTES_LOOKUP = [b'=', b'X', b'I', b'D']

    # Fast lookup for bytes -> integer op codes
    _BYTE_TO_OP = np.full(256, _INVALID, dtype=_OP_DTYPE)
    for _op, _sym in enumerate(_OP_BYTES_LOOKUP): _BYTE_TO_OP[ord(_sym)] = _op
    del _op, _sym

    def __init__(self, ops: Union[np.ndarray, Iterable[int]], counts: Union[np.ndarray, Iterable[int]]):
        """
        Initializes a Cigar from parallel operation and run-length arrays.

        Args:
            ops: Operation codes (``CigarOp`` members or their integer values).
            counts: Positive run length for each operation.

        Raises:
            CigarError: If the arrays differ in length, contain unknown operations or non-positive run lengths.
        """
        ops, counts = np.asarray(ops), np.asarray(counts)
        if ops.ndim != 1 or counts.ndim != 1: raise CigarError('Operations and run lengths must be 1-dimensional')
        if len(ops) != len(counts):
            raise CigarError(f'Got {len(ops)} operations but {len(counts)} run lengths')
        if len(ops):
            if ops.dtype.kind not in 'iu': raise CigarError(f'Operation codes must be integers, got {ops.dtype}')
            if counts.dtype.kind not in 'iu': raise CigarError(f'Run lengths must be integers, got {counts.dtype}')
            if ops.min() < 0 or ops.max() >= len(CigarOp): raise CigarError(f'Unknown operation code in {ops}')
            if counts.min() <= 0: raise CigarError('Run lengths must be positive')
            if counts.max() > np.iinfo(self._COUNT_DTYPE).max: raise CigarError('Run length too large')
        self._ops = np.ascontiguousarray(ops, dtype=self._OP_DTYPE)
        self._counts = np.ascontiguousarray(counts, dtype=self._COUNT_DTYPE)
        self._ops.flags.writeable = False
        self._counts.flags.writeable = False

    @classmethod
    def empty(cls) -> 'Cigar':
        return cls(np.empty(0, dtype=cls._OP_DTYPE), np.empty(0, dtype=cls._COUNT_DTYPE))

    @classmethod
    def from_ops(cls, ops: Iterable[Union[CigarOp, int]]) -> 'Cigar':
        """Builds a Cigar from single-position operations, merging adjacent identical operations into runs."""
        codes = np.asarray([int(op) for op in ops], dtype=np.int64)
        if len(codes) == 0: return cls.empty()
        if codes.min() < 0 or codes.max() >= len(CigarOp): raise CigarError(f'Unknown operation code in {codes}')
        counts, run_ops = _rle_kernel(codes.astype(cls._OP_DTYPE))
        return cls(run_ops, counts)

    @classmethod
    def from_runs(cls, runs: Iterable[tuple[Union[CigarOp, int], int]]) -> 'Cigar':
        """Builds a Cigar from explicit ``(operation, run_length)`` pairs, kept as given."""
        runs = list(runs)
        if not runs: return cls.empty()
        ops, counts = zip(*runs)
        return cls([int(op) for op in ops], counts)

    @classmethod
    def parse(cls, cigar: Union[bytes, str]) -> 'Cigar':
        """
        Parses a CIGAR string such as ``b'2=1D3='``. A missing run length counts as 1.

        Raises:
            CigarError: On unknown operations, zero run lengths, run lengths above 2**31 - 1 or a trailing run length
                without an operation.
        """
        if isinstance(cigar, str): cigar = cigar.encode('ascii')
        ops, counts, error_at = _parse_cigar_kernel(np.frombuffer(cigar, dtype=np.uint8), cls._BYTE_TO_OP)
        if error_at >= 0:
            if error_at == len(cigar): raise CigarError(f'CIGAR {cigar!r} ends with a run length but no operation')
            raise CigarError(f'Invalid CIGAR {cigar!r} at position {error_at}')
        return cls(ops, counts)

    @property
    def ops(self) -> np.ndarray: return self._ops
    @property
    def counts(self) -> np.ndarray: return self._counts

    @property
    def length(self) -> int:
        """Total number of aligned positions covered by the script."""
        return int(self._counts.sum(dtype=np.int64))

    @property
    def n_matches(self) -> int: return self.count(CigarOp.MATCH)

    def count(self, op: Union[CigarOp, int]) -> int:
        """Returns the number of positions carrying the given operation."""
        return int(self._counts[self._ops == int(op)].sum(dtype=np.int64))

    def __len__(self) -> int: return len(self._ops)

    def __iter__(self) -> Generator[tuple[CigarOp, int], None, None]:
        for op, n in zip(self._ops, self._counts): yield CigarOp(int(op)), int(n)

    def __bytes__(self) -> bytes:
        return b"".join([b"%d" % c + self._OP_BYTES_LOOKUP[o] for o, c in zip(self._ops, self._counts)])

    def __str__(self) -> str: return bytes(self).decode('ascii')
    def __repr__(self) -> str: return f"Cigar({str(self)!r})"
    def __hash__(self) -> int: return hash(bytes(self))

    def __eq__(self, other):
        if isinstance(other, self.__class__):
            return np.array_equal(self._ops, other._ops) and np.array_equal(self._counts, other._counts)
        return NotImplemented


# Kernels --------------------------------------------------------------------------------------------------------------
@jit
def _parse_cigar_kernel(cigar, map_table):
    """
    Parses CIGAR bytes into op codes and counts.
    Returns (ops, counts, error_at) where error_at is -1 on success.
    """
    n = len(cigar)
    ops = np.empty(n, dtype=np.uint8)
    counts = np.empty(n, dtype=np.int32)
    idx = 0; curr_count = 0; has_digits = False
    for i in range(n):
        b = int(cigar[i])
        if 48 <= b <= 57:
            curr_count = (curr_count * 10) + (b - 48); has_digits = True
            if curr_count > 2147483647: return ops[:0], counts[:0], i  # int32 run length overflow
        else:
            op = map_table[b]
            if op == 255 or (has_digits and curr_count == 0): return ops[:0], counts[:0], i
            ops[idx] = op; counts[idx] = curr_count if has_digits else 1
            idx += 1; curr_count = 0; has_digits = False
    if has_digits: return ops[:0], counts[:0], n
    return ops[:idx], counts[:idx], -1


@jit
def _rle_kernel(ops):
    """Run-length encodes a stream of single-position op codes."""
    n = len(ops)
    if n == 0: return np.empty(0, dtype=np.int32), np.empty(0, dtype=np.uint8)
    counts = np.empty(n, dtype=np.int32); out = np.empty(n, dtype=np.uint8); idx = 0
    curr_op = ops[0]; curr_count = 1
    for i in range(1, n):
        op = ops[i]
        if op == curr_op:
            curr_count += 1
        else:
            counts[idx] = curr_count; out[idx] = curr_op; idx += 1
            curr_op = op; curr_count = 1
    counts[idx] = curr_count; out[idx] = curr_op; idx += 1
    return counts[:idx], out[:idx]
