"""Jacobian sparsity prototypes."""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import scipy.sparse as sp

from .coloring import greedy_coloring, banded_coloring, block_banded_coloring


@dataclass(frozen=True, eq=False)
class SparsityPattern:
    """
    Fixed set of structural nonzeros of an n x n Jacobian.

    Entries are stored sorted by column, then row, which is the order of
    the data array of the matching CSC matrix.

    Attributes:
        rows: Row indices of the structural nonzeros.
        cols: Column indices of the structural nonzeros.
        shape: Matrix shape (n, n).
    """

    rows: np.ndarray
    cols: np.ndarray
    shape: Tuple[int, int]

    def __post_init__(self):
        rows = np.asarray(self.rows, dtype=np.int64).ravel()
        cols = np.asarray(self.cols, dtype=np.int64).ravel()
        shape = tuple(int(s) for s in self.shape)
        if len(shape) != 2 or shape[0] != shape[1]:
            raise ValueError(f"Sparsity pattern must be square, got shape {shape}")
        if rows.shape != cols.shape:
            raise ValueError("rows and cols must have the same length")
        n = shape[0]
        if rows.size and (rows.min() < 0 or rows.max() >= n
                          or cols.min() < 0 or cols.max() >= n):
            raise ValueError("Pattern indices out of range")

        keys = np.unique(cols * n + rows)
        object.__setattr__(self, "rows", keys % n)
        object.__setattr__(self, "cols", keys // n)
        object.__setattr__(self, "shape", shape)

    @classmethod
    def from_matrix(cls, A) -> "SparsityPattern":
        """Build a pattern from a scipy sparse matrix or a dense array.

        For sparse input every stored entry is structural, including explicit
        zeros. For dense input the nonzero entries are used.
        """
        if isinstance(A, SparsityPattern):
            return A
        if sp.issparse(A):
            coo = sp.coo_matrix(A)
            return cls(coo.row, coo.col, coo.shape)
        A = np.asarray(A)
        rows, cols = np.nonzero(A)
        return cls(rows, cols, A.shape)

    @property
    def n(self) -> int:
        return self.shape[0]

    @property
    def nnz(self) -> int:
        return int(self.rows.size)

    def coloring(self) -> np.ndarray:
        """Column coloring used by colored finite differences."""
        return greedy_coloring(self)

    def bandwidths(self) -> Optional[Tuple[int, int]]:
        """(lower, upper) bandwidths when the pattern is declared banded."""
        return None

    @property
    def indptr(self) -> np.ndarray:
        counts = np.bincount(self.cols, minlength=self.n)
        return np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)

    def to_csc(self, values) -> sp.csc_matrix:
        """Wrap values (ordered like rows/cols) in a CSC matrix."""
        values = np.asarray(values)
        if values.shape != (self.nnz,):
            raise ValueError(
                f"Expected {self.nnz} values for this pattern, got {values.shape}"
            )
        return sp.csc_matrix((values, self.rows, self.indptr), shape=self.shape)

    def values_of(self, A) -> np.ndarray:
        """
        Extract the pattern's entries from a matrix.

        Raises:
            ValueError: If A has nonzeros outside the pattern.
        """
        if sp.issparse(A):
            coo = sp.coo_matrix(A)
            coo.sum_duplicates()
            nz = coo.data != 0
            outside = ~self.contains(coo.row[nz], coo.col[nz])
            if np.any(outside):
                raise ValueError(
                    f"Jacobian has {int(outside.sum())} nonzeros outside the "
                    "sparsity prototype; the pattern must stay fixed."
                )
            return np.asarray(sp.csc_matrix(A)[self.rows, self.cols]).ravel()

        A = np.asarray(A)
        mask = np.ones(A.shape, dtype=bool)
        mask[self.rows, self.cols] = False
        if np.any(A[mask] != 0):
            raise ValueError(
                "Jacobian has nonzeros outside the sparsity prototype; "
                "the pattern must stay fixed."
            )
        return A[self.rows, self.cols]

    def contains(self, rows, cols) -> np.ndarray:
        keys = np.asarray(cols, dtype=np.int64) * self.n + np.asarray(rows)
        return np.isin(keys, self.cols * self.n + self.rows)

    def to_dense(self) -> np.ndarray:
        mask = np.zeros(self.shape, dtype=bool)
        mask[self.rows, self.cols] = True
        return mask


class BandedPattern(SparsityPattern):
    """
    Banded pattern: entry (i, j) is nonzero when -upper <= i - j <= lower.

    The coloring comes from the bandwidth instead of a graph algorithm.
    """

    def __init__(self, n: int, lower: int, upper: int):
        if lower < 0 or upper < 0:
            raise ValueError("Bandwidths must be non-negative")
        offsets = np.arange(-upper, lower + 1)
        rows = (np.arange(n)[None, :] + offsets[:, None]).ravel()
        cols = np.broadcast_to(np.arange(n), (offsets.size, n)).ravel()
        keep = (rows >= 0) & (rows < n)
        super().__init__(rows[keep], cols[keep], (n, n))
        object.__setattr__(self, "lower", int(lower))
        object.__setattr__(self, "upper", int(upper))

    def coloring(self) -> np.ndarray:
        return banded_coloring(self.n, self.lower, self.upper)

    def bandwidths(self) -> Optional[Tuple[int, int]]:
        return (self.lower, self.upper)


class Tridiagonal(BandedPattern):
    """Tridiagonal pattern (three colors)."""

    def __init__(self, n: int):
        super().__init__(n, 1, 1)


class BlockBandedPattern(SparsityPattern):
    """
    Block-banded pattern with dense blocks.

    Block (I, J) is nonzero when -upper <= I - J <= lower.

    Args:
        nblocks: Number of block rows (and block columns).
        block_size: Size of each square block.
        lower: Number of block sub-diagonals.
        upper: Number of block super-diagonals.
    """

    def __init__(self, nblocks: int, block_size: int, lower: int, upper: int):
        if lower < 0 or upper < 0:
            raise ValueError("Bandwidths must be non-negative")
        n = nblocks * block_size
        i, j = np.meshgrid(np.arange(n), np.arange(n), indexing="ij")
        diff = i // block_size - j // block_size
        keep = (diff <= lower) & (diff >= -upper)
        super().__init__(i[keep], j[keep], (n, n))
        object.__setattr__(self, "nblocks", int(nblocks))
        object.__setattr__(self, "block_size", int(block_size))
        object.__setattr__(self, "lower", int(lower))
        object.__setattr__(self, "upper", int(upper))

    def coloring(self) -> np.ndarray:
        return block_banded_coloring(
            self.nblocks, self.block_size, self.lower, self.upper
        )

    def bandwidths(self) -> Optional[Tuple[int, int]]:
        bs = self.block_size
        return ((self.lower + 1) * bs - 1, (self.upper + 1) * bs - 1)


def as_pattern(prototype) -> Optional[SparsityPattern]:
    """Convert a user-supplied Jacobian prototype to a SparsityPattern."""
    if prototype is None:
        return None
    return SparsityPattern.from_matrix(prototype)
