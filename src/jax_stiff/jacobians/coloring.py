"""Column coloring of Jacobian sparsity patterns."""

from typing import TYPE_CHECKING

import numpy as np
import scipy.sparse as sp

if TYPE_CHECKING:
    from .sparsity import SparsityPattern


def greedy_coloring(pattern: "SparsityPattern") -> np.ndarray:
    """
    Greedy distance-2 coloring of the columns of a sparsity pattern.

    Two columns conflict when they have a structural nonzero in the same row,
    i.e. when they are adjacent in the column-intersection graph S^T S.
    Columns are visited in order of decreasing degree and each one receives
    the smallest color not used by its neighbours.

    Args:
        pattern: Sparsity pattern of the Jacobian.

    Returns:
        Integer array of length n with colors 0, 1, ..., ncolors - 1.
    """
    n = pattern.shape[1]
    S = sp.csc_matrix(
        (np.ones(pattern.nnz, dtype=np.int8), (pattern.rows, pattern.cols)),
        shape=pattern.shape,
    )
    G = (S.T @ S).tocsr()
    degree = np.diff(G.indptr)
    order = np.argsort(-degree, kind="stable")

    colors = np.full(n, -1, dtype=np.int64)
    for j in order:
        neighbours = G.indices[G.indptr[j]:G.indptr[j + 1]]
        used = colors[neighbours]
        used = used[used >= 0]
        if used.size == 0:
            colors[j] = 0
            continue
        taken = np.zeros(used.max() + 2, dtype=bool)
        taken[used] = True
        colors[j] = int(np.argmin(taken))
    return colors


def banded_coloring(n: int, lower: int, upper: int) -> np.ndarray:
    """
    Coloring of a banded pattern derived from its bandwidths.

    Columns j and j + (lower + upper + 1) never share a row, so
    `j mod (lower + upper + 1)` is a valid coloring.
    """
    return np.arange(n, dtype=np.int64) % (lower + upper + 1)


def block_banded_coloring(
    nblocks: int, block_size: int, lower: int, upper: int
) -> np.ndarray:
    """Coloring of a block-banded pattern with dense blocks."""
    j = np.arange(nblocks * block_size, dtype=np.int64)
    block = j // block_size
    return (block % (lower + upper + 1)) * block_size + j % block_size


def is_valid_coloring(pattern: "SparsityPattern", colors: np.ndarray) -> bool:
    """Check that no two columns of the same color share a nonzero row."""
    colors = np.asarray(colors)
    if colors.shape != (pattern.shape[1],):
        return False
    ncolors = int(colors.max()) + 1 if colors.size else 0
    keys = pattern.rows.astype(np.int64) * ncolors + colors[pattern.cols]
    return np.unique(keys).size == pattern.nnz


def normalize_coloring(colors) -> np.ndarray:
    """Relabel arbitrary integer colors to 0, 1, ..., ncolors - 1."""
    _, labels = np.unique(np.asarray(colors), return_inverse=True)
    return labels.astype(np.int64).ravel()
