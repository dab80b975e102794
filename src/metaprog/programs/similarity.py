# src/metaprog/programs/similarity.py
"""
Pairwise program similarity (cosine or jaccard).

Programs are laid out as rows of a sparse [P, G] matrix over the union of
their genes, so both metrics reduce to one sparse matrix product.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
import scipy.sparse as sp
from sklearn.metrics.pairwise import cosine_similarity

from metaprog.errors import InvalidInputError
from metaprog.programs.config import SIMILARITY_METRICS
from metaprog.programs.extract import Program, ProgramKey, gene_universe

# rounding makes identical programs score exactly 1.0 and keeps reruns byte-identical
_DECIMALS = 12


@dataclass(frozen=True, eq=False)
class SimilarityMatrix:
    """
    Symmetric [P, P] similarity between programs, values in [0, 1], diagonal 1.
    """

    keys: Tuple[ProgramKey, ...]
    values: np.ndarray
    metric: str

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_index", {key: i for i, key in enumerate(self.keys)}
        )

    def __len__(self) -> int:
        return len(self.keys)

    def index_of(self, key: ProgramKey) -> int:
        return self._index[key]  # type: ignore[attr-defined]

    def __getitem__(self, pair: Tuple[ProgramKey, ProgramKey]) -> float:
        a, b = pair
        return float(self.values[self.index_of(a), self.index_of(b)])

    def distances(self) -> np.ndarray:
        """1 - similarity, with an exact zero diagonal."""
        D = 1.0 - self.values
        np.fill_diagonal(D, 0.0)
        return np.clip(D, 0.0, 1.0)

    def to_frame(self) -> pd.DataFrame:
        names = [str(k) for k in self.keys]
        return pd.DataFrame(self.values, index=names, columns=names)


def program_matrix(
    programs: Sequence[Program],
    genes: Sequence[str] | None = None,
    min_weight: float = 0.0,
    top_n: int | None = None,
) -> Tuple[sp.csr_matrix, List[str]]:
    """
    Stack programs into a sparse [P, G] weight matrix.

    Genes below min_weight are dropped; with top_n only each program's
    first top_n genes are kept.
    """
    genes = list(genes) if genes is not None else gene_universe(programs)
    gene_idx: Dict[str, int] = {g: i for i, g in enumerate(genes)}

    rows, cols, vals = [], [], []
    for i, p in enumerate(programs):
        w = p.weights
        g = p.genes
        if top_n is not None:
            w = w[: int(top_n)]
            g = g[: int(top_n)]
        keep = np.flatnonzero(w >= float(min_weight))
        rows.append(np.full(keep.size, i, dtype=np.int64))
        cols.append(np.fromiter((gene_idx[g[j]] for j in keep), dtype=np.int64, count=keep.size))
        vals.append(w[keep])

    X = sp.csr_matrix(
        (
            np.concatenate(vals) if vals else np.zeros(0),
            (
                np.concatenate(rows) if rows else np.zeros(0, dtype=np.int64),
                np.concatenate(cols) if cols else np.zeros(0, dtype=np.int64),
            ),
        ),
        shape=(len(programs), len(genes)),
    )
    return X, genes


def _cosine(X: sp.csr_matrix) -> np.ndarray:
    return cosine_similarity(X, dense_output=True)


def _jaccard(X: sp.csr_matrix) -> np.ndarray:
    B = (X > 0).astype(np.float64)
    inter = np.asarray((B @ B.T).todense())
    sizes = np.asarray(B.sum(axis=1)).ravel()
    union = sizes[:, None] + sizes[None, :] - inter
    with np.errstate(divide="ignore", invalid="ignore"):
        S = np.where(union > 0, inter / union, 0.0)
    return S


def compute_similarity(
    programs: Sequence[Program],
    metric: str = "cosine",
    top_n: int = 50,
    min_similarity: float = 0.0,
    min_weight: float = 0.0,
) -> SimilarityMatrix:
    """
    Pairwise similarity for every pair of programs.

      cosine:  gene-aligned weight vectors, missing genes count as 0
      jaccard: |A ∩ B| / |A ∪ B| over each program's top_n genes

    Off-diagonal values below min_similarity are set to 0. Programs sharing
    no genes score 0.
    """
    if metric not in SIMILARITY_METRICS:
        raise ValueError(f"metric must be one of {SIMILARITY_METRICS}, got {metric!r}")
    if len(programs) == 0:
        raise InvalidInputError("No programs to compare.")

    keys = tuple(p.key for p in programs)
    if len(set(keys)) != len(keys):
        raise InvalidInputError("Program keys must be unique.")

    if metric == "cosine":
        X, _ = program_matrix(programs, min_weight=min_weight)
        S = _cosine(X)
    else:
        X, _ = program_matrix(programs, min_weight=min_weight, top_n=top_n)
        S = _jaccard(X)

    S = np.asarray(S, dtype=np.float64)
    S = (S + S.T) / 2.0
    S = np.round(np.clip(S, 0.0, 1.0), _DECIMALS)
    if min_similarity > 0.0:
        S[S < float(min_similarity)] = 0.0
    np.fill_diagonal(S, 1.0)
    S.setflags(write=False)

    return SimilarityMatrix(keys=keys, values=S, metric=metric)
