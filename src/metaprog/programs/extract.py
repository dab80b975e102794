# src/metaprog/programs/extract.py
"""
Turn factor matrices into programs: one ranked gene list per factor column.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Tuple

import numpy as np

from metaprog.errors import InvalidInputError
from metaprog.programs.factors import FactorMatrix


class ProgramKey(NamedTuple):
    sample: str
    k: int
    factor: int

    def __str__(self) -> str:
        return f"{self.sample}.k{self.k}.{self.factor}"


@dataclass(frozen=True, eq=False)
class Program:
    """
    One factor of one decomposition.

    genes/weights are sorted by descending weight (ties keep input order),
    contain only non-zero genes, and weights sum to 1.
    """

    key: ProgramKey
    genes: Tuple[str, ...]
    weights: np.ndarray
    n_obs: int = 0

    @property
    def sample(self) -> str:
        return self.key.sample

    @property
    def name(self) -> str:
        return str(self.key)

    def top_genes(self, n: int) -> Tuple[str, ...]:
        return self.genes[: int(n)]

    def as_dict(self) -> dict:
        return dict(zip(self.genes, self.weights.tolist()))


def _validate(factor: FactorMatrix) -> np.ndarray:
    W = np.asarray(factor.loadings, dtype=np.float64)
    where = f"sample={factor.sample!r}, k={factor.k}"
    if W.ndim != 2:
        raise InvalidInputError(f"Loadings must be 2-D (genes x factors), got {W.shape} ({where})")
    if W.shape[1] == 0:
        raise InvalidInputError(f"Factor matrix has zero columns ({where})")
    if W.shape[0] != len(factor.genes):
        raise InvalidInputError(
            f"Loadings have {W.shape[0]} rows but {len(factor.genes)} genes ({where})"
        )
    if len(set(factor.genes)) != len(factor.genes):
        raise InvalidInputError(f"Duplicate gene identifiers ({where})")
    if not np.isfinite(W).all():
        raise InvalidInputError(f"Loadings contain non-finite values ({where})")
    if (W < 0).any():
        raise InvalidInputError(
            f"Loadings contain negative weights; NMF factors must be non-negative ({where})"
        )
    zero_cols = np.flatnonzero(W.sum(axis=0) == 0)
    if zero_cols.size:
        raise InvalidInputError(
            f"Factor(s) {zero_cols.tolist()} have all-zero weights ({where})"
        )
    return W


def extract_programs(factor: FactorMatrix) -> List[Program]:
    """One Program per column of the factor's loading matrix."""
    W = _validate(factor)
    genes = np.asarray(factor.genes, dtype=object)

    programs = []
    for j in range(W.shape[1]):
        col = W[:, j]
        nz = np.flatnonzero(col > 0)
        # stable sort on the negated weights keeps input order for ties
        order = nz[np.argsort(-col[nz], kind="stable")]
        weights = col[order] / col[order].sum()
        weights.setflags(write=False)
        programs.append(
            Program(
                key=ProgramKey(str(factor.sample), int(factor.k), j),
                genes=tuple(str(g) for g in genes[order]),
                weights=weights,
                n_obs=int(factor.n_obs),
            )
        )
    return programs


def extract_all_programs(factors: Iterable[FactorMatrix]) -> List[Program]:
    """Concatenate programs over all decompositions, in iteration order."""
    programs: List[Program] = []
    for factor in factors:
        programs.extend(extract_programs(factor))
    return programs


def gene_universe(programs: Iterable[Program]) -> List[str]:
    """All genes with non-zero weight in any program, in first-seen order."""
    seen = {}
    for p in programs:
        for g in p.genes:
            seen.setdefault(g, None)
    return list(seen)
