# src/metaprog/programs/cluster.py
"""
Agglomerative clustering of programs into a fixed number of groups.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
from scipy.cluster.hierarchy import cut_tree, linkage
from scipy.spatial.distance import squareform

from metaprog.errors import DegenerateClusteringError
from metaprog.programs.config import LINKAGE_METHODS
from metaprog.programs.extract import ProgramKey
from metaprog.programs.similarity import SimilarityMatrix


@dataclass(frozen=True, eq=False)
class Partition:
    """
    Hard partition of programs.

    labels[i] is the cluster id (0..n_clusters-1) of keys[i]; cluster 0 is
    the largest. linkage_matrix is scipy's Z, kept for dendrograms.
    """

    keys: Tuple[ProgramKey, ...]
    labels: np.ndarray
    linkage_matrix: np.ndarray
    method: str

    @property
    def n_clusters(self) -> int:
        return int(np.unique(self.labels).size)

    def members(self, cluster_id: int) -> List[int]:
        """Program indices in the given cluster, in input order."""
        return np.flatnonzero(self.labels == int(cluster_id)).tolist()

    def clusters(self) -> Dict[int, List[int]]:
        return {int(c): self.members(c) for c in np.unique(self.labels)}


def _relabel(raw: np.ndarray) -> np.ndarray:
    """Renumber clusters: largest first, ties broken by first member position."""
    ids, first, counts = np.unique(raw, return_index=True, return_counts=True)
    order = sorted(range(ids.size), key=lambda i: (-counts[i], first[i]))
    mapping = {int(ids[i]): rank for rank, i in enumerate(order)}
    return np.array([mapping[int(x)] for x in raw], dtype=np.int64)


def cluster_programs(
    similarity: SimilarityMatrix,
    n_mp: int,
    method: str = "ward",
) -> Partition:
    """
    Hierarchical clustering on distance = 1 - similarity, cut into exactly n_mp groups.

    scipy's linkage uses the nearest-neighbour chain algorithm for
    ward/complete/average/weighted and a minimum spanning tree for single.
    """
    if method not in LINKAGE_METHODS:
        raise ValueError(f"method must be one of {LINKAGE_METHODS}, got {method!r}")

    n_programs = len(similarity)
    n_mp = int(n_mp)
    if n_mp < 1:
        raise DegenerateClusteringError(f"n_mp must be >= 1, got {n_mp}")
    if n_mp > n_programs:
        raise DegenerateClusteringError(
            f"Requested n_mp={n_mp} exceeds the number of programs ({n_programs})"
        )
    if n_programs < 2:
        raise DegenerateClusteringError(
            "At least two programs are needed for clustering."
        )

    S = similarity.values
    off_diag = ~np.eye(n_programs, dtype=bool)
    if not np.any(S[off_diag] > 0):
        raise DegenerateClusteringError(
            "Similarity matrix is all-zero off the diagonal; nothing to cluster."
        )

    condensed = squareform(similarity.distances(), checks=False)
    Z = linkage(condensed, method=method)
    raw = cut_tree(Z, n_clusters=n_mp).ravel()
    labels = _relabel(raw)

    if np.unique(labels).size != n_mp:
        raise DegenerateClusteringError(
            f"Tree cut produced {np.unique(labels).size} clusters, expected {n_mp}"
        )

    labels.setflags(write=False)
    return Partition(
        keys=similarity.keys,
        labels=labels,
        linkage_matrix=Z,
        method=method,
    )
