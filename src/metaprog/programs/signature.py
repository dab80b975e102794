# src/metaprog/programs/signature.py
"""
Consensus gene signatures for clusters of programs.

For each cluster:
  1) mean weight of each gene across member programs (missing = 0)
  2) drop genes present in fewer than min_confidence of the members
  3) divide by (1 + specificity_weight * the gene's highest mean weight
     in any other cluster)
  4) sort descending and keep the shortest prefix explaining
     weight_explained of the total, capped at max_genes
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from metaprog.errors import EmptySignatureError, InvalidInputError
from metaprog.programs.cluster import Partition
from metaprog.programs.extract import Program
from metaprog.programs.similarity import program_matrix


@dataclass(frozen=True, eq=False)
class ConsensusSignature:
    cluster_id: int
    genes: Tuple[str, ...]
    weights: np.ndarray

    def __len__(self) -> int:
        return len(self.genes)


def build_signature(
    cluster_id: int,
    genes: Sequence[str],
    weights: np.ndarray,
    weight_explained: float = 0.5,
    max_genes: Optional[int] = 200,
) -> ConsensusSignature:
    """
    Truncate one cluster's (already filtered and penalized) gene weights.

    Raises EmptySignatureError when no gene has positive weight.
    """
    weights = np.asarray(weights, dtype=np.float64)
    nz = np.flatnonzero(weights > 0)
    if nz.size == 0:
        raise EmptySignatureError(cluster_id)

    order = nz[np.argsort(-weights[nz], kind="stable")]
    w = weights[order]
    cum_frac = np.cumsum(w) / w.sum()

    # first position where the cumulative fraction reaches the threshold
    n_keep = int(np.searchsorted(cum_frac, float(weight_explained), side="left")) + 1
    n_keep = min(n_keep, w.size)
    if max_genes is not None:
        n_keep = min(n_keep, int(max_genes))

    kept = w[:n_keep].copy()
    kept.setflags(write=False)
    return ConsensusSignature(
        cluster_id=int(cluster_id),
        genes=tuple(str(genes[i]) for i in order[:n_keep]),
        weights=kept,
    )


def _cluster_weights(
    X,
    clusters: Dict[int, List[int]],
    min_confidence: float,
) -> Dict[int, np.ndarray]:
    """Mean weight per gene per cluster, zeroed below min_confidence."""
    out: Dict[int, np.ndarray] = {}
    for cid, idx in clusters.items():
        sub = X[idx]
        n = len(idx)
        mean = np.asarray(sub.sum(axis=0)).ravel() / n
        if min_confidence > 0.0:
            present = np.asarray((sub > 0).sum(axis=0)).ravel()
            mean = np.where(present >= min_confidence * n - 1e-9, mean, 0.0)
        out[cid] = mean
    return out


def _specificity_penalty(
    weights: Dict[int, np.ndarray],
    specificity_weight: float,
) -> Dict[int, np.ndarray]:
    if specificity_weight <= 0.0 or len(weights) < 2:
        return dict(weights)

    ids = list(weights)
    stacked = np.vstack([weights[cid] for cid in ids])

    out = {}
    for row, cid in enumerate(ids):
        others = np.delete(stacked, row, axis=0)
        other_max = others.max(axis=0)
        out[cid] = weights[cid] / (1.0 + specificity_weight * other_max)
    return out


def build_signatures(
    programs: Sequence[Program],
    partition: Partition,
    weight_explained: float = 0.5,
    max_genes: Optional[int] = 200,
    min_confidence: float = 0.0,
    specificity_weight: float = 0.0,
) -> Tuple[Dict[int, ConsensusSignature], Dict[int, str]]:
    """
    Consensus signature for every cluster of the partition.

    Returns (signatures, dropped): clusters whose signature is empty after
    confidence filtering are left out of `signatures` and listed in
    `dropped` with the reason.
    """
    keys = tuple(p.key for p in programs)
    if keys != tuple(partition.keys):
        raise InvalidInputError("Programs are not aligned with the partition keys.")

    X, genes = program_matrix(programs)
    X = X.tocsr()

    weights = _cluster_weights(X, partition.clusters(), float(min_confidence))
    weights = _specificity_penalty(weights, float(specificity_weight))

    signatures: Dict[int, ConsensusSignature] = {}
    dropped: Dict[int, str] = {}
    for cid in sorted(weights):
        try:
            signatures[cid] = build_signature(
                cid,
                genes,
                weights[cid],
                weight_explained=weight_explained,
                max_genes=max_genes,
            )
        except EmptySignatureError as exc:
            dropped[cid] = str(exc)
    return signatures, dropped
