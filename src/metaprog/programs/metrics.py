# src/metaprog/programs/metrics.py
"""
Per meta-program diagnostics: sample coverage, mean similarity, silhouette.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import silhouette_samples

from metaprog.programs.extract import Program
from metaprog.programs.similarity import SimilarityMatrix


METRIC_COLUMNS = [
    "sample_coverage",
    "mean_similarity",
    "silhouette",
    "n_programs",
    "n_samples",
]


def sample_coverage(members: Sequence[Program], n_total_samples: int) -> float:
    """Distinct samples among members / all distinct input samples."""
    if n_total_samples <= 0:
        return 0.0
    return len({p.sample for p in members}) / float(n_total_samples)


def mean_similarity(indices: Sequence[int], similarity: SimilarityMatrix) -> float:
    """Mean pairwise similarity among members; 1.0 for a single member."""
    if len(indices) < 2:
        return 1.0
    sub = similarity.values[np.ix_(indices, indices)]
    iu = np.triu_indices(len(indices), k=1)
    return float(np.mean(sub[iu]))


def silhouette_by_cluster(
    clusters: Dict[str, List[int]],
    similarity: SimilarityMatrix,
) -> Dict[str, float]:
    """
    Mean silhouette of each cluster's programs on distance 1 - similarity.

    Only programs of the given clusters take part. With fewer than two
    clusters the silhouette is undefined and reported as 0.0.
    """
    names = list(clusters)
    if len(names) < 2:
        return {name: 0.0 for name in names}

    idx = np.concatenate([np.asarray(clusters[n], dtype=np.int64) for n in names])
    labels = np.concatenate(
        [np.full(len(clusters[n]), i, dtype=np.int64) for i, n in enumerate(names)]
    )
    if idx.size <= len(names):
        # every cluster is a singleton
        return {name: 0.0 for name in names}

    D = similarity.distances()[np.ix_(idx, idx)]
    s = silhouette_samples(D, labels, metric="precomputed")
    return {name: float(np.mean(s[labels == i])) for i, name in enumerate(names)}


def compute_metrics(
    clusters: Dict[str, List[int]],
    programs: Sequence[Program],
    similarity: SimilarityMatrix,
) -> pd.DataFrame:
    """
    Metrics table indexed by meta-program name.

    clusters maps MP name -> program indices (into programs / similarity).
    Coverage is relative to the distinct samples across all programs.
    """
    n_total = len({p.sample for p in programs})
    sil = silhouette_by_cluster(clusters, similarity)

    rows = []
    for name, idx in clusters.items():
        members = [programs[i] for i in idx]
        rows.append(
            {
                "meta_program": name,
                "sample_coverage": sample_coverage(members, n_total),
                "mean_similarity": mean_similarity(idx, similarity),
                "silhouette": sil[name],
                "n_programs": len(idx),
                "n_samples": len({p.sample for p in members}),
            }
        )

    if not rows:
        return pd.DataFrame(columns=METRIC_COLUMNS, index=pd.Index([], name="meta_program"))
    return pd.DataFrame(rows).set_index("meta_program")[METRIC_COLUMNS]
