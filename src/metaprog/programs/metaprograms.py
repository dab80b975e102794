#!/usr/bin/env python
# src/metaprog/programs/metaprograms.py
"""
Consensus meta-programs (MPs) across samples and NMF ranks.

Public API:
  - get_meta_programs(factors_or_programs, cfg) -> MetaProgramResult
  - drop_meta_programs(result, names) -> MetaProgramResult
  - signature_gene_sets(result) -> {MP name: [genes]}
  - save_meta_program_result(out_dir, result, prefix)

Pipeline:
  1) extract one program per factor per (sample, k)
  2) pairwise program similarity (cosine / jaccard)
  3) hierarchical clustering cut into cfg.n_mp groups
  4) consensus signature per cluster; empty clusters are dropped
  5) coverage / similarity / silhouette metrics for the kept MPs
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import yaml

from metaprog.errors import InvalidInputError
from metaprog.programs.cluster import Partition, cluster_programs
from metaprog.programs.config import MetaProgramConfig
from metaprog.programs.extract import Program, ProgramKey, extract_all_programs
from metaprog.programs.factors import FactorMatrix, FactorStore
from metaprog.programs.metrics import compute_metrics
from metaprog.programs.signature import build_signatures
from metaprog.programs.similarity import SimilarityMatrix, compute_similarity


@dataclass(frozen=True, eq=False)
class MetaProgram:
    """One consensus cluster of programs and its gene signature."""

    name: str
    cluster_id: int
    members: Tuple[ProgramKey, ...]
    genes: Tuple[str, ...]
    weights: np.ndarray
    sample_coverage: float
    mean_similarity: float
    silhouette: float

    @property
    def n_programs(self) -> int:
        return len(self.members)


@dataclass(frozen=True, eq=False)
class MetaProgramResult:
    """
    Everything produced by one run of the pipeline.

    meta_programs are ordered MP1, MP2, ...; dropped maps cluster id to the
    reason the cluster was left out.
    """

    programs: Tuple[Program, ...]
    similarity: SimilarityMatrix
    partition: Partition
    meta_programs: Tuple[MetaProgram, ...]
    dropped: Dict[int, str]
    metrics: pd.DataFrame
    config: MetaProgramConfig

    def __getitem__(self, name: str) -> MetaProgram:
        for mp in self.meta_programs:
            if mp.name == name:
                return mp
        raise KeyError(name)

    @property
    def names(self) -> List[str]:
        return [mp.name for mp in self.meta_programs]

    def assignments(self) -> pd.Series:
        """MP name per program (None for programs of dropped clusters)."""
        by_cluster = {mp.cluster_id: mp.name for mp in self.meta_programs}
        return pd.Series(
            [by_cluster.get(int(c)) for c in self.partition.labels],
            index=[str(k) for k in self.partition.keys],
            name="meta_program",
        )


def _as_programs(
    source: Union[FactorStore, Iterable[FactorMatrix], Sequence[Program]],
) -> List[Program]:
    items = list(source)
    n_programs = sum(isinstance(x, Program) for x in items)
    if n_programs and n_programs == len(items):
        return items
    if n_programs:
        raise InvalidInputError(
            "Expected either programs or factor matrices, got a mix of both."
        )
    return extract_all_programs(items)


def _assemble(
    programs: Sequence[Program],
    similarity: SimilarityMatrix,
    partition: Partition,
    signatures: Dict[int, Any],
    dropped: Dict[int, str],
    cfg: MetaProgramConfig,
) -> MetaProgramResult:
    clusters = partition.clusters()
    kept = [cid for cid in sorted(clusters) if cid in signatures]
    names = {cid: f"MP{i + 1}" for i, cid in enumerate(kept)}

    metrics = compute_metrics(
        {names[cid]: clusters[cid] for cid in kept}, programs, similarity
    )
    metrics["n_genes"] = [len(signatures[cid]) for cid in kept]

    meta_programs = tuple(
        MetaProgram(
            name=names[cid],
            cluster_id=cid,
            members=tuple(programs[i].key for i in clusters[cid]),
            genes=signatures[cid].genes,
            weights=signatures[cid].weights,
            sample_coverage=float(metrics.at[names[cid], "sample_coverage"]),
            mean_similarity=float(metrics.at[names[cid], "mean_similarity"]),
            silhouette=float(metrics.at[names[cid], "silhouette"]),
        )
        for cid in kept
    )
    return MetaProgramResult(
        programs=tuple(programs),
        similarity=similarity,
        partition=partition,
        meta_programs=meta_programs,
        dropped=dict(dropped),
        metrics=metrics,
        config=cfg,
    )


def get_meta_programs(
    source: Union[FactorStore, Iterable[FactorMatrix], Sequence[Program]],
    cfg: Optional[MetaProgramConfig] = None,
) -> MetaProgramResult:
    """
    Run the full pipeline on a factor store (or a ready list of programs).

    The realized number of MPs can be smaller than cfg.n_mp when clusters
    end up with an empty signature.
    """
    cfg = cfg or MetaProgramConfig()

    programs = _as_programs(source)
    if cfg.verbose:
        n_samples = len({p.sample for p in programs})
        print(
            f"[MP] Extracted {len(programs)} programs from {n_samples} samples.",
            flush=True,
        )

    similarity = compute_similarity(
        programs,
        metric=cfg.metric,
        top_n=cfg.top_n,
        min_similarity=cfg.min_similarity,
        min_weight=cfg.min_weight,
    )
    if cfg.verbose:
        print(
            f"[SIM] {cfg.metric} similarity: shape={similarity.values.shape}, "
            f"min_similarity={cfg.min_similarity}",
            flush=True,
        )

    partition = cluster_programs(similarity, cfg.n_mp, method=cfg.linkage_method)
    if cfg.verbose:
        sizes = np.bincount(partition.labels)
        print(
            f"[CLUST] {cfg.linkage_method} linkage cut into {partition.n_clusters} "
            f"clusters; sizes={sizes.tolist()}",
            flush=True,
        )

    signatures, dropped = build_signatures(
        programs,
        partition,
        weight_explained=cfg.weight_explained,
        max_genes=cfg.max_genes,
        min_confidence=cfg.min_confidence,
        specificity_weight=cfg.specificity_weight,
    )
    if cfg.verbose:
        for cid, reason in dropped.items():
            print(f"[SIG] WARNING: dropping cluster {cid}: {reason}", flush=True)

    result = _assemble(programs, similarity, partition, signatures, dropped, cfg)
    if cfg.verbose:
        print(
            f"[MP] Kept {len(result.meta_programs)} of {cfg.n_mp} requested "
            f"meta-programs.",
            flush=True,
        )
    return result


def drop_meta_programs(
    result: MetaProgramResult,
    names: Iterable[str],
) -> MetaProgramResult:
    """
    New result without the named MPs.

    Remaining MPs keep their names; metrics are recomputed on what is left.
    """
    names = list(names)
    unknown = sorted(set(names) - set(result.names))
    if unknown:
        raise KeyError(f"Unknown meta-programs: {unknown}")

    dropped = dict(result.dropped)
    kept = []
    for mp in result.meta_programs:
        if mp.name in names:
            dropped[mp.cluster_id] = f"Dropped by caller ({mp.name})."
        else:
            kept.append(mp)

    clusters = result.partition.clusters()
    metrics = compute_metrics(
        {mp.name: clusters[mp.cluster_id] for mp in kept},
        result.programs,
        result.similarity,
    )
    metrics["n_genes"] = [len(mp.genes) for mp in kept]

    meta_programs = tuple(
        replace(
            mp,
            sample_coverage=float(metrics.at[mp.name, "sample_coverage"]),
            mean_similarity=float(metrics.at[mp.name, "mean_similarity"]),
            silhouette=float(metrics.at[mp.name, "silhouette"]),
        )
        for mp in kept
    )
    return replace(
        result,
        meta_programs=meta_programs,
        dropped=dropped,
        metrics=metrics,
    )


def signature_gene_sets(result: MetaProgramResult) -> Dict[str, List[str]]:
    """Flat gene list per MP, e.g. as input to an enrichment tool."""
    return {mp.name: list(mp.genes) for mp in result.meta_programs}


def signatures_frame(result: MetaProgramResult) -> pd.DataFrame:
    """Long table: one row per (MP, gene) with its rank and weight."""
    rows = [
        {"meta_program": mp.name, "rank": r + 1, "gene": g, "weight": float(w)}
        for mp in result.meta_programs
        for r, (g, w) in enumerate(zip(mp.genes, mp.weights))
    ]
    return pd.DataFrame(rows, columns=["meta_program", "rank", "gene", "weight"])


def save_meta_program_result(
    out_dir: Path,
    result: MetaProgramResult,
    prefix: str = "metaprograms",
) -> None:
    """
    Save meta-program artifacts:

      - {prefix}_similarity.npy   : [P, P]
      - {prefix}_labels.npy       : [P] cluster id per program
      - {prefix}_linkage.npy      : scipy linkage matrix
      - {prefix}_programs.csv     : program key, sample, k, factor, cluster, MP
      - {prefix}_metrics.csv      : metrics table
      - {prefix}_signatures.csv   : MP, rank, gene, weight
      - {prefix}_manifest.yml     : lightweight YAML manifest
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    np.save(out_dir / f"{prefix}_similarity.npy", result.similarity.values)
    np.save(out_dir / f"{prefix}_labels.npy", np.asarray(result.partition.labels))
    np.save(out_dir / f"{prefix}_linkage.npy", result.partition.linkage_matrix)

    assignments = result.assignments()
    programs = pd.DataFrame(
        {
            "program": [str(k) for k in result.partition.keys],
            "sample": [k.sample for k in result.partition.keys],
            "k": [k.k for k in result.partition.keys],
            "factor": [k.factor for k in result.partition.keys],
            "cluster": np.asarray(result.partition.labels),
            "meta_program": assignments.to_numpy(),
        }
    )
    programs.to_csv(out_dir / f"{prefix}_programs.csv", index=False)
    result.metrics.to_csv(out_dir / f"{prefix}_metrics.csv")
    signatures_frame(result).to_csv(out_dir / f"{prefix}_signatures.csv", index=False)

    manifest: Dict[str, Any] = {
        "n_programs": len(result.programs),
        "n_samples": len({p.sample for p in result.programs}),
        "metric": result.similarity.metric,
        "linkage_method": result.partition.method,
        "meta_programs": result.names,
        "dropped_clusters": {int(k): v for k, v in result.dropped.items()},
        "n_genes": {mp.name: len(mp.genes) for mp in result.meta_programs},
        "config": asdict(result.config),
    }
    with (out_dir / f"{prefix}_manifest.yml").open("w") as f:
        yaml.safe_dump(manifest, f)

    if result.config.verbose:
        print(f"[MP] Saved meta-program artifacts to {out_dir}", flush=True)
