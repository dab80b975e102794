#!/usr/bin/env python
# src/metaprog/programs/config.py
"""
Configuration containers for multi-sample NMF and meta-program extraction.

MultiNMFConfig:
  - per-sample gene selection and NMF options, one run per rank in `ks`
MetaProgramConfig:
  - similarity, clustering and consensus-signature options
load_config:
  - read both from a single YAML file (`nmf:` and `metaprograms:` sections)
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml


SIMILARITY_METRICS = ("cosine", "jaccard")
LINKAGE_METHODS = ("ward", "complete", "average", "weighted", "single")


@dataclass
class MultiNMFConfig:
    """
    Options for running NMF on every sample at several ranks.

    The factorization itself is scikit-learn's NMF; these fields only decide
    which genes go in and how the solver is seeded.
    """

    # ---- Ranks ----
    ks: Tuple[int, ...] = (4, 5, 6, 7, 8, 9)   # one decomposition per k per sample

    # ---- NMF solver ----
    max_iter: int = 400
    tol: float = 1e-4
    init: str = "nndsvda"

    # ---- Gene selection ----
    use_hvg_only: bool = False        # restrict to ad.var[hvg_key] if present
    hvg_key: str = "highly_variable"
    min_cells_per_gene: int = 3       # drop genes detected in < this many cells
    n_features: Optional[int] = 2000  # keep top-variance genes; None = all

    # ---- Reproducibility / output ----
    random_state: int = 7
    verbose: bool = True

    def __post_init__(self) -> None:
        self.ks = tuple(int(k) for k in self.ks)
        if not self.ks:
            raise ValueError("ks must contain at least one rank")
        if any(k < 1 for k in self.ks):
            raise ValueError(f"all ranks in ks must be >= 1, got {self.ks}")
        if self.n_features is not None and int(self.n_features) < 1:
            raise ValueError(f"n_features must be >= 1 or None, got {self.n_features}")


@dataclass
class MetaProgramConfig:
    """
    Options for turning a set of programs into consensus meta-programs.
    """

    # ---- Similarity ----
    metric: str = "cosine"          # "cosine" or "jaccard"
    top_n: int = 50                 # genes per program for the jaccard index
    min_similarity: float = 0.0     # similarities below this are set to 0
    min_weight: float = 0.0         # ignore genes with normalized weight below this

    # ---- Clustering ----
    n_mp: int = 10                  # requested number of meta-programs
    linkage_method: str = "ward"

    # ---- Consensus signatures ----
    weight_explained: float = 0.5   # cumulative weight fraction to keep
    max_genes: Optional[int] = 200  # hard cap on signature length; None = no cap
    min_confidence: float = 0.0     # min fraction of members a gene must appear in
    specificity_weight: float = 0.0 # penalty on genes shared with other clusters

    verbose: bool = True

    def __post_init__(self) -> None:
        if self.metric not in SIMILARITY_METRICS:
            raise ValueError(
                f"metric must be one of {SIMILARITY_METRICS}, got {self.metric!r}"
            )
        if self.linkage_method not in LINKAGE_METHODS:
            raise ValueError(
                f"linkage_method must be one of {LINKAGE_METHODS}, "
                f"got {self.linkage_method!r}"
            )
        if int(self.top_n) < 1:
            raise ValueError(f"top_n must be >= 1, got {self.top_n}")
        if not 0.0 <= float(self.min_similarity) <= 1.0:
            raise ValueError(f"min_similarity must be in [0, 1], got {self.min_similarity}")
        if float(self.min_weight) < 0.0:
            raise ValueError(f"min_weight must be >= 0, got {self.min_weight}")
        if int(self.n_mp) < 1:
            raise ValueError(f"n_mp must be >= 1, got {self.n_mp}")
        if not 0.0 < float(self.weight_explained) <= 1.0:
            raise ValueError(
                f"weight_explained must be in (0, 1], got {self.weight_explained}"
            )
        if self.max_genes is not None and int(self.max_genes) < 1:
            raise ValueError(f"max_genes must be >= 1 or None, got {self.max_genes}")
        if not 0.0 <= float(self.min_confidence) <= 1.0:
            raise ValueError(f"min_confidence must be in [0, 1], got {self.min_confidence}")
        if float(self.specificity_weight) < 0.0:
            raise ValueError(
                f"specificity_weight must be >= 0, got {self.specificity_weight}"
            )


@dataclass
class PipelineConfig:
    """Both config blocks, as read from one YAML file."""

    nmf: MultiNMFConfig = field(default_factory=MultiNMFConfig)
    metaprograms: MetaProgramConfig = field(default_factory=MetaProgramConfig)


def _from_section(cls, section: Optional[Dict[str, Any]], name: str):
    section = section or {}
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}' section: {unknown}")
    return cls(**section)


def load_config(path: Path) -> PipelineConfig:
    """
    Read a YAML file with optional `nmf:` and `metaprograms:` sections.

    Missing sections fall back to dataclass defaults.
    """
    raw: Dict[str, Any] = yaml.safe_load(Path(path).read_text()) or {}
    return PipelineConfig(
        nmf=_from_section(MultiNMFConfig, raw.get("nmf"), "nmf"),
        metaprograms=_from_section(
            MetaProgramConfig, raw.get("metaprograms"), "metaprograms"
        ),
    )
