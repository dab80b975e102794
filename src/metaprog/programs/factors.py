#!/usr/bin/env python
# src/metaprog/programs/factors.py
"""
Factor store: per-sample, per-rank NMF outputs.

Public API:
  - FactorMatrix, FactorStore
  - run_nmf(ad, sample, k, cfg) -> FactorMatrix
  - run_multi_nmf(adatas, cfg) -> FactorStore
  - factor_from_anndata(ad, sample, k, varm_key, obsm_key) -> FactorMatrix

NMF is scikit-learn's; this module only prepares the input matrix and
packages the gene loadings (genes x k) and cell usages (cells x k).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np
import scanpy as sc
import scipy.sparse as sp
from sklearn.decomposition import NMF

from metaprog.errors import InvalidInputError
from metaprog.programs.config import MultiNMFConfig


@dataclass(frozen=True, eq=False)
class FactorMatrix:
    """
    One decomposition of one sample at rank k.

    loadings: [G, k] non-negative gene loadings (one column per factor)
    usages:   [N, k] cell usages, optional
    n_obs:    number of cells the decomposition was run on
    """

    sample: str
    k: int
    genes: Tuple[str, ...]
    loadings: np.ndarray
    usages: Optional[np.ndarray] = None
    n_obs: int = 0

    @property
    def key(self) -> Tuple[str, int]:
        return (self.sample, int(self.k))


class FactorStore:
    """
    Ordered collection of FactorMatrix objects keyed by (sample, k).

    Insertion order is preserved so downstream program order is reproducible.
    """

    def __init__(self, factors: Optional[List[FactorMatrix]] = None):
        self._factors: Dict[Tuple[str, int], FactorMatrix] = {}
        for f in factors or []:
            self.add(f)

    def add(self, factor: FactorMatrix) -> None:
        if factor.key in self._factors:
            raise InvalidInputError(
                f"Duplicate decomposition for sample={factor.sample!r}, k={factor.k}"
            )
        self._factors[factor.key] = factor

    def __getitem__(self, key: Tuple[str, int]) -> FactorMatrix:
        return self._factors[key]

    def __contains__(self, key: object) -> bool:
        return key in self._factors

    def __iter__(self) -> Iterator[FactorMatrix]:
        return iter(self._factors.values())

    def __len__(self) -> int:
        return len(self._factors)

    def keys(self) -> List[Tuple[str, int]]:
        return list(self._factors)

    @property
    def samples(self) -> List[str]:
        """Distinct sample ids, in first-seen order."""
        return list(dict.fromkeys(s for s, _ in self._factors))


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------


def _select_matrix_from_anndata(
    ad: sc.AnnData,
    cfg: MultiNMFConfig,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Prepare the cells x genes matrix for NMF.

    Steps:
      - optional HVG restriction (use_hvg_only, hvg_key)
      - min_cells_per_gene filter
      - optional top-variance truncation to n_features genes
    Returns (X, gene_names); genes keep their original order.
    """
    gene_names = np.asarray(ad.var_names.astype(str))
    X = ad.X
    keep = np.ones(ad.n_vars, dtype=bool)

    # --- 1) HVG restriction ---
    if cfg.use_hvg_only:
        if cfg.hvg_key in ad.var:
            hvg_mask = ad.var[cfg.hvg_key].to_numpy().astype(bool)
            if hvg_mask.any():
                keep &= hvg_mask
            elif cfg.verbose:
                print(
                    f"[NMF] HVG key '{cfg.hvg_key}' present but no genes flagged; "
                    "using all genes.",
                    flush=True,
                )
        elif cfg.verbose:
            print(
                f"[NMF] HVG key '{cfg.hvg_key}' not found in ad.var; using all genes.",
                flush=True,
            )

    # --- 2) min_cells_per_gene filter ---
    if sp.issparse(X):
        detected = np.asarray((X > 0).sum(axis=0)).ravel()
    else:
        detected = (np.asarray(X) > 0).sum(axis=0)
    keep &= detected >= int(cfg.min_cells_per_gene)
    if not keep.any():
        raise InvalidInputError(
            f"No genes pass min_cells_per_gene={cfg.min_cells_per_gene}"
        )

    X = X[:, keep]
    gene_names = gene_names[keep]
    if sp.issparse(X):
        X = X.toarray()
    X = np.asarray(X, dtype=np.float64)

    if not np.isfinite(X).all():
        raise InvalidInputError("Expression matrix contains non-finite values.")
    if (X < 0).any():
        raise InvalidInputError(
            "Expression matrix has negative entries. "
            "NMF assumes non-negative data. Check preprocessing."
        )

    # --- 3) top-variance truncation ---
    if cfg.n_features is not None and X.shape[1] > int(cfg.n_features):
        var = X.var(axis=0)
        top = np.argsort(-var, kind="stable")[: int(cfg.n_features)]
        top = np.sort(top)
        X = X[:, top]
        gene_names = gene_names[top]

    return X, gene_names


def _fit_single_nmf(
    X: np.ndarray,
    k: int,
    cfg: MultiNMFConfig,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Fit X ≈ W_cells @ H and return (loadings = H.T [G, k], usages = W_cells [N, k]).
    """
    nmf = NMF(
        n_components=int(k),
        init=cfg.init,
        max_iter=int(cfg.max_iter),
        tol=float(cfg.tol),
        random_state=int(cfg.random_state),
    )
    W_cells = nmf.fit_transform(X)  # (N, k)
    H = nmf.components_             # (k, G)
    return np.ascontiguousarray(H.T), W_cells


def _factor_from_matrix(
    X: np.ndarray,
    genes: np.ndarray,
    sample: str,
    k: int,
    cfg: MultiNMFConfig,
) -> FactorMatrix:
    """Fit one rank on a prepared matrix and package it as a FactorMatrix."""
    if int(k) > min(X.shape):
        raise InvalidInputError(
            f"Rank k={k} exceeds matrix dimensions {X.shape} for sample {sample!r}"
        )
    loadings, usages = _fit_single_nmf(X, k, cfg)
    return FactorMatrix(
        sample=str(sample),
        k=int(k),
        genes=tuple(str(g) for g in genes),
        loadings=loadings,
        usages=usages,
        n_obs=int(X.shape[0]),
    )


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------


def run_nmf(
    ad: sc.AnnData,
    sample: str,
    k: int,
    cfg: MultiNMFConfig,
) -> FactorMatrix:
    """Run one NMF decomposition of one sample at rank k."""
    X, genes = _select_matrix_from_anndata(ad, cfg)
    return _factor_from_matrix(X, genes, sample, k, cfg)


def run_multi_nmf(
    adatas: Mapping[str, sc.AnnData],
    cfg: MultiNMFConfig,
) -> FactorStore:
    """
    NMF for every sample at every rank in cfg.ks.

    Gene selection is done once per sample and shared across ranks.
    """
    store = FactorStore()
    for sample, ad in adatas.items():
        X, genes = _select_matrix_from_anndata(ad, cfg)
        if cfg.verbose:
            print(
                f"[NMF] sample={sample}: matrix shape={X.shape}, ks={list(cfg.ks)}",
                flush=True,
            )
        for k in cfg.ks:
            store.add(_factor_from_matrix(X, genes, sample, k, cfg))

    if cfg.verbose:
        print(
            f"[NMF] Collected {len(store)} decompositions from "
            f"{len(store.samples)} samples.",
            flush=True,
        )
    return store


def factor_from_anndata(
    ad: sc.AnnData,
    sample: str,
    k: Optional[int] = None,
    varm_key: str = "cnmf_W",
    obsm_key: Optional[str] = "cnmf_H",
) -> FactorMatrix:
    """
    Wrap loadings already stored on an AnnData (ad.varm[varm_key], genes x k).

    Usages are taken from ad.obsm[obsm_key] when present.
    """
    if varm_key not in ad.varm:
        raise KeyError(f"'{varm_key}' not found in ad.varm: {list(ad.varm.keys())}")
    loadings = np.asarray(ad.varm[varm_key], dtype=np.float64)
    if loadings.ndim != 2:
        raise InvalidInputError(f"ad.varm['{varm_key}'] must be 2-D, got {loadings.shape}")
    usages = None
    if obsm_key is not None and obsm_key in ad.obsm:
        usages = np.asarray(ad.obsm[obsm_key], dtype=np.float64)
    if k is not None and int(k) != loadings.shape[1]:
        raise InvalidInputError(
            f"k={k} does not match the {loadings.shape[1]} columns of "
            f"ad.varm['{varm_key}']"
        )
    return FactorMatrix(
        sample=str(sample),
        k=int(loadings.shape[1]),
        genes=tuple(str(g) for g in ad.var_names),
        loadings=loadings,
        usages=usages,
        n_obs=int(ad.n_obs),
    )
