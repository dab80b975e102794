#!/usr/bin/env python3
# scripts/meta_programs.py
"""
Run NMF on several samples at several ranks and extract consensus
meta-programs (MPs) from the resulting programs.

This script:
  - loads one .h5ad per sample (or one .h5ad split by --sample-key)
  - builds MultiNMFConfig / MetaProgramConfig from YAML + CLI overrides
  - runs NMF for every (sample, k)
  - clusters programs into meta-programs and builds consensus signatures
  - saves similarity, labels, linkage, metrics, signatures and manifest

Typical usage:

  python scripts/meta_programs.py \
      --ad data/interim/sample_a.h5ad data/interim/sample_b.h5ad \
      --out out/metaprograms/run1 \
      --params configs/metaprograms.yml \
      --ks 4 5 6 7 8 9 \
      --n-mp 10 \
      --name run1
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict

import scanpy as sc

from metaprog.programs import (
    MetaProgramConfig,
    MultiNMFConfig,
    PipelineConfig,
    get_meta_programs,
    load_config,
    run_multi_nmf,
    save_meta_program_result,
)
from metaprog.utils import read_sample_files, split_by_sample


# ---------------------------------------------------------------------
# CLI / config glue
# ---------------------------------------------------------------------


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Extract consensus meta-programs from multi-sample, multi-rank NMF."
        )
    )

    p.add_argument(
        "--ad",
        type=str,
        nargs="+",
        required=True,
        help="Input AnnData file(s); one per sample unless --sample-key is given.",
    )
    p.add_argument(
        "--sample-key",
        type=str,
        default=None,
        help="Column in ad.obs to split a single AnnData into samples.",
    )
    p.add_argument(
        "--out",
        type=str,
        required=True,
        help="Output directory for arrays, tables and manifest.",
    )
    p.add_argument(
        "--params",
        type=str,
        default=None,
        help="Optional YAML with 'nmf' and 'metaprograms' sections used as defaults.",
    )

    # NMF overrides
    p.add_argument("--ks", type=int, nargs="+", default=None, help="NMF ranks. Overrides nmf.ks.")
    p.add_argument(
        "--n-features",
        type=int,
        default=None,
        help="Top-variance genes per sample. Overrides nmf.n_features.",
    )
    p.add_argument("--seed", type=int, default=None, help="Overrides nmf.random_state.")

    # meta-program overrides
    p.add_argument("--n-mp", type=int, default=None, help="Overrides metaprograms.n_mp.")
    p.add_argument(
        "--metric",
        type=str,
        choices=("cosine", "jaccard"),
        default=None,
        help="Overrides metaprograms.metric.",
    )
    p.add_argument(
        "--weight-explained",
        type=float,
        default=None,
        help="Overrides metaprograms.weight_explained.",
    )
    p.add_argument(
        "--max-genes", type=int, default=None, help="Overrides metaprograms.max_genes."
    )
    p.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help="Overrides metaprograms.min_confidence.",
    )
    p.add_argument(
        "--specificity-weight",
        type=float,
        default=None,
        help="Overrides metaprograms.specificity_weight.",
    )
    p.add_argument(
        "--name",
        type=str,
        default="metaprograms",
        help="Short name used as prefix for output files.",
    )
    return p


def make_cfg(args: argparse.Namespace) -> PipelineConfig:
    """
    Merge YAML sections (if present) with CLI overrides.

    CLI (if not None) overrides YAML; else YAML; else dataclass default.
    """
    base = load_config(Path(args.params)) if args.params is not None else PipelineConfig()

    nmf_over: Dict[str, Any] = {
        "ks": tuple(args.ks) if args.ks is not None else None,
        "n_features": args.n_features,
        "random_state": args.seed,
    }
    mp_over: Dict[str, Any] = {
        "n_mp": args.n_mp,
        "metric": args.metric,
        "weight_explained": args.weight_explained,
        "max_genes": args.max_genes,
        "min_confidence": args.min_confidence,
        "specificity_weight": args.specificity_weight,
    }

    nmf_kwargs = {**vars(base.nmf), **{k: v for k, v in nmf_over.items() if v is not None}}
    mp_kwargs = {
        **vars(base.metaprograms),
        **{k: v for k, v in mp_over.items() if v is not None},
    }
    return PipelineConfig(
        nmf=MultiNMFConfig(**nmf_kwargs),
        metaprograms=MetaProgramConfig(**mp_kwargs),
    )


# ---------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------


def main() -> None:
    args = build_argparser().parse_args()
    cfg = make_cfg(args)
    print(f"[MP] Config: {cfg}", flush=True)

    if args.sample_key is not None:
        if len(args.ad) != 1:
            raise SystemExit("--sample-key expects exactly one --ad file.")
        ad = sc.read_h5ad(args.ad[0])
        print(f"[MP] ad.n_obs={ad.n_obs}, ad.n_vars={ad.n_vars}", flush=True)
        adatas = split_by_sample(ad, args.sample_key)
    else:
        adatas = read_sample_files(args.ad)

    store = run_multi_nmf(adatas, cfg.nmf)
    result = get_meta_programs(store, cfg.metaprograms)

    print(result.metrics.to_string(), flush=True)
    save_meta_program_result(Path(args.out), result, prefix=args.name)


if __name__ == "__main__":
    main()
