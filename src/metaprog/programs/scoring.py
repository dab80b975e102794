# src/metaprog/programs/scoring.py
from __future__ import annotations

from typing import Dict, List

import scanpy as sc

from metaprog.programs.metaprograms import MetaProgramResult, signature_gene_sets


def score_meta_programs(
    ad: sc.AnnData,
    result: MetaProgramResult,
    prefix: str = "score_",
    *,
    min_genes: int = 1,
    random_state: int = 0,
    verbose: bool = True,
) -> Dict[str, List[str]]:
    """
    Per-cell MP scores with scanpy's score_genes, written to ad.obs[prefix + MP].

    Only signature genes present in ad.var_names are used; MPs with fewer
    than min_genes such genes are skipped. Returns the gene lists actually
    used, keyed by MP name.
    """
    var_names = set(ad.var_names.astype(str))
    used: Dict[str, List[str]] = {}

    for name, genes in signature_gene_sets(result).items():
        present = [g for g in genes if g in var_names]
        if len(present) < int(min_genes):
            if verbose:
                print(
                    f"[SCORE] {name}: only {len(present)} of {len(genes)} genes "
                    "found in ad.var_names; skipping.",
                    flush=True,
                )
            continue
        sc.tl.score_genes(
            ad,
            gene_list=present,
            score_name=f"{prefix}{name}",
            random_state=random_state,
            use_raw=False,
        )
        used[name] = present
        if verbose:
            print(f"[SCORE] {name}: scored with {len(present)} genes.", flush=True)

    return used

