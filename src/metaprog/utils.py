# src/metaprog/utils.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Union

import scanpy as sc

from metaprog.errors import InvalidInputError


def split_by_sample(
    ad: sc.AnnData,
    sample_key: str,
    min_cells: int = 1,
) -> Dict[str, sc.AnnData]:
    """
    Split AnnData rows (cells) into one AnnData per value of ad.obs[sample_key].

    Samples with fewer than min_cells cells are left out. Order follows the
    first appearance of each sample in ad.obs.

    Parameters
    ----------
    ad
        Input AnnData (cells × genes).
    sample_key
        Column in ad.obs holding the sample id.
    min_cells
        Smallest number of cells a sample needs to be kept.

    Returns
    -------
    dict
        Sample id -> AnnData copy with that sample's cells.
    """
    if sample_key not in ad.obs:
        raise KeyError(
            f"'{sample_key}' not found in ad.obs. "
            f"Available columns: {list(ad.obs.columns)}"
        )

    labels = ad.obs[sample_key].astype(str).to_numpy()
    out: Dict[str, sc.AnnData] = {}
    for sample in dict.fromkeys(labels):
        mask = labels == sample
        if int(mask.sum()) < int(min_cells):
            continue
        out[sample] = ad[mask].copy()
    return out


def read_sample_files(paths: Iterable[Union[str, Path]]) -> Dict[str, sc.AnnData]:
    """
    Read one .h5ad per sample; the sample id is the file stem.

    Raises InvalidInputError when two files share a stem, since they would
    map to the same sample id.
    """
    out: Dict[str, sc.AnnData] = {}
    seen: Dict[str, Path] = {}
    for path in map(Path, paths):
        sample = path.stem
        if sample in seen:
            raise InvalidInputError(
                f"Files {seen[sample]} and {path} both map to sample {sample!r}; "
                "rename one of them."
            )
        seen[sample] = path
        print(f"[MP] Loading AnnData from {path} ...", flush=True)
        out[sample] = sc.read_h5ad(path)
    return out
