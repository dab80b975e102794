import numpy as np
import pytest
from anndata import AnnData

from metaprog.programs import FactorMatrix, FactorStore, Program, ProgramKey

N_GENES = 30
BLOCK = 10


def planted_loadings(k: int, rng: np.random.Generator) -> np.ndarray:
    """
    [N_GENES, k] loadings; column j is concentrated on gene block j % 3
    with a small background on every other gene.
    """
    W = rng.uniform(0.005, 0.015, size=(N_GENES, k))
    for j in range(k):
        b = j % 3
        W[b * BLOCK:(b + 1) * BLOCK, j] = rng.uniform(0.5, 1.0, size=BLOCK)
    return W


@pytest.fixture
def genes():
    return tuple(f"G{i}" for i in range(N_GENES))


@pytest.fixture
def planted_store(genes):
    """3 samples x ranks (4, 5) -> 27 programs in three gene blocks."""
    rng = np.random.default_rng(0)
    store = FactorStore()
    for sample in ("s1", "s2", "s3"):
        for k in (4, 5):
            store.add(
                FactorMatrix(
                    sample=sample,
                    k=k,
                    genes=genes,
                    loadings=planted_loadings(k, rng),
                    n_obs=100,
                )
            )
    return store


@pytest.fixture
def make_program():
    def _make(sample, factor, weights, k=1):
        genes = tuple(weights)
        w = np.asarray([weights[g] for g in genes], dtype=np.float64)
        w = w / w.sum()
        return Program(key=ProgramKey(sample, k, factor), genes=genes, weights=w)

    return _make


@pytest.fixture
def counts_adata():
    rng = np.random.default_rng(1)
    X = rng.poisson(2.0, size=(60, 40)).astype(np.float32)
    ad = AnnData(X=X)
    ad.var_names = [f"G{i}" for i in range(40)]
    ad.obs_names = [f"c{i}" for i in range(60)]
    ad.obs["sample"] = ["a"] * 30 + ["b"] * 30
    return ad
