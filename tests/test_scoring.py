import numpy as np
import pytest
from anndata import AnnData

from metaprog.programs import MetaProgramConfig, get_meta_programs, score_meta_programs


@pytest.fixture
def expression_adata():
    rng = np.random.default_rng(2)
    X = rng.poisson(1.0, size=(100, 200)).astype(np.float32)
    # cells 0-49 express block 0 (G0-G9), cells 50-99 block 1 (G10-G19)
    X[:50, :10] += 3.0
    X[50:, 10:20] += 3.0
    ad = AnnData(X=X)
    ad.var_names = [f"G{i}" for i in range(200)]
    return ad


def test_scores_written_to_obs(planted_store, expression_adata):
    result = get_meta_programs(planted_store, MetaProgramConfig(n_mp=3, verbose=False))
    used = score_meta_programs(expression_adata, result, verbose=False)

    assert set(used) == {"MP1", "MP2", "MP3"}
    for name in used:
        assert f"score_{name}" in expression_adata.obs

    # MP1 is the block-0 program
    scores = expression_adata.obs["score_MP1"].to_numpy()
    assert scores[:50].mean() > scores[50:].mean()


def test_missing_genes_are_skipped(planted_store):
    result = get_meta_programs(planted_store, MetaProgramConfig(n_mp=3, verbose=False))
    ad = AnnData(X=np.ones((5, 3), dtype=np.float32))
    ad.var_names = ["X1", "X2", "X3"]
    assert score_meta_programs(ad, result, verbose=False) == {}
    assert not any(c.startswith("score_") for c in ad.obs.columns)
