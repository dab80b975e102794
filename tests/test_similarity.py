import numpy as np
import pytest

from metaprog.errors import InvalidInputError
from metaprog.programs import compute_similarity, extract_all_programs


def test_diagonal_is_one_and_matrix_symmetric(planted_store):
    programs = extract_all_programs(planted_store)
    for metric in ("cosine", "jaccard"):
        sim = compute_similarity(programs, metric=metric, top_n=10)
        S = sim.values
        assert S.shape == (27, 27)
        assert np.all(np.diag(S) == 1.0)
        assert np.array_equal(S, S.T)
        assert S.min() >= 0.0 and S.max() <= 1.0


def test_identical_programs_have_cosine_exactly_one(make_program):
    weights = {"a": 0.37, "b": 0.21, "c": 0.13, "d": 0.029}
    p1 = make_program("s1", 0, weights)
    p2 = make_program("s2", 0, weights)
    sim = compute_similarity([p1, p2], metric="cosine")
    assert sim[p1.key, p2.key] == 1.0


def test_cosine_aligns_genes_by_name(make_program):
    p1 = make_program("s1", 0, {"a": 1.0, "b": 1.0})
    p2 = make_program("s2", 0, {"a": 1.0})
    sim = compute_similarity([p1, p2], metric="cosine")
    assert sim[p1.key, p2.key] == pytest.approx(1 / np.sqrt(2))


def test_programs_sharing_no_genes_score_zero(make_program):
    p1 = make_program("s1", 0, {"a": 2.0, "b": 1.0})
    p2 = make_program("s2", 0, {"c": 2.0, "d": 1.0})
    for metric in ("cosine", "jaccard"):
        sim = compute_similarity([p1, p2], metric=metric)
        assert sim[p1.key, p2.key] == 0.0


def test_jaccard_over_top_genes(make_program):
    p1 = make_program("s1", 0, {"a": 4.0, "b": 3.0, "c": 2.0, "x": 0.1})
    p2 = make_program("s2", 0, {"b": 4.0, "c": 3.0, "d": 2.0, "a": 0.1})
    sim = compute_similarity([p1, p2], metric="jaccard", top_n=3)
    assert sim[p1.key, p2.key] == pytest.approx(2 / 4)


def test_min_similarity_cutoff(make_program):
    p1 = make_program("s1", 0, {"a": 1.0, "b": 1.0})
    p2 = make_program("s2", 0, {"a": 1.0})
    p3 = make_program("s3", 0, {"a": 1.0, "b": 1.0, "c": 1.0, "d": 1.0})
    sim = compute_similarity([p1, p2, p3], metric="cosine", min_similarity=0.6)
    assert sim[p2.key, p3.key] == 0.0          # 0.5 -> cut
    assert sim[p1.key, p2.key] > 0.6
    assert np.all(np.diag(sim.values) == 1.0)


def test_min_weight_restricts_compared_genes(make_program):
    p1 = make_program("s1", 0, {"a": 0.9, "z": 0.1})
    p2 = make_program("s2", 0, {"a": 0.9, "y": 0.1})
    full = compute_similarity([p1, p2], metric="cosine")
    filtered = compute_similarity([p1, p2], metric="cosine", min_weight=0.2)
    assert full[p1.key, p2.key] < 1.0
    assert filtered[p1.key, p2.key] == 1.0


def test_to_frame_labels(make_program):
    p1 = make_program("s1", 0, {"a": 1.0})
    p2 = make_program("s2", 0, {"a": 1.0})
    df = compute_similarity([p1, p2]).to_frame()
    assert list(df.index) == ["s1.k1.0", "s2.k1.0"]


def test_bad_inputs(make_program):
    with pytest.raises(InvalidInputError):
        compute_similarity([])
    p = make_program("s1", 0, {"a": 1.0})
    with pytest.raises(InvalidInputError):
        compute_similarity([p, p])
    with pytest.raises(ValueError):
        compute_similarity([p], metric="pearson")
