import numpy as np
import pytest

from metaprog.programs import compute_metrics, compute_similarity, extract_all_programs
from metaprog.programs.metrics import mean_similarity, sample_coverage, silhouette_by_cluster


def test_sample_coverage_ratio(make_program):
    members = [make_program(f"s{i}", 0, {"a": 1.0}) for i in range(7)]
    members.append(make_program("s0", 1, {"a": 1.0}))
    assert sample_coverage(members, 10) == 0.7
    assert sample_coverage(members, 7) == 1.0
    assert sample_coverage([], 10) == 0.0


def test_mean_similarity(make_program):
    programs = [
        make_program("s1", 0, {"a": 1.0, "b": 1.0}),
        make_program("s2", 0, {"a": 1.0}),
        make_program("s3", 0, {"a": 1.0}),
    ]
    sim = compute_similarity(programs)
    expected = (2 / np.sqrt(2) + 1.0) / 3
    assert mean_similarity([0, 1, 2], sim) == pytest.approx(expected)
    assert mean_similarity([1], sim) == 1.0


def test_silhouette_high_for_separated_clusters(planted_store):
    programs = extract_all_programs(planted_store)
    sim = compute_similarity(programs)
    clusters = {f"B{b}": [i for i, p in enumerate(programs) if p.key.factor % 3 == b] for b in range(3)}
    sil = silhouette_by_cluster(clusters, sim)
    assert all(v > 0.9 for v in sil.values())

    # mixing blocks makes the clusters ambiguous
    mixed = {"X": list(range(0, 27, 2)), "Y": list(range(1, 27, 2))}
    assert all(v < 0.5 for v in silhouette_by_cluster(mixed, sim).values())


def test_silhouette_undefined_for_single_cluster(planted_store):
    programs = extract_all_programs(planted_store)
    sim = compute_similarity(programs)
    assert silhouette_by_cluster({"MP1": list(range(27))}, sim) == {"MP1": 0.0}


def test_metrics_table(planted_store):
    programs = extract_all_programs(planted_store)
    sim = compute_similarity(programs)
    clusters = {"MP1": [0, 3], "MP2": [1, 4]}
    df = compute_metrics(clusters, programs, sim)
    assert list(df.index) == ["MP1", "MP2"]
    assert list(df.columns) == [
        "sample_coverage",
        "mean_similarity",
        "silhouette",
        "n_programs",
        "n_samples",
    ]
    # programs 0 and 3 are both from sample s1 (k=4, factors 0 and 3)
    assert df.loc["MP1", "sample_coverage"] == pytest.approx(1 / 3)
    assert df.loc["MP1", "n_programs"] == 2
    assert ((df["sample_coverage"] >= 0) & (df["sample_coverage"] <= 1)).all()


def test_metrics_table_empty(planted_store):
    programs = extract_all_programs(planted_store)
    df = compute_metrics({}, programs, compute_similarity(programs))
    assert df.empty
