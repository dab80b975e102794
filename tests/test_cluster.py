import numpy as np
import pytest

from metaprog.errors import DegenerateClusteringError
from metaprog.programs import cluster_programs, compute_similarity, extract_all_programs


def _block(key):
    return key.factor % 3


@pytest.fixture
def planted_similarity(planted_store):
    return compute_similarity(extract_all_programs(planted_store))


def test_hard_partition_into_requested_groups(planted_similarity):
    part = cluster_programs(planted_similarity, n_mp=3)
    assert part.n_clusters == 3
    assert len(part.labels) == 27
    members = sorted(i for idx in part.clusters().values() for i in idx)
    assert members == list(range(27))


def test_clusters_recover_planted_blocks(planted_similarity):
    part = cluster_programs(planted_similarity, n_mp=3)
    sizes = np.bincount(part.labels).tolist()
    assert sizes == [12, 9, 6]
    for idx in part.clusters().values():
        blocks = {_block(part.keys[i]) for i in idx}
        assert len(blocks) == 1


@pytest.mark.parametrize("method", ["ward", "complete", "average", "weighted", "single"])
def test_linkage_methods(planted_similarity, method):
    part = cluster_programs(planted_similarity, n_mp=3, method=method)
    assert part.n_clusters == 3
    assert part.method == method
    assert part.linkage_matrix.shape == (26, 4)


def test_clustering_is_deterministic(planted_similarity):
    a = cluster_programs(planted_similarity, n_mp=4)
    b = cluster_programs(planted_similarity, n_mp=4)
    assert np.array_equal(a.labels, b.labels)


def test_too_many_clusters(planted_similarity):
    with pytest.raises(DegenerateClusteringError):
        cluster_programs(planted_similarity, n_mp=28)
    with pytest.raises(DegenerateClusteringError):
        cluster_programs(planted_similarity, n_mp=0)


def test_all_zero_similarity(make_program):
    programs = [
        make_program("s1", 0, {"a": 1.0}),
        make_program("s2", 0, {"b": 1.0}),
        make_program("s3", 0, {"c": 1.0}),
    ]
    sim = compute_similarity(programs)
    with pytest.raises(DegenerateClusteringError):
        cluster_programs(sim, n_mp=2)


def test_single_program(make_program):
    sim = compute_similarity([make_program("s1", 0, {"a": 1.0})])
    with pytest.raises(DegenerateClusteringError):
        cluster_programs(sim, n_mp=1)


def test_unknown_method(planted_similarity):
    with pytest.raises(ValueError):
        cluster_programs(planted_similarity, n_mp=3, method="centroid")
