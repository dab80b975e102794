import numpy as np
import pytest

from metaprog.errors import InvalidInputError
from metaprog.programs import (
    FactorMatrix,
    FactorStore,
    extract_all_programs,
    extract_programs,
    gene_universe,
)


def _factor(loadings, genes=("a", "b", "c", "d"), sample="s1"):
    W = np.asarray(loadings, dtype=float)
    return FactorMatrix(sample=sample, k=W.shape[1], genes=genes, loadings=W, n_obs=10)


def test_programs_sorted_descending_non_negative(planted_store):
    programs = extract_all_programs(planted_store)
    assert len(programs) == 27
    for p in programs:
        assert np.all(p.weights >= 0)
        assert np.all(np.diff(p.weights) <= 0)
        assert p.weights.sum() == pytest.approx(1.0)
        assert p.n_obs == 100


def test_ties_keep_input_order_and_zeros_are_dropped():
    f = _factor([[1.0], [2.0], [2.0], [0.0]])
    (p,) = extract_programs(f)
    assert p.genes == ("b", "c", "a")
    assert p.weights.tolist() == pytest.approx([0.4, 0.4, 0.2])
    assert p.name == "s1.k1.0"


def test_one_program_per_column():
    f = _factor([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0], [0.5, 0.0]])
    programs = extract_programs(f)
    assert [p.key.factor for p in programs] == [0, 1]
    assert programs[1].genes == ("b", "c")


def test_weights_are_read_only():
    (p,) = extract_programs(_factor([[1.0], [2.0], [3.0], [4.0]]))
    with pytest.raises(ValueError):
        p.weights[0] = 10.0


@pytest.mark.parametrize(
    "loadings",
    [
        [[1.0], [-0.1], [2.0], [0.0]],        # negative
        np.zeros((4, 0)),                     # zero columns
        [[1.0, 0.0], [1.0, 0.0], [0.0, 0.0], [2.0, 0.0]],  # all-zero factor
        [[1.0], [np.nan], [2.0], [0.0]],      # non-finite
    ],
)
def test_invalid_factor_matrices_are_rejected(loadings):
    with pytest.raises(InvalidInputError):
        extract_programs(_factor(loadings))


def test_gene_count_mismatch_is_rejected():
    with pytest.raises(InvalidInputError):
        extract_programs(_factor([[1.0], [2.0]]))


def test_duplicate_decomposition_rejected():
    store = FactorStore([_factor([[1.0], [1.0], [1.0], [1.0]])])
    with pytest.raises(InvalidInputError):
        store.add(_factor([[2.0], [1.0], [1.0], [1.0]]))


def test_gene_universe_first_seen_order():
    programs = extract_programs(_factor([[1.0, 0.0], [3.0, 0.0], [0.0, 1.0], [0.0, 2.0]]))
    assert gene_universe(programs) == ["b", "a", "d", "c"]
