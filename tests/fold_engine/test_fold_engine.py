import numpy as np
import pandas as pd
import pytest
from unittest.mock import MagicMock

from resample_tune.fold_engine import FoldEngine, fold_assignments, generate_folds
from resample_tune.utils import constants
from resample_tune.utils.exceptions import ConfigurationError

# --- Fixtures ---

@pytest.fixture
def mock_logger():
    return MagicMock()

@pytest.fixture
def dataset():
    rng = np.random.default_rng(0)
    return pd.DataFrame({
        'x': rng.normal(size=100),
        'label': ['a'] * 50 + ['b'] * 30 + ['c'] * 20,
    })

# --- Tests ---

class TestGenerateFolds:

    @pytest.mark.parametrize("n_rows,k", [(10, 2), (37, 5), (100, 10), (7, 7)])
    def test_assessment_sets_partition_rows(self, n_rows, k):
        """Every row is assessed exactly once per repeat."""
        df = pd.DataFrame({'x': np.arange(n_rows)})
        folds = generate_folds(df, k=k, seed=1)

        assert len(folds) == k
        assessed = np.concatenate([f.assessment_idx for f in folds])
        assert sorted(assessed.tolist()) == list(range(n_rows))
        for fold in folds:
            assert set(fold.analysis_idx).isdisjoint(fold.assessment_idx)
            assert len(fold.analysis_idx) + len(fold.assessment_idx) == n_rows

    def test_stratified_class_counts_within_one(self, dataset):
        k = 5
        folds = generate_folds(dataset, k=k, stratify_by='label', seed=7)
        totals = dataset['label'].value_counts()

        for fold in folds:
            counts = fold.assessment(dataset)['label'].value_counts()
            for label, total in totals.items():
                assert abs(counts.get(label, 0) - total / k) <= 1

    def test_numeric_strata_are_binned(self):
        df = pd.DataFrame({'y': np.linspace(0.0, 1.0, 40)})
        folds = generate_folds(df, k=4, stratify_by='y', seed=0)
        assert len(folds) == 4

    def test_same_seed_same_folds(self, dataset):
        a = generate_folds(dataset, k=5, seed=123)
        b = generate_folds(dataset, k=5, seed=123)
        for fa, fb in zip(a, b):
            np.testing.assert_array_equal(fa.assessment_idx, fb.assessment_idx)

    def test_generator_seed_is_accepted(self, dataset):
        folds = generate_folds(dataset, k=3, seed=np.random.default_rng(4))
        assert [f.fold_id for f in folds] == ['Fold1', 'Fold2', 'Fold3']

    def test_repeats(self, dataset):
        folds = generate_folds(dataset, k=4, seed=2, repeats=3)
        assert len(folds) == 12
        assert folds[0].fold_id == 'Repeat1_Fold1'
        assert folds[-1].fold_id == 'Repeat3_Fold4'
        assert [f.index for f in folds] == list(range(12))
        for r in range(3):
            block = folds[r * 4:(r + 1) * 4]
            assessed = np.concatenate([f.assessment_idx for f in block])
            assert sorted(assessed.tolist()) == list(range(len(dataset)))

    def test_analysis_and_assessment_slices(self, dataset):
        fold = generate_folds(dataset, k=4, seed=0)[0]
        assert len(fold.analysis(dataset)) == len(fold.analysis_idx)
        assert len(fold.assessment(dataset)) == 25

    @pytest.mark.parametrize("k", [1, 0, 101])
    def test_invalid_k(self, dataset, k):
        with pytest.raises(ConfigurationError):
            generate_folds(dataset, k=k)

    def test_k_larger_than_smallest_stratum(self, dataset):
        with pytest.raises(ConfigurationError, match="smallest 'label' stratum"):
            generate_folds(dataset, k=25, stratify_by='label')

    def test_unknown_strata_column(self, dataset):
        with pytest.raises(ConfigurationError, match="not found"):
            generate_folds(dataset, k=5, stratify_by='missing')

    def test_invalid_repeats(self, dataset):
        with pytest.raises(ConfigurationError, match="repeats"):
            generate_folds(dataset, k=5, repeats=0)


def test_fold_assignments_table(dataset):
    folds = generate_folds(dataset, k=5, seed=0)
    table = fold_assignments(folds)
    assert list(table.columns) == ['row', 'fold_id']
    assert len(table) == len(dataset)
    assert table['fold_id'].nunique() == 5


class TestFoldEngine:

    def test_execute_writes_assignments(self, dataset, mock_logger, tmp_path):
        config = {
            'outputs': {'base_results_dir': str(tmp_path)},
            'resampling': {'folds': 4, 'strata': 'label', 'seed': 9},
        }
        folds = FoldEngine(config, mock_logger).execute(dataset)

        assert len(folds) == 4
        saved = pd.read_parquet(tmp_path / constants.FOLDS_DIR / constants.FOLD_ASSIGNMENTS_FILE)
        assert len(saved) == len(dataset)

    def test_internal_seed_takes_precedence(self, dataset, mock_logger, tmp_path):
        config = {
            'outputs': {'base_results_dir': str(tmp_path), 'skip_dir_creation': True},
            'resampling': {'folds': 4, 'seed': 1},
            '_internal_seeds': {'folds': 77},
        }
        folds = FoldEngine(config, mock_logger).execute(dataset)
        expected = generate_folds(dataset, k=4, seed=77)
        np.testing.assert_array_equal(folds[0].assessment_idx, expected[0].assessment_idx)
        assert not (tmp_path / constants.FOLDS_DIR).exists()

    def test_configuration_errors_propagate(self, dataset, mock_logger, tmp_path):
        config = {
            'outputs': {'base_results_dir': str(tmp_path), 'skip_dir_creation': True},
            'resampling': {'folds': 500},
        }
        with pytest.raises(ConfigurationError):
            FoldEngine(config, mock_logger).execute(dataset)
