import math

import pytest
from sklearn.linear_model import LinearRegression

from inspection_score.context import ExecutionContext
from inspection_score.evaluation import MetricsReport, evaluate
from inspection_score.exceptions import InsufficientDataError, SchemaMismatchError
from inspection_score.model_training import CandidateSpec, ModelSearchEngine
from inspection_score.splitting import split_by_entity


@pytest.fixture(scope="module")
def count_only_split(synthetic_aggregated):
    """Score depends on the violation counts only."""
    data = synthetic_aggregated.copy()
    data['score'] = 3.0 * data['total_violations'] + 2.0 * data['critical_violations']
    return split_by_entity(data, 'camis', fraction=0.8, seed=1)


@pytest.fixture(scope="module")
def linear_pipeline(count_only_split):
    train, _ = count_only_split
    candidates = [CandidateSpec('linear_regression', LinearRegression(), scale_numeric=True)]
    with ExecutionContext() as ctx:
        return ModelSearchEngine(ctx, time_budget=60, candidates=candidates).search(train).best_pipeline


def test_perfect_model_has_zero_error(linear_pipeline, count_only_split):
    _, test = count_only_split

    report = evaluate(linear_pipeline, test, 'score')

    assert isinstance(report, MetricsReport)
    assert report.n_samples == len(test)
    assert report.mae == pytest.approx(0.0, abs=1e-6)
    assert report.rmse == pytest.approx(0.0, abs=1e-6)
    assert report.r2 == pytest.approx(1.0, abs=1e-6)


def test_metrics_are_consistent(trained_pipeline, synthetic_aggregated):
    report = evaluate(trained_pipeline, synthetic_aggregated, 'score')

    assert report.rmse == pytest.approx(math.sqrt(report.mse))
    assert report.mae <= report.rmse + 1e-9
    assert set(report.to_dict()) == {
        'model_name', 'n_samples', 'mae', 'mse', 'rmse', 'median_absolute_error', 'r2'
    }


def test_evaluation_is_deterministic(trained_pipeline, synthetic_aggregated):
    assert evaluate(trained_pipeline, synthetic_aggregated) == evaluate(trained_pipeline, synthetic_aggregated)


def test_single_row_has_undefined_r2(trained_pipeline, synthetic_aggregated):
    report = evaluate(trained_pipeline, synthetic_aggregated.head(1))
    assert report.n_samples == 1
    assert math.isnan(report.r2)


def test_empty_test_set(trained_pipeline, synthetic_aggregated):
    with pytest.raises(InsufficientDataError):
        evaluate(trained_pipeline, synthetic_aggregated.iloc[0:0])


def test_missing_label(trained_pipeline, synthetic_aggregated):
    with pytest.raises(SchemaMismatchError):
        evaluate(trained_pipeline, synthetic_aggregated.drop(columns=['score']))
