import math

import pytest

from inspection_score.exceptions import SchemaMismatchError
from inspection_score.predictor import predict, predict_request


@pytest.fixture
def request_row():
    return {
        'Boro': 'Manhattan',
        'InspectionType': 'Cycle Inspection / Re-inspection',
        'Violations': '04H,09C,10F',
        'CriticalViolations': 1.0,
        'TotalViolations': 3.0,
    }


def test_request_returns_one_finite_score(trained_pipeline, request_row):
    score = predict(trained_pipeline, request_row)

    assert isinstance(score, float)
    assert math.isfinite(score)


def test_snake_case_keys_give_same_prediction(trained_pipeline, request_row):
    snake = {
        'boro': 'Manhattan',
        'inspection_type': 'Cycle Inspection / Re-inspection',
        'violations': '04H,09C,10F',
        'critical_violations': 1,
        'total_violations': 3,
        'camis': 41720083,
    }
    assert predict(trained_pipeline, snake) == predict(trained_pipeline, request_row)


def test_borough_spelling_is_normalized(trained_pipeline, request_row):
    upper = dict(request_row, Boro='MANHATTAN')
    assert predict(trained_pipeline, upper) == predict(trained_pipeline, request_row)


def test_prediction_matches_batch_scoring(trained_pipeline, synthetic_aggregated):
    row = synthetic_aggregated.iloc[0]
    expected = trained_pipeline.predict(synthetic_aggregated.head(1))[0]

    assert predict(trained_pipeline, row.to_dict()) == pytest.approx(expected)


def test_missing_feature_column(trained_pipeline, request_row):
    del request_row['TotalViolations']

    with pytest.raises(SchemaMismatchError) as excinfo:
        predict(trained_pipeline, request_row)

    assert excinfo.value.column == 'total_violations'


def test_non_numeric_count_is_rejected(trained_pipeline, request_row):
    request_row['CriticalViolations'] = 'many'

    with pytest.raises(SchemaMismatchError, match="critical_violations"):
        predict(trained_pipeline, request_row)


def test_unseen_category_still_predicts(trained_pipeline, request_row):
    request_row['InspectionType'] = 'Smoke-Free Air Act / Initial Inspection'
    assert math.isfinite(predict(trained_pipeline, request_row))


def test_request_echoes_reference_score(trained_pipeline, request_row):
    request_row['Score'] = 21

    response = predict_request(trained_pipeline, request_row)

    assert response['score'] == 21
    assert math.isfinite(response['predicted_score'])
    assert response['predicted_grade'] in {'A', 'B', 'C'}


def test_request_without_reference_score(trained_pipeline, request_row):
    response = predict_request(trained_pipeline, request_row)
    assert 'score' not in response
