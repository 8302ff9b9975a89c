import joblib
import numpy as np
import pytest

from inspection_score.artifacts import ARTIFACT_FORMAT_VERSION, load_pipeline, save_pipeline
from inspection_score.exceptions import SchemaMismatchError


def test_round_trip_predicts_identically(tmp_path, trained_pipeline, synthetic_aggregated):
    path = save_pipeline(trained_pipeline, tmp_path / "models" / "model.joblib")
    restored = load_pipeline(path)

    np.testing.assert_array_equal(
        restored.predict(synthetic_aggregated),
        trained_pipeline.predict(synthetic_aggregated)
    )


def test_round_trip_keeps_schema_and_metadata(tmp_path, trained_pipeline):
    path = save_pipeline(trained_pipeline, tmp_path / "model.joblib")
    restored = load_pipeline(str(path))

    assert restored.schema == trained_pipeline.schema
    assert restored.candidate == trained_pipeline.candidate
    assert restored.params == trained_pipeline.params
    assert restored.validation_score == trained_pipeline.validation_score
    assert restored.refitted == trained_pipeline.refitted


def test_archive_is_a_single_file(tmp_path, trained_pipeline):
    save_pipeline(trained_pipeline, tmp_path / "model.joblib")
    assert [p.name for p in tmp_path.iterdir()] == ["model.joblib"]


def test_foreign_archive_is_rejected(tmp_path):
    path = tmp_path / "other.joblib"
    joblib.dump({'weights': [1, 2, 3]}, path)

    with pytest.raises(SchemaMismatchError):
        load_pipeline(path)


def test_unsupported_format_version(tmp_path, trained_pipeline):
    path = save_pipeline(trained_pipeline, tmp_path / "model.joblib")
    payload = joblib.load(path)
    payload['format_version'] = ARTIFACT_FORMAT_VERSION + 1
    joblib.dump(payload, path)

    with pytest.raises(SchemaMismatchError, match="format version"):
        load_pipeline(path)
