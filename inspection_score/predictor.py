"""
Predictor Module
================
Single-inspection inference against a trained pipeline.

Request keys may use either snake_case or CamelCase
(``inspection_type`` / ``InspectionType``). Keys the model does not use,
such as the restaurant id, are ignored.
"""

import logging
from typing import Any, Dict, Mapping

import numpy as np
import pandas as pd

from .exceptions import SchemaMismatchError
from .model_training import TrainedPipeline
from .utils import get_grade_from_score, normalize_borough, standardize_column_name

logger = logging.getLogger(__name__)


def _to_frame(pipeline: TrainedPipeline, row: Mapping[str, Any]) -> pd.DataFrame:
    record = {standardize_column_name(key): value for key, value in row.items()}

    missing = pipeline.schema.missing_columns(record)
    if missing:
        raise SchemaMismatchError(
            f"Prediction request is missing feature columns: {missing}",
            column=missing[0]
        )

    if 'boro' in record:
        # Unknown spellings are kept as-is so the encoder ignores them
        record['boro'] = normalize_borough(record['boro']) or record['boro']

    return pd.DataFrame([record])


def predict(pipeline: TrainedPipeline, row: Mapping[str, Any]) -> float:
    """
    Predict the inspection score for one aggregated inspection.

    Args:
        pipeline: Trained pipeline
        row: Feature values keyed by column name

    Returns:
        Predicted score

    Raises:
        SchemaMismatchError: a required feature column is missing
    """
    prediction = pipeline.predict(_to_frame(pipeline, row))
    return float(np.asarray(prediction).ravel()[0])


def predict_request(pipeline: TrainedPipeline, row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Answer a single-prediction request.

    Returns the predicted score, its NYC letter grade and, when the
    request carries one, an echo of the reference score.
    """
    score = predict(pipeline, row)
    record = {standardize_column_name(key): value for key, value in row.items()}

    response = {
        'predicted_score': score,
        'predicted_grade': get_grade_from_score(score),
    }
    label = pipeline.schema.label
    if label in record:
        response[label] = record[label]

    logger.info(f"Predicted score {score:.2f} ({response['predicted_grade']})")
    return response
