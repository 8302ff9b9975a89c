"""
Artifact Store
==============
Persists a trained pipeline together with its input schema as a single
joblib archive, and restores it for later scoring.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Union

import joblib

from .exceptions import SchemaMismatchError
from .model_training import TrainedPipeline
from .schema import FeatureSchema

logger = logging.getLogger(__name__)

ARTIFACT_FORMAT_VERSION = 1

_REQUIRED_KEYS = {'format_version', 'pipeline', 'schema', 'candidate'}


def save_pipeline(pipeline: TrainedPipeline, destination: Union[str, Path]) -> Path:
    """
    Save a trained pipeline and its schema to one archive.

    Args:
        pipeline: Trained pipeline
        destination: Archive path (parent directories are created)

    Returns:
        Path written
    """
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    payload = {
        'format_version': ARTIFACT_FORMAT_VERSION,
        'pipeline': pipeline.pipeline,
        'schema': pipeline.schema,
        'candidate': pipeline.candidate,
        'params': pipeline.params,
        'metric': pipeline.metric,
        'validation_score': pipeline.validation_score,
        'refitted': pipeline.refitted,
        'saved_at': datetime.now().isoformat(timespec='seconds'),
    }

    with open(destination, 'wb') as fh:
        joblib.dump(payload, fh, compress=3)

    logger.info(f"Saved {pipeline.candidate} to {destination}")
    return destination


def load_pipeline(source: Union[str, Path]) -> TrainedPipeline:
    """
    Load a pipeline written by save_pipeline.

    Raises:
        SchemaMismatchError: the file is not a pipeline archive of a
            supported format version
    """
    with open(source, 'rb') as fh:
        payload = joblib.load(fh)

    if not isinstance(payload, dict) or not _REQUIRED_KEYS.issubset(payload):
        raise SchemaMismatchError(f"{source} is not an inspection model archive")
    if payload['format_version'] != ARTIFACT_FORMAT_VERSION:
        raise SchemaMismatchError(
            f"{source} has format version {payload['format_version']}, "
            f"expected {ARTIFACT_FORMAT_VERSION}"
        )
    if not isinstance(payload['schema'], FeatureSchema):
        raise SchemaMismatchError(f"{source} does not carry a feature schema", column='schema')

    logger.info(f"Loaded {payload['candidate']} from {source} (saved {payload.get('saved_at')})")
    return TrainedPipeline(
        pipeline=payload['pipeline'],
        schema=payload['schema'],
        candidate=payload['candidate'],
        params=payload.get('params', {}),
        metric=payload.get('metric', 'rmse'),
        validation_score=payload.get('validation_score'),
        refitted=payload.get('refitted', False)
    )
