"""
NYC Restaurant Inspection Score Regressor
=========================================

Predicts the numeric score of a restaurant inspection from its violation
counts, borough and inspection type.

Modules:
- data_loader: Raw data ingestion with declared or inferred schemas
- feature_engineering: Per-inspection aggregation of violation rows
- splitting: Restaurant-keyed train/test split
- model_training: Time-boxed search over regression pipelines
- evaluation: Regression error metrics
- predictor: Single-inspection inference
- artifacts: Model persistence
- pipeline: End-to-end run and command line entry point

Example usage:
    from inspection_score import (
        ExecutionContext, InspectionRecordLoader, FeatureAggregator,
        ModelSearchEngine, split_by_entity, evaluate, predict
    )

    with ExecutionContext(n_jobs=4) as ctx:
        raw = InspectionRecordLoader().load_from_csv("data/raw/inspections.csv")
        df = FeatureAggregator(ctx).aggregate(raw)
        train, test = split_by_entity(df, 'camis', fraction=0.8)
        result = ModelSearchEngine(ctx, time_budget=300).search(train, 'score')

    metrics = evaluate(result.best_pipeline, test, 'score')
"""

__version__ = "1.0.0"

from .artifacts import load_pipeline, save_pipeline
from .context import ExecutionContext
from .data_loader import InspectionRecordLoader
from .evaluation import MetricsReport, evaluate
from .exceptions import (
    CandidateFitError,
    ExperimentExhaustedError,
    InspectionScoreError,
    InsufficientDataError,
    SchemaMismatchError,
)
from .feature_engineering import FeatureAggregator, load_dataset, save_dataset
from .model_training import (
    CandidateSpec,
    ExperimentResult,
    ModelSearchEngine,
    TrainedPipeline,
)
from .predictor import predict, predict_request
from .schema import (
    AggregatedInspectionRow,
    FeatureSchema,
    RawInspectionRow,
    SampleSchemaInference,
    Schema,
)
from .splitting import split_by_entity
from .utils import Timer, get_grade_from_score, validate_camis

__all__ = [
    'AggregatedInspectionRow',
    'CandidateFitError',
    'CandidateSpec',
    'ExecutionContext',
    'ExperimentExhaustedError',
    'ExperimentResult',
    'FeatureAggregator',
    'FeatureSchema',
    'InspectionRecordLoader',
    'InspectionScoreError',
    'InsufficientDataError',
    'MetricsReport',
    'ModelSearchEngine',
    'RawInspectionRow',
    'SampleSchemaInference',
    'Schema',
    'SchemaMismatchError',
    'Timer',
    'TrainedPipeline',
    'evaluate',
    'get_grade_from_score',
    'load_dataset',
    'load_pipeline',
    'predict',
    'predict_request',
    'save_dataset',
    'save_pipeline',
    'split_by_entity',
    'validate_camis',
]
