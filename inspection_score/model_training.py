"""
Model Training Module
=====================
Time-boxed search over candidate regression pipelines for the
inspection score.

Candidates implemented:
1. Linear models (linear regression, ridge, lasso, elastic net)
2. Random Forest
3. Gradient Boosting
4. XGBoost (when installed)

Each candidate is an sklearn Pipeline (feature encoding -> regressor),
fitted on an entity-keyed sub-split of the training set and scored on
the held-out validation part. The time budget is checked before each
candidate starts; fits already running are allowed to finish.
"""

import logging
import time
import warnings
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, clone
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import GradientBoostingRegressor, RandomForestRegressor
from sklearn.feature_extraction.text import CountVectorizer
from sklearn.linear_model import ElasticNet, Lasso, LinearRegression, Ridge
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import ParameterGrid, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from .context import ExecutionContext
from .exceptions import (
    CandidateFitError,
    ExperimentExhaustedError,
    InsufficientDataError,
    SchemaMismatchError,
)
from .feature_engineering import CODE_SEPARATOR
from .schema import INSPECTION_FEATURES, FeatureSchema
from .splitting import split_by_entity

# XGBoost
try:
    from xgboost import XGBRegressor
    XGBOOST_AVAILABLE = True
except ImportError:
    XGBOOST_AVAILABLE = False
    warnings.warn("XGBoost not installed. Install with: pip install xgboost")

logger = logging.getLogger(__name__)


def _rmse(y_true, y_pred) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


# name -> (metric function, lower is better)
METRICS = {
    'rmse': (_rmse, True),
    'mse': (mean_squared_error, True),
    'mae': (mean_absolute_error, True),
    'r2': (r2_score, False),
}

STATUS_OK = 'ok'
STATUS_FAILED = 'failed'
STATUS_SKIPPED = 'skipped'


def split_codes(text: str) -> List[str]:
    """Tokenizer for the joined violation codes column."""
    return [code for code in text.split(CODE_SEPARATOR) if code]


@dataclass
class CandidateSpec:
    """An algorithm plus the hyperparameter grid to try for it."""
    name: str
    estimator: BaseEstimator
    param_grid: Dict[str, List[Any]] = field(default_factory=dict)
    scale_numeric: bool = False

    def expand(self) -> List[Dict[str, Any]]:
        return list(ParameterGrid(self.param_grid))


@dataclass
class TrainedPipeline:
    """A fitted feature-encoding + regressor pipeline and its input schema."""
    pipeline: Pipeline
    schema: FeatureSchema
    candidate: str
    params: Dict[str, Any] = field(default_factory=dict)
    metric: str = 'rmse'
    validation_score: Optional[float] = None
    refitted: bool = False

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        return self.pipeline.predict(self.schema.prepare(df))


@dataclass
class CandidateResult:
    """Outcome of one candidate. Written only by the worker that ran it."""
    candidate_id: str
    name: str
    params: Dict[str, Any]
    status: str
    score: Optional[float] = None
    fit_seconds: float = 0.0
    error: Optional[str] = None
    pipeline: Optional[Pipeline] = field(default=None, repr=False)


@dataclass
class ExperimentResult:
    """All candidate outcomes plus the selected model."""
    candidates: List[CandidateResult]
    metric: str
    best_index: int
    best_pipeline: TrainedPipeline
    elapsed: float
    time_budget: float
    refit_error: Optional[str] = None

    @property
    def best(self) -> CandidateResult:
        return self.candidates[self.best_index]

    @property
    def evaluated(self) -> List[CandidateResult]:
        return [c for c in self.candidates if c.status == STATUS_OK]

    @property
    def failed(self) -> List[CandidateResult]:
        return [c for c in self.candidates if c.status == STATUS_FAILED]

    @property
    def skipped(self) -> List[CandidateResult]:
        return [c for c in self.candidates if c.status == STATUS_SKIPPED]

    def leaderboard(self) -> pd.DataFrame:
        """Evaluated candidates ordered from best to worst."""
        lower_is_better = METRICS[self.metric][1]
        rows = [
            {
                'candidate': c.candidate_id,
                'model': c.name,
                self.metric: c.score,
                'fit_seconds': c.fit_seconds,
            }
            for c in self.evaluated
        ]
        board = pd.DataFrame(rows, columns=['candidate', 'model', self.metric, 'fit_seconds'])
        return board.sort_values(self.metric, ascending=lower_is_better, kind='mergesort').reset_index(drop=True)

    def print_comparison_table(self, top_n: int = 10):
        """Print a comparison table of the best candidates."""
        board = self.leaderboard().head(top_n)

        print("\n" + "="*70)
        print("MODEL COMPARISON")
        print("="*70)
        print(f"{'Candidate':<50} {self.metric.upper():<10} {'Seconds':<10}")
        print("-"*70)
        for _, row in board.iterrows():
            print(f"{row['candidate'][:49]:<50} {row[self.metric]:<10.3f} {row['fit_seconds']:<10.2f}")
        print("-"*70)
        print(f"{len(self.evaluated)} evaluated, {len(self.failed)} failed, "
              f"{len(self.skipped)} skipped in {self.elapsed:.1f}s "
              f"(budget {self.time_budget:.1f}s)")
        print("="*70)


def default_candidates(random_state: int = 42) -> List[CandidateSpec]:
    """Candidate catalog, cheapest first so short budgets still get baselines."""
    candidates = [
        CandidateSpec('linear_regression', LinearRegression(), scale_numeric=True),
        CandidateSpec(
            'ridge',
            Ridge(random_state=random_state),
            {'alpha': [0.1, 1.0, 10.0]},
            scale_numeric=True
        ),
        CandidateSpec(
            'lasso',
            Lasso(random_state=random_state, max_iter=5000),
            {'alpha': [0.01, 0.1, 1.0]},
            scale_numeric=True
        ),
        CandidateSpec(
            'elastic_net',
            ElasticNet(random_state=random_state, max_iter=5000),
            {'alpha': [0.1, 1.0], 'l1_ratio': [0.2, 0.8]},
            scale_numeric=True
        ),
        CandidateSpec(
            'random_forest',
            RandomForestRegressor(random_state=random_state, n_jobs=1),
            {
                'n_estimators': [100, 200],
                'max_depth': [10, None],
                'min_samples_leaf': [1, 2]
            }
        ),
        CandidateSpec(
            'gradient_boosting',
            GradientBoostingRegressor(random_state=random_state),
            {
                'n_estimators': [100, 200],
                'max_depth': [3, 5],
                'learning_rate': [0.05, 0.1]
            }
        ),
    ]

    if XGBOOST_AVAILABLE:
        candidates.append(CandidateSpec(
            'xgboost',
            XGBRegressor(
                random_state=random_state,
                objective='reg:squarederror',
                tree_method='hist',
                n_jobs=1
            ),
            {
                'n_estimators': [100, 200],
                'max_depth': [3, 5, 7],
                'learning_rate': [0.01, 0.1]
            }
        ))

    return candidates


def build_preprocessor(schema: FeatureSchema, scale_numeric: bool = False) -> ColumnTransformer:
    """One-hot categoricals, bag of violation codes, numeric counts."""
    transformers = []
    if schema.categorical:
        transformers.append(
            ('categorical', OneHotEncoder(handle_unknown='ignore'), list(schema.categorical))
        )
    for col in schema.text:
        transformers.append((
            f'codes_{col}',
            CountVectorizer(tokenizer=split_codes, token_pattern=None, lowercase=False),
            col
        ))
    if schema.numeric:
        transformers.append(
            ('numeric', StandardScaler() if scale_numeric else 'passthrough', list(schema.numeric))
        )
    return ColumnTransformer(transformers, remainder='drop', sparse_threshold=0.0)


def build_pipeline(
    spec: CandidateSpec,
    params: Dict[str, Any],
    schema: FeatureSchema = INSPECTION_FEATURES
) -> Pipeline:
    """Unfitted pipeline for one candidate."""
    estimator = clone(spec.estimator).set_params(**params)
    return Pipeline([
        ('features', build_preprocessor(schema, spec.scale_numeric)),
        ('model', estimator),
    ])


def candidate_id(name: str, params: Dict[str, Any]) -> str:
    if not params:
        return name
    args = ', '.join(f"{key}={value}" for key, value in sorted(params.items()))
    return f"{name}[{args}]"


class ModelSearchEngine:
    """
    Searches the candidate catalog within a wall-clock budget.

    Example:
        with ExecutionContext(n_jobs=4) as ctx:
            engine = ModelSearchEngine(ctx, time_budget=300)
            result = engine.search(train_df, label_column='score')
            model = result.best_pipeline
    """

    def __init__(
        self,
        context: ExecutionContext,
        time_budget: float = 60.0,
        metric: str = 'rmse',
        validation_fraction: float = 0.2,
        candidates: Optional[List[CandidateSpec]] = None,
        key_column: Optional[str] = 'camis',
        feature_schema: FeatureSchema = INSPECTION_FEATURES,
        refit: bool = True
    ):
        """
        Initialize the search engine.

        Args:
            context: Active execution context used to run candidates
            time_budget: Seconds after which no new candidate is started
            metric: One of 'rmse', 'mse', 'mae', 'r2'
            validation_fraction: Share of entities held out for validation
            candidates: Candidate catalog (defaults to default_candidates())
            key_column: Entity column for the internal split (None for row split)
            feature_schema: Model input contract
            refit: Refit the best candidate on the whole training set
        """
        if metric not in METRICS:
            raise ValueError(f"Unknown metric '{metric}'. Choose from {sorted(METRICS)}")
        if not 0 < validation_fraction < 1:
            raise ValueError(f"validation_fraction must be between 0 and 1, got {validation_fraction}")

        self.context = context
        self.time_budget = float(time_budget)
        self.metric = metric
        self.validation_fraction = validation_fraction
        self.candidates = (
            candidates if candidates is not None
            else default_candidates(context.random_state)
        )
        self.key_column = key_column
        self.feature_schema = feature_schema
        self.refit = refit

        names = [spec.name for spec in self.candidates]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate candidate names: {duplicates}")

    def search(self, training_set: pd.DataFrame, label_column: Optional[str] = None) -> ExperimentResult:
        """
        Run the search and select the best candidate.

        Args:
            training_set: Aggregated training rows
            label_column: Column to predict (defaults to the schema's label)

        Returns:
            ExperimentResult with every candidate outcome

        Raises:
            InsufficientDataError: training set too small for an internal split
            ExperimentExhaustedError: no candidate succeeded within the budget
        """
        schema = self.feature_schema
        if label_column is not None and label_column != schema.label:
            schema = replace(schema, label=label_column)

        X_fit, X_valid, y_fit, y_valid = self._internal_split(training_set, schema)

        tasks = [(spec, params) for spec in self.candidates for params in spec.expand()]
        if not tasks:
            raise ExperimentExhaustedError("Candidate catalog is empty", time_budget=self.time_budget)

        logger.info(f"Searching {len(tasks)} candidates with a {self.time_budget:.1f}s budget "
                    f"(metric: {self.metric})...")

        started = time.monotonic()
        deadline = started + self.time_budget
        run = partial(
            self._run_candidate,
            schema=schema,
            data=(X_fit, y_fit, X_valid, y_valid),
            deadline=deadline
        )
        results = self.context.map(run, tasks)
        elapsed = time.monotonic() - started

        ok = [i for i, r in enumerate(results) if r.status == STATUS_OK]
        if not ok:
            failures = {r.candidate_id: r.error for r in results if r.status == STATUS_FAILED}
            skipped = sum(r.status == STATUS_SKIPPED for r in results)
            raise ExperimentExhaustedError(
                f"No candidate succeeded: {len(failures)} failed, {skipped} skipped "
                f"after {elapsed:.2f}s of a {self.time_budget:.2f}s budget",
                elapsed=elapsed,
                time_budget=self.time_budget,
                failures=failures
            )

        lower_is_better = METRICS[self.metric][1]
        pick = min if lower_is_better else max
        best_index = pick(ok, key=lambda i: results[i].score)
        best = results[best_index]
        logger.info(f"Best candidate: {best.candidate_id} ({self.metric}={best.score:.4f}); "
                    f"{len(ok)} evaluated in {elapsed:.2f}s")

        pipeline, refit_error = self._final_pipeline(best, training_set, schema, deadline)
        best_pipeline = TrainedPipeline(
            pipeline=pipeline,
            schema=schema,
            candidate=best.candidate_id,
            params=dict(best.params),
            metric=self.metric,
            validation_score=best.score,
            refitted=pipeline is not best.pipeline
        )

        return ExperimentResult(
            candidates=results,
            metric=self.metric,
            best_index=best_index,
            best_pipeline=best_pipeline,
            elapsed=elapsed,
            time_budget=self.time_budget,
            refit_error=refit_error
        )

    def _internal_split(
        self,
        training_set: pd.DataFrame,
        schema: FeatureSchema
    ) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
        if schema.label not in training_set.columns:
            raise SchemaMismatchError(
                f"Label column '{schema.label}' not found in training set", column=schema.label
            )
        if len(training_set) < 2:
            raise InsufficientDataError(
                f"Need at least 2 training rows for a validation split, got {len(training_set)}"
            )

        if self.key_column and self.key_column in training_set.columns:
            fit_df, valid_df = split_by_entity(
                training_set,
                key_column=self.key_column,
                fraction=1 - self.validation_fraction,
                seed=self.context.random_state
            )
        else:
            fit_df, valid_df = train_test_split(
                training_set,
                test_size=self.validation_fraction,
                random_state=self.context.random_state
            )

        return (
            schema.prepare(fit_df),
            schema.prepare(valid_df),
            self._label(fit_df, schema),
            self._label(valid_df, schema),
        )

    @staticmethod
    def _label(df: pd.DataFrame, schema: FeatureSchema) -> pd.Series:
        y = pd.to_numeric(df[schema.label], errors='coerce').astype(float)
        if y.isna().any():
            raise SchemaMismatchError(
                f"Label column '{schema.label}' has {int(y.isna().sum())} null or non-numeric values",
                column=schema.label
            )
        return y

    def _run_candidate(
        self,
        task: Tuple[CandidateSpec, Dict[str, Any]],
        schema: FeatureSchema,
        data: Tuple[pd.DataFrame, pd.Series, pd.DataFrame, pd.Series],
        deadline: float
    ) -> CandidateResult:
        spec, params = task
        cid = candidate_id(spec.name, params)

        if time.monotonic() >= deadline:
            return CandidateResult(cid, spec.name, params, STATUS_SKIPPED)

        X_fit, y_fit, X_valid, y_valid = data
        metric_fn = METRICS[self.metric][0]
        started = time.monotonic()
        try:
            pipeline = build_pipeline(spec, params, schema)
            pipeline.fit(X_fit, y_fit)
            score = float(metric_fn(y_valid, pipeline.predict(X_valid)))
            if not np.isfinite(score):
                raise ValueError(f"validation {self.metric} is not finite ({score})")
        except Exception as exc:
            fit_seconds = time.monotonic() - started
            error = CandidateFitError(cid, exc)
            logger.warning(f"{error} (after {fit_seconds:.2f}s); continuing")
            return CandidateResult(
                cid, spec.name, params, STATUS_FAILED,
                fit_seconds=fit_seconds, error=str(error)
            )

        fit_seconds = time.monotonic() - started
        logger.info(f"  {cid}: {self.metric}={score:.4f} ({fit_seconds:.2f}s)")
        return CandidateResult(
            cid, spec.name, params, STATUS_OK,
            score=score, fit_seconds=fit_seconds, pipeline=pipeline
        )

    def _final_pipeline(
        self,
        best: CandidateResult,
        training_set: pd.DataFrame,
        schema: FeatureSchema,
        deadline: float
    ) -> Tuple[Pipeline, Optional[str]]:
        """
        Refit the best candidate on the whole training set.

        Falls back to the validation-split fit when refitting is disabled,
        the budget is spent, or the refit fails. Returns the pipeline and
        the refit error message, if any.
        """
        if not self.refit:
            return best.pipeline, None
        if time.monotonic() >= deadline:
            logger.info(f"Time budget spent; keeping the validation fit of {best.candidate_id}")
            return best.pipeline, None

        spec = next(spec for spec in self.candidates if spec.name == best.name)
        logger.info(f"Refitting {best.candidate_id} on {len(training_set):,} training rows...")
        try:
            pipeline = build_pipeline(spec, best.params, schema)
            pipeline.fit(schema.prepare(training_set), self._label(training_set, schema))
        except Exception as exc:
            error = CandidateFitError(best.candidate_id, exc)
            logger.warning(f"Refit failed, keeping the validation fit: {error}")
            return best.pipeline, str(error)
        return pipeline, None


def get_feature_importance(trained: TrainedPipeline) -> pd.DataFrame:
    """
    Get feature importance from a trained pipeline.

    Args:
        trained: Pipeline returned by the search

    Returns:
        DataFrame with feature importances
    """
    model = trained.pipeline.named_steps['model']
    features = trained.pipeline.named_steps['features']

    if hasattr(model, 'feature_importances_'):
        importances = model.feature_importances_
    elif hasattr(model, 'coef_'):
        importances = np.abs(np.ravel(model.coef_))
    else:
        raise ValueError(f"Model '{trained.candidate}' doesn't have feature importances")

    importance_df = pd.DataFrame({
        'feature': features.get_feature_names_out(),
        'importance': importances
    }).sort_values('importance', ascending=False, kind='mergesort').reset_index(drop=True)

    return importance_df
