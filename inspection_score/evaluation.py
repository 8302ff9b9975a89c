"""
Evaluation Module
=================
Regression error metrics for a trained pipeline on a held-out set.
"""

import logging
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd
from sklearn.metrics import (
    mean_absolute_error,
    mean_squared_error,
    median_absolute_error,
    r2_score,
)

from .exceptions import InsufficientDataError, SchemaMismatchError
from .model_training import TrainedPipeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricsReport:
    """Error metrics comparing predicted and actual scores."""
    model_name: str
    n_samples: int
    mae: float
    mse: float
    rmse: float
    median_absolute_error: float
    r2: float

    def to_dict(self) -> dict:
        return asdict(self)


def evaluate(
    pipeline: TrainedPipeline,
    test_set: pd.DataFrame,
    label_column: str = 'score'
) -> MetricsReport:
    """
    Score a trained pipeline against the test set.

    Args:
        pipeline: Trained pipeline from the search
        test_set: Aggregated rows that were not used for training
        label_column: Column holding the actual score

    Returns:
        MetricsReport
    """
    if label_column not in test_set.columns:
        raise SchemaMismatchError(
            f"Label column '{label_column}' not found in test set", column=label_column
        )
    if test_set.empty:
        raise InsufficientDataError("Cannot evaluate on an empty test set")

    y_true = pd.to_numeric(test_set[label_column], errors='coerce').astype(float)
    y_pred = pipeline.predict(test_set)

    mse = float(mean_squared_error(y_true, y_pred))
    # r2 is undefined for fewer than two samples
    r2 = float(r2_score(y_true, y_pred)) if len(y_true) > 1 else float('nan')

    report = MetricsReport(
        model_name=pipeline.candidate,
        n_samples=len(y_true),
        mae=float(mean_absolute_error(y_true, y_pred)),
        mse=mse,
        rmse=float(np.sqrt(mse)),
        median_absolute_error=float(median_absolute_error(y_true, y_pred)),
        r2=r2
    )

    logger.info(f"{report.model_name} Results ({report.n_samples:,} inspections):")
    logger.info(f"  MAE:   {report.mae:.3f}")
    logger.info(f"  RMSE:  {report.rmse:.3f}")
    logger.info(f"  MedAE: {report.median_absolute_error:.3f}")
    logger.info(f"  R2:    {report.r2:.3f}")

    return report
