"""
Inspection Score Pipeline
=========================
End-to-end run: load raw rows, aggregate per inspection, split by
restaurant, search for the best regressor, evaluate it and save the
artifact.

Usage:
    inspection-score data/raw/DOHMH_New_York_City_Restaurant_Inspection_Results.csv \
        --time-budget 300 --n-jobs 4
"""

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .artifacts import save_pipeline
from .context import ExecutionContext
from .data_loader import DATA_PROCESSED, DATA_RAW, PROJECT_ROOT, InspectionRecordLoader
from .evaluation import MetricsReport, evaluate
from .feature_engineering import FeatureAggregator, save_dataset
from .model_training import CandidateSpec, ExperimentResult, ModelSearchEngine
from .splitting import split_by_entity
from .utils import Timer, log_dataframe_info

logger = logging.getLogger(__name__)

MODELS_DIR = PROJECT_ROOT / "models"

DEFAULT_SOURCE = DATA_RAW / "DOHMH_New_York_City_Restaurant_Inspection_Results.csv"
DATASET_FILENAME = "inspections_aggregated.csv"
MODEL_FILENAME = "inspection_model.joblib"


@dataclass
class PipelineRun:
    """What a pipeline run produced."""
    raw_rows: int
    inspections: int
    train_rows: int
    test_rows: int
    experiment: ExperimentResult
    metrics: MetricsReport
    dataset_path: Path
    model_path: Path


def run_pipeline(
    source: Union[str, Path],
    output_dir: Optional[Union[str, Path]] = None,
    model_path: Optional[Union[str, Path]] = None,
    time_budget: float = 60.0,
    metric: str = 'rmse',
    train_fraction: float = 0.8,
    delimiter: str = ',',
    n_jobs: int = 1,
    n_partitions: int = 1,
    random_state: int = 42,
    candidates: Optional[List[CandidateSpec]] = None
) -> PipelineRun:
    """
    Run every stage from the raw file to the saved model.

    Args:
        source: Raw inspection file
        output_dir: Where the aggregated dataset is written
        model_path: Where the model archive is written
        time_budget: Seconds for the model search
        metric: Validation metric for model selection
        train_fraction: Share of restaurants used for training
        delimiter: Column delimiter of the source
        n_jobs: Worker threads
        n_partitions: Aggregation partitions
        random_state: Seed for splits and models
        candidates: Candidate catalog override

    Returns:
        PipelineRun
    """
    output_dir = Path(output_dir) if output_dir else DATA_PROCESSED
    model_path = Path(model_path) if model_path else MODELS_DIR / MODEL_FILENAME

    with ExecutionContext(n_jobs=n_jobs, n_partitions=n_partitions,
                          random_state=random_state) as ctx:
        with Timer("Loading raw data"):
            raw = InspectionRecordLoader().load_from_csv(source, delimiter=delimiter)

        with Timer("Aggregating inspections"):
            aggregated = FeatureAggregator(ctx).aggregate(raw)
            log_dataframe_info(aggregated, "Aggregated inspections")
            dataset_path = save_dataset(aggregated, output_dir / DATASET_FILENAME)

        train, test = split_by_entity(
            aggregated, key_column='camis', fraction=train_fraction, seed=random_state
        )

        with Timer("Model search"):
            engine = ModelSearchEngine(
                ctx, time_budget=time_budget, metric=metric, candidates=candidates
            )
            experiment = engine.search(train, label_column='score')

    metrics = evaluate(experiment.best_pipeline, test, label_column='score')
    model_path = save_pipeline(experiment.best_pipeline, model_path)

    return PipelineRun(
        raw_rows=len(raw),
        inspections=len(aggregated),
        train_rows=len(train),
        test_rows=len(test),
        experiment=experiment,
        metrics=metrics,
        dataset_path=dataset_path,
        model_path=model_path
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Train an NYC restaurant inspection score regressor."
    )
    parser.add_argument('source', nargs='?', default=str(DEFAULT_SOURCE),
                        help="Raw inspection results file")
    parser.add_argument('--output-dir', default=str(DATA_PROCESSED),
                        help="Directory for the aggregated dataset")
    parser.add_argument('--model-path', default=str(MODELS_DIR / MODEL_FILENAME),
                        help="Destination of the model archive")
    parser.add_argument('--time-budget', type=float, default=60.0,
                        help="Seconds available to the model search")
    parser.add_argument('--metric', default='rmse', choices=['rmse', 'mse', 'mae', 'r2'])
    parser.add_argument('--train-fraction', type=float, default=0.8)
    parser.add_argument('--delimiter', default=',')
    parser.add_argument('--n-jobs', type=int, default=1)
    parser.add_argument('--n-partitions', type=int, default=1)
    parser.add_argument('--random-state', type=int, default=42)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the pipeline from the command line."""
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)

    source = Path(args.source)
    if not source.exists():
        print(f"\nNo raw file found at: {source}")
        print("Download from: https://data.cityofnewyork.us/Health/"
              "DOHMH-New-York-City-Restaurant-Inspection-Results/43nn-pn8j")
        return 1

    run = run_pipeline(
        source,
        output_dir=args.output_dir,
        model_path=args.model_path,
        time_budget=args.time_budget,
        metric=args.metric,
        train_fraction=args.train_fraction,
        delimiter=args.delimiter,
        n_jobs=args.n_jobs,
        n_partitions=args.n_partitions,
        random_state=args.random_state
    )

    run.experiment.print_comparison_table()

    print("\n" + "="*50)
    print("TEST SET METRICS")
    print("="*50)
    print(f"Inspections: {run.metrics.n_samples:,}")
    print(f"MAE:  {run.metrics.mae:.3f}")
    print(f"RMSE: {run.metrics.rmse:.3f}")
    print(f"R2:   {run.metrics.r2:.3f}")

    print(f"\nAggregated dataset saved to: {run.dataset_path}")
    print(f"Model saved to: {run.model_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
