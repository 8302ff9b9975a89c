"""
Feature Engineering Module
==========================
Reshapes row-level violation records into one feature row per
inspection event.

Steps:
1. Drop incomplete or invalid rows (placeholder dates, missing scores,
   unknown boroughs, malformed restaurant ids)
2. Turn the critical flag into a 0/1 indicator
3. Group by (camis, boro, inspection_date, inspection_type, score)
4. Count critical and total violations, join the violation codes
5. Drop the date and the indicator from the output
6. Sort by restaurant id

Grouping runs per partition on the execution context. Partitions are
hashed on camis so an inspection event never spans two partitions, and
the final sort makes the output independent of the partition count.

Known coverage gap: an inspection with no violations only appears if the
source carries a placeholder row for it (usually with a null violation
code). Inspections with no row at all cannot be recovered here.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Union

import pandas as pd

from .context import ExecutionContext
from .data_loader import InspectionRecordLoader, require_columns
from .schema import (
    AGGREGATED_SCHEMA,
    RAW_INSPECTION_SCHEMA,
    RAW_REQUIRED_COLUMNS,
    AggregatedInspectionRow,
    RawInspectionRow,
)
from .utils import normalize_borough, validate_camis

logger = logging.getLogger(__name__)

# The source marks "no inspection yet" with this date
SENTINEL_DATE = pd.Timestamp("1900-01-01")

CODE_SEPARATOR = ","

GROUP_KEY = ['camis', 'boro', 'inspection_date', 'inspection_type', 'score']

OUTPUT_COLUMNS = AGGREGATED_SCHEMA.names


class FeatureAggregator:
    """
    Creates per-inspection features from raw violation rows.

    Example:
        with ExecutionContext(n_partitions=4) as ctx:
            aggregator = FeatureAggregator(ctx)
            df_features = aggregator.aggregate(df_raw)
    """

    def __init__(self, context: ExecutionContext):
        """
        Initialize the aggregator.

        Args:
            context: Active execution context used to run partitions
        """
        self.context = context
        self.drop_counts = {}

    def aggregate(
        self,
        rows: Union[pd.DataFrame, Iterable[RawInspectionRow]]
    ) -> pd.DataFrame:
        """
        Aggregate raw violation rows into one row per inspection event.

        Args:
            rows: Raw rows, as a DataFrame or as RawInspectionRow objects

        Returns:
            DataFrame with OUTPUT_COLUMNS, sorted by camis
        """
        if not isinstance(rows, pd.DataFrame):
            rows = pd.DataFrame([vars(row) for row in rows], columns=RAW_REQUIRED_COLUMNS)
        require_columns(rows, RAW_REQUIRED_COLUMNS)

        logger.info(f"Aggregating {len(rows):,} raw rows...")
        df = self._filter_invalid(rows[RAW_REQUIRED_COLUMNS].copy())
        df['is_critical'] = self._critical_indicator(df['critical_flag'])

        partitions = self._partition(df)
        parts = self.context.map(_aggregate_partition, partitions)
        parts = [part for part in parts if not part.empty]

        if parts:
            result = pd.concat(parts, ignore_index=True)
        else:
            result = _aggregate_partition(df.iloc[0:0])

        result = (
            result
            .sort_values(['camis', 'inspection_date', 'inspection_type', 'score'], kind='mergesort')
            .reset_index(drop=True)
        )
        result = result[OUTPUT_COLUMNS]

        logger.info(f"Aggregation complete. {len(result):,} inspections from "
                    f"{len(df):,} valid rows")
        return result

    def to_rows(self, df: pd.DataFrame) -> Iterator[AggregatedInspectionRow]:
        """Yield typed rows for an aggregated DataFrame."""
        return AGGREGATED_SCHEMA.to_rows(df, AggregatedInspectionRow)

    def _filter_invalid(self, df: pd.DataFrame) -> pd.DataFrame:
        """Drop rows that must not reach modeling and remember why."""
        df = RAW_INSPECTION_SCHEMA.apply(df)
        dates = df['inspection_date']
        df['boro'] = df['boro'].map(normalize_borough)

        checks = {
            'invalid_camis': ~df['camis'].map(validate_camis).astype(bool),
            'missing_date': dates.isna(),
            'placeholder_date': dates == SENTINEL_DATE,
            'missing_score': df['score'].isna(),
            'unknown_borough': df['boro'].isna(),
            'missing_inspection_type': df['inspection_type'].isna(),
        }

        keep = pd.Series(True, index=df.index)
        self.drop_counts = {}
        for reason, mask in checks.items():
            dropped = int((mask & keep).sum())
            self.drop_counts[reason] = dropped
            if dropped:
                logger.warning(f"Dropped {dropped:,} rows: {reason}")
            keep &= ~mask

        df = df[keep].copy()
        df['camis'] = pd.to_numeric(df['camis']).astype('int64')
        return df

    @staticmethod
    def _critical_indicator(flags: pd.Series) -> pd.Series:
        return (
            flags.where(flags.notna(), '')
            .astype(str)
            .str.strip()
            .str.upper()
            .eq('CRITICAL')
            .astype(int)
        )

    def _partition(self, df: pd.DataFrame) -> List[pd.DataFrame]:
        n = self.context.n_partitions
        if n == 1 or df.empty:
            return [df]
        bucket = pd.util.hash_pandas_object(df['camis'], index=False) % n
        return [df[bucket == i] for i in range(n)]


def _aggregate_partition(df: pd.DataFrame) -> pd.DataFrame:
    """Group one partition by inspection event and derive violation counts."""
    codes = df['violation_code'].where(df['violation_code'].notna(), '').astype(str).str.strip()
    df = df.assign(violation_code=codes)

    grouped = df.groupby(GROUP_KEY, sort=False)
    result = grouped.agg(
        violations=('violation_code', _join_codes),
        critical_violations=('is_critical', 'sum'),
        total_violations=('is_critical', 'size'),
    ).reset_index()

    result['critical_violations'] = result['critical_violations'].astype('int64')
    result['total_violations'] = result['total_violations'].astype('int64')
    return result


def _join_codes(codes: pd.Series) -> str:
    return CODE_SEPARATOR.join(code for code in codes if code)


def save_dataset(df: pd.DataFrame, filepath: Union[str, Path]) -> Path:
    """
    Write the aggregated dataset without a header, in fixed column order.

    Args:
        df: Aggregated DataFrame
        filepath: Destination file

    Returns:
        Path written
    """
    require_columns(df, OUTPUT_COLUMNS)
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    df[OUTPUT_COLUMNS].to_csv(filepath, index=False, header=False)
    logger.info(f"Saved {len(df):,} aggregated rows to {filepath}")
    return filepath


def load_dataset(filepath: Union[str, Path]) -> pd.DataFrame:
    """Read an aggregated dataset written by save_dataset."""
    df = InspectionRecordLoader().load_from_csv(
        filepath, header=False, schema=AGGREGATED_SCHEMA
    )
    df['violations'] = df['violations'].where(df['violations'].notna(), '')
    return df
