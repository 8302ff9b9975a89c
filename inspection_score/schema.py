"""
Schema Module
=============
Declared schemas, pluggable schema inference and the typed row
structures that flow between stages.

A Schema is an ordered list of ColumnSpec objects. It is used two ways:
- as an explicit declaration when loading a source (columns are mapped
  by position and validated against the source's column count)
- as the contract behind the typed rows (RawInspectionRow,
  AggregatedInspectionRow) produced from a DataFrame
"""

import logging
import re
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Type

import numpy as np
import pandas as pd

from .exceptions import SchemaMismatchError

logger = logging.getLogger(__name__)

INTEGER = 'integer'
DOUBLE = 'double'
STRING = 'string'
TIMESTAMP = 'timestamp'

LOGICAL_TYPES = (INTEGER, DOUBLE, STRING, TIMESTAMP)

_INTEGER_PATTERN = re.compile(r'^[+-]?\d+$')
_DATE_PATTERN = re.compile(r'^\d{1,4}[-/]\d{1,2}[-/]\d{1,4}')


@dataclass(frozen=True)
class ColumnSpec:
    """A named column with a logical type."""
    name: str
    dtype: str = STRING
    nullable: bool = True

    def __post_init__(self):
        if self.dtype not in LOGICAL_TYPES:
            raise ValueError(f"Unknown logical type '{self.dtype}' for column '{self.name}'")


def _convert(values: pd.Series, dtype: str) -> pd.Series:
    """Convert a text column to a logical type. Unconvertible cells become null."""
    if dtype == INTEGER:
        numeric = pd.to_numeric(values, errors='coerce')
        numeric = numeric.where(numeric == numeric.round())
        return numeric.astype('Int64')
    if dtype == DOUBLE:
        return pd.to_numeric(values, errors='coerce').astype(float)
    if dtype == TIMESTAMP:
        return pd.to_datetime(values, errors='coerce')
    return values.astype(object).where(values.notna(), None)


class Schema:
    """
    Ordered collection of column specifications.

    Example:
        schema = Schema([ColumnSpec('camis', INTEGER), ColumnSpec('boro')])
        typed = schema.apply(raw_text_frame)
    """

    def __init__(self, columns: Sequence[ColumnSpec]):
        names = [col.name for col in columns]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ValueError(f"Duplicate column names in schema: {sorted(duplicates)}")
        self.columns: Tuple[ColumnSpec, ...] = tuple(columns)

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[ColumnSpec]:
        return iter(self.columns)

    def __eq__(self, other) -> bool:
        return isinstance(other, Schema) and self.columns == other.columns

    def __hash__(self) -> int:
        return hash(self.columns)

    def __repr__(self) -> str:
        cols = ', '.join(f"{c.name}:{c.dtype}" for c in self.columns)
        return f"Schema({cols})"

    @property
    def names(self) -> List[str]:
        return [col.name for col in self.columns]

    @property
    def dtypes(self) -> Dict[str, str]:
        return {col.name: col.dtype for col in self.columns}

    def validate(self, df: pd.DataFrame) -> None:
        """Raise SchemaMismatchError for the first declared column missing from df."""
        for col in self.columns:
            if col.name not in df.columns:
                raise SchemaMismatchError(
                    f"Column '{col.name}' declared in schema is missing "
                    f"(available: {list(df.columns)})",
                    column=col.name
                )

    def null_counts(self, df: pd.DataFrame) -> Dict[str, int]:
        """Number of nulls in each non-nullable column that has any."""
        counts = {}
        for col in self.columns:
            if not col.nullable:
                nulls = int(df[col.name].isna().sum())
                if nulls:
                    counts[col.name] = nulls
        return counts

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Convert the declared columns of a text DataFrame to their logical types.

        Columns not named in the schema are left untouched. Rows left with
        a null in a non-nullable column are dropped.
        """
        self.validate(df)
        df = df.copy()
        for col in self.columns:
            before = df[col.name].notna().sum()
            df[col.name] = _convert(df[col.name], col.dtype)
            lost = before - df[col.name].notna().sum()
            if lost:
                logger.warning(
                    f"Column '{col.name}': {lost:,} values could not be read as "
                    f"{col.dtype} and were set to null"
                )

        nulls = self.null_counts(df)
        if nulls:
            required = [col.name for col in self.columns if not col.nullable]
            keep = df[required].notna().all(axis=1)
            logger.warning(
                f"Dropped {int((~keep).sum()):,} rows with nulls in non-nullable "
                f"columns: {nulls}"
            )
            df = df[keep].reset_index(drop=True)
        return df

    def to_rows(self, df: pd.DataFrame, row_type: Type) -> Iterator:
        """
        Yield strongly-typed row objects for every record in df.

        Raises:
            SchemaMismatchError: a non-nullable column holds nulls
        """
        self.validate(df)
        nulls = self.null_counts(df)
        if nulls:
            column = next(iter(nulls))
            raise SchemaMismatchError(
                f"Column '{column}' is not nullable but has {nulls[column]:,} nulls",
                column=column
            )
        for record in df[self.names].to_dict('records'):
            yield row_type.from_record(record)


class SchemaInferenceStrategy:
    """Determines a Schema from the text contents of a source."""

    def infer(self, df: pd.DataFrame) -> Schema:
        raise NotImplementedError


class SampleSchemaInference(SchemaInferenceStrategy):
    """
    Infers column types by scanning a sample of rows (or all rows).

    Each column gets the narrowest type every non-null sampled value fits:
    integer, then double, then timestamp, else string. A column with
    mixed values is widened to string rather than failing.

    Args:
        sample_rows: Number of leading rows to scan (None scans everything)
    """

    def __init__(self, sample_rows: Optional[int] = None):
        if sample_rows is not None and sample_rows < 1:
            raise ValueError(f"sample_rows must be positive, got {sample_rows}")
        self.sample_rows = sample_rows

    def infer(self, df: pd.DataFrame) -> Schema:
        sample = df if self.sample_rows is None else df.head(self.sample_rows)
        columns = [ColumnSpec(name, self.infer_column(sample[name])) for name in df.columns]
        logger.info(f"Inferred schema from {len(sample):,} rows: {columns}")
        return Schema(columns)

    @staticmethod
    def infer_column(values: pd.Series) -> str:
        values = values.dropna().astype(str).str.strip()
        values = values[values != '']
        if values.empty:
            return STRING
        if values.str.match(_INTEGER_PATTERN).all():
            return INTEGER
        if pd.to_numeric(values, errors='coerce').notna().all():
            return DOUBLE
        if values.str.match(_DATE_PATTERN).all():
            if pd.to_datetime(values, errors='coerce').notna().all():
                return TIMESTAMP
        return STRING


def _clean(value):
    """Turn pandas missing markers into None and numpy scalars into Python ones."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if value is pd.NA:
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


class _RecordMixin:
    @classmethod
    def from_record(cls, record: dict):
        names = [f.name for f in fields(cls)]
        missing = [name for name in names if name not in record]
        if missing:
            raise SchemaMismatchError(
                f"{cls.__name__} requires fields {missing}", column=missing[0]
            )
        return cls(**{name: _clean(record[name]) for name in names})


@dataclass(frozen=True)
class RawInspectionRow(_RecordMixin):
    """One violation found during one inspection event."""
    camis: Optional[int]
    boro: Optional[str]
    inspection_date: Optional[datetime]
    inspection_type: Optional[str]
    violation_code: Optional[str]
    critical_flag: Optional[str]
    score: Optional[float]


@dataclass(frozen=True)
class AggregatedInspectionRow(_RecordMixin):
    """One inspection event with its violation features."""
    camis: int
    boro: str
    inspection_type: str
    score: float
    violations: str
    critical_violations: int
    total_violations: int

    def __post_init__(self):
        if self.total_violations < 1:
            raise ValueError(f"total_violations must be >= 1, got {self.total_violations}")
        if not 0 <= self.critical_violations <= self.total_violations:
            raise ValueError(
                f"critical_violations ({self.critical_violations}) must be between 0 "
                f"and total_violations ({self.total_violations})"
            )

    @property
    def codes(self) -> List[str]:
        return self.violations.split(',') if self.violations else []


# Raw columns the aggregator needs, after column-name standardization.
# Every column is nullable: the aggregator drops and counts incomplete rows.
RAW_INSPECTION_SCHEMA = Schema([
    ColumnSpec('camis', INTEGER),
    ColumnSpec('boro', STRING),
    ColumnSpec('inspection_date', TIMESTAMP),
    ColumnSpec('inspection_type', STRING),
    ColumnSpec('violation_code', STRING),
    ColumnSpec('critical_flag', STRING),
    ColumnSpec('score', DOUBLE),
])

RAW_REQUIRED_COLUMNS = RAW_INSPECTION_SCHEMA.names

# Fixed column order of the processed (aggregated) dataset file
AGGREGATED_SCHEMA = Schema([
    ColumnSpec('camis', INTEGER, nullable=False),
    ColumnSpec('boro', STRING, nullable=False),
    ColumnSpec('inspection_type', STRING, nullable=False),
    ColumnSpec('score', DOUBLE, nullable=False),
    ColumnSpec('violations', STRING),
    ColumnSpec('critical_violations', INTEGER, nullable=False),
    ColumnSpec('total_violations', INTEGER, nullable=False),
])


@dataclass(frozen=True)
class FeatureSchema:
    """
    Input contract of a trained pipeline.

    categorical columns are one-hot encoded, text columns hold comma
    separated code lists, numeric columns are used as counts.
    """
    categorical: Tuple[str, ...] = ('boro', 'inspection_type')
    text: Tuple[str, ...] = ('violations',)
    numeric: Tuple[str, ...] = ('critical_violations', 'total_violations')
    label: str = 'score'

    @property
    def feature_columns(self) -> List[str]:
        return list(self.categorical) + list(self.text) + list(self.numeric)

    def missing_columns(self, columns) -> List[str]:
        available = set(columns)
        return [col for col in self.feature_columns if col not in available]

    def prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Select and coerce the feature columns of df.

        Raises:
            SchemaMismatchError: a feature column is missing or a numeric
                column holds values that are not numbers
        """
        missing = self.missing_columns(df.columns)
        if missing:
            raise SchemaMismatchError(
                f"Missing feature columns: {missing}", column=missing[0]
            )

        X = pd.DataFrame(index=df.index)
        for col in list(self.categorical) + list(self.text):
            X[col] = df[col].where(df[col].notna(), '').astype(str)
        for col in self.numeric:
            values = pd.to_numeric(df[col], errors='coerce').astype(float)
            if values.isna().any():
                raise SchemaMismatchError(
                    f"Column '{col}' must be numeric and non-null", column=col
                )
            X[col] = values
        return X


INSPECTION_FEATURES = FeatureSchema()
