"""
Utility Functions
=================
Helper functions used across the project.
"""

import logging
import re
import time
from typing import Any, Optional

import pandas as pd

logger = logging.getLogger(__name__)

# Canonical borough names keyed by their upper-case spelling
BOROUGHS = {
    'MANHATTAN': 'Manhattan',
    'BROOKLYN': 'Brooklyn',
    'QUEENS': 'Queens',
    'BRONX': 'Bronx',
    'STATEN ISLAND': 'Staten Island',
}

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')


def standardize_column_name(name: Any) -> str:
    """
    Convert a source column name to snake_case.

    Handles both NYC Open Data headers ("INSPECTION DATE") and
    CamelCase request fields ("InspectionType").
    """
    name = _CAMEL_BOUNDARY.sub('_', str(name).strip())
    return re.sub(r'[\s\-]+', '_', name).lower()


def normalize_borough(value: Any) -> Optional[str]:
    """
    Map a borough spelling to its canonical name.

    Returns None for unknown values, including the "0" placeholder
    used by the source for missing boroughs.
    """
    if value is None or pd.isna(value):
        return None
    return BOROUGHS.get(str(value).strip().upper())


def get_grade_from_score(score: float) -> Optional[str]:
    """
    Convert inspection score to letter grade.

    NYC Grading:
    - A: 0-13 points
    - B: 14-27 points
    - C: 28+ points
    """
    if score is None or pd.isna(score):
        return None

    if score <= 13:
        return 'A'
    elif score <= 27:
        return 'B'
    else:
        return 'C'


def validate_camis(camis: Any) -> bool:
    """
    Validate a CAMIS (restaurant ID) value.

    Args:
        camis: Value to validate

    Returns:
        True if valid CAMIS
    """
    try:
        camis_int = int(camis)
        return 10000000 <= camis_int <= 99999999
    except (ValueError, TypeError):
        return False


def log_dataframe_info(df: pd.DataFrame, name: str = "DataFrame") -> None:
    """
    Log summary information about a DataFrame.

    Args:
        df: DataFrame to summarize
        name: Name to use in logging
    """
    logger.info(f"{name} Summary:")
    logger.info(f"  Shape: {df.shape}")
    logger.info(f"  Memory: {df.memory_usage(deep=True).sum() / 1024**2:.2f} MB")
    logger.info(f"  Missing values: {df.isnull().sum().sum():,}")
    logger.info(f"  Columns: {list(df.columns)}")


class Timer:
    """
    Context manager for timing code blocks.

    Example:
        with Timer("Data loading"):
            df = load_data()
    """

    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time = None
        self.elapsed = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        logger.info(f"Starting: {self.name}")
        return self

    def __exit__(self, *args):
        self.elapsed = time.perf_counter() - self.start_time
        logger.info(f"Completed: {self.name} ({self.elapsed:.2f}s)")
