"""
Data Loader Module
==================
Handles ingestion of raw inspection rows from delimited files or the
NYC Open Data API.

Every source is read as text first. Column types then come either from
an explicit Schema (mapped by position) or from a pluggable
SchemaInferenceStrategy, so that inconsistent columns are widened
instead of failing the load.
"""

import csv
import logging
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd

from .exceptions import SchemaMismatchError
from .schema import SampleSchemaInference, Schema, SchemaInferenceStrategy
from .utils import standardize_column_name

# Optional: NYC Open Data API client
try:
    from sodapy import Socrata
    SODAPY_AVAILABLE = True
except ImportError:
    SODAPY_AVAILABLE = False

logger = logging.getLogger(__name__)

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_RAW = PROJECT_ROOT / "data" / "raw"
DATA_PROCESSED = PROJECT_ROOT / "data" / "processed"

# NYC Open Data dataset identifier
NYC_DATASET_ID = "43nn-pn8j"
NYC_DOMAIN = "data.cityofnewyork.us"


def require_columns(df: pd.DataFrame, columns: Iterable[str]) -> None:
    """
    Check that every required column is present.

    Raises:
        SchemaMismatchError: naming the first missing column
    """
    for col in columns:
        if col not in df.columns:
            raise SchemaMismatchError(
                f"Required column '{col}' not found in source columns {list(df.columns)}",
                column=col
            )


class InspectionRecordLoader:
    """
    Loads raw NYC restaurant inspection rows into a typed DataFrame.

    Can load from:
    - Local delimited file (CSV, TSV, ...)
    - NYC Open Data API (if sodapy is installed)

    Example:
        loader = InspectionRecordLoader()
        df = loader.load_from_csv("path/to/data.csv")
        summary = loader.get_data_summary(df)
    """

    def __init__(
        self,
        app_token: Optional[str] = None,
        inference: Optional[SchemaInferenceStrategy] = None
    ):
        """
        Initialize the data loader.

        Args:
            app_token: Optional NYC Open Data app token for higher rate limits
            inference: Strategy used when no explicit schema is given
        """
        self.app_token = app_token
        self.inference = inference or SampleSchemaInference()

    def load_from_csv(
        self,
        filepath: Union[str, Path],
        delimiter: str = ",",
        header: bool = True,
        quotechar: str = '"',
        quoting: int = csv.QUOTE_MINIMAL,
        schema: Optional[Schema] = None,
        inference: Optional[SchemaInferenceStrategy] = None
    ) -> pd.DataFrame:
        """
        Load data from a local delimited file.

        Args:
            filepath: Path to the file
            delimiter: Column delimiter
            header: Whether the first row holds column names
            quotechar: Character used to quote fields
            quoting: csv module quoting rule
            schema: Explicit schema; columns are mapped by position
            inference: Overrides the loader's inference strategy

        Returns:
            Typed DataFrame

        Raises:
            SchemaMismatchError: if schema and source disagree on column count
        """
        logger.info(f"Loading data from {filepath}")

        df = pd.read_csv(
            filepath,
            sep=delimiter,
            header=0 if header else None,
            quotechar=quotechar,
            quoting=quoting,
            dtype=str,
            low_memory=False
        )

        if schema is not None:
            if len(df.columns) != len(schema):
                raise SchemaMismatchError(
                    f"Schema declares {len(schema)} columns but {filepath} has "
                    f"{len(df.columns)}"
                )
            df.columns = schema.names
        elif header:
            df.columns = [standardize_column_name(col) for col in df.columns]
        else:
            df.columns = [f"column_{i}" for i in range(len(df.columns))]

        df = self._apply_types(df, schema, inference)
        logger.info(f"Loaded {len(df):,} rows and {len(df.columns)} columns")
        return df

    def load_from_api(self, limit: int = 500000) -> pd.DataFrame:
        """
        Load data directly from NYC Open Data API.

        Args:
            limit: Maximum number of records to fetch

        Returns:
            Typed DataFrame
        """
        if not SODAPY_AVAILABLE:
            raise ImportError(
                "sodapy is required for API access. Install with: pip install sodapy"
            )

        logger.info(f"Fetching data from NYC Open Data API (limit: {limit:,})")

        client = Socrata(NYC_DOMAIN, self.app_token)
        try:
            results = client.get(NYC_DATASET_ID, limit=limit)
        finally:
            client.close()

        df = pd.DataFrame.from_records(results).astype(object)
        df = df.where(df.notna(), None)
        df.columns = [standardize_column_name(col) for col in df.columns]
        df = self._apply_types(df, None, None)

        logger.info(f"Fetched {len(df):,} rows from API")
        return df

    def _apply_types(
        self,
        df: pd.DataFrame,
        schema: Optional[Schema],
        inference: Optional[SchemaInferenceStrategy]
    ) -> pd.DataFrame:
        if schema is None:
            schema = (inference or self.inference).infer(df)
        return schema.apply(df)

    def get_data_summary(self, df: pd.DataFrame) -> dict:
        """
        Generate a summary of the dataset.

        Args:
            df: DataFrame to summarize

        Returns:
            Dictionary with summary statistics
        """
        summary = {
            'total_rows': len(df),
            'total_columns': len(df.columns),
            'unique_restaurants': df['camis'].nunique() if 'camis' in df.columns else None,
            'date_range': None,
            'boroughs': None,
            'missing_values': df.isnull().sum().to_dict()
        }

        if 'inspection_date' in df.columns:
            summary['date_range'] = {
                'min': str(df['inspection_date'].min()),
                'max': str(df['inspection_date'].max())
            }

        if 'boro' in df.columns:
            summary['boroughs'] = df['boro'].value_counts().to_dict()

        return summary
