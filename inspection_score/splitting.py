"""
Dataset Splitter
================
Entity-keyed train/test split.

Rows are assigned at the level of distinct restaurant ids, so every
inspection of a restaurant ends up on the same side and restaurant
specific patterns cannot leak from training into evaluation. The
requested fraction applies to distinct ids, not rows, so the row ratio
is only approximate.
"""

import logging
from typing import Tuple

import pandas as pd
from sklearn.model_selection import GroupShuffleSplit

from .exceptions import InsufficientDataError

logger = logging.getLogger(__name__)


def split_by_entity(
    dataset: pd.DataFrame,
    key_column: str = 'camis',
    fraction: float = 0.8,
    seed: int = 42
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a dataset so that no key value appears on both sides.

    Args:
        dataset: Aggregated DataFrame
        key_column: Column holding the entity id
        fraction: Target share of distinct keys assigned to training
        seed: Random seed; the split is deterministic for a fixed seed

    Returns:
        (train, test)

    Raises:
        InsufficientDataError: too few distinct keys for two non-empty sides
    """
    if not 0 < fraction < 1:
        raise ValueError(f"fraction must be strictly between 0 and 1, got {fraction}")
    if key_column not in dataset.columns:
        raise InsufficientDataError(f"Key column '{key_column}' not found in dataset")

    keys = dataset[key_column]
    n_keys = keys.nunique(dropna=True)
    if keys.isna().any():
        raise InsufficientDataError(f"Key column '{key_column}' contains null values")
    if n_keys < 2:
        raise InsufficientDataError(
            f"Need at least 2 distinct '{key_column}' values to split, found {n_keys}"
        )

    splitter = GroupShuffleSplit(n_splits=1, train_size=fraction, random_state=seed)
    try:
        train_idx, test_idx = next(splitter.split(dataset, groups=keys))
    except ValueError as exc:
        raise InsufficientDataError(
            f"Cannot split {n_keys} distinct '{key_column}' values with "
            f"fraction={fraction}: {exc}"
        ) from exc

    train = dataset.iloc[train_idx].sort_index()
    test = dataset.iloc[test_idx].sort_index()

    logger.info(f"Split {n_keys:,} entities: train {len(train):,} rows, "
                f"test {len(test):,} rows")
    return train, test
