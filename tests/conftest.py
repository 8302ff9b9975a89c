"""
Pytest configuration for inspection_score tests.
"""
import sys
from pathlib import Path

# Add the project root to Python path so tests can import inspection_score without installation
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import numpy as np
import pandas as pd
import pytest
from sklearn.linear_model import LinearRegression, Ridge
from sklearn.tree import DecisionTreeRegressor

from inspection_score.context import ExecutionContext
from inspection_score.feature_engineering import FeatureAggregator
from inspection_score.model_training import CandidateSpec, ModelSearchEngine
from inspection_score.utils import standardize_column_name

BOROUGHS = ['Manhattan', 'Brooklyn', 'Queens', 'Bronx', 'Staten Island']
INSPECTION_TYPES = [
    'Cycle Inspection / Initial Inspection',
    'Cycle Inspection / Re-inspection',
    'Pre-permit (Operational) / Initial Inspection',
]
CODES = ['02B', '04H', '04L', '04M', '06C', '08A', '09C', '10F']
CRITICAL_CODES = {'02B', '04H', '04L', '04M', '06C'}


def make_raw_rows(n_entities: int = 40, inspections_per_entity: int = 3, seed: int = 0) -> pd.DataFrame:
    """
    Build NYC-style raw violation rows (one row per violation).

    The score is an exact linear function of the critical count, the
    total count and the borough, so linear models can fit it perfectly.
    """
    rng = np.random.RandomState(seed)
    rows = []
    for i in range(n_entities):
        camis = 40000000 + i * 7919
        boro = BOROUGHS[i % len(BOROUGHS)]
        for j in range(inspections_per_entity):
            date = pd.Timestamp('2022-01-03') + pd.Timedelta(days=j * 200 + int(rng.randint(0, 150)))
            inspection_type = INSPECTION_TYPES[rng.randint(len(INSPECTION_TYPES))]
            n_codes = rng.randint(1, 6)
            codes = [str(code) for code in rng.choice(CODES, size=n_codes, replace=False)]
            critical = sum(code in CRITICAL_CODES for code in codes)
            score = float(2 * critical + n_codes + BOROUGHS.index(boro))
            for code in codes:
                rows.append({
                    'CAMIS': camis,
                    'DBA': f'RESTAURANT {i}',
                    'BORO': boro,
                    'INSPECTION DATE': date.strftime('%m/%d/%Y'),
                    'VIOLATION CODE': code,
                    'CRITICAL FLAG': 'Critical' if code in CRITICAL_CODES else 'Not Critical',
                    'SCORE': score,
                    'INSPECTION TYPE': inspection_type,
                    'Latitude': 40.7 + i / 1000,
                    'Longitude': -73.9 - i / 1000,
                })
    return pd.DataFrame(rows)


##########################
# Fixtures for Test Data #
##########################


@pytest.fixture
def raw_rows_dict():
    """Raw rows covering the valid, placeholder and invalid cases."""
    return {
        'camis': [41720083, 41720083, 41720083, 41720083, 50012345, 50012345,
                  40356018, 50099999, 50088888, 50077777],
        'boro': ['Manhattan', 'Manhattan', 'Manhattan', 'Manhattan', 'Brooklyn', 'Brooklyn',
                 'Queens', 'Bronx', 'Staten Island', '0'],
        'inspection_date': ['03/15/2023', '03/15/2023', '03/15/2023', '09/01/2023',
                            '05/02/2022', '05/02/2022', '11/20/2022', '01/01/1900',
                            '07/07/2023', '06/06/2023'],
        'inspection_type': ['Cycle Inspection / Re-inspection'] * 3
                           + ['Cycle Inspection / Initial Inspection'] * 3
                           + ['Pre-permit (Operational) / Initial Inspection', None,
                              'Cycle Inspection / Initial Inspection',
                              'Cycle Inspection / Initial Inspection'],
        'violation_code': ['04H', '09C', '10F', '02B', '06C', '08A', None, None, '04L', '04M'],
        'critical_flag': ['Critical', 'Not Critical', 'Critical', 'Critical', 'Critical',
                          'Not Critical', 'Not Applicable', None, 'Critical', 'Critical'],
        'score': [21, 21, 21, 12, 30, 30, 0, None, None, 18],
    }


@pytest.fixture
def raw_dataframe(raw_rows_dict):
    return pd.DataFrame(raw_rows_dict)


@pytest.fixture
def context():
    with ExecutionContext() as ctx:
        yield ctx


@pytest.fixture(scope="module")
def synthetic_raw():
    return make_raw_rows()


@pytest.fixture
def synthetic_csv_path(tmp_path, synthetic_raw):
    """NYC Open Data style CSV with the original upper-case headers."""
    path = tmp_path / "inspections.csv"
    synthetic_raw.to_csv(path, index=False)
    return path


@pytest.fixture(scope="module")
def synthetic_aggregated(synthetic_raw):
    raw = synthetic_raw.rename(columns=standardize_column_name)
    with ExecutionContext() as ctx:
        return FeatureAggregator(ctx).aggregate(raw)


@pytest.fixture(scope="module")
def fast_candidates():
    """A small catalog that trains in well under a second."""
    return [
        CandidateSpec('linear_regression', LinearRegression(), scale_numeric=True),
        CandidateSpec('ridge', Ridge(), {'alpha': [0.1, 10.0]}, scale_numeric=True),
        CandidateSpec('decision_tree', DecisionTreeRegressor(random_state=0), {'max_depth': [2, 4]}),
    ]


@pytest.fixture(scope="module")
def experiment(synthetic_aggregated, fast_candidates):
    with ExecutionContext(n_jobs=2) as ctx:
        engine = ModelSearchEngine(ctx, time_budget=60, candidates=fast_candidates)
        return engine.search(synthetic_aggregated, label_column='score')


@pytest.fixture(scope="module")
def trained_pipeline(experiment):
    return experiment.best_pipeline
