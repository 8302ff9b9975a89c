import pandas as pd
import pytest

from inspection_score.context import ExecutionContext
from inspection_score.exceptions import SchemaMismatchError
from inspection_score.schema import (
    AGGREGATED_SCHEMA,
    INSPECTION_FEATURES,
    INTEGER,
    AggregatedInspectionRow,
    ColumnSpec,
    Schema,
)
from inspection_score.utils import (
    get_grade_from_score,
    normalize_borough,
    standardize_column_name,
    validate_camis,
)


def test_context_lifecycle():
    ctx = ExecutionContext(n_jobs=2)
    assert not ctx.is_active
    with ctx:
        assert ctx.is_active
        assert ctx.map(lambda x: x * 2, [1, 2, 3]) == [2, 4, 6]
    assert not ctx.is_active
    with pytest.raises(RuntimeError):
        ctx.map(str, [1])


def test_context_cannot_be_started_twice():
    with ExecutionContext() as ctx:
        with pytest.raises(RuntimeError):
            ctx.start()


def test_context_rejects_zero_partitions():
    with pytest.raises(ValueError):
        ExecutionContext(n_partitions=0)


def test_aggregated_row_invariants():
    with pytest.raises(ValueError):
        AggregatedInspectionRow(1, 'Queens', 'Cycle', 10.0, '04H', 2, 1)
    with pytest.raises(ValueError):
        AggregatedInspectionRow(1, 'Queens', 'Cycle', 10.0, '', 0, 0)


def test_schema_validate_names_missing_column():
    with pytest.raises(SchemaMismatchError) as excinfo:
        AGGREGATED_SCHEMA.validate(pd.DataFrame({'camis': [1]}))
    assert excinfo.value.column == 'boro'


def test_schema_rejects_duplicates_and_unknown_types():
    with pytest.raises(ValueError):
        Schema([ColumnSpec('a'), ColumnSpec('a')])
    with pytest.raises(ValueError):
        ColumnSpec('a', 'decimal')


def test_integer_conversion_nulls_fractions():
    df = Schema([ColumnSpec('n', INTEGER)]).apply(pd.DataFrame({'n': ['1', '2.5', 'x']}))
    assert df['n'].isna().tolist() == [False, True, True]


def test_feature_schema_prepare_fills_missing_text():
    df = pd.DataFrame({
        'boro': ['Queens'],
        'inspection_type': [None],
        'violations': [None],
        'critical_violations': ['0'],
        'total_violations': [1],
        'camis': [41720083],
    })
    X = INSPECTION_FEATURES.prepare(df)

    assert list(X.columns) == INSPECTION_FEATURES.feature_columns
    assert X['violations'].iloc[0] == ''
    assert X['critical_violations'].iloc[0] == 0.0


@pytest.mark.parametrize(
    "name, expected",
    [
        ('INSPECTION DATE', 'inspection_date'),
        ('CAMIS', 'camis'),
        ('InspectionType', 'inspection_type'),
        ('CriticalViolations', 'critical_violations'),
        ('Latitude', 'latitude'),
        ('critical_violations', 'critical_violations'),
    ],
)
def test_standardize_column_name(name, expected):
    assert standardize_column_name(name) == expected


def test_helpers():
    assert normalize_borough(' staten island ') == 'Staten Island'
    assert normalize_borough('0') is None
    assert normalize_borough(None) is None
    assert get_grade_from_score(13) == 'A'
    assert get_grade_from_score(14) == 'B'
    assert get_grade_from_score(28) == 'C'
    assert get_grade_from_score(float('nan')) is None
    assert validate_camis('41720083')
    assert not validate_camis('123')
    assert not validate_camis(None)


def test_apply_drops_rows_with_nulls_in_required_columns():
    schema = Schema([ColumnSpec('id', INTEGER, nullable=False), ColumnSpec('note')])
    df = schema.apply(pd.DataFrame({'id': ['1', 'x', None], 'note': ['a', 'b', None]}))

    assert df['id'].tolist() == [1]
    assert df['note'].tolist() == ['a']
    assert schema.null_counts(df) == {}


def test_nullable_columns_keep_nulls():
    df = Schema([ColumnSpec('id', INTEGER)]).apply(pd.DataFrame({'id': ['1', None]}))
    assert len(df) == 2


def test_schema_is_hashable():
    same = Schema(list(AGGREGATED_SCHEMA))
    assert hash(same) == hash(AGGREGATED_SCHEMA)
    assert len({same, AGGREGATED_SCHEMA}) == 1
