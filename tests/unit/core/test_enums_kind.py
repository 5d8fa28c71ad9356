import pytest

from core.enums import DatabaseKind, ExportState


def test_iterability_and_uniqueness():
    members = list(DatabaseKind)
    values = [m.value for m in members]
    assert len(values) == len(set(values))  # unique values
    assert set(members) == {DatabaseKind.MYSQL, DatabaseKind.POSTGRESQL}


@pytest.mark.parametrize(
    "value,expected",
    [
        # Already an enum
        (DatabaseKind.MYSQL, DatabaseKind.MYSQL),
        # Match by exact value (what the form posts)
        ("mysql", DatabaseKind.MYSQL),
        ("postgresql", DatabaseKind.POSTGRESQL),
        # Match by normalized name
        ("MYSQL", DatabaseKind.MYSQL),
        (" PostgreSQL ", DatabaseKind.POSTGRESQL),
        # Aliases
        ("postgres", DatabaseKind.POSTGRESQL),
        ("pg", DatabaseKind.POSTGRESQL),
        ("mariadb", DatabaseKind.MYSQL),
    ],
)
def test_from_any_valid(value, expected):
    assert DatabaseKind.from_any(value) is expected


@pytest.mark.parametrize("bad", ["", "oracle", None, 3306, {}, []])
def test_from_any_invalid_raises(bad):
    with pytest.raises((ValueError, TypeError)):
        DatabaseKind.from_any(bad)


def test_labels_and_default_ports():
    assert DatabaseKind.MYSQL.label == "MySQL"
    assert DatabaseKind.POSTGRESQL.label == "PostgreSQL"
    assert DatabaseKind.MYSQL.default_port == 3306
    assert DatabaseKind.POSTGRESQL.default_port == 5432


def test_only_finalized_and_aborted_are_terminal():
    terminal = {s for s in ExportState if s.is_terminal}
    assert terminal == {ExportState.FINALIZED, ExportState.ABORTED}
