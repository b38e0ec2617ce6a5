"""Checks that the initial migration matches the ORM models."""
import re
from pathlib import Path

import pytest

import pulse.models  # noqa: F401  (registers every table)
from pulse.database import Base

VERSIONS_DIR = Path(__file__).parents[2] / "alembic" / "versions"


def _migration_source() -> str:
    return "\n".join(path.read_text() for path in sorted(VERSIONS_DIR.glob("*.py")))


def test_migration_creates_every_model_index() -> None:
    created = set(re.findall(r"op\.f\('(ix_\w+)'\)", _migration_source()))
    declared = {index.name for table in Base.metadata.tables.values() for index in table.indexes}

    assert declared - created == set()
    assert {"ix_profiles_id", "ix_payment_history_id", "ix_subscriptions_id", "ix_webhook_events_id"} <= created


@pytest.mark.parametrize("table_name", sorted(Base.metadata.tables))
def test_migration_creates_every_model_column(table_name: str) -> None:
    match = re.search(rf"op\.create_table\(\s*'{table_name}',(.*?)\n    \)", _migration_source(), re.DOTALL)
    assert match is not None

    created = set(re.findall(r"sa\.Column\('(\w+)'", match.group(1)))
    assert set(Base.metadata.tables[table_name].columns.keys()) == created
