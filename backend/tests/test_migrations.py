import importlib.util
from pathlib import Path

import sqlalchemy as sa

from phynetix.database import Base
import phynetix.models  # noqa: F401

MIGRATION = Path(__file__).resolve().parents[1] / "migrations" / "versions" / "001_initial.py"


class RecordingOps:
    """Stands in for ``alembic.op`` and keeps the tables the revision creates."""

    def __init__(self):
        self.tables = {}

    def create_table(self, name, *elements, **kwargs):
        self.tables[name] = {c.name: c for c in elements if isinstance(c, sa.Column)}

    def __getattr__(self, name):
        return lambda *args, **kwargs: None


def migrated_tables():
    spec = importlib.util.spec_from_file_location("initial_revision", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    ops = RecordingOps()
    module.op = ops
    module.upgrade()
    return ops.tables


def test_initial_revision_creates_every_model_table():
    assert set(migrated_tables()) == set(Base.metadata.tables)


def test_initial_revision_columns_match_models():
    for name, columns in migrated_tables().items():
        model = Base.metadata.tables[name]
        assert set(columns) == set(model.c.keys()), name
        for column in columns.values():
            expected = model.c[column.name].type
            if isinstance(expected, sa.DateTime):
                assert isinstance(column.type, sa.DateTime), column.name
                assert column.type.timezone == expected.timezone, column.name
