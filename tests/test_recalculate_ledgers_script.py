"""The recalculate_ledgers maintenance script against a file database."""

import sys
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_config import reset_settings
from erp_kernel.db.engine import build_engine, create_tables, reset_engine
from erp_kernel.models.party import Party
from scripts.recalculate_ledgers import main


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'erp.db'}"
    monkeypatch.setenv("ERP_DATABASE_URL", url)
    reset_settings()
    reset_engine()

    engine = build_engine(url)
    create_tables(engine)
    with Session(engine) as session:
        session.add(
            Party(code="CUST-001", party_type="customer", name="Mehta Plastics", outstanding=Decimal("50"))
        )
        session.commit()
    engine.dispose()

    yield url

    reset_engine()
    reset_settings()


def _stored_outstanding(url: str) -> Decimal:
    engine = build_engine(url)
    try:
        with Session(engine) as session:
            return session.execute(select(Party)).scalar_one().outstanding
    finally:
        engine.dispose()


def test_corrects_drifted_outstanding(database_url, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["recalculate_ledgers.py"])

    assert main() == 0

    assert "1 corrected" in capsys.readouterr().out
    assert _stored_outstanding(database_url) == Decimal("0")


def test_dry_run_rolls_back(database_url, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["recalculate_ledgers.py", "--dry-run", "--type", "customer"])

    assert main() == 0

    out = capsys.readouterr().out
    assert "Dry run" in out
    assert _stored_outstanding(database_url) == Decimal("50")
