# tests/conftest.py
"""
Pytest fixtures for the fixed asset ledger tests.

Every test gets its own sqlite file so concurrent sessions behave like
separate request handlers sharing one database.
"""
import itertools
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from assetledger.core.database import build_engine, get_db, init_db
from assetledger.main import app
from assetledger.models import AssetStatus, DepreciationMethod, FixedAsset
from assetledger.services.depreciation_types import AssetSnapshot

TENANT_ID = 1

_asset_numbers = itertools.count(1)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'assetledger-test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_asset(db):
    """Insert an asset directly; defaults give 10,000.00 a month for 12 months."""
    def _make_asset(**overrides):
        values = {
            "tenant_id": TENANT_ID,
            "asset_number": f"TEST-{next(_asset_numbers):05d}",
            "name": "Delivery Van",
            "category": "VEHICLE",
            "purchase_date": date(2024, 1, 1),
            "purchase_cost": Decimal("120000.00"),
            "salvage_value": Decimal("0.00"),
            "useful_life_months": 12,
            "depreciation_method": DepreciationMethod.STRAIGHT_LINE.value,
            "accumulated_depreciation": Decimal("0.00"),
            "status": AssetStatus.ACTIVE.value,
            "version": 1,
        }
        values.update(overrides)
        asset = FixedAsset(**values)
        db.add(asset)
        db.commit()
        return asset

    return _make_asset


@pytest.fixture
def terms():
    """Build an in-memory asset snapshot for the pure schedule/calculator functions."""
    def _terms(**overrides):
        values = {
            "id": 1,
            "tenant_id": TENANT_ID,
            "purchase_date": date(2024, 1, 1),
            "purchase_cost": Decimal("120000.00"),
            "salvage_value": Decimal("0.00"),
            "useful_life_months": 12,
            "depreciation_method": DepreciationMethod.STRAIGHT_LINE,
        }
        values.update(overrides)
        return AssetSnapshot(**values)

    return _terms


@pytest.fixture
def client(session_factory):
    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    yield TestClient(app)
    app.dependency_overrides.clear()
