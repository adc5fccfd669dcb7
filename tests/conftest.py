"""
Test Configuration and Fixtures
Shared testing infrastructure for VaxSync
"""

import pytest
from datetime import datetime
from typing import Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from vaxsync.api import deps
from vaxsync.core.database import Base
from vaxsync.main import app
from vaxsync.models import (
    Barangay, InventoryBatch, SessionStatus, VaccinationSession, Vaccine, VaccineDoseDefinition
)
from vaxsync.services.reference_tables import ReferenceTables
from vaxsync.services.reporting import MonthlyReportCache

# Test database - in-memory SQLite shared across the connection pool
TEST_DATABASE_URL = "sqlite://"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_report_cache] = MonthlyReportCache
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def reference_tables() -> ReferenceTables:
    return ReferenceTables()


@pytest.fixture
def make_barangay(db_session: Session):
    """Factory for barangays"""
    def _make(name: str = "San Isidro") -> Barangay:
        barangay = Barangay(name=name, municipality="Test Municipality")
        db_session.add(barangay)
        db_session.commit()
        return barangay
    return _make


@pytest.fixture
def make_vaccine(db_session: Session):
    """Factory for vaccines with one dose definition"""
    def _make(name: str = "Test Vaccine", doses_per_vial: Optional[int] = 5,
              batch_number: str = "LOT-001", quantity_available: int = 0,
              dose_code: str = "D1") -> VaccineDoseDefinition:
        vaccine = Vaccine(name=name, batch_number=batch_number, quantity_available=quantity_available)
        db_session.add(vaccine)
        db_session.flush()
        dose = VaccineDoseDefinition(
            vaccine_id=vaccine.id,
            dose_code=dose_code,
            dose_label=f"{name} {dose_code}",
            dose_number=1,
            doses_per_vial=doses_per_vial,
            quantity_available=quantity_available,
        )
        db_session.add(dose)
        db_session.commit()
        return dose
    return _make


@pytest.fixture
def make_batch(db_session: Session):
    """Factory for inventory batches with an explicit received date"""
    def _make(barangay: Barangay, dose: VaccineDoseDefinition, vials: int,
              received: datetime, doses: Optional[int] = None, reserved: int = 0,
              batch_number: Optional[str] = "LOT-001") -> InventoryBatch:
        per_vial = dose.doses_per_vial or 1
        batch = InventoryBatch(
            barangay_id=barangay.id,
            dose_definition_id=dose.id,
            quantity_vial=vials,
            quantity_dose=vials * per_vial if doses is None else doses,
            reserved_vial=reserved,
            batch_number=batch_number,
            received_date=received,
        )
        db_session.add(batch)
        db_session.commit()
        return batch
    return _make


@pytest.fixture
def make_session(db_session: Session):
    """Factory for vaccination sessions"""
    def _make(barangay: Barangay, dose: VaccineDoseDefinition, session_date,
              target: int = 0, administered: int = 0,
              status: str = SessionStatus.SCHEDULED.value,
              batch: Optional[InventoryBatch] = None) -> VaccinationSession:
        session = VaccinationSession(
            barangay_id=barangay.id,
            dose_definition_id=dose.id,
            inventory_batch_id=batch.id if batch else None,
            session_date=session_date,
            target=target,
            administered=administered,
            status=status,
        )
        db_session.add(session)
        db_session.commit()
        return session
    return _make


@pytest.fixture
def barangay(make_barangay) -> Barangay:
    return make_barangay()


@pytest.fixture
def dose(make_vaccine) -> VaccineDoseDefinition:
    """Unmapped vaccine name, so the stored 5 doses per vial applies"""
    return make_vaccine()
