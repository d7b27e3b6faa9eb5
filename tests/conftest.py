import pytest
import os
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from app.database import Base, enable_sqlite_foreign_keys, get_db
from app.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Monday; every date-sensitive service test runs against this "today"
TODAY = date(2025, 3, 3)
YEAR = 2025

@pytest.fixture(scope="function")
def db_session():
    """
    Fresh schema per test. Services commit and roll back on their own,
    so an outer wrapping transaction would not isolate them.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def leave_types(db_session):
    """Seed the default catalogue and return it keyed by code."""
    from app.models.leave_type import LeaveType
    from app.services.leave_type_catalog import LeaveTypeCatalog

    LeaveTypeCatalog(db_session).seed_defaults()
    return {lt.code: lt for lt in db_session.query(LeaveType).all()}

@pytest.fixture(scope="function")
def ledger_settings():
    from app.services.settings_service import LedgerSettings
    return LedgerSettings()

@pytest.fixture(scope="function")
def make_employee(db_session):
    """Factory for employees; salary 22,000 gives a daily rate of 1,000."""
    from app.models.employee import Employee
    counter = {"n": 0}

    def _make(appointment_date=date(2020, 1, 6), salary=22000.0, **fields):
        counter["n"] += 1
        employee = Employee(
            employee_number=fields.pop("employee_number", f"EMP-{counter['n']:04d}"),
            first_name=fields.pop("first_name", "Maria"),
            last_name=fields.pop("last_name", f"Santos{counter['n']}"),
            appointment_date=appointment_date,
            current_monthly_salary=salary,
            **fields
        )
        db_session.add(employee)
        db_session.commit()
        db_session.refresh(employee)
        return employee
    return _make

@pytest.fixture(scope="function")
def employee(make_employee):
    return make_employee()

@pytest.fixture(scope="function")
def initialized_employee(db_session, leave_types, employee, ledger_settings):
    """An employee appointed before YEAR with a full set of YEAR balances."""
    from app.services.accrual import AccrualProcessor
    AccrualProcessor(db_session, ledger_settings).initialize_year(employee.id, YEAR)
    return employee

@pytest.fixture(scope="function")
def lifecycle(db_session):
    from app.services.leave_lifecycle import LeaveLifecycleService
    return LeaveLifecycleService(db_session, today=TODAY)

@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
