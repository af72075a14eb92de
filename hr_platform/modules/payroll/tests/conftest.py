# hr_platform/modules/payroll/tests/conftest.py

"""
Pytest fixtures and factories for payroll module tests.

Service tests run against a real in-memory SQLite database; route tests
share the same session through dependency overrides.
"""

import pytest
from typing import Any, Dict, List, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hr_platform.core.auth import User, get_current_user
from hr_platform.core.database import Base, get_db
from hr_platform.modules.staff.enums.staff_enums import StaffRole
from hr_platform.modules.staff.models import StaffMember
from hr_platform.modules.payroll import models  # noqa: F401
from hr_platform.modules.payroll.enums.payroll_enums import PayrollComponentKey as C
from hr_platform.modules.payroll.schemas.payroll_schemas import InputValueUpdate
from hr_platform.modules.payroll.services.payroll_period_service import PayrollPeriodService


# Database fixtures
@pytest.fixture
def db_engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Create a test database session."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    yield session
    session.rollback()
    session.close()


# Staff factories
@pytest.fixture
def staff_factory(db_session):
    """Factory for creating roster members."""
    counter = {"value": 0}

    def create_staff(name: str, role: StaffRole = StaffRole.EMPLOYEE, **kwargs) -> StaffMember:
        counter["value"] += 1
        staff = StaffMember(
            name=name,
            email=kwargs.pop("email", f"staff{counter['value']}@hr.local"),
            role=role,
            **kwargs,
        )
        db_session.add(staff)
        db_session.commit()
        db_session.refresh(staff)
        return staff

    return create_staff


@pytest.fixture
def roster(staff_factory) -> List[StaffMember]:
    """Three employees plus an HR user who is not on the payroll roster."""
    employees = [
        staff_factory("Ali Raza"),
        staff_factory("Sara Khan"),
        staff_factory("Bilal Ahmed"),
    ]
    staff_factory("Hina HR", role=StaffRole.HR)
    return employees


# Period factories
@pytest.fixture
def period_factory(db_session):
    """Factory creating a period and optionally seeding its inputs."""

    def create_period(period_key: str, inputs: Optional[Dict[str, Dict[C, Any]]] = None):
        service = PayrollPeriodService(db_session)
        ref = service.create_or_reuse_period(period_key, actor_id=1)
        if inputs:
            service.update_inputs(
                ref.id,
                [
                    InputValueUpdate(payroll_name=name, component_key=key.value, amount=amount)
                    for name, components in inputs.items()
                    for key, amount in components.items()
                ],
                actor_id=1,
            )
        return service.get_period(ref.id)

    return create_period


# API fixtures
@pytest.fixture
def payroll_manager() -> User:
    return User(
        id=1,
        username="payroll_clerk",
        email="payroll_clerk@hr.local",
        roles=["payroll_manager"],
    )


@pytest.fixture
def client(db_session, payroll_manager):
    """TestClient with the database and current user overridden."""
    from hr_platform.app.main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: payroll_manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
