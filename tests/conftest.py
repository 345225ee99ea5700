import os
import uuid
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT", "10000/minute")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("TZ_DEFAULT", "Europe/Lisbon")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base, configure_sqlite, get_db
from app.main import app
from app.auth.security import create_access_token, get_password_hash
from app.models.models import (
    AttendanceSettings,
    Company,
    Department,
    Shift,
    ShiftAssignment,
    User,
    UserRole,
)

SHIFT_DAY = datetime(2024, 3, 4)
PASSWORD = "Secret123!"


@pytest.fixture()
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    configure_sqlite(test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_company(db, name="Acme Logistics") -> Company:
    company = Company(name=name)
    db.add(company)
    db.commit()
    return company


def make_department(db, company, name="Operations") -> Department:
    dept = Department(company_id=company.id, name=name)
    db.add(dept)
    db.commit()
    return dept


def make_user(db, company, name, role=UserRole.EMPLOYEE, department=None, password=PASSWORD) -> User:
    slug = name.lower().replace(" ", ".")
    user = User(
        company_id=company.id,
        department_id=department.id if department else None,
        name=name,
        email=f"{slug}.{uuid.uuid4().hex[:8]}@example.com",
        password_hash=get_password_hash(password),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def make_assignment(db, user, start=None, end=None, department=None, title="Morning") -> ShiftAssignment:
    start = start or SHIFT_DAY.replace(hour=9)
    end = end or start + timedelta(hours=8)
    shift = Shift(
        company_id=user.company_id,
        department_id=department.id if department else None,
        title=title,
        start_time=start,
        end_time=end,
    )
    db.add(shift)
    db.flush()
    assignment = ShiftAssignment(shift_id=shift.id, user_id=user.id)
    db.add(assignment)
    db.commit()
    return assignment


def save_settings(db, company, **values) -> AttendanceSettings:
    row = AttendanceSettings(company_id=company.id, **values)
    db.add(row)
    db.commit()
    return row


def auth_headers(user) -> dict:
    token = create_access_token(str(user.id), role=user.role.value, company_id=str(user.company_id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def company(db):
    return make_company(db)


@pytest.fixture()
def other_company(db):
    return make_company(db, "Rival Freight")


@pytest.fixture()
def department(db, company):
    return make_department(db, company)


@pytest.fixture()
def admin(db, company):
    return make_user(db, company, "Ana Admin", UserRole.ADMIN)


@pytest.fixture()
def manager(db, company, department):
    return make_user(db, company, "Mario Manager", UserRole.MANAGER, department)


@pytest.fixture()
def employee(db, company, department):
    return make_user(db, company, "Eva Employee", UserRole.EMPLOYEE, department)


@pytest.fixture()
def coworker(db, company, department):
    return make_user(db, company, "Bruno Worker", UserRole.EMPLOYEE, department)


@pytest.fixture()
def outsider(db, other_company):
    return make_user(db, other_company, "Olga Outsider", UserRole.MANAGER)


@pytest.fixture()
def assignment(db, employee, department):
    """Eva on 2024-03-04 09:00-17:00."""
    return make_assignment(db, employee, department=department)
