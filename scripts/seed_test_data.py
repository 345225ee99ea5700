"""
Seed the local database with a demo company, its staff and a week of shifts.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (email for users, name for companies and
departments, title + start for shifts).
"""
import sys
import os
from datetime import date, datetime, time, timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.db import SessionLocal, Base, engine
from app.models.models import (
    AttendanceSettings,
    Company,
    Department,
    Shift,
    ShiftAssignment,
    User,
    UserRole,
)
from app.auth.security import get_password_hash


def ensure_company(session, name: str) -> Company:
    company = session.query(Company).filter(Company.name == name).first()
    if company:
        return company
    company = Company(name=name)
    session.add(company)
    session.flush()
    return company


def ensure_department(session, company: Company, name: str) -> Department:
    dept = (
        session.query(Department)
        .filter(Department.company_id == company.id, Department.name == name)
        .first()
    )
    if dept:
        return dept
    dept = Department(company_id=company.id, name=name)
    session.add(dept)
    session.flush()
    return dept


def ensure_user(session, company: Company, name: str, email: str, password: str, role: UserRole, department: Department = None) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        user.name = name
        user.role = role
        user.department_id = department.id if department else None
        session.add(user)
        session.flush()
        return user
    user = User(
        company_id=company.id,
        department_id=department.id if department else None,
        name=name,
        email=email,
        password_hash=get_password_hash(password),
        role=role,
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user


def ensure_shift(session, company: Company, department: Department, title: str, start: datetime, end: datetime) -> Shift:
    shift = (
        session.query(Shift)
        .filter(Shift.company_id == company.id, Shift.title == title, Shift.start_time == start)
        .first()
    )
    if shift:
        shift.end_time = end
        session.flush()
        return shift
    shift = Shift(company_id=company.id, department_id=department.id, title=title, start_time=start, end_time=end)
    session.add(shift)
    session.flush()
    return shift


def ensure_assignment(session, shift: Shift, user: User) -> ShiftAssignment:
    row = (
        session.query(ShiftAssignment)
        .filter(ShiftAssignment.shift_id == shift.id, ShiftAssignment.user_id == user.id)
        .first()
    )
    if row:
        return row
    row = ShiftAssignment(shift_id=shift.id, user_id=user.id)
    session.add(row)
    session.flush()
    return row


def ensure_settings(session, company: Company) -> AttendanceSettings:
    row = session.query(AttendanceSettings).filter(AttendanceSettings.company_id == company.id).first()
    if row:
        return row
    row = AttendanceSettings(
        company_id=company.id,
        require_gps=False,
        max_gps_radius_meters=100,
        late_tolerance_minutes=15,
        early_departure_minutes=15,
        allow_manager_clock_in=True,
        allow_self_clock_in=False,
        notify_on_late=True,
        notify_on_absent=True,
    )
    session.add(row)
    session.flush()
    return row


def main() -> None:
    # Ensure tables exist (safe for SQLite dev)
    if engine.url.get_backend_name() == "sqlite":
        os.makedirs("var", exist_ok=True)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        company = ensure_company(session, "Demo Logistics")
        ops = ensure_department(session, company, "Operations")
        ensure_settings(session, company)

        ensure_user(session, company, "Ana Admin", "admin@example.com", "TestAdmin123!", UserRole.ADMIN)
        ensure_user(session, company, "Mario Manager", "manager@example.com", "TestUser123!", UserRole.MANAGER, ops)
        staff = [
            ensure_user(session, company, "Eva Employee", "eva@example.com", "TestUser123!", UserRole.EMPLOYEE, ops),
            ensure_user(session, company, "Rui Employee", "rui@example.com", "TestUser123!", UserRole.EMPLOYEE, ops),
        ]

        # Morning shifts for the current week, Monday to Friday
        monday = date.today() - timedelta(days=date.today().weekday())
        for offset in range(5):
            day = monday + timedelta(days=offset)
            shift = ensure_shift(
                session,
                company,
                ops,
                "Morning",
                datetime.combine(day, time(9, 0)),
                datetime.combine(day, time(17, 0)),
            )
            for user in staff:
                ensure_assignment(session, shift, user)

        session.commit()
        print("Seed complete: 1 company, 4 users, 5 shifts, 10 assignments")
    finally:
        session.close()


if __name__ == "__main__":
    main()
