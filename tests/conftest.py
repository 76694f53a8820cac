import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pm_scheduler.config import settings
from pm_scheduler.database import Base, get_db
from pm_scheduler.main import app
from pm_scheduler.models import Company, Technician
from pm_scheduler.services import clients as client_service

AS_OF = date(2024, 1, 10)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def company(db):
    company = Company(name="Northwind HVAC")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def other_company(db):
    company = Company(name="Rival Mechanical")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def make_technician(db):
    def _factory(company, name="Sam Tech"):
        technician = Technician(company_id=company.id, name=name)
        db.add(technician)
        db.commit()
        db.refresh(technician)
        return technician

    return _factory


@pytest.fixture
def technician(company, make_technician):
    return make_technician(company)


@pytest.fixture
def make_client(db):
    def _factory(company, company_name="Acme", selected_months=(2, 8), inactive=False, **fields):
        data = {
            "company_name": company_name,
            "selected_months": list(selected_months),
            "inactive": inactive,
        }
        data.update(fields)
        return client_service.create_client(db, company.id, data, AS_OF)

    return _factory


@pytest.fixture
def client(company, make_client):
    return make_client(company)


@pytest.fixture
def api(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _factory(company, technician=None):
        payload = {"sub": "dispatcher@example.com", "company_id": company.id}
        if technician is not None:
            payload["technician_id"] = technician.id
        payload["exp"] = datetime.utcnow() + timedelta(minutes=30)
        token = jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)
        return {"Authorization": f"Bearer {token}"}

    return _factory
