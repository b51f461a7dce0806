import os

# Must be set before consult_payments.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("JWT_SECRET", "test-secret-for-jwt-signing-only")

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from consult_payments.main import app as fastapi_app
from consult_payments.auth import get_current_user_id
from consult_payments.database import Base, init_db
from consult_payments.models import Payment, User

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

USER_ID = "user_1"


@pytest.fixture(autouse=True)
def setup_db():
    init_db(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def client(monkeypatch):
    # Every module that opens its own session talks to the test database
    monkeypatch.setattr("consult_payments.routes.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("consult_payments.webhooks.SessionLocal", TestingSessionLocal)

    fastapi_app.dependency_overrides[get_current_user_id] = lambda: USER_ID

    with TestClient(fastapi_app) as c:
        yield c

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def send_email(mocker):
    return mocker.patch("consult_payments.mailer.send_email")


@pytest.fixture
def user():
    session = TestingSessionLocal()
    session.add(User(id=USER_ID, email="client@example.com", name="Ana Client"))
    session.commit()
    session.close()
    return USER_ID


def add_payment(payment_id, status="completed", user_id=USER_ID, stripe_payment_id=None,
                amount="50.00", created_at=None):
    session = TestingSessionLocal()
    session.add(Payment(
        id=payment_id,
        user_id=user_id,
        stripe_payment_id=stripe_payment_id if stripe_payment_id is not None else f"pi_{payment_id}",
        amount=Decimal(amount),
        currency="usd",
        status=status,
        consultation_summary="Lease dispute",
        created_at=created_at or datetime.now(timezone.utc),
    ))
    session.commit()
    session.close()


def get_payment(payment_id):
    session = TestingSessionLocal()
    payment = session.get(Payment, payment_id)
    session.close()
    return payment


def count_payments():
    session = TestingSessionLocal()
    count = session.query(Payment).count()
    session.close()
    return count
