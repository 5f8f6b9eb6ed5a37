import pytest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.database import get_db
from app.models import (
    Base,
    Profile,
    Company,
    CompanyMember,
    MembershipStatus,
    Account,
    AccountType,
    Contract,
    ContractPlan,
    ContractStatus,
    Plan,
    PlanType,
    Subscription,
    SubscriptionStatus,
    PaymentMethod,
)

VALID_CPF = "52998224725"
OTHER_VALID_CPF = "11144477735"


@pytest.fixture
def mock_db():
    """Mock database session"""
    db = MagicMock()
    db.query.return_value = db
    db.filter.return_value = db
    db.options.return_value = db
    db.order_by.return_value = db
    db.first.return_value = None
    db.all.return_value = []
    return db


@pytest.fixture
def client_with_mock_db(mock_db):
    """TestClient with mocked DB"""
    app.dependency_overrides[get_db] = lambda: mock_db
    client = TestClient(app)
    yield client, mock_db
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    """Real session on an in-memory SQLite database built from the models"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def make_profile(db_session):
    def _make(cpf=VALID_CPF, full_name="Ana Souza", email="ana@exemplo.com.br", **kwargs):
        profile = Profile(cpf=cpf, full_name=full_name, email=email, phone="11987654321", **kwargs)
        db_session.add(profile)
        db_session.commit()
        return profile
    return _make


@pytest.fixture
def make_plan(db_session):
    def _make(identifier="plano_mensal", price="29.90", plan_type=PlanType.B2C, is_active=True, name=None):
        plan = Plan(
            name=name or f"Plano {identifier}",
            price=Decimal(price),
            interval=1,
            interval_type="months",
            iugu_plan_identifier=identifier,
            iugu_plan_id=f"id_{identifier}",
            type=plan_type,
            is_active=is_active,
        )
        db_session.add(plan)
        db_session.commit()
        return plan
    return _make


@pytest.fixture
def make_company(db_session):
    """Company with a B2B account and an active contract listing the given plans"""
    def _make(name="Empresa X", plans=(), contract_status=ContractStatus.ACTIVE):
        company = Company(name=name)
        db_session.add(company)
        db_session.flush()
        account = Account(type=AccountType.B2B, company_id=company.id)
        db_session.add(account)
        db_session.flush()
        contract = Contract(account_id=account.id, status=contract_status)
        db_session.add(contract)
        db_session.flush()
        for plan in plans:
            db_session.add(ContractPlan(contract_id=contract.id, plan_id=plan.id))
        db_session.commit()
        return company
    return _make


@pytest.fixture
def make_membership(db_session):
    def _make(profile, company, status=MembershipStatus.ACTIVE, created_at=None):
        membership = CompanyMember(
            user_id=profile.id,
            company_id=company.id,
            status=status,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(membership)
        db_session.commit()
        return membership
    return _make


@pytest.fixture
def make_subscription(db_session, make_profile, make_plan):
    def _make(
        profile=None,
        plan=None,
        status=SubscriptionStatus.PENDING_PAYMENT,
        iugu_subscription_id="SUB-1",
        payment_method=PaymentMethod.BANK_SLIP,
        created_at=None,
    ):
        profile = profile or make_profile()
        plan = plan or make_plan()
        account = Account(type=AccountType.B2C, profile_id=profile.id)
        db_session.add(account)
        db_session.flush()
        subscription = Subscription(
            profile_id=profile.id,
            account_id=account.id,
            plan_id=plan.id,
            status=status,
            iugu_subscription_id=iugu_subscription_id,
            iugu_customer_id="CUS-1",
            payment_method=payment_method,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription
    return _make
