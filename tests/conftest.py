"""Pytest configuration and fixtures."""

import os
import tempfile

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "bakery-tests.log"))

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bakery.database import Base, get_db, configure_sqlite
from bakery.main import app
from bakery.branches.models import Branch
from bakery.stock.category.models import Category
from bakery.stock.inventory.models import Inventory
from bakery.stock.products.models import Product
from bakery.users.auth import create_access_token, pwd_context
from bakery.users.models import User, UserBranch
from bakery.users.permissions import OWNER, ADMIN, PRODUCTION_HEAD, CASHIER, COURIER
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite://"

TEST_PASSWORD = "secret123"


@pytest.fixture(scope="session")
def password_hash() -> str:
    # argon2 is slow on purpose; hash once
    return pwd_context.hash(TEST_PASSWORD)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


# ----------------------------
# Reference data
# ----------------------------
@pytest.fixture
def branch(db_session: Session) -> Branch:
    branch = Branch(name="Cabang Utama", address="Jl. Merdeka 1")
    db_session.add(branch)
    db_session.commit()
    db_session.refresh(branch)
    return branch


@pytest.fixture
def other_branch(db_session: Session) -> Branch:
    branch = Branch(name="Cabang Timur", address="Jl. Sudirman 9")
    db_session.add(branch)
    db_session.commit()
    db_session.refresh(branch)
    return branch


@pytest.fixture
def category(db_session: Session) -> Category:
    category = Category(name="Roti", description="Bread")
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


def make_product(db: Session, category: Category, name: str, price: float = 10000,
                 sku: str = None, uom: str = "pcs", is_active: bool = True) -> Product:
    product = Product(
        name=name,
        category_id=category.id,
        price=price,
        sku=sku,
        uom=uom,
        is_active=is_active,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def set_stock(db: Session, product_id: int, branch_id: int, quantity: int) -> Inventory:
    """Write an inventory row directly, without any movement history."""
    inventory = Inventory(product_id=product_id, branch_id=branch_id, quantity=quantity)
    db.add(inventory)
    db.commit()
    db.refresh(inventory)
    return inventory


@pytest.fixture
def bread(db_session: Session, category: Category) -> Product:
    return make_product(db_session, category, "Roti Coklat", price=12000, sku="RC-001")


@pytest.fixture
def cake(db_session: Session, category: Category) -> Product:
    return make_product(db_session, category, "Bolu Pandan", price=45000, sku="BP-001")


# ----------------------------
# Users
# ----------------------------
@pytest.fixture
def make_user(db_session: Session, password_hash: str):
    def _make(username: str, role: str, branch_ids=()):
        user = User(
            username=username,
            full_name=username.title(),
            hashed_password=password_hash,
            role=role,
        )
        db_session.add(user)
        db_session.flush()
        for branch_id in branch_ids:
            user.branches.append(UserBranch(branch_id=branch_id))
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def owner(make_user) -> User:
    return make_user("owner", OWNER)


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin", ADMIN)


@pytest.fixture
def production_head(make_user) -> User:
    return make_user("produksi", PRODUCTION_HEAD)


@pytest.fixture
def cashier(make_user, branch) -> User:
    return make_user("kasir", CASHIER, branch_ids=[branch.id])


@pytest.fixture
def courier(make_user) -> User:
    return make_user("kurir", COURIER)


def auth_headers(user: User) -> dict:
    token = create_access_token(data={"sub": user.username})
    return {"Authorization": f"Bearer {token}"}


def display(user: User) -> UserDisplaySchema:
    return UserDisplaySchema.model_validate(user)


def scope_for(user: User) -> BranchScope:
    return BranchScope.for_user(display(user))
