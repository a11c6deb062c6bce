"""
Pytest fixtures for the stock ledger test suite.

Every test gets its own file-backed SQLite database under tmp_path, so
concurrency tests can open one connection per thread.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from stockledger.database import get_db, init_db, make_engine
from stockledger.main import app
from stockledger.models.movement import Movement
from stockledger.models.product import Product
from stockledger.schemas.product import CategoryCreate, ProductCreate
from stockledger.services import auth_service, product_service


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'stockledger_test.db'}")
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fresh_session(session_factory):
    """Open sessions that are closed at teardown; for reading committed state."""
    opened = []

    def _open():
        session = session_factory()
        opened.append(session)
        return session

    yield _open
    for session in opened:
        session.close()


@pytest.fixture
def admin(db):
    return auth_service.create_user(db, "admin", "secret", display_name="Admin", role="admin")


@pytest.fixture
def staff(db):
    return auth_service.create_user(db, "clerk", "secret", display_name="Clerk", role="staff")


@pytest.fixture
def category(db):
    return product_service.create_category(db, CategoryCreate(name="Electronics"))


@pytest.fixture
def make_product(db, admin):
    """Create a product whose opening stock is recorded through the ledger."""

    def _make(name="Widget", stock=0, minimum=0, price=1.0, category_id=None) -> Product:
        return product_service.create_product(
            db,
            ProductCreate(
                name=name,
                price=price,
                stock_minimum=minimum,
                initial_stock=stock,
                category_id=category_id,
            ),
            user_id=admin.id,
        )

    return _make


@pytest.fixture
def movement_count(fresh_session):
    def _count(product_id: int) -> int:
        session = fresh_session()
        return session.query(Movement).filter(Movement.product_id == product_id).count()

    return _count


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user) -> dict:
    token = auth_service.create_access_token(user.id, user.username)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def staff_headers(staff):
    return auth_headers(staff)
