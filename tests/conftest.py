import os
import tempfile
from collections.abc import Generator
from decimal import Decimal

os.environ["ENVIRONMENT"] = "development"
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-length-0123456789")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_dummy")
os.environ["LOGIN_GUARD_BACKEND"] = "memory"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from tirestore.core.login_guard import get_login_guard
from tirestore.core.rate_limiter import apply_rate_limits
from tirestore.core.security import create_access_token, hash_password
from tirestore.db.base import Base
from tirestore.db.session import get_db
from tirestore.main import app
from tirestore.models.product import Product, ProductImage
from tirestore.models.user import User, UserRole
from tirestore.services import settings_service
from tirestore.services.storage import InMemoryStorageClient, get_storage
from tirestore.utils import email as mailer

PASSWORD = "StrongPass1"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_file.close()

    engine = create_engine(
        f"sqlite:///{db_file.name}",
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        os.unlink(db_file.name)


@pytest.fixture()
def storage() -> InMemoryStorageClient:
    return InMemoryStorageClient()


@pytest.fixture()
def sent_emails(monkeypatch) -> list:
    """Celery tasks queued during the test as (task name, args)."""
    calls = []

    def fake_enqueue(task, *args):
        calls.append((task.name.rsplit(".", 1)[-1], args))
        return True

    monkeypatch.setattr(mailer, "enqueue", fake_enqueue)
    return calls


@pytest.fixture()
def client(db_session: Session, storage: InMemoryStorageClient, sent_emails) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.state.limiter.reset()
    apply_rate_limits(settings_service.RATE_LIMIT_DEFAULTS)
    settings_service.clear_cache()
    get_login_guard().clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session: Session):
    def _make_user(
        email: str = "driver@example.com",
        name: str = "Test Driver",
        role: UserRole = UserRole.USER,
        verified: bool = True,
        active: bool = True,
    ) -> User:
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(PASSWORD),
            role=role,
            email_verified=verified,
            is_active=active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


def token_headers(user: User) -> dict:
    token = create_access_token(
        data={"sub": str(user.id), "role": user.role.value, "session_version": user.session_version}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers_for():
    return token_headers


@pytest.fixture()
def user_headers(make_user) -> dict:
    return token_headers(make_user())


@pytest.fixture()
def admin_user(make_user) -> User:
    return make_user(email="admin@example.com", name="Store Admin", role=UserRole.ADMIN)


@pytest.fixture()
def admin_headers(admin_user: User) -> dict:
    return token_headers(admin_user)


@pytest.fixture()
def make_product(db_session: Session):
    counter = {"n": 0}

    def _make_product(**overrides) -> Product:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "name": f"Tire {n}",
            "brand": "Michelin",
            "model": "Pilot Sport",
            "size": "205/55R16",
            "sku": f"SKU-{n:04d}",
            "slug": f"tire-{n}",
            "price": Decimal("100.00"),
            "stock": 20,
            "status": "published",
        }
        values.update(overrides)
        image = values.pop("image", None)
        product = Product(**values)
        if image:
            product.images = [ProductImage(image_url=image, is_primary=True, sort_order=0)]
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make_product
