# tests/conftest.py
import os
from datetime import datetime, timedelta, timezone

# The app reads its settings at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_EMAIL"] = ""
os.environ["EMAIL_HOST"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ticketdesk.backend.app import deps  # noqa: E402
from ticketdesk.backend.app.auth import create_access_token, get_password_hash  # noqa: E402
from ticketdesk.backend.app.db import Base, get_db  # noqa: E402
from ticketdesk.backend.app.errors import UpstreamError  # noqa: E402
from ticketdesk.backend.app.main import app  # noqa: E402
from ticketdesk.backend.app.models import Empresa, User  # noqa: E402
from ticketdesk.backend.app.services.email import Mailer  # noqa: E402
from ticketdesk.backend.app.services.historial import HistorialRecorder  # noqa: E402
from ticketdesk.backend.app.services.storage import LocalStorage  # noqa: E402

START = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, hours: float = 0, minutes: float = 0) -> None:
        self.now = self.now + timedelta(hours=hours, minutes=minutes)


class FakeMailer(Mailer):
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, to, subject, html_body):
        if to in self.fail_for:
            raise ConnectionError(f"SMTP rechazó {to}")
        self.sent.append((to, subject))


class FailingDeleteStorage(LocalStorage):
    def delete(self, paths):
        raise UpstreamError("almacenamiento no disponible")


class FailingPutStorage(LocalStorage):
    """Refuses any object whose content starts with one of `fail_prefixes`."""

    def __init__(self, *args, fail_prefixes=(b"FALLA",), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_prefixes = tuple(fail_prefixes)

    def put(self, path, content, content_type):
        if content.startswith(self.fail_prefixes):
            raise UpstreamError("cuota excedida")
        super().put(path, content, content_type)


@pytest.fixture
def engine():
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
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def recorder(session_factory):
    return HistorialRecorder(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def ticket_storage(tmp_path):
    return LocalStorage("ticket-archivos", root=str(tmp_path), secret="test-secret")


@pytest.fixture
def chat_storage(tmp_path):
    return LocalStorage("chat-archivos", root=str(tmp_path), secret="test-secret")


@pytest.fixture
def client(session_factory, recorder, clock, mailer, ticket_storage, chat_storage):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_recorder] = lambda: recorder
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    app.dependency_overrides[deps.get_ticket_storage] = lambda: ticket_storage
    app.dependency_overrides[deps.get_chat_storage] = lambda: chat_storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _make_user(db, email, nombre, rol="trabajador", activo=True):
    user = User(
        email=email,
        nombre=nombre,
        rol=rol,
        activo=activo,
        password_hash=get_password_hash("secreto123"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db):
    return _make_user(db, "admin@ticketdesk.es", "Ana Admin", rol="admin")


@pytest.fixture
def worker(db):
    return _make_user(db, "luis@ticketdesk.es", "Luis Técnico")


@pytest.fixture
def operators(db):
    return [
        _make_user(db, f"op{i}@ticketdesk.es", f"Operario {i}") for i in range(1, 4)
    ]


@pytest.fixture
def make_user(db):
    def factory(email, nombre, rol="trabajador", activo=True):
        return _make_user(db, email, nombre, rol=rol, activo=activo)

    return factory


def auth_headers(user):
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def worker_headers(worker):
    return auth_headers(worker)


@pytest.fixture
def empresa(db):
    empresa = Empresa(nombre="Clínica Norte", cif="B12345678", email="it@clinicanorte.es")
    db.add(empresa)
    db.commit()
    db.refresh(empresa)
    return empresa


@pytest.fixture
def create_ticket(client, admin_headers, empresa):
    def factory(**fields):
        payload = {"empresa_id": empresa.id, "asunto": "No enciende"}
        payload.update(fields)
        r = client.post("/api/v1/tickets/", json=payload, headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()

    return factory
