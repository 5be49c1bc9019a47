"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import uuid
from datetime import datetime, timezone
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.pool import StaticPool

import leadcapture.models  # noqa: F401 - registers every table on Base.metadata
from leadcapture.config import Settings
from leadcapture.database import Base
from leadcapture.models.form import Form
from leadcapture.models.tenant import Tenant


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """In-memory SQLite database for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    """Settings with no anti-spam provider and no email configured."""
    return Settings(
        _env_file=None,
        app_env="test",
        database_url="sqlite+aiosqlite:///:memory:",
        recaptcha_site_key="",
        recaptcha_secret_key="",
        sendgrid_api_key="",
    )


SAMPLE_FIELDS = [
    {"id": "f_name", "type": "text", "label": "Full Name", "required": True},
    {"id": "f_email", "type": "email", "label": "Email", "required": True},
    {"id": "f_phone", "type": "phone", "label": "Phone"},
    {"id": "f_company", "type": "text", "name": "company", "label": "Company"},
    {"id": "f_ref", "type": "hidden", "label": "Ref"},
    {"id": "f_captcha", "type": "recaptcha", "label": "Captcha"},
]


@pytest.fixture
def sample_fields():
    return [dict(f) for f in SAMPLE_FIELDS]


@pytest.fixture
def make_tenant(db):
    async def _make(plan: str = "free", email: str = "owner@example.com") -> Tenant:
        tenant = Tenant(email=email, username=f"user-{uuid.uuid4().hex[:8]}", plan=plan)
        db.add(tenant)
        await db.commit()
        return tenant
    return _make


@pytest.fixture
def make_form(db, sample_fields):
    async def _make(tenant: Tenant, form_settings: dict | None = None, fields: list | None = None,
                    locked: bool = False, name: str = "Contact us") -> Form:
        form = Form(
            tenant_id=tenant.id,
            name=name,
            schema={
                "fields": fields if fields is not None else sample_fields,
                "settings": form_settings or {},
            },
            locked_at=datetime.now(timezone.utc) if locked else None,
        )
        db.add(form)
        await db.commit()
        return form
    return _make

