"""
Pytest fixtures for testing.

Provides:
- Async database session on in-memory SQLite
- Test client with a fresh grant cache per test
- OrgFactory for wings, squadrons, people, roles and rules
- Auth header helper
"""

from datetime import date, timedelta
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from roster_access.main import app
from roster_access.core.access.resolver import GrantCache
from roster_access.core.access.scope import BasisType, ExclusivityScope, Scope
from roster_access.core.config import settings
from roster_access.models import (
    Base,
    Capability,
    ParentUnit,
    Person,
    PersonQualification,
    PersonStanding,
    PersonStatus,
    PermissionRule,
    Qualification,
    Role,
    RoleAssignment,
    Standing,
    Status,
    Unit,
    UnitAssignment,
)
from roster_access.api.dependencies.access import get_grant_cache
from roster_access.api.dependencies.database import get_db
from roster_access.utils.timezone import utc_today


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session for one test."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def grant_cache() -> GrantCache:
    return GrantCache(max_entries=100)


@pytest_asyncio.fixture(scope="function")
async def client(db: AsyncSession, grant_cache: GrantCache) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with database session and grant cache overrides.
    """

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_grant_cache] = lambda: grant_cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# ============ Factory Fixtures ============


class OrgFactory:
    """
    Factory for roster test data.

    Every create commits, like records written by a separate request.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._statuses: dict[bool, Status] = {}

    async def _save(self, entity):
        self.db.add(entity)
        await self.db.commit()
        await self.db.refresh(entity)
        return entity

    async def wing(self, designation: str | None = None) -> ParentUnit:
        designation = designation or f"WING-{uuid4().hex[:6]}"
        return await self._save(ParentUnit(name=f"{designation} Wing", designation=designation))

    async def squadron(self, wing: ParentUnit, designation: str | None = None) -> Unit:
        designation = designation or f"SQ-{uuid4().hex[:6]}"
        return await self._save(
            Unit(name=f"{designation} Squadron", designation=designation, parent_unit_id=wing.id)
        )

    async def status(self, is_active: bool = True) -> Status:
        if is_active not in self._statuses:
            self._statuses[is_active] = await self._save(
                Status(name="Command" if is_active else "Retired", is_active=is_active)
            )
        return self._statuses[is_active]

    async def person(
        self,
        display_name: str | None = None,
        unit: Unit | None = None,
        identity: str | None = None,
        active: bool = True,
        joined: date | None = None,
    ) -> Person:
        """Create a person, optionally placed in a squadron with a status."""
        person = await self._save(
            Person(
                display_name=display_name or f"pilot-{uuid4().hex[:6]}",
                auth_user_id=identity,
            )
        )
        joined = joined or utc_today() - timedelta(days=365)
        if unit is not None:
            await self._save(
                UnitAssignment(person_id=person.id, unit_id=unit.id, start_date=joined)
            )
        status = await self.status(is_active=active)
        await self._save(
            PersonStatus(person_id=person.id, status_id=status.id, start_date=joined)
        )
        return person

    async def role(
        self,
        name: str | None = None,
        exclusivity: ExclusivityScope = ExclusivityScope.UNIT,
        display_order: int = 0,
    ) -> Role:
        return await self._save(
            Role(
                name=name or f"Role {uuid4().hex[:6]}",
                exclusivity_scope=exclusivity,
                display_order=display_order,
            )
        )

    async def assign(
        self,
        person: Person,
        role: Role,
        effective_date: date | None = None,
        unit: Unit | None = None,
        accepted_duplicate: bool = False,
    ) -> RoleAssignment:
        return await self._save(
            RoleAssignment(
                person_id=person.id,
                role_id=role.id,
                unit_id=unit.id if unit else None,
                effective_date=effective_date or utc_today() - timedelta(days=30),
                accepted_duplicate=accepted_duplicate,
            )
        )

    async def capability(self, name: str, scoped: bool = True) -> Capability:
        return await self._save(
            Capability(name=name, display_name=name.replace("_", " ").title(), scoped=scoped)
        )

    async def rule(
        self,
        capability: Capability,
        basis_type: BasisType,
        basis_id=None,
        scope: Scope = Scope.OWN_UNIT,
        active: bool = True,
    ) -> PermissionRule:
        return await self._save(
            PermissionRule(
                capability_id=capability.id,
                basis_type=basis_type,
                basis_id=basis_id,
                scope=scope,
                active=active,
            )
        )

    async def standing(self, person: Person, name: str = "Member") -> Standing:
        standing = await self._save(Standing(name=name))
        await self._save(
            PersonStanding(person_id=person.id, standing_id=standing.id, start_date=utc_today())
        )
        return standing

    async def qualification(
        self,
        person: Person,
        name: str = "Instructor Pilot",
        expiry_date: date | None = None,
    ) -> Qualification:
        qualification = await self._save(Qualification(name=name))
        await self._save(
            PersonQualification(
                person_id=person.id,
                qualification_id=qualification.id,
                achieved_date=utc_today() - timedelta(days=100),
                expiry_date=expiry_date,
            )
        )
        return qualification


@pytest_asyncio.fixture
async def org(db: AsyncSession) -> OrgFactory:
    """Fixture that provides OrgFactory."""
    return OrgFactory(db)


@pytest_asyncio.fixture
async def wing(org: OrgFactory) -> ParentUnit:
    return await org.wing("WING-A")


@pytest_asyncio.fixture
async def sq12(org: OrgFactory, wing: ParentUnit) -> Unit:
    return await org.squadron(wing, "SQ-12")


@pytest_asyncio.fixture
async def sq14(org: OrgFactory, wing: ParentUnit) -> Unit:
    return await org.squadron(wing, "SQ-14")


# ============ Auth Helpers ============


def auth_headers(identity: str) -> dict[str, str]:
    """Bearer header for an identity-provider subject."""
    token = jwt.encode(
        {"sub": identity},
        settings.auth.secret_key,
        algorithm=settings.auth.algorithm,
    )
    return {"Authorization": f"Bearer {token}"}
