from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from uuid import UUID, uuid4

import pytest_asyncio
from sqlalchemy import select, text
from sqlalchemy.engine import make_url

from campus_pulse.core.config import settings
from campus_pulse.core.taxonomy import Authority as AuthorityName
from campus_pulse.storage.database import async_session_maker
from campus_pulse.storage.models import Authority, IssueCategory, IssueReport, Location

_LOCAL_DB_HOSTS = {"localhost", "127.0.0.1", "::1"}
# Seeded by migrations and shared across tests.
_REFERENCE_TABLES = {"alembic_version", "authorities", "issue_categories", "locations"}


@dataclass(frozen=True, slots=True)
class IntegrationTruncateTarget:
    rendered_url: str
    database: str | None
    host: str | None


@dataclass(frozen=True, slots=True)
class ReferenceRows:
    category_id: UUID
    location_id: UUID


def _quote_identifier(identifier: str) -> str:
    escaped_identifier = identifier.replace('"', '""')
    return f'"{escaped_identifier}"'


def _is_explicit_test_database(database_name: str | None) -> bool:
    if not database_name:
        return False
    normalized = database_name.strip().lower()
    return normalized.endswith("_test") or normalized.startswith("test_") or normalized == "test"


def _resolve_integration_truncate_target() -> IntegrationTruncateTarget:
    resolved_url = settings.DATABASE_URL_SYNC.strip() or settings.DATABASE_URL.strip()
    parsed = make_url(resolved_url)
    return IntegrationTruncateTarget(
        rendered_url=parsed.render_as_string(hide_password=True),
        database=parsed.database,
        host=parsed.host,
    )


def _assert_safe_integration_truncate_target() -> IntegrationTruncateTarget:
    target = _resolve_integration_truncate_target()
    if not _is_explicit_test_database(target.database) and not settings.INTEGRATION_DB_TRUNCATE_ALLOWED:
        msg = (
            "Refusing integration DB truncation for non-test database target. "
            f"Resolved target={target.rendered_url} (database={target.database!r}, host={target.host!r}). "
            "Use a test database name (for example *_test) or set "
            "INTEGRATION_DB_TRUNCATE_ALLOWED=true to override."
        )
        raise RuntimeError(msg)

    normalized_host = (target.host or "").strip().lower()
    is_local_host = normalized_host in _LOCAL_DB_HOSTS or normalized_host == ""
    if not is_local_host and not settings.INTEGRATION_DB_ALLOW_REMOTE:
        msg = (
            "Refusing integration DB truncation for non-local host target. "
            f"Resolved target={target.rendered_url} (database={target.database!r}, host={target.host!r}). "
            "Use localhost/127.0.0.1/::1 or set INTEGRATION_DB_ALLOW_REMOTE=true to override."
        )
        raise RuntimeError(msg)

    return target


async def _truncate_report_tables() -> None:
    _assert_safe_integration_truncate_target()
    async with async_session_maker() as session:
        table_names = (
            await session.scalars(
                text(
                    """
                    SELECT tablename
                    FROM pg_tables
                    WHERE schemaname = 'public'
                    """
                )
            )
        ).all()
        targets = [name for name in table_names if name not in _REFERENCE_TABLES]

        if targets:
            quoted_table_names = ", ".join(_quote_identifier(name) for name in targets)
            await session.execute(
                text(f"TRUNCATE TABLE {quoted_table_names} RESTART IDENTITY CASCADE")
            )

        await session.commit()


@pytest_asyncio.fixture(autouse=True)
async def reset_integration_database() -> AsyncIterator[None]:
    await _truncate_report_tables()
    yield
    await _truncate_report_tables()


async def ensure_reference_rows(*, category: str, location: str) -> ReferenceRows:
    """Load seeded category and location rows, creating them when migrations did not seed."""
    async with async_session_maker() as session:
        existing_authorities = set(
            (await session.scalars(select(Authority.name))).all()
        )
        for authority_name in AuthorityName:
            if authority_name.value not in existing_authorities:
                session.add(Authority(name=authority_name.value))
        category_row = await session.scalar(
            select(IssueCategory).where(IssueCategory.name == category)
        )
        if category_row is None:
            category_row = IssueCategory(name=category)
            session.add(category_row)
        location_row = await session.scalar(select(Location).where(Location.name == location))
        if location_row is None:
            location_row = Location(name=location, type="hostel")
            session.add(location_row)
        await session.flush()
        rows = ReferenceRows(category_id=category_row.id, location_id=location_row.id)
        await session.commit()
    return rows


async def create_report(
    rows: ReferenceRows,
    *,
    title: str,
    description: str = "",
) -> UUID:
    async with async_session_maker() as session:
        report = IssueReport(
            id=uuid4(),
            reporter_id=uuid4(),
            title=title,
            description=description,
            category_id=rows.category_id,
            location_id=rows.location_id,
        )
        session.add(report)
        await session.commit()
        return report.id
