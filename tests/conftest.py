"""Shared test fixtures: demo keys, in-memory SQLite, sample changes."""

import os

# Force demo API keys for all tests, no real LLM calls.
# Set unconditionally at import time so real keys in the shell
# environment never reach a Settings() created during the run.
os.environ["ANTHROPIC_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENAI_API_KEY"] = "for-demo-purposes-only"

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from doccontrol.analysis.confidence import score
from doccontrol.constants import ChangeStatus, MatchReason
from doccontrol.models.base import Base
from doccontrol.schemas import (
    ChangeEvidence,
    ProposedChange,
    ScopeJustification,
)


def make_change(
    change_id: str,
    document_id: str,
    content: str,
    original: str,
    proposed: str,
    *,
    status: ChangeStatus = ChangeStatus.PENDING,
    confidence: float = 0.8,
    document_title: str | None = None,
    section_name: str = "",
    occurrence: int = 0,
) -> ProposedChange:
    """Build a valid change whose range points at ``original`` in
    ``content`` (the ``occurrence``-th match).

    ``confidence`` is used for all four sub-scores, so it is also the
    overall score.
    """
    start = -1
    for _ in range(occurrence + 1):
        start = content.index(original, start + 1)
    return ProposedChange(
        id=change_id,
        document_id=document_id,
        document_title=document_title or document_id.title(),
        section_name=section_name,
        original_text=original,
        proposed_text=proposed,
        start_index=start,
        end_index=start + len(original),
        status=status,
        evidence=ChangeEvidence(
            source_quote="quoted evidence",
            match_reason=MatchReason.RELATED_TOPIC,
            confidence=score(confidence, confidence, confidence, confidence),
        ),
        scope_justification=ScopeJustification(
            within_primary_subject=True,
            within_specific_area=True,
            within_stated_scope=True,
            crosses_feature_boundary=False,
            requires_user_confirmation=confidence < 0.7,
        ),
    )


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def engine() -> AsyncIterator[AsyncEngine]:
    """Session-scoped engine, one CREATE TABLE per test suite."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Function-scoped session with connection-level rollback.

    Wraps each test in a connection-level transaction so that
    even ``session.commit()`` calls inside tests are rolled
    back at teardown, keeping the shared engine clean.
    """
    async with engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(bind=connection, expire_on_commit=False)
        yield session
        await session.close()
        await transaction.rollback()


@pytest.fixture
async def session_factory() -> AsyncIterator[
    async_sessionmaker[AsyncSession]
]:
    """Fresh in-memory database per test for stores that own sessions.

    ``SqlDocumentStore`` opens and commits its own sessions, so it gets
    an isolated engine instead of the rollback-wrapped connection.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
