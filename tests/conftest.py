"""
Pytest fixtures for the progress engine test suite.

Provides:
- Per-test in-memory SQLite databases (StaticPool, one shared connection)
- A file-backed SQLite database for tests that need real threads
- Deterministic clock, seeded default templates, the ProgressEngine facade
- Captured structured logs

PostgreSQL-only behaviour (SELECT ... FOR UPDATE, REPEATABLE READ refresh)
is exercised when DATABASE_URL points at PostgreSQL; tests that need it are
marked ``postgres``.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from progress_config import load_default_templates, load_identity_schemas
from progress_config.schema import EngineSettings
from progress_kernel.db.engine import build_engine, create_tables
from progress_kernel.db.immutability import register_immutability_listeners
from progress_kernel.domain.categories import MilestoneCategory
from progress_kernel.domain.clock import DeterministicClock
from progress_kernel.domain.templates import MilestoneSpec
from progress_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from progress_kernel.selectors.template_selector import TemplateResolver
from progress_kernel.services.template_service import TemplateService
from progress_services.engine import ProgressEngine

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# Work-item type with the {Receive:10, Install:80, Test:10} template used by
# the worked examples.
SCENARIO_TYPE = "scenario_item"
SCENARIO_MILESTONES = (
    MilestoneSpec("Receive", Decimal("10"), MilestoneCategory.RECEIVE, False, 0),
    MilestoneSpec("Install", Decimal("80"), MilestoneCategory.INSTALL, False, 1),
    MilestoneSpec("Test", Decimal("10"), MilestoneCategory.TEST, False, 2),
)

START_TIME = datetime(2026, 3, 2, 7, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture progress_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, progress):
            progress.record_milestone_update(...)
            logs = captured_logs()
            assert any(r["message"] == "milestone_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("progress_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def _immutability_listeners():
    """ORM immutability listeners stay registered for the whole session."""
    register_immutability_listeners()
    yield


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test, schema created."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite database for multi-threaded tests."""
    eng = build_engine(f"sqlite:///{tmp_path / 'progress.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session for flush-only service tests; rolled back at teardown."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID


@pytest.fixture(scope="session")
def default_definitions() -> dict:
    """Default templates from templates.yaml plus the scenario type."""
    definitions = {t: d.milestones for t, d in load_default_templates().items()}
    definitions[SCENARIO_TYPE] = SCENARIO_MILESTONES
    return definitions


@pytest.fixture(scope="session")
def identity_schemas() -> dict:
    schemas = {t: s.fields for t, s in load_identity_schemas().items()}
    schemas[SCENARIO_TYPE] = ("tag",)
    return schemas


@pytest.fixture
def seeded_session(session, clock, actor_id, default_definitions) -> Session:
    """Session with the default templates installed."""
    TemplateService(session, clock).seed_default_templates(default_definitions, actor_id)
    session.flush()
    return session


@pytest.fixture
def resolver(seeded_session) -> TemplateResolver:
    return TemplateResolver(seeded_session)


# =============================================================================
# Facade fixtures
# =============================================================================


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        database_url="sqlite://",
        lock_timeout_seconds=2.0,
        recompute_chunk_size=2,
    )


@pytest.fixture
def progress(session_factory, settings, clock, identity_schemas, default_definitions, actor_id) -> ProgressEngine:
    """ProgressEngine over the per-test database with defaults seeded."""
    engine = ProgressEngine(session_factory, settings, clock, identity_schemas)
    engine.seed_default_templates(actor_id, definitions=default_definitions)
    return engine


@pytest.fixture
def project_id(progress, actor_id):
    return progress.create_project("P-100", "Unit 100 Revamp", actor_id)


@pytest.fixture
def make_component(progress, project_id, actor_id):
    """Factory for scenario components with unique tags."""
    counter = iter(range(1, 10_000))

    def _make(budget_hours="10", drawing_id=None, overrides=None, component_type=SCENARIO_TYPE, identity=None):
        if identity is None:
            identity = {"tag": f"T-{next(counter):04d}"}
        return progress.create_component(
            project_id,
            component_type,
            identity,
            budget_hours,
            actor_id,
            drawing_id=drawing_id,
            overrides=overrides,
        )

    return _make
