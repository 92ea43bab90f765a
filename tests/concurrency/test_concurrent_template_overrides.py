"""
Concurrent template overrides against a file-backed SQLite database.

Two administrators saving the first override for the same (project, type)
both start from version 0.  Exactly one save wins; the other must surface
as ConcurrentModificationConflict, never as a raw database error, and the
active template must be the winner's weights at version 1.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest
from sqlalchemy.orm import sessionmaker

from progress_config.schema import EngineSettings
from progress_kernel.exceptions import ConcurrentModificationConflict
from progress_services.engine import ProgressEngine
from tests.conftest import SCENARIO_TYPE

PROPOSALS = (
    {"Receive": 20, "Install": 50, "Test": 30},
    {"Receive": 5, "Install": 90, "Test": 5},
)


@pytest.mark.slow_locks
class TestConcurrentFirstOverride:
    @pytest.fixture
    def engine(self, file_engine, clock, identity_schemas, default_definitions, actor_id):
        factory = sessionmaker(bind=file_engine, expire_on_commit=False)
        settings = EngineSettings(database_url=str(file_engine.url), lock_timeout_seconds=30.0)
        engine = ProgressEngine(factory, settings, clock, identity_schemas)
        engine.seed_default_templates(actor_id, definitions=default_definitions)
        return engine

    @pytest.mark.parametrize("attempt", range(3))
    def test_one_save_wins_other_conflicts(self, engine, actor_id, attempt):
        project_id = engine.create_project(f"P-TPL-{attempt}", "Template race", actor_id)
        barrier = Barrier(len(PROPOSALS))

        def save(weights):
            barrier.wait(timeout=10.0)
            try:
                engine.set_template_override(
                    project_id, SCENARIO_TYPE, weights, actor_id, expected_version=0
                )
            except ConcurrentModificationConflict as exc:
                return exc
            return weights

        with ThreadPoolExecutor(max_workers=len(PROPOSALS)) as pool:
            outcomes = list(pool.map(save, PROPOSALS))

        conflicts = [o for o in outcomes if isinstance(o, ConcurrentModificationConflict)]
        winners = [o for o in outcomes if isinstance(o, dict)]
        assert len(conflicts) == 1
        assert len(winners) == 1

        active = engine.resolve_template(SCENARIO_TYPE, project_id)
        assert active.is_override
        assert active.version == 1
        assert {m.name: m.weight for m in active.milestones} == {
            name: Decimal(value) for name, value in winners[0].items()
        }
        assert sum(m.weight for m in active.milestones) == Decimal("100")
