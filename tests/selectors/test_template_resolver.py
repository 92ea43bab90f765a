"""Tests for template resolution (project override first, else global default)."""

from decimal import Decimal
from uuid import uuid4

import pytest

from progress_kernel.exceptions import ConfigurationError
from progress_kernel.models.template import ProgressTemplate
from progress_kernel.selectors.template_selector import TemplateResolver


class TestTemplateResolver:
    def test_global_default(self, resolver):
        template = resolver.resolve("field_weld", None)
        assert template.names == ("Fit-Up", "Weld Made", "Punch", "Test", "Restore")
        assert template.total_weight == Decimal("100")
        assert not template.is_override

    def test_project_without_override_uses_default(self, resolver):
        assert resolver.resolve("spool", uuid4()).template_id == resolver.resolve("spool", None).template_id

    def test_unknown_type(self, resolver):
        with pytest.raises(ConfigurationError) as exc_info:
            resolver.resolve("bolt", None)
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_memoized_until_invalidated(self, resolver):
        first = resolver.resolve("valve", None)
        assert resolver.resolve("valve", None) is first
        resolver.invalidate()
        assert resolver.resolve("valve", None) == first

    def test_bad_total_is_configuration_error(self, seeded_session, actor_id):
        seeded_session.add(
            ProgressTemplate(
                component_type="gasket",
                project_id=None,
                version=1,
                is_active=True,
                milestones=[
                    {"name": "Receive", "weight": "10", "category": "receive"},
                    {"name": "Install", "weight": "80", "category": "install"},
                ],
                created_by_id=actor_id,
            )
        )
        seeded_session.flush()
        with pytest.raises(ConfigurationError) as exc_info:
            TemplateResolver(seeded_session).resolve("gasket", None)
        assert "weights total 90" in str(exc_info.value)

    def test_malformed_row(self, seeded_session, actor_id):
        seeded_session.add(
            ProgressTemplate(
                component_type="gasket",
                project_id=None,
                version=1,
                is_active=True,
                milestones=[{"name": "Install"}],
                created_by_id=actor_id,
            )
        )
        seeded_session.flush()
        with pytest.raises(ConfigurationError):
            TemplateResolver(seeded_session).resolve("gasket", None)
