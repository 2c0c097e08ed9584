"""
Tests for environment-driven configuration.
"""

import pytest

from storygate.config import StoryGateConfig
from storygate.storage.graph_store import create_graph_store
from storygate.storage.memory_store import InMemoryGraphStore

ENV_VARS = (
    'PLATFORM_ID', 'DATABASE_URL', 'STORE_BACKEND',
    'GATE_MIN_PRIMARY_EVIDENCE_RATIO', 'GATE_MAX_UNSUPPORTED_CLAIM_SHARE',
    'GATE_REQUIRE_HIGH_IMPACT_CORROBORATION', 'PUBLICATION_SCOPE',
    'PUBLISH_LOCK_TIMEOUT_MS', 'PUBLISH_STATEMENT_TIMEOUT_MS',
    'DB_POOL_MIN_SIZE', 'DB_POOL_MAX_SIZE', 'DB_POOL_TIMEOUT',
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv('PLATFORM_ID', 'metro')
        monkeypatch.setenv('DATABASE_URL', 'postgresql://localhost/storygate')

        config = StoryGateConfig.from_env()

        assert config.platform_id == 'metro'
        assert config.backend == 'postgres'
        assert config.database.pool_max_size == 10
        assert config.thresholds.min_primary_evidence_ratio == 0.5
        assert config.thresholds.max_unsupported_claim_share == 0.10
        assert config.thresholds.require_high_impact_corroboration is True
        assert config.transition.lock_timeout_ms == 5000
        assert config.transition.statement_timeout_ms == 15000
        assert config.transition.publication_scope == 'local'

    def test_platform_id_required(self, monkeypatch):
        monkeypatch.setenv('DATABASE_URL', 'postgresql://localhost/storygate')

        with pytest.raises(ValueError, match='PLATFORM_ID'):
            StoryGateConfig.from_env()

    def test_database_url_required_for_postgres(self, monkeypatch):
        monkeypatch.setenv('PLATFORM_ID', 'metro')

        with pytest.raises(ValueError, match='DATABASE_URL'):
            StoryGateConfig.from_env()

    def test_memory_backend_needs_no_database(self, monkeypatch):
        monkeypatch.setenv('PLATFORM_ID', 'metro')
        monkeypatch.setenv('STORE_BACKEND', 'memory')

        config = StoryGateConfig.from_env()

        assert config.backend == 'memory'
        assert config.database.database_url is None

    def test_invalid_backend_falls_back_to_postgres(self, monkeypatch):
        monkeypatch.setenv('PLATFORM_ID', 'metro')
        monkeypatch.setenv('DATABASE_URL', 'postgresql://localhost/storygate')
        monkeypatch.setenv('STORE_BACKEND', 'sqlite')

        assert StoryGateConfig.from_env().backend == 'postgres'

    def test_gate_overrides(self, monkeypatch):
        monkeypatch.setenv('PLATFORM_ID', 'metro')
        monkeypatch.setenv('STORE_BACKEND', 'memory')
        monkeypatch.setenv('GATE_MIN_PRIMARY_EVIDENCE_RATIO', '0.7')
        monkeypatch.setenv('GATE_MAX_UNSUPPORTED_CLAIM_SHARE', '0.05')
        monkeypatch.setenv('GATE_REQUIRE_HIGH_IMPACT_CORROBORATION', 'false')
        monkeypatch.setenv('PUBLICATION_SCOPE', 'national')
        monkeypatch.setenv('PUBLISH_LOCK_TIMEOUT_MS', '750')

        config = StoryGateConfig.from_env()

        assert config.thresholds.min_primary_evidence_ratio == 0.7
        assert config.thresholds.max_unsupported_claim_share == 0.05
        assert config.thresholds.require_high_impact_corroboration is False
        assert config.transition.publication_scope == 'national'
        assert config.transition.lock_timeout_ms == 750

    def test_malformed_values_rejected(self, monkeypatch):
        monkeypatch.setenv('PLATFORM_ID', 'metro')
        monkeypatch.setenv('STORE_BACKEND', 'memory')
        monkeypatch.setenv('GATE_REQUIRE_HIGH_IMPACT_CORROBORATION', 'maybe')

        with pytest.raises(ValueError):
            StoryGateConfig.from_env()

    def test_out_of_range_threshold_rejected(self, monkeypatch):
        monkeypatch.setenv('PLATFORM_ID', 'metro')
        monkeypatch.setenv('STORE_BACKEND', 'memory')
        monkeypatch.setenv('GATE_MIN_PRIMARY_EVIDENCE_RATIO', '1.5')

        with pytest.raises(ValueError):
            StoryGateConfig.from_env()


class TestStoreFactory:

    def test_memory_store(self, monkeypatch):
        monkeypatch.setenv('PLATFORM_ID', 'metro')
        monkeypatch.setenv('STORE_BACKEND', 'memory')

        store = create_graph_store(StoryGateConfig.from_env())

        assert isinstance(store, InMemoryGraphStore)
        assert store.platform_id == 'metro'
