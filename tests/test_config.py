"""
Tests for environment-driven configuration and provider factories.
"""

from datetime import timedelta

from glassmem.agents.planner import OllamaToolPlanner, RuleBasedPlanner
from glassmem.core import config
from glassmem.vector import DeterministicHashEmbedding, EmbeddingIndex


def test_defaults_are_valid():
    assert config.validate_config() == []
    assert config.get_correlation_window() == timedelta(seconds=config.CORRELATION_WINDOW_SEC)


def test_validate_config_reports_each_issue(monkeypatch):
    monkeypatch.setattr(config, "CORRELATION_WINDOW_SEC", 0.0)
    monkeypatch.setattr(config, "PHOTO_BUFFER_CAPACITY", 0)
    monkeypatch.setattr(config, "VECTOR_PROVIDER", "chroma")

    issues = config.validate_config()

    assert "CORRELATION_WINDOW_SEC must be > 0" in issues
    assert "PHOTO_BUFFER_CAPACITY must be >= 1" in issues
    assert "Invalid VECTOR_PROVIDER: chroma" in issues


def test_extended_window_must_cover_default(monkeypatch):
    monkeypatch.setattr(config, "EXTENDED_CORRELATION_WINDOW_SEC", 1.0)
    assert "EXTENDED_CORRELATION_WINDOW_SEC must be >= CORRELATION_WINDOW_SEC" in config.validate_config()


def test_persistence_flag_reads_environment(monkeypatch):
    monkeypatch.setenv("PERSIST_ENABLED", "true")
    assert config.is_persistence_enabled() is True
    monkeypatch.setenv("PERSIST_ENABLED", "false")
    assert config.is_persistence_enabled() is False


def test_embedding_factories(monkeypatch):
    monkeypatch.setattr(config, "EMBED_PROVIDER", "hash")
    monkeypatch.setattr(config, "VECTOR_PROVIDER", "memory")

    provider = config.get_embedding_provider(dimension=32)
    index = config.get_embedding_index(dimension=32)

    assert isinstance(provider, DeterministicHashEmbedding)
    assert provider.get_dimension() == 32
    assert isinstance(index, EmbeddingIndex)
    assert index.dimension == 32


def test_planner_factory(monkeypatch):
    monkeypatch.setattr(config, "PLANNER_PROVIDER", "rule_based")
    assert isinstance(config.get_tool_planner(), RuleBasedPlanner)

    monkeypatch.setattr(config, "PLANNER_PROVIDER", "ollama")
    planner = config.get_tool_planner()
    assert isinstance(planner, OllamaToolPlanner)
    assert planner.model_name == config.OLLAMA_MODEL
