"""Tests for configuration selection and app factory wiring."""

import pytest

from allocation_planner import create_app
from allocation_planner.config import ProductionConfig, TestingConfig, config


class StubAlgorithm:
    def run(self, academic_year):
        raise NotImplementedError


class TestConfig:
    def test_mapping(self):
        assert config["testing"] is TestingConfig
        assert config["default"] is config["development"]

    def test_testing_runs_audit_inline(self, app):
        assert app.config["TESTING"] is True
        assert app.config["AUDIT_SINK_ASYNC"] is False
        assert app.extensions["audit_sink"].asynchronous is False

    def test_production_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            ProductionConfig()

    def test_production_requires_secret_key(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/app")
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            ProductionConfig()

    def test_algorithm_loaded_from_config(self, monkeypatch):
        monkeypatch.setattr(
            TestingConfig, "ALLOCATION_ALGORITHM",
            "test_config:StubAlgorithm",
            raising=False,
        )
        other = create_app("testing")
        assert other.extensions["allocation_algorithm"].__class__.__name__ == "StubAlgorithm"
