"""
Unit tests for utils/health_check.py
"""

from unittest.mock import Mock

from core.dependencies import DependencyContainer
from utils.health_check import get_health_status


def _container(available=True):
    model = Mock()
    model.is_available = available
    container = DependencyContainer()
    container.initialize(model_manager=model)
    return container


def test_health_without_container():
    """No container is reported as degraded"""
    health = get_health_status(None)
    assert health["status"] == "degraded"
    assert health["checks"]["container"]["initialized"] is False
    assert "version" in health


def test_health_all_checks():
    """An initialized container with a model is healthy"""
    health = get_health_status(_container())

    assert health["status"] == "healthy"
    checks = health["checks"]
    assert checks["model_client"] == {"configured": True}
    assert checks["resource_index"]["indexed"] is True
    assert checks["analytics"]["failed_batches"] == 0
    assert checks["moderator_alerts"]["pending"] == 0
    assert "writable" in checks["emergency_log"]


def test_health_offline_model_degraded():
    """A missing model client degrades the status"""
    health = get_health_status(_container(available=False))
    assert health["status"] == "degraded"
    assert health["checks"]["model_client"]["configured"] is False


def test_health_never_reveals_key():
    """The API key never appears in the report"""
    container = _container()
    container.model_manager.api_key = "sk-secret"
    assert "sk-secret" not in str(get_health_status(container))
