import pytest

from ritual.apps.api.core.llm import build_router
from ritual.libs.llm_router import Task


def test_build_router_routes_both_tasks_to_openrouter(settings):
    router = build_router(settings)

    assert router._config.policy[Task.SYNTHESIS] == ["openrouter"]
    assert router._config.policy[Task.SWAP] == ["openrouter"]


def test_build_router_requires_key(settings):
    settings.openrouter_api_key = None

    with pytest.raises(RuntimeError):
        build_router(settings)
