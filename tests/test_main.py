"""Tests for component wiring in deskhand.main."""

import pytest

from deskhand import main as main_module
from deskhand.api.runner import AgentRunner
from deskhand.automation import RecordingBackend
from deskhand.main import _lazy_component, create_components, shutdown_components


@pytest.mark.asyncio
async def test_create_components(monkeypatch, settings, surfaces):
    monkeypatch.setattr(main_module, "SurfaceProvider", lambda: surfaces)
    components = await create_components(settings)
    try:
        assert isinstance(components["runner"], AgentRunner)
        assert components["runner"].initialized is True
        assert isinstance(components["executor"].backend, RecordingBackend)
        assert components["dispatcher"].tool_names == ["computer", "str_replace_based_edit_tool", "bash"]
        assert components["shell"].policy.mode == "unrestricted"
    finally:
        await shutdown_components(components)
    assert components["runner"].initialized is False


def test_lazy_proxy_before_startup():
    components: dict = {}
    proxy = _lazy_component(components, "runner")
    with pytest.raises(RuntimeError, match="not yet initialized"):
        proxy.busy
    components["runner"] = type("FakeRunner", (), {"busy": False})()
    assert proxy.busy is False
