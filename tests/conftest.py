import pathlib
import pytest

from grove import paths


# Create an isolated HOME so registry writes don't pollute real machine
@pytest.fixture(autouse=True)
def _isolate_home(monkeypatch, tmp_path):
    monkeypatch.setattr(pathlib.Path, "home", lambda: tmp_path / "home")
    for var in ("XDG_STATE_HOME", "XDG_CONFIG_HOME", "GROVE_REGISTRY", "GROVE_PORT_RANGE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GROVE_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("GROVE_CONFIG_DIR", str(tmp_path / "config"))
    yield


@pytest.fixture
def reg_path():
    return paths.port_registry_path()


@pytest.fixture
def project(tmp_path):
    """A fake checkout: a directory with a .git marker."""
    root = tmp_path / "project"
    (root / ".git").mkdir(parents=True)
    return root
