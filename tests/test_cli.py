import pytest
from click.testing import CliRunner

from grove import registry
from grove.cli import cli


@pytest.fixture
def runner(project, monkeypatch):
    monkeypatch.chdir(project)
    return CliRunner()


def test_allocate_explicit_variables(runner, project):
    result = runner.invoke(cli, ["ports", "allocate", "Feature One", "HTTP_PORT", "DB_PORT"])
    assert result.exit_code == 0, result.output
    assert "HTTP_PORT=30000" in result.output
    assert "DB_PORT=30001" in result.output
    assert registry.ports_for_environment(str(project.resolve()), "feature-one") == {
        "HTTP_PORT": 30000,
        "DB_PORT": 30001,
    }


def test_allocate_scans_env_example(runner, project):
    (project / ".env.example").write_text("WEB_PORT=8000\nDEBUG=1\n")
    result = runner.invoke(cli, ["ports", "allocate", "one"])
    assert result.exit_code == 0, result.output
    assert "WEB_PORT=30000" in result.output


def test_allocate_without_variables(runner):
    result = runner.invoke(cli, ["ports", "allocate", "one"])
    assert result.exit_code == 0
    assert "No port variables found." in result.output


def test_allocate_uses_project_port_range(runner, project):
    (project / ".grove.json").write_text('{"portRange": [41000, 41001]}')
    result = runner.invoke(cli, ["ports", "allocate", "one", "A", "B", "C"])
    assert result.exit_code == 1
    assert "No available ports in range 41000-41001" in result.output
    assert registry.read_registry().allocations == {}


def test_show_and_release(runner):
    runner.invoke(cli, ["ports", "allocate", "one", "HTTP_PORT"])

    shown = runner.invoke(cli, ["ports", "show", "one"])
    assert shown.output.strip() == "HTTP_PORT=30000"

    released = runner.invoke(cli, ["ports", "release", "one"])
    assert released.exit_code == 0
    assert "Released 1 port(s)" in released.output

    again = runner.invoke(cli, ["ports", "release", "one"])
    assert "Released 0 port(s)" in again.output
    assert "No ports allocated" in runner.invoke(cli, ["ports", "show", "one"]).output


def test_status(runner):
    runner.invoke(cli, ["ports", "allocate", "one", "HTTP_PORT", "DB_PORT"])
    registry.allocate_ports("/some/other/project", "x", ["P"], (30000, 39999))

    result = runner.invoke(cli, ["status"])
    assert result.exit_code == 0, result.output
    assert "Ports in use: 30000-30001 (2 ports)" in result.output
    assert "Global registry: 3 ports in use across 2 projects" in result.output


def test_corrupt_registry_reported(runner):
    path = registry.paths.port_registry_path()
    path.parent.mkdir(parents=True)
    path.write_text("garbage")

    result = runner.invoke(cli, ["ports", "show", "one"])
    assert result.exit_code == 1
    assert "corrupt" in result.output


def test_registry_option(runner, tmp_path):
    other = tmp_path / "custom.json"
    result = runner.invoke(cli, ["--registry", str(other), "ports", "allocate", "one", "P"])
    assert result.exit_code == 0, result.output
    assert other.exists()


def test_outside_git_repo(tmp_path, monkeypatch):
    outside = tmp_path / "outside"
    outside.mkdir()
    monkeypatch.chdir(outside)
    result = CliRunner().invoke(cli, ["ports", "show", "one"])
    assert result.exit_code == 1
    assert "Not in a git repository" in result.output
