"""
Tests for the command-line entry point
"""

import pytest
import yaml

from conftest import make_jar
from minecraft_plugin_shader.cli import main
from minecraft_plugin_shader.models import Coordinate


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_config(directory, data):
    path = directory / "shader.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def test_init_writes_starter_config(project_dir):
    assert main(["--init"]) == 0

    config = yaml.safe_load((project_dir / "shader.yaml").read_text())
    assert config['project']['artifact'] == project_dir.name
    assert config['dependencies'][0]['scope'] == 'relocate'

    assert main(["--init"]) == 1


def test_validate_accepts_starter_config(project_dir):
    main(["--init"])

    assert main(["--validate"]) == 0


def test_validate_rejects_invalid_config(project_dir):
    write_config(project_dir, {'project': {'group': 'io.github.zap'}, 'dependencies': 'nope'})

    assert main(["--validate"]) == 1


def test_missing_config_file_fails(project_dir):
    assert main(["--config", str(project_dir / "absent.yaml"), "--validate"]) == 1


def test_build_with_local_repository(project_dir):
    lib = Coordinate.parse("org.bar:lib-b:2.0")
    make_jar(project_dir / "m2" / lib.path(), {"org/bar/Bar.class": b"bar"})
    write_config(project_dir, {
        'project': {'group': 'io.github.zap', 'artifact': 'zap-plugin', 'version': '1.0.0'},
        'resolution': {'local_repository': 'm2'},
        'dependencies': [{'coordinate': str(lib), 'scope': 'bundled'}],
    })

    assert main(["--output", str(project_dir / "out"), "--publish-local", str(project_dir / "published")]) == 0

    assert (project_dir / "out" / "zap-plugin-1.0.0.jar").exists()
    assert (project_dir / "published" / "io/github/zap/zap-plugin/1.0.0/zap-plugin-1.0.0.pom").exists()


def test_build_failure_exits_nonzero(project_dir):
    write_config(project_dir, {
        'project': {'group': 'io.github.zap', 'artifact': 'zap-plugin', 'version': '1.0.0'},
        'resolution': {'local_repository': 'm2'},
        'dependencies': [{'coordinate': 'org.bar:missing:1.0', 'scope': 'bundled'}],
    })

    assert main([]) == 1
    assert not (project_dir / "build" / "libs").exists()
