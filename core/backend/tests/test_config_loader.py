"""
Tests for loading and validating build descriptions
"""

import pytest
import yaml

from minecraft_plugin_shader.config import MAVEN_CENTRAL, PAPER_REPOSITORY
from minecraft_plugin_shader.config_loader import (
    DEFAULT_CONFIG,
    load_config,
    paper_api_declaration,
    parse_declarations,
    publish_url,
    relocation_prefix,
    resolve_path,
    substitute_env_vars,
    validate_config,
)
from minecraft_plugin_shader.errors import ConfigError
from minecraft_plugin_shader.models import Scope

VALID = {
    'project': {'group': 'io.github.zap', 'artifact': 'zap-plugin', 'version': '1.0.0'},
    'dependencies': [
        {'coordinate': 'org.apache.commons:commons-lang3:3.12.0', 'scope': 'relocate',
         'relocate': {'from': 'org.apache.commons.lang3', 'exclude': ['org.apache.commons.lang3.Api']}},
        {'coordinate': 'org.bar:lib-b:2.0', 'scope': 'bundled', 'transitive': False},
    ],
}


def write(tmp_path, data, name="shader.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


def test_load_merges_over_defaults(tmp_path):
    config = load_config(write(tmp_path, dict(VALID, network={'retries': 5})))

    assert config['network']['retries'] == 5
    assert config['network']['timeout'] == DEFAULT_CONFIG['network']['timeout']
    assert config['repositories'] == [MAVEN_CENTRAL]
    assert config['base_dir'] == str(tmp_path.resolve())
    assert validate_config(config) == (True, [])


def test_defaults_are_not_mutated(tmp_path):
    load_config(write(tmp_path, dict(VALID, network={'retries': 9})))

    assert DEFAULT_CONFIG['network']['retries'] != 9


def test_missing_explicit_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml")


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "shader.yaml"
    path.write_text("project: [unclosed\n")

    with pytest.raises(ConfigError):
        load_config(path)


def test_non_mapping_raises(tmp_path):
    path = tmp_path / "shader.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigError):
        load_config(path)


def test_found_in_working_directory(tmp_path, monkeypatch):
    write(tmp_path, VALID)
    monkeypatch.chdir(tmp_path)

    assert load_config()['project']['artifact'] == 'zap-plugin'


def test_env_substitution(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "secret")
    monkeypatch.delenv("GITHUB_ACTOR", raising=False)

    result = substitute_env_vars({
        'publish': {'password': '${GITHUB_TOKEN}', 'username': '${GITHUB_ACTOR:-zap-bot}'},
        'list': ['${GITHUB_TOKEN}', 3],
    })

    assert result == {'publish': {'password': 'secret', 'username': 'zap-bot'}, 'list': ['secret', 3]}


def test_validation_reports_every_problem():
    config = dict(DEFAULT_CONFIG, project={'group': 'io.github.zap'}, dependencies=[
        {'coordinate': 'not-a-coordinate', 'scope': 'bundled'},
        {'coordinate': 'org.a:b:1.0', 'scope': 'shaded'},
        {'coordinate': 'org.a:c:1.0', 'scope': 'bundled', 'relocate': {'from': 'org.a'}},
        {'coordinate': 'org.a:d:1.0', 'scope': 'relocate', 'relocate': {'to': '1bad.name'}},
        'bare string',
    ], publish={'zgpr': {'owner': 'ZapDev'}})

    is_valid, errors = validate_config(config)

    assert not is_valid
    text = "\n".join(errors)
    assert "'artifact'" in text and "'version'" in text
    assert "not-a-coordinate" in text
    assert "scope 'shaded'" in text
    assert "'relocate' block but scope 'bundled'" in text
    assert "1bad.name" in text
    assert "must be a mapping" in text
    assert "zgpr" in text


def test_network_values_validated():
    config = dict(DEFAULT_CONFIG, project=VALID['project'],
                  network={'timeout': -1, 'backoff': 1.0, 'retries': 'many', 'workers': 0})

    _, errors = validate_config(config)

    assert "network.timeout must be a non-negative number" in errors
    assert "network.retries must be a non-negative integer" in errors
    assert "network.workers must be at least 1" in errors


def test_parse_declarations(tmp_path):
    config = load_config(write(tmp_path, VALID))

    relocate, bundled = parse_declarations(config)

    assert relocate.scope == Scope.RELOCATE
    assert relocate.relocate_from == 'org.apache.commons.lang3'
    assert relocate.relocate_to is None
    assert relocate.excludes == ('org.apache.commons.lang3.Api',)
    assert relocate.transitive
    assert bundled.scope == Scope.BUNDLED
    assert not bundled.transitive


@pytest.mark.parametrize("version, group", [
    ("1.16.5-R0.1-SNAPSHOT", "com.destroystokyo.paper"),
    ("1.12.2-R0.1-SNAPSHOT", "com.destroystokyo.paper"),
    ("1.17-R0.1-SNAPSHOT", "io.papermc.paper"),
    ("1.18.2-R0.1-SNAPSHOT", "io.papermc.paper"),
])
def test_paper_api_group_follows_version(version, group):
    declaration = paper_api_declaration(version)

    assert declaration.coordinate.group == group
    assert declaration.scope == Scope.PROVIDED
    assert not declaration.transitive


def test_paper_api_adds_repository_and_declaration(tmp_path):
    config = load_config(write(tmp_path, dict(VALID, paper_api='1.16.5-R0.1-SNAPSHOT')))

    assert config['repositories'] == [MAVEN_CENTRAL, PAPER_REPOSITORY]
    assert parse_declarations(config)[0].coordinate.artifact == 'paper-api'


def test_relocation_prefix():
    assert relocation_prefix({'project': {'group': 'io.github.zap'}}) == 'io.github.zap.shaded'
    assert relocation_prefix({'project': {'group': 'io.github.zap'},
                              'relocation': {'prefix': 'zap.libs'}}) == 'zap.libs'


def test_publish_url():
    assert publish_url({'publish': {'url': 'https://repo.example.org/releases'}}) == \
        'https://repo.example.org/releases'
    assert publish_url({'publish': {'zgpr': {'owner': 'ZapDev', 'repository': 'zap'}}}) == \
        'https://maven.pkg.github.com/ZapDev/zap'
    assert publish_url({'publish': {}}) is None


def test_resolve_path_is_relative_to_config(tmp_path):
    config = {'base_dir': str(tmp_path)}

    assert resolve_path(config, 'build/libs') == tmp_path / 'build' / 'libs'
    assert resolve_path(config, str(tmp_path / 'abs')) == tmp_path / 'abs'
