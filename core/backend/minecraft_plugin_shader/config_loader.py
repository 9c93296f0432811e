"""
Configuration Loader

Loads and validates build descriptions from YAML files and turns them into
dependency declarations.
"""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .assembler import DEFAULT_EXCLUDES, DEFAULT_MERGE
from .config import (
    CONFIG_FILENAME,
    CONVENTION_VERSION,
    DEFAULT_BACKOFF,
    DEFAULT_CACHE_DIR,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_RELOCATION_PREFIX,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    DEFAULT_WORKERS,
    LEGACY_PAPER_GROUP,
    MAVEN_CENTRAL,
    PAPER_API_ARTIFACT,
    PAPER_GROUP,
    PAPER_GROUP_CUTOVER,
    PAPER_REPOSITORY,
    USER_CONFIG_FILE,
    VALID_SCOPES,
    ZGPR_URL_TEMPLATE,
)
from .errors import ConfigError
from .models import Coordinate, DependencyDeclaration, Scope
from .versions import MavenVersion

logger = logging.getLogger(__name__)

_NAMESPACE = re.compile(r"^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*$")

DEFAULT_CONFIG = {
    'project': {},
    'convention': {'version': CONVENTION_VERSION},
    'paper_api': None,
    'repositories': [MAVEN_CENTRAL],
    'dependencies': [],
    'relocation': {
        'prefix': None,
        'resource_extensions': [],
    },
    'assembly': {
        'exclude': list(DEFAULT_EXCLUDES),
        'merge': list(DEFAULT_MERGE),
        'manifest': True,
        'check_provided': False,
    },
    'resolution': {
        'transitive': True,
        'offline': False,
        'local_repository': None,
    },
    'network': {
        'timeout': DEFAULT_TIMEOUT,
        'retries': DEFAULT_RETRIES,
        'backoff': DEFAULT_BACKOFF,
        'workers': DEFAULT_WORKERS,
    },
    'output': {'dir': str(DEFAULT_OUTPUT_DIR)},
    'cache': {'dir': str(DEFAULT_CACHE_DIR)},
    'publish': {},
}


def get_config_paths() -> list[Path]:
    """
    Get list of config file paths to check in priority order

    Returns:
        List of paths to check (first found wins)
    """
    return [
        Path.cwd() / CONFIG_FILENAME,
        USER_CONFIG_FILE,
    ]


def load_config(config_path: Optional[Path] = None) -> Dict:
    """
    Load a build description from YAML

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Configuration dict merged over DEFAULT_CONFIG, with 'base_dir' set to
        the directory relative paths are resolved against

    Raises:
        ConfigError: If an explicit file is missing or the YAML is malformed
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config['base_dir'] = str(Path.cwd())

    if config_path:
        if not Path(config_path).exists():
            raise ConfigError([f"Config file not found: {config_path}"])
        config_files = [Path(config_path)]
    else:
        config_files = get_config_paths()

    loaded_from = None
    for path in config_files:
        if path.exists():
            loaded_from = path
            break

    if not loaded_from:
        logger.info("No build description found, using defaults")
        return config

    logger.info(f"Loading build description from: {loaded_from}")

    try:
        with open(loaded_from, 'r') as f:
            user_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError([f"Error parsing YAML in {loaded_from}: {e}"])

    if not user_config:
        logger.warning(f"Config file {loaded_from} is empty")
        return config
    if not isinstance(user_config, dict):
        raise ConfigError([f"{loaded_from} must contain a mapping at the top level"])

    user_config = substitute_env_vars(user_config)

    # Mapping sections merge over the defaults, everything else replaces them
    for key, value in user_config.items():
        if isinstance(config.get(key), dict) and isinstance(value, dict):
            config[key].update(value)
        else:
            config[key] = value

    config['base_dir'] = str(loaded_from.resolve().parent)

    if config.get('paper_api') and PAPER_REPOSITORY not in config['repositories']:
        config['repositories'] = list(config['repositories']) + [PAPER_REPOSITORY]

    logger.info(f"✓ Loaded {len(config.get('dependencies') or [])} dependency declaration(s)")
    return config


def substitute_env_vars(config: Dict) -> Dict:
    """
    Substitute environment variables in config values

    Handles patterns like:
    - ${ENV_VAR}
    - ${ENV_VAR:-default_value}

    Args:
        config: Configuration dict

    Returns:
        Config with environment variables substituted
    """
    pattern = re.compile(r'\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}')

    def replacer(match):
        var_name = match.group(1)
        default_value = match.group(2) or ""
        return os.environ.get(var_name, default_value)

    def substitute_value(value):
        if isinstance(value, str):
            return pattern.sub(replacer, value)
        elif isinstance(value, dict):
            return {k: substitute_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [substitute_value(item) for item in value]
        else:
            return value

    return substitute_value(config)


def _check_namespace(value, label: str, errors: List[str]):
    if value is not None and (not isinstance(value, str) or not _NAMESPACE.match(value)):
        errors.append(f"{label} '{value}' is not a valid package name")


def validate_config(config: Dict) -> tuple[bool, list[str]]:
    """
    Validate configuration structure

    Args:
        config: Configuration dict to validate

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    errors = []

    project = config.get('project') or {}
    for field in ('group', 'artifact', 'version'):
        if not project.get(field):
            errors.append(f"Project missing required '{field}' field")

    dependencies = config.get('dependencies')
    if dependencies is None:
        dependencies = []
    if not isinstance(dependencies, list):
        errors.append("'dependencies' must be a list")
        dependencies = []

    for index, dependency in enumerate(dependencies, start=1):
        if not isinstance(dependency, dict):
            errors.append(f"Dependency #{index} must be a mapping")
            continue

        label = dependency.get('coordinate') or f"#{index}"
        try:
            Coordinate.parse(str(dependency.get('coordinate', '')))
        except ValueError as e:
            errors.append(f"Dependency #{index}: {e}")

        scope = dependency.get('scope')
        if scope not in VALID_SCOPES:
            errors.append(
                f"Dependency '{label}' has scope '{scope}' (expected one of: {', '.join(VALID_SCOPES)})"
            )

        relocation = dependency.get('relocate')
        if relocation is not None:
            if scope != 'relocate':
                errors.append(f"Dependency '{label}' has a 'relocate' block but scope '{scope}'")
            elif not isinstance(relocation, dict):
                errors.append(f"Dependency '{label}': 'relocate' must be a mapping")
            else:
                _check_namespace(relocation.get('from'), f"Dependency '{label}' relocate.from", errors)
                _check_namespace(relocation.get('to'), f"Dependency '{label}' relocate.to", errors)
                if not isinstance(relocation.get('exclude', []), list):
                    errors.append(f"Dependency '{label}': relocate.exclude must be a list")

    _check_namespace((config.get('relocation') or {}).get('prefix'), "relocation.prefix", errors)

    if not config.get('repositories') and not (config.get('resolution') or {}).get('local_repository'):
        errors.append("At least one repository (or resolution.local_repository) is required")

    network = config.get('network') or {}
    for field in ('timeout', 'backoff'):
        value = network.get(field)
        if not isinstance(value, (int, float)) or value < 0:
            errors.append(f"network.{field} must be a non-negative number")
    for field in ('retries', 'workers'):
        value = network.get(field)
        if not isinstance(value, int) or value < 0:
            errors.append(f"network.{field} must be a non-negative integer")
    if network.get('workers') == 0:
        errors.append("network.workers must be at least 1")

    # Validate publish config (if present)
    publish = config.get('publish') or {}
    if publish:
        zgpr = publish.get('zgpr')
        if not publish.get('url') and not zgpr:
            errors.append("Publish config must have either 'url' or 'zgpr'")
        if zgpr and (not isinstance(zgpr, dict) or 'owner' not in zgpr or 'repository' not in zgpr):
            errors.append("publish.zgpr needs 'owner' and 'repository'")

    is_valid = len(errors) == 0
    return is_valid, errors


def paper_api_declaration(version: str) -> DependencyDeclaration:
    """Provided declaration for the Paper API, picking the group the version was published under"""
    group = PAPER_GROUP
    if MavenVersion(version) < MavenVersion(PAPER_GROUP_CUTOVER):
        group = LEGACY_PAPER_GROUP
    return DependencyDeclaration(
        coordinate=Coordinate(group, PAPER_API_ARTIFACT, version),
        scope=Scope.PROVIDED,
        transitive=False,
    )


def parse_declarations(config: Dict) -> List[DependencyDeclaration]:
    """
    Build dependency declarations from a validated config

    Returns:
        Declarations in file order, with the paper_api shorthand first
    """
    declarations = []

    if config.get('paper_api'):
        declarations.append(paper_api_declaration(str(config['paper_api'])))

    default_transitive = (config.get('resolution') or {}).get('transitive', True)

    for dependency in config.get('dependencies') or []:
        relocation = dependency.get('relocate') or {}
        declarations.append(DependencyDeclaration(
            coordinate=Coordinate.parse(str(dependency['coordinate'])),
            scope=Scope(dependency['scope']),
            relocate_from=relocation.get('from'),
            relocate_to=relocation.get('to'),
            excludes=tuple(relocation.get('exclude') or ()),
            transitive=dependency.get('transitive', default_transitive),
        ))

    return declarations


def project_coordinate(config: Dict) -> Coordinate:
    project = config['project']
    return Coordinate(str(project['group']), str(project['artifact']), str(project['version']))


def relocation_prefix(config: Dict) -> str:
    """Configured prefix, or '<project group>.shaded'"""
    prefix = (config.get('relocation') or {}).get('prefix')
    if prefix:
        return prefix
    group = (config.get('project') or {}).get('group')
    return f"{group}.{DEFAULT_RELOCATION_PREFIX}" if group else DEFAULT_RELOCATION_PREFIX


def publish_url(config: Dict) -> Optional[str]:
    publish = config.get('publish') or {}
    if publish.get('url'):
        return publish['url']
    zgpr = publish.get('zgpr')
    if zgpr:
        return ZGPR_URL_TEMPLATE.format(owner=zgpr['owner'], repository=zgpr['repository'])
    return None


def resolve_path(config: Dict, value) -> Path:
    """Resolve a configured path relative to the build description's directory"""
    path = Path(str(value)).expanduser()
    if path.is_absolute():
        return path
    return Path(config.get('base_dir') or Path.cwd()) / path


def save_config(config: Dict, config_path: Optional[Path] = None) -> bool:
    """
    Save configuration to YAML file

    Args:
        config: Configuration dict to save
        config_path: Optional path to save to (defaults to ./shader.yaml)

    Returns:
        True if saved successfully
    """
    if not config_path:
        config_path = Path.cwd() / CONFIG_FILENAME

    config_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(config_path, 'w') as f:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        logger.error(f"Failed to save config: {e}")
        return False

    logger.info(f"✓ Configuration saved to: {config_path}")
    return True
