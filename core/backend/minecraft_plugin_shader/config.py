"""
Configuration for Minecraft Plugin Shader

Defaults for repositories, relocation, networking and output locations.
"""

from pathlib import Path

# Build description search order: ./shader.yaml, then the user config directory
CONFIG_FILENAME = "shader.yaml"
USER_CONFIG_FILE = Path.home() / ".config" / "minecraft-plugin-shader" / "config.yaml"

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "minecraft-plugin-shader"
DEFAULT_OUTPUT_DIR = Path("build") / "libs"
DEFAULT_LOG_DIR = Path("build") / "logs"
MAVEN_LOCAL = Path.home() / ".m2" / "repository"

# Repositories
MAVEN_CENTRAL = "https://repo.maven.apache.org/maven2"
PAPER_REPOSITORY = "https://papermc.io/repo/repository/maven-public"
# "ZGpr": the GitHub Packages Maven registry the plugin family publishes to
ZGPR_URL_TEMPLATE = "https://maven.pkg.github.com/{owner}/{repository}"

# Shared build-logic version the plugins pin
CONVENTION_VERSION = "1.0.0"

# Paper moved its API from com.destroystokyo.paper to io.papermc.paper in 1.17
PAPER_API_ARTIFACT = "paper-api"
PAPER_GROUP = "io.papermc.paper"
LEGACY_PAPER_GROUP = "com.destroystokyo.paper"
PAPER_GROUP_CUTOVER = "1.17"

DEFAULT_RELOCATION_PREFIX = "shaded"

# Network defaults (seconds / counts)
DEFAULT_TIMEOUT = 30
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF = 1.0
DEFAULT_WORKERS = 4

VALID_SCOPES = ("provided", "bundled", "relocate")
