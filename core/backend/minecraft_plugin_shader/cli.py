"""
Command-Line Interface

Entry point for minecraft-plugin-shader CLI tool.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from . import __version__
from .builder import ShadowPluginBuilder, create_publisher, create_resolver
from .config import CONVENTION_VERSION, DEFAULT_LOG_DIR, MAVEN_CENTRAL
from .config_loader import load_config, save_config, validate_config
from .errors import ShaderError

logger = logging.getLogger(__name__)


def setup_logging(log_dir: Path = DEFAULT_LOG_DIR, verbose: bool = False):
    """Configure logging for CLI"""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"minecraft-plugin-shader-{datetime.now().strftime('%Y%m%d%H%M%S')}.log"

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


def run_init(config_path: Path) -> int:
    """
    Write a starter build description

    Returns:
        Exit code (0 = success)
    """
    if config_path.exists():
        logger.error(f"✗ {config_path} already exists, not overwriting")
        return 1

    config = {
        'project': {
            'group': 'io.github.zap',
            'artifact': Path.cwd().name,
            'version': '1.0.0-SNAPSHOT',
            'classes': 'build/classes/java/main',
        },
        'convention': {'version': CONVENTION_VERSION},
        'paper_api': '1.16.5-R0.1-SNAPSHOT',
        'repositories': [MAVEN_CENTRAL],
        'dependencies': [
            {'coordinate': 'org.apache.commons:commons-lang3:3.12.0', 'scope': 'relocate'},
        ],
        'publish': {
            'zgpr': {'owner': 'ZapDev', 'repository': Path.cwd().name},
            'username': '${GITHUB_ACTOR}',
            'password': '${GITHUB_TOKEN}',
        },
    }

    if not save_config(config, config_path):
        logger.error("\n✗ Failed to save configuration")
        return 1

    logger.info("\nNext steps:")
    logger.info(f"  1. Edit dependencies in {config_path}")
    logger.info("  2. Run 'minecraft-plugin-shader --validate'")
    logger.info("  3. Run 'minecraft-plugin-shader' to build")
    return 0


def run_build(builder: ShadowPluginBuilder, publish: bool = False) -> int:
    """
    Main build workflow execution

    Returns:
        Exit code (0 = success)
    """
    logger.info("Minecraft Plugin Shader")
    logger.info("=" * 70)
    logger.info(f"Version: {__version__}")
    logger.info(f"Mode: {'DRY RUN' if builder.dry_run else 'LIVE'}")
    logger.info("")

    result = builder.build(publish=publish)

    if result.warnings:
        logger.warning(f"\n⚠ {len(result.warnings)} warning(s):")
        for warning in result.warnings:
            logger.warning(f"  - {warning}")

    logger.info(f"\n✓ Build of {builder.coordinate} completed")
    if result.jar_path:
        logger.info(f"  Output: {result.jar_path}")
    return 0


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        prog="minecraft-plugin-shader",
        description=f"Minecraft Plugin Shader v{__version__} - Relocate and bundle plugin dependencies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a starter shader.yaml
  %(prog)s --init

  # Check the build description without fetching anything
  %(prog)s --validate

  # Build the shaded plugin JAR
  %(prog)s

  # Build and publish to the configured repository
  %(prog)s --publish

  # Build and install into the local Maven repository
  %(prog)s --publish-local ~/.m2/repository
        """
    )

    parser.add_argument("--config", type=Path, help="Path to build description (overrides default search paths)")
    parser.add_argument("--init", action="store_true", help="Write a starter shader.yaml")
    parser.add_argument("--validate", action="store_true", help="Validate the build description and exit")
    parser.add_argument("--dry-run", action="store_true", help="Build in memory, write and publish nothing")
    parser.add_argument("--publish", action="store_true", help="Publish to the configured repository")
    parser.add_argument("--publish-local", type=Path, metavar="DIR", help="Publish into a local Maven repository")
    parser.add_argument("--output", type=Path, metavar="DIR", help="Output directory (overrides output.dir)")
    parser.add_argument("--offline", action="store_true", help="Only use already cached dependencies")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        if args.init:
            return run_init(args.config or Path.cwd() / "shader.yaml")

        config = load_config(args.config)

        is_valid, errors = validate_config(config)
        if not is_valid:
            logger.error("\n✗ Configuration validation failed:")
            for error in errors:
                logger.error(f"  - {error}")
            logger.info("\nRun 'minecraft-plugin-shader --init' to create a starter configuration")
            return 1

        if args.validate:
            logger.info("✓ Build description is valid")
            return 0

        publish = args.publish or args.publish_local is not None
        publisher = create_publisher(config, args.publish_local) if publish else None

        builder = ShadowPluginBuilder(
            config,
            dry_run=args.dry_run,
            resolver=create_resolver(config, offline=args.offline),
            publisher=publisher,
            output_dir=args.output,
        )
        return run_build(builder, publish=publish)

    except ShaderError as e:
        logger.error(f"\n✗ Build failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("\n\nInterrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
