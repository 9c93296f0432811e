"""
Build Orchestrator

Runs one shading build: classify declarations, derive relocation rules,
resolve, relocate, assemble, write and optionally publish.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .archive import read_entries, write_archive
from .assembler import AssemblyPolicy, assemble, find_shadowed_classes
from .classifier import Classification, classify
from .config_loader import (
    parse_declarations,
    project_coordinate,
    publish_url,
    relocation_prefix,
    resolve_path,
)
from .errors import PublishError
from .graph import resolve_graph
from .models import (
    DependencyDeclaration,
    OutputArtifact,
    PublishReceipt,
    RelocationRule,
    ResolvedArtifact,
    Scope,
)
from .publisher import LocalRepositoryPublisher, MavenRepositoryPublisher, Publisher
from .relocation import Relocator, rules_from_declarations
from .resolver import LocalRepositoryResolver, MavenRepositoryResolver, Resolver
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


def retry_policy(config: Dict) -> RetryPolicy:
    network = config.get('network') or {}
    return RetryPolicy(
        retries=network.get('retries', RetryPolicy.retries),
        backoff=network.get('backoff', RetryPolicy.backoff),
        timeout=network.get('timeout', RetryPolicy.timeout),
    )


def create_resolver(config: Dict, offline: bool = False) -> Resolver:
    """Resolver for the configured repositories (or local repository)"""
    resolution = config.get('resolution') or {}
    if resolution.get('local_repository'):
        return LocalRepositoryResolver(resolve_path(config, resolution['local_repository']))

    return MavenRepositoryResolver(
        repositories=config.get('repositories') or [],
        cache_dir=resolve_path(config, (config.get('cache') or {}).get('dir')),
        policy=retry_policy(config),
        offline=offline or resolution.get('offline', False),
    )


def create_publisher(config: Dict, local_dir: Optional[Path] = None) -> Optional[Publisher]:
    """Publisher for --publish-local DIR, or the configured remote repository"""
    if local_dir:
        return LocalRepositoryPublisher(local_dir)

    url = publish_url(config)
    if not url:
        return None
    publish = config.get('publish') or {}
    return MavenRepositoryPublisher(
        url,
        username=publish.get('username'),
        password=publish.get('password'),
        policy=retry_policy(config),
    )


@dataclass
class BuildResult:
    """Outcome of a build"""

    output: OutputArtifact
    rules: List[RelocationRule]
    jar_path: Optional[Path] = None
    receipt: Optional[PublishReceipt] = None
    warnings: List[str] = field(default_factory=list)


class ShadowPluginBuilder:
    """Main shading build orchestrator"""

    def __init__(self, config: Dict, dry_run: bool = False,
                 resolver: Optional[Resolver] = None,
                 publisher: Optional[Publisher] = None,
                 output_dir: Optional[Path] = None):
        """
        Args:
            config: Validated build description
            dry_run: Preview mode - build in memory, write and publish nothing
            resolver: Resolver collaborator (built from config by default)
            publisher: Publisher collaborator (built from config by default)
            output_dir: Override for output.dir
        """
        self.config = config
        self.dry_run = dry_run
        self.resolver = resolver or create_resolver(config)
        self.publisher = publisher
        self.coordinate = project_coordinate(config)
        self.convention_version = str((config.get('convention') or {}).get('version') or "")

        network = config.get('network') or {}
        self.workers = network.get('workers', 4)
        self.transitive = (config.get('resolution') or {}).get('transitive', True)

        relocation = config.get('relocation') or {}
        self.prefix = relocation_prefix(config)
        self.resource_extensions = list(relocation.get('resource_extensions') or [])

        assembly = config.get('assembly') or {}
        self.check_provided = assembly.get('check_provided', False)
        self.policy = AssemblyPolicy(
            exclude=tuple(assembly.get('exclude', AssemblyPolicy.exclude)),
            merge=tuple(assembly.get('merge', AssemblyPolicy.merge)),
            manifest=assembly.get('manifest', True),
            convention_version=self.convention_version or None,
        )

        self.output_dir = Path(output_dir) if output_dir else resolve_path(
            config, (config.get('output') or {}).get('dir', 'build/libs')
        )

    @property
    def jar_path(self) -> Path:
        return self.output_dir / self.coordinate.filename("jar")

    def plan(self, declarations: List[DependencyDeclaration]):
        """
        Classify declarations and derive relocation rules

        Nothing is fetched; scope and relocation conflicts surface here.

        Raises:
            ScopeConflict, RelocationConflict
        """
        classification = classify(declarations)
        rules = rules_from_declarations(classification.relocate, self.prefix)

        logger.info(f"Provided ({len(classification.provided)}):")
        for declaration in classification.provided:
            logger.info(f"  • {declaration.coordinate}")
        logger.info(f"Bundled ({len(classification.plain)}):")
        for declaration in classification.plain:
            logger.info(f"  • {declaration.coordinate}")
        logger.info(f"Relocated ({len(classification.relocate)}):")
        for rule in rules:
            logger.info(f"  • {rule.source} → {rule.target}  [{rule.origin}]")

        return classification, rules

    def load_project(self) -> Optional[ResolvedArtifact]:
        """The plugin's own compiled classes and resources, if configured"""
        classes = (self.config.get('project') or {}).get('classes')
        if not classes:
            return None

        path = resolve_path(self.config, classes)
        entries = read_entries(path)
        logger.info(f"Project classes: {path} ({len(entries)} entries)")
        return ResolvedArtifact(coordinate=self.coordinate, scope=Scope.BUNDLED, entries=entries)

    def resolve(self, classification: Classification):
        logger.info("\n" + "=" * 70)
        logger.info("Resolving dependencies...")
        logger.info("=" * 70)

        artifacts = resolve_graph(classification.bundled(), self.resolver,
                                  workers=self.workers, transitive=self.transitive,
                                  exclude=[d.coordinate.key for d in classification.provided])

        provided: List[ResolvedArtifact] = []
        if self.check_provided and classification.provided:
            provided = resolve_graph(classification.provided, self.resolver,
                                     workers=self.workers, transitive=False)
        return artifacts, provided

    def relocate(self, artifacts: List[ResolvedArtifact], rules: List[RelocationRule],
                 project: Optional[ResolvedArtifact]):
        logger.info("\n" + "=" * 70)
        logger.info("Relocating...")
        logger.info("=" * 70)

        relocator = Relocator(rules, self.resource_extensions)
        plain = [a for a in artifacts if a.scope == Scope.BUNDLED]
        relocated = []
        for artifact in artifacts:
            if artifact.scope != Scope.RELOCATE:
                continue
            result = relocator.relocate_artifact(artifact)
            status = "relocated" if result is not artifact else "no matching namespace"
            logger.info(f"  ✓ {artifact.label}: {status}")
            relocated.append(result)

        if project is not None and rules:
            project = relocator.relocate_artifact(project, rewrite_paths=False)
        return plain, relocated, project

    def build(self, publish: bool = False) -> BuildResult:
        """
        Run the full pipeline

        Args:
            publish: Upload the result with the configured publisher

        Returns:
            BuildResult

        Raises:
            ShaderError subclasses; nothing is written or published on failure
        """
        logger.info("=" * 70)
        logger.info(f"Building {self.coordinate}")
        logger.info("=" * 70)
        if self.convention_version:
            logger.info(f"Convention version: {self.convention_version}")
        logger.info(f"Relocation prefix: {self.prefix}")

        declarations = parse_declarations(self.config)
        classification, rules = self.plan(declarations)

        if publish and self.publisher is None:
            raise PublishError(str(self.coordinate), "no publish repository configured")

        artifacts, provided_artifacts = self.resolve(classification)
        project = self.load_project()
        plain, relocated, project = self.relocate(artifacts, rules, project)

        warnings = []
        if provided_artifacts:
            for path, bundled, host in find_shadowed_classes(plain + relocated, provided_artifacts):
                warnings.append(f"{path} from {bundled} is also provided by {host}")

        logger.info("\n" + "=" * 70)
        logger.info("Assembling...")
        logger.info("=" * 70)
        output = assemble(
            plain,
            relocated,
            self.coordinate,
            project=project,
            policy=self.policy,
            order=[declaration.coordinate.key for declaration in declarations],
            provided=[declaration.coordinate for declaration in classification.provided],
        )
        warnings.extend(str(collision) for collision in output.collisions)

        result = BuildResult(output=output, rules=rules, warnings=warnings)

        if self.dry_run:
            logger.info(f"\n[DRY RUN] Would write: {self.jar_path}")
            if publish:
                logger.info(f"[DRY RUN] Would publish {self.coordinate} to {self.publisher.name}")
            return result

        if publish:
            self.publisher.check_available()

        result.jar_path = write_archive(output, self.jar_path)
        logger.info(f"  Content hash: {output.content_hash}")

        if publish:
            result.receipt = self.publisher.publish(output)
            logger.info(f"\n✓ Published {self.coordinate} ({len(result.receipt.uploaded)} files)")

        return result
