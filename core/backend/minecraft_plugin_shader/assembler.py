"""
Assembler

Merges the plugin's own entries and every bundled artifact into a single
output archive. The first writer of a path wins; later identical copies are
dropped with a warning and later differing copies abort the build.
"""

import logging
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Dict, List, Optional, Sequence, Tuple

from . import __version__
from .errors import PathCollision
from .models import Coordinate, OutputArtifact, ResolvedArtifact

logger = logging.getLogger(__name__)

MANIFEST_PATH = "META-INF/MANIFEST.MF"

# Per-library files that would otherwise collide in every shaded JAR
DEFAULT_EXCLUDES: Tuple[str, ...] = (
    MANIFEST_PATH,
    "META-INF/INDEX.LIST",
    "META-INF/*.SF",
    "META-INF/*.DSA",
    "META-INF/*.RSA",
    "META-INF/*.EC",
    "module-info.class",
    "META-INF/versions/*/module-info.class",
)

DEFAULT_MERGE: Tuple[str, ...] = ("META-INF/services/*",)


@dataclass
class AssemblyPolicy:
    """Which paths are dropped, which are merged, and what goes in the manifest"""

    exclude: Tuple[str, ...] = DEFAULT_EXCLUDES
    merge: Tuple[str, ...] = DEFAULT_MERGE
    manifest: bool = True
    convention_version: Optional[str] = None

    def is_excluded(self, path: str) -> bool:
        return any(fnmatchcase(path, pattern) for pattern in self.exclude)

    def is_mergeable(self, path: str) -> bool:
        return any(fnmatchcase(path, pattern) for pattern in self.merge)


def build_manifest(coordinate: Coordinate, convention_version: Optional[str] = None) -> bytes:
    lines = [
        "Manifest-Version: 1.0",
        f"Created-By: minecraft-plugin-shader {__version__}",
        f"Implementation-Title: {coordinate.artifact}",
        f"Implementation-Version: {coordinate.version}",
        f"Implementation-Vendor-Id: {coordinate.group}",
    ]
    if convention_version:
        lines.append(f"Build-Convention-Version: {convention_version}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


def merge_lines(first: bytes, second: bytes) -> bytes:
    """Concatenate line-based registrations, dropping repeated lines"""
    seen = set()
    merged: List[str] = []
    for blob in (first, second):
        for line in blob.decode("utf-8").splitlines():
            stripped = line.strip()
            if not stripped or stripped in seen:
                continue
            seen.add(stripped)
            merged.append(stripped)
    return ("\n".join(merged) + "\n").encode("utf-8")


def order_artifacts(artifacts: Sequence[ResolvedArtifact],
                    order: Optional[Sequence[str]]) -> List[ResolvedArtifact]:
    """
    Sort artifacts by declaration order

    Transitive artifacts sort directly after the declaration that pulled them
    in; anything not in `order` keeps its relative position at the end.
    """
    if not order:
        return list(artifacts)

    position = {key: index for index, key in enumerate(order)}
    fallback = len(order)

    def sort_key(item: Tuple[int, ResolvedArtifact]):
        index, artifact = item
        own = position.get(artifact.coordinate.key)
        if own is not None:
            return (own, 0, index)
        if artifact.transitive_of is not None:
            parent = position.get(artifact.transitive_of.key)
            if parent is not None:
                return (parent, 1, index)
        return (fallback, 2, index)

    return [artifact for _, artifact in sorted(enumerate(artifacts), key=sort_key)]


def assemble(plain: Sequence[ResolvedArtifact],
             relocated: Sequence[ResolvedArtifact],
             coordinate: Coordinate,
             project: Optional[ResolvedArtifact] = None,
             policy: Optional[AssemblyPolicy] = None,
             order: Optional[Sequence[str]] = None,
             provided: Sequence[Coordinate] = ()) -> OutputArtifact:
    """
    Merge bundled artifacts into one output artifact

    Args:
        plain: Artifacts bundled verbatim
        relocated: Artifacts already passed through the relocation engine
        coordinate: Final coordinate of the output
        project: The plugin's own classes and resources, written first
        policy: Exclusion/merge policy (defaults to AssemblyPolicy())
        order: Coordinate keys in declaration order
        provided: Host-provided coordinates, carried through for the publisher

    Returns:
        OutputArtifact with unique paths and collision warnings attached

    Raises:
        PathCollision: If two inputs contribute differing content at one path
    """
    policy = policy or AssemblyPolicy()
    entries: Dict[str, bytes] = {}
    owners: Dict[str, str] = {}
    collisions: List[PathCollision] = []

    if policy.manifest:
        entries[MANIFEST_PATH] = build_manifest(coordinate, policy.convention_version)
        owners[MANIFEST_PATH] = str(coordinate)

    inputs: List[ResolvedArtifact] = [project] if project is not None else []
    inputs.extend(order_artifacts(list(plain) + list(relocated), order))

    for artifact in inputs:
        added = 0
        for path, data in artifact.entries.items():
            if policy.is_excluded(path):
                continue

            existing = entries.get(path)
            if existing is None:
                entries[path] = data
                owners[path] = artifact.label
                added += 1
                continue

            if existing == data:
                collision = PathCollision(path, owners[path], artifact.label, fatal=False)
                collisions.append(collision)
                logger.warning(f"⚠ Duplicate entry kept once: {path} ({owners[path]}, {artifact.label})")
                continue

            if policy.is_mergeable(path):
                entries[path] = merge_lines(existing, data)
                logger.debug(f"  Merged {path} from {artifact.label}")
                continue

            logger.error(f"✗ Conflicting entry: {path} ({owners[path]} vs {artifact.label})")
            raise PathCollision(path, owners[path], artifact.label, fatal=True)

        logger.info(f"  {artifact.label}: {added} entries")

    output = OutputArtifact(
        coordinate=coordinate,
        entries=entries,
        collisions=collisions,
        provided=list(provided),
    )
    logger.info(f"✓ Assembled {coordinate}: {len(entries)} entries, {len(collisions)} duplicate(s)")
    return output


def find_shadowed_classes(bundled: Sequence[ResolvedArtifact],
                          provided: Sequence[ResolvedArtifact]) -> List[Tuple[str, str, str]]:
    """
    Find bundled classes that the host already provides

    Such classes would be loaded from the host's copy at runtime, so bundling
    them has no effect (or worse, mixes versions).

    Returns:
        (class path, bundled coordinate, provided coordinate) triples
    """
    provided_owner: Dict[str, str] = {}
    for artifact in provided:
        for path in artifact.entries:
            if path.endswith(".class"):
                provided_owner.setdefault(path, artifact.label)

    shadowed = []
    for artifact in bundled:
        for path in artifact.entries:
            owner = provided_owner.get(path)
            if owner is not None:
                shadowed.append((path, artifact.label, owner))

    for path, bundled_label, provided_label in shadowed:
        logger.warning(f"⚠ {path} from {bundled_label} is also provided by {provided_label}")
    return shadowed
