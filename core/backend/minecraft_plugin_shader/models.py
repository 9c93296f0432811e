"""
Build Data Model

Coordinates, dependency declarations, resolved artifacts, relocation rules and
the assembled output artifact.
"""

import hashlib
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .versions import MavenVersion


class Scope(str, Enum):
    """Bundling intent of a declared dependency"""

    PROVIDED = "provided"
    BUNDLED = "bundled"
    RELOCATE = "relocate"


@dataclass(frozen=True)
class Coordinate:
    """A single Maven-style coordinate"""

    group: str
    artifact: str
    version: str

    @classmethod
    def parse(cls, text: str) -> "Coordinate":
        """
        Parse 'group:artifact:version'

        Raises:
            ValueError: If the string does not have exactly three non-empty parts
        """
        parts = text.strip().split(":")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Invalid coordinate '{text}' (expected group:artifact:version)")
        return cls(*parts)

    @property
    def key(self) -> str:
        """Version-less identity used for scope and conflict checks"""
        return f"{self.group}:{self.artifact}"

    @property
    def maven_version(self) -> MavenVersion:
        return MavenVersion(self.version)

    @property
    def is_snapshot(self) -> bool:
        return self.maven_version.is_snapshot

    def with_version(self, version: str) -> "Coordinate":
        return replace(self, version=version)

    def directory(self) -> str:
        """Repository directory holding this coordinate's files"""
        return f"{self.group.replace('.', '/')}/{self.artifact}/{self.version}"

    def filename(self, extension: str = "jar", file_version: Optional[str] = None) -> str:
        return f"{self.artifact}-{file_version or self.version}.{extension}"

    def path(self, extension: str = "jar", file_version: Optional[str] = None) -> str:
        """Repository-relative path, e.g. org/foo/bar/1.0/bar-1.0.jar"""
        return f"{self.directory()}/{self.filename(extension, file_version)}"

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}:{self.version}"


@dataclass(frozen=True)
class DependencyDeclaration:
    """A coordinate plus its declared scope"""

    coordinate: Coordinate
    scope: Scope
    relocate_from: Optional[str] = None
    relocate_to: Optional[str] = None
    excludes: Tuple[str, ...] = ()
    transitive: bool = True

    def __str__(self) -> str:
        return f"{self.coordinate} ({self.scope.value})"


@dataclass(frozen=True)
class RelocationRule:
    """Rewrite namespace `source` (dotted) to `target`"""

    source: str
    target: str
    excludes: Tuple[str, ...] = ()
    origin: Optional[str] = None

    @property
    def source_path(self) -> str:
        return self.source.replace(".", "/")

    @property
    def target_path(self) -> str:
        return self.target.replace(".", "/")

    def covers(self, namespace: str) -> bool:
        """True if `namespace` is the rule's source or lies beneath it"""
        return namespace == self.source or namespace.startswith(self.source + ".")

    def __str__(self) -> str:
        return f"{self.source} -> {self.target}"


@dataclass
class ResolvedArtifact:
    """A coordinate with its binary content attached"""

    coordinate: Coordinate
    scope: Scope
    entries: Dict[str, bytes]
    namespace: Optional[str] = None
    dependencies: List[Coordinate] = field(default_factory=list)
    transitive_of: Optional[Coordinate] = None

    @property
    def label(self) -> str:
        return str(self.coordinate)

    def class_names(self) -> List[str]:
        """Dotted names of the class entries, in entry order"""
        return [
            path[:-len(".class")].replace("/", ".")
            for path in self.entries
            if path.endswith(".class")
        ]


@dataclass(frozen=True)
class ArtifactMetadata:
    """Metadata record written next to the archive and handed to the publisher"""

    group_id: str
    artifact_id: str
    version: str
    content_hash: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "groupId": self.group_id,
            "artifactId": self.artifact_id,
            "version": self.version,
            "contentHash": self.content_hash,
        }


@dataclass
class OutputArtifact:
    """The merged archive: unique paths in output order, plus publish metadata"""

    coordinate: Coordinate
    entries: Dict[str, bytes]
    collisions: List = field(default_factory=list)
    provided: List[Coordinate] = field(default_factory=list)

    @property
    def content_hash(self) -> str:
        return content_hash(self.entries)

    @property
    def metadata(self) -> ArtifactMetadata:
        return ArtifactMetadata(
            group_id=self.coordinate.group,
            artifact_id=self.coordinate.artifact,
            version=self.coordinate.version,
            content_hash=self.content_hash,
        )


@dataclass(frozen=True)
class PublishReceipt:
    """Result of a successful publish"""

    coordinate: Coordinate
    repository: str
    uploaded: Tuple[str, ...]
    content_hash: str


def content_hash(entries: Dict[str, bytes]) -> str:
    """SHA-256 over the ordered (path, content) pairs"""
    digest = hashlib.sha256()
    for path, data in entries.items():
        encoded = path.encode("utf-8")
        digest.update(len(encoded).to_bytes(4, "big"))
        digest.update(encoded)
        digest.update(len(data).to_bytes(8, "big"))
        digest.update(data)
    return digest.hexdigest()
