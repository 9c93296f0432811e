"""
Repository Resolvers

Fetch declared dependencies from Maven repositories (remote over HTTP, or a
local Maven-layout directory) and read their POMs for transitive edges.
"""

import hashlib
import logging
import re
import time
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import requests

from . import __version__
from .archive import atomic_write, read_archive
from .errors import ResolutionError
from .models import Coordinate, DependencyDeclaration, ResolvedArtifact, Scope
from .retry import RetryPolicy, call_with_retries

logger = logging.getLogger(__name__)

# Dependency scopes in a POM that end up on the runtime classpath
RUNTIME_SCOPES = ("", "compile", "runtime")

_PROPERTY = re.compile(r"\$\{([^}]+)\}")


class TransientFetchError(Exception):
    """Retryable repository failure (timeout, connection reset, 5xx)"""


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if element is None:
        return None
    for item in element:
        if _local(item.tag) == name:
            return item
    return None


def _children(element: Optional[ET.Element], name: str) -> List[ET.Element]:
    found = _child(element, name)
    return list(found) if found is not None else []


def _text(element: Optional[ET.Element], name: str) -> Optional[str]:
    found = _child(element, name)
    if found is None or found.text is None:
        return None
    return found.text.strip()


def parse_pom_dependencies(data: bytes, source: str = "<pom>") -> List[Coordinate]:
    """
    Extract direct runtime dependencies from a POM

    Property references are expanded from <properties> and the project/parent
    coordinates. Test, provided, system and optional dependencies are skipped,
    as are dependencies whose version only comes from dependencyManagement.

    Returns:
        Coordinates in POM order
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        logger.warning(f"⚠ Could not parse POM {source}: {e}")
        return []

    parent = _child(root, "parent")
    properties: Dict[str, str] = {}
    props = _child(root, "properties")
    if props is not None:
        for prop in props:
            properties[_local(prop.tag)] = (prop.text or "").strip()

    group = _text(root, "groupId") or _text(parent, "groupId") or ""
    version = _text(root, "version") or _text(parent, "version") or ""
    properties.update({
        "project.groupId": group,
        "project.version": version,
        "pom.version": version,
        "project.parent.version": _text(parent, "version") or "",
        "project.parent.groupId": _text(parent, "groupId") or "",
    })

    def expand(value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        for _ in range(5):
            expanded = _PROPERTY.sub(lambda m: properties.get(m.group(1), m.group(0)), value)
            if expanded == value:
                break
            value = expanded
        return value

    dependencies: List[Coordinate] = []
    for dependency in _children(root, "dependencies"):
        if _local(dependency.tag) != "dependency":
            continue

        scope = (_text(dependency, "scope") or "").lower()
        if scope not in RUNTIME_SCOPES:
            continue
        if (_text(dependency, "optional") or "").lower() == "true":
            continue
        if (_text(dependency, "type") or "jar") != "jar" or _text(dependency, "classifier"):
            continue

        dep_group = expand(_text(dependency, "groupId"))
        dep_artifact = expand(_text(dependency, "artifactId"))
        dep_version = expand(_text(dependency, "version"))

        if not dep_group or not dep_artifact:
            continue
        if not dep_version or "${" in dep_version:
            logger.debug(f"  {source}: skipping {dep_group}:{dep_artifact} (managed version)")
            continue
        if dep_version[0] in "[(":
            exact = dep_version.strip("[]")
            if dep_version.startswith("[") and dep_version.endswith("]") and "," not in exact:
                dep_version = exact
            else:
                logger.warning(f"⚠ {source}: version range {dep_version} for {dep_group}:{dep_artifact} not supported")
                continue

        dependencies.append(Coordinate(dep_group, dep_artifact, dep_version))

    return dependencies


def parse_snapshot_version(data: bytes, extension: str = "jar") -> Optional[str]:
    """Timestamped file version from a snapshot's maven-metadata.xml"""
    try:
        root = ET.fromstring(data)
    except ET.ParseError:
        return None

    versioning = _child(root, "versioning")
    for snapshot_version in _children(versioning, "snapshotVersions"):
        if _text(snapshot_version, "extension") == extension and not _text(snapshot_version, "classifier"):
            return _text(snapshot_version, "value")

    snapshot = _child(versioning, "snapshot")
    timestamp = _text(snapshot, "timestamp")
    build = _text(snapshot, "buildNumber")
    base = _text(root, "version")
    if timestamp and build and base:
        return base.replace("-SNAPSHOT", f"-{timestamp}-{build}")
    return None


class Resolver:
    """Common behaviour of the resolvers"""

    def resolve(self, declaration: DependencyDeclaration,
                transitive_of: Optional[Coordinate] = None) -> ResolvedArtifact:
        raise NotImplementedError

    def fetch_pom(self, coordinate: Coordinate) -> List[Coordinate]:
        raise NotImplementedError

    @staticmethod
    def build_artifact(declaration: DependencyDeclaration, entries: Dict[str, bytes],
                       transitive_of: Optional[Coordinate] = None) -> ResolvedArtifact:
        namespace = None
        if declaration.scope == Scope.RELOCATE:
            namespace = declaration.relocate_from or (
                declaration.coordinate.group if transitive_of is None else None
            )
        return ResolvedArtifact(
            coordinate=declaration.coordinate,
            scope=declaration.scope,
            entries=entries,
            namespace=namespace,
            transitive_of=transitive_of,
        )


class LocalRepositoryResolver(Resolver):
    """Resolve from a Maven-layout directory such as ~/.m2/repository"""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    def resolve(self, declaration: DependencyDeclaration,
                transitive_of: Optional[Coordinate] = None) -> ResolvedArtifact:
        coordinate = declaration.coordinate
        jar_path = self.root / coordinate.path("jar")
        if not jar_path.exists():
            raise ResolutionError(str(coordinate), f"not found in {self.root}")

        logger.info(f"  ✓ {coordinate} (local)")
        return self.build_artifact(declaration, read_archive(jar_path), transitive_of)

    def fetch_pom(self, coordinate: Coordinate) -> List[Coordinate]:
        pom_path = self.root / coordinate.path("pom")
        if not pom_path.exists():
            return []
        return parse_pom_dependencies(pom_path.read_bytes(), str(coordinate))


class MavenRepositoryResolver(Resolver):
    """Resolve from remote Maven repositories with an on-disk cache"""

    def __init__(self, repositories: Sequence[str], cache_dir: Path,
                 policy: Optional[RetryPolicy] = None,
                 session: Optional[requests.Session] = None,
                 offline: bool = False,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            repositories: Repository base URLs, tried in order
            cache_dir: Directory for downloaded files (Maven layout)
            policy: Timeout and retry policy
            session: HTTP session to use (a new one by default)
            offline: Only use files already in the cache
            sleep: Sleep function used between retries
        """
        self.repositories = [url.rstrip("/") for url in repositories]
        self.cache_dir = Path(cache_dir).expanduser()
        self.policy = policy or RetryPolicy()
        self.offline = offline
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": f"minecraft-plugin-shader/{__version__}"})

    def _get(self, url: str) -> Optional[bytes]:
        """
        Single GET

        Returns:
            Body, or None when the repository does not have the file

        Raises:
            TransientFetchError: Timeout, connection failure or server error
        """
        try:
            response = self.session.get(url, timeout=self.policy.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientFetchError(str(e))

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientFetchError(f"HTTP {response.status_code} for {url}")
        if response.status_code >= 400:
            return None
        return response.content

    def _fetch(self, url: str, coordinate: Coordinate) -> Optional[bytes]:
        try:
            return call_with_retries(
                lambda: self._get(url),
                self.policy,
                describe=f"GET {url}",
                transient=(TransientFetchError,),
                sleep=self.sleep,
            )
        except TransientFetchError as e:
            raise ResolutionError(str(coordinate), f"{e} (after {self.policy.retries} retries)", transient=True)

    def _file_version(self, repository: str, coordinate: Coordinate, extension: str) -> str:
        if not coordinate.is_snapshot:
            return coordinate.version
        metadata = self._fetch(f"{repository}/{coordinate.directory()}/maven-metadata.xml", coordinate)
        if metadata:
            resolved = parse_snapshot_version(metadata, extension)
            if resolved:
                return resolved
        return coordinate.version

    @staticmethod
    def _verify_sha1(data: bytes, checksum: Optional[bytes]) -> bool:
        """Compare against a published .sha1 file ('<hex>' or '<hex>  <filename>')"""
        fields = checksum.decode("ascii", "replace").split() if checksum else []
        if not fields:
            return True
        return hashlib.sha1(data).hexdigest() == fields[0].lower()

    def download(self, coordinate: Coordinate, extension: str = "jar") -> Optional[Path]:
        """
        Fetch one file of a coordinate into the cache

        Returns:
            Cached path, or None if no repository has the file

        Raises:
            ResolutionError: On checksum mismatch or exhausted retries
        """
        cached = self.cache_dir / coordinate.path(extension)
        if cached.exists():
            return cached
        if self.offline:
            return None

        for repository in self.repositories:
            file_version = self._file_version(repository, coordinate, extension)
            url = f"{repository}/{coordinate.path(extension, file_version)}"
            data = self._fetch(url, coordinate)
            if data is None:
                logger.debug(f"  {coordinate}: not in {repository}")
                continue

            checksum = self._fetch(url + ".sha1", coordinate)
            if not self._verify_sha1(data, checksum):
                raise ResolutionError(str(coordinate), f"SHA-1 mismatch for {url}")

            atomic_write(cached, data)
            logger.info(f"  ✓ {coordinate}: {len(data):,} bytes from {repository}")
            return cached

        return None

    def resolve(self, declaration: DependencyDeclaration,
                transitive_of: Optional[Coordinate] = None) -> ResolvedArtifact:
        coordinate = declaration.coordinate
        jar_path = self.download(coordinate, "jar")
        if jar_path is None:
            where = "cache (offline)" if self.offline else ", ".join(self.repositories) or "no repositories"
            raise ResolutionError(str(coordinate), f"not found in {where}")
        return self.build_artifact(declaration, read_archive(jar_path), transitive_of)

    def fetch_pom(self, coordinate: Coordinate) -> List[Coordinate]:
        pom_path = self.download(coordinate, "pom")
        if pom_path is None:
            logger.warning(f"⚠ No POM for {coordinate}, transitive dependencies unknown")
            return []
        return parse_pom_dependencies(pom_path.read_bytes(), str(coordinate))
