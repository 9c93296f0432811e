"""
Publishing

Uploads the assembled plugin JAR, a generated POM and the metadata record to
a Maven repository (remote over HTTP PUT, or a local directory).
"""

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from xml.sax.saxutils import escape

import requests

from . import __version__
from .archive import archive_bytes, atomic_write
from .errors import PublishError
from .models import Coordinate, OutputArtifact, PublishReceipt
from .retry import RetryPolicy, call_with_retries

logger = logging.getLogger(__name__)

CHECKSUM_TYPES = ("sha1", "md5")


def build_pom(output: OutputArtifact, destination: Coordinate) -> bytes:
    """
    Generate a POM for the shaded JAR

    Bundled libraries live inside the JAR, so only the host-provided
    dependencies are listed (as 'provided').
    """
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<project xmlns="http://maven.apache.org/POM/4.0.0" '
        'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        'xsi:schemaLocation="http://maven.apache.org/POM/4.0.0 '
        'https://maven.apache.org/xsd/maven-4.0.0.xsd">',
        '  <modelVersion>4.0.0</modelVersion>',
        f'  <groupId>{escape(destination.group)}</groupId>',
        f'  <artifactId>{escape(destination.artifact)}</artifactId>',
        f'  <version>{escape(destination.version)}</version>',
        '  <packaging>jar</packaging>',
    ]
    if output.provided:
        lines.append('  <dependencies>')
        for coordinate in output.provided:
            lines.extend([
                '    <dependency>',
                f'      <groupId>{escape(coordinate.group)}</groupId>',
                f'      <artifactId>{escape(coordinate.artifact)}</artifactId>',
                f'      <version>{escape(coordinate.version)}</version>',
                '      <scope>provided</scope>',
                '    </dependency>',
            ])
        lines.append('  </dependencies>')
    lines.append('</project>')
    return ("\n".join(lines) + "\n").encode("utf-8")


def calculate_hash(data: bytes, hash_type: str = "sha1") -> str:
    """Hex digest of `data` (sha1, md5 or sha256)"""
    return hashlib.new(hash_type, data).hexdigest()


def publication_files(output: OutputArtifact, destination: Coordinate) -> List[Tuple[str, bytes]]:
    """
    Repository-relative paths and contents to upload

    Every file is followed by its checksum files; the POM goes last so the
    version only looks complete once everything else is in place.
    """
    metadata = dict(output.metadata.to_dict(), groupId=destination.group,
                    artifactId=destination.artifact, version=destination.version)
    primary = [
        (destination.path("jar"), archive_bytes(output.entries)),
        (destination.path("json"), (json.dumps(metadata, indent=2) + "\n").encode("utf-8")),
        (destination.path("pom"), build_pom(output, destination)),
    ]

    files = []
    for path, data in primary:
        files.append((path, data))
        for hash_type in CHECKSUM_TYPES:
            files.append((f"{path}.{hash_type}", calculate_hash(data, hash_type).encode("ascii")))
    return files


class Publisher:
    """Common publish workflow; subclasses implement the transport"""

    name = "repository"

    def check_available(self):
        """Raise PublishError if the destination cannot accept uploads"""

    def _put(self, path: str, data: bytes) -> str:
        raise NotImplementedError

    def publish(self, output: OutputArtifact, destination: Optional[Coordinate] = None) -> PublishReceipt:
        """
        Upload the output artifact

        Args:
            output: Assembled artifact
            destination: Coordinate to publish under (defaults to the output's)

        Returns:
            PublishReceipt listing every uploaded location

        Raises:
            PublishError: On a rejected upload, or once retries are exhausted
        """
        destination = destination or output.coordinate

        logger.info("\n" + "=" * 70)
        logger.info(f"Publishing {destination} to {self.name}")
        logger.info("=" * 70)

        uploaded = []
        for path, data in publication_files(output, destination):
            location = self._put(path, data)
            uploaded.append(location)
            logger.info(f"  ✓ {path} ({len(data):,} bytes)")

        return PublishReceipt(
            coordinate=destination,
            repository=self.name,
            uploaded=tuple(uploaded),
            content_hash=output.content_hash,
        )


class MavenRepositoryPublisher(Publisher):
    """Publish to a remote Maven repository with HTTP PUT"""

    def __init__(self, url: str, username: Optional[str] = None, password: Optional[str] = None,
                 policy: Optional[RetryPolicy] = None,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            url: Repository base URL
            username: Optional user, forwarded as HTTP basic auth
            password: Optional password/token, forwarded as HTTP basic auth
            policy: Timeout and retry policy
            session: HTTP session to use (a new one by default)
            sleep: Sleep function used between retries
        """
        self.url = url.rstrip("/")
        self.name = self.url
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": f"minecraft-plugin-shader/{__version__}"})
        if username and password:
            self.session.auth = (username, password)

    def _call(self, func, describe: str, coordinate: Optional[str]):
        def attempt():
            try:
                response = func()
            except (requests.Timeout, requests.ConnectionError) as e:
                raise PublishError(coordinate, str(e), transient=True)
            if response.status_code == 429 or response.status_code >= 500:
                raise PublishError(coordinate, f"HTTP {response.status_code} from {describe}", transient=True)
            return response

        return call_with_retries(
            attempt,
            self.policy,
            describe=describe,
            transient=(PublishError,),
            is_transient=lambda e: e.transient,
            sleep=self.sleep,
        )

    def check_available(self):
        """
        Probe the repository

        Any HTTP answer below 500 counts as reachable (an unauthenticated
        probe of a private registry is expected to be refused).
        """
        self._call(
            lambda: self.session.get(self.url + "/", timeout=self.policy.timeout),
            describe=f"GET {self.url}",
            coordinate=None,
        )
        logger.info(f"✓ Repository reachable: {self.url}")

    def _put(self, path: str, data: bytes) -> str:
        url = f"{self.url}/{path}"
        response = self._call(
            lambda: self.session.put(url, data=data, timeout=self.policy.timeout),
            describe=f"PUT {url}",
            coordinate=path,
        )
        if response.status_code >= 400:
            raise PublishError(path, f"HTTP {response.status_code} from PUT {url}")
        return url


class LocalRepositoryPublisher(Publisher):
    """Publish into a Maven-layout directory (e.g. ~/.m2/repository)"""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self.name = str(self.root)

    def check_available(self):
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PublishError(None, f"cannot create {self.root}: {e}")

    def _put(self, path: str, data: bytes) -> str:
        target = self.root / path
        try:
            atomic_write(target, data)
        except OSError as e:
            raise PublishError(path, f"cannot write {target}: {e}")
        return str(target)
