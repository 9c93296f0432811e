"""
Tests for publishing to remote and local Maven repositories
"""

import hashlib
import json

import pytest
import requests

from conftest import FakeResponse, FakeSession
from minecraft_plugin_shader.errors import PublishError
from minecraft_plugin_shader.models import Coordinate, OutputArtifact
from minecraft_plugin_shader.publisher import (
    LocalRepositoryPublisher,
    MavenRepositoryPublisher,
    build_pom,
    publication_files,
)
from minecraft_plugin_shader.retry import RetryPolicy

URL = "https://maven.pkg.github.com/zap/plugins"
COORDINATE = Coordinate.parse("io.github.zap:zap-plugin:1.0.0")
PAPER = Coordinate.parse("com.destroystokyo.paper:paper-api:1.16.5-R0.1-SNAPSHOT")
BASE = "io/github/zap/zap-plugin/1.0.0/zap-plugin-1.0.0"


@pytest.fixture
def output():
    return OutputArtifact(COORDINATE, {"plugin.yml": b"name: Zap\n"}, provided=[PAPER])


def make_publisher(session, delays):
    return MavenRepositoryPublisher(URL, username="zap", password="token",
                                    policy=RetryPolicy(retries=2, backoff=0.5),
                                    session=session, sleep=delays.append)


def test_publication_files_with_checksums(output):
    files = dict(publication_files(output, COORDINATE))

    assert list(files) == [
        f"{BASE}.jar", f"{BASE}.jar.sha1", f"{BASE}.jar.md5",
        f"{BASE}.json", f"{BASE}.json.sha1", f"{BASE}.json.md5",
        f"{BASE}.pom", f"{BASE}.pom.sha1", f"{BASE}.pom.md5",
    ]
    jar = files[f"{BASE}.jar"]
    assert files[f"{BASE}.jar.sha1"] == hashlib.sha1(jar).hexdigest().encode("ascii")
    assert files[f"{BASE}.jar.md5"] == hashlib.md5(jar).hexdigest().encode("ascii")
    assert json.loads(files[f"{BASE}.json"])["contentHash"] == output.content_hash


def test_pom_lists_only_provided_dependencies(output):
    pom = build_pom(output, COORDINATE).decode("utf-8")

    assert "<artifactId>zap-plugin</artifactId>" in pom
    assert "<artifactId>paper-api</artifactId>" in pom
    assert "<scope>provided</scope>" in pom
    assert pom.count("<dependency>") == 1


def test_publish_uploads_everything(output):
    session = FakeSession()
    delays = []

    receipt = make_publisher(session, delays).publish(output)

    assert len(session.uploads) == 9
    assert receipt.uploaded[0] == f"{URL}/{BASE}.jar"
    assert receipt.content_hash == output.content_hash
    assert receipt.coordinate == COORDINATE
    assert session.auth == ("zap", "token")
    assert delays == []


def test_publish_under_other_coordinate(output):
    session = FakeSession()
    destination = COORDINATE.with_version("1.0.1")

    receipt = make_publisher(session, []).publish(output, destination)

    assert receipt.coordinate == destination
    assert f"{URL}/io/github/zap/zap-plugin/1.0.1/zap-plugin-1.0.1.jar" in session.uploads


def test_rejected_upload_is_not_retried(output):
    session = FakeSession(put_default=FakeResponse(401))
    delays = []

    with pytest.raises(PublishError) as excinfo:
        make_publisher(session, delays).publish(output)

    assert not excinfo.value.transient
    assert "401" in str(excinfo.value)
    assert len(session.calls) == 1
    assert delays == []


def test_server_errors_retried_then_fail(output):
    session = FakeSession(put_default=FakeResponse(502))
    delays = []

    with pytest.raises(PublishError) as excinfo:
        make_publisher(session, delays).publish(output)

    assert excinfo.value.transient
    assert len(session.calls) == 3
    assert delays == [0.5, 1.0]
    assert session.uploads == {}


def test_transient_upload_failure_recovers(output):
    session = FakeSession({f"{URL}/{BASE}.jar": [requests.ConnectionError("reset"), FakeResponse(201)]})
    delays = []

    make_publisher(session, delays).publish(output)

    assert f"{URL}/{BASE}.jar" in session.uploads
    assert delays == [0.5]


def test_check_available(output):
    reachable = FakeSession({f"{URL}/": FakeResponse(401)})
    make_publisher(reachable, []).check_available()

    unreachable = FakeSession({f"{URL}/": requests.ConnectionError("no route to host")})
    with pytest.raises(PublishError) as excinfo:
        make_publisher(unreachable, []).check_available()
    assert "no route to host" in str(excinfo.value)


def test_local_repository_publisher(tmp_path, output):
    publisher = LocalRepositoryPublisher(tmp_path / "m2")
    publisher.check_available()

    receipt = publisher.publish(output)

    jar = tmp_path / "m2" / f"{BASE}.jar"
    assert jar.exists()
    assert (tmp_path / "m2" / f"{BASE}.pom").exists()
    assert receipt.uploaded[0] == str(jar)
    assert len(receipt.uploaded) == 9
