"""
Tests for transitive expansion and concurrent resolution
"""

import threading
import time

import pytest

from conftest import make_artifact
from minecraft_plugin_shader.errors import ResolutionError
from minecraft_plugin_shader.graph import expand_transitive, resolve_graph
from minecraft_plugin_shader.models import Coordinate, DependencyDeclaration, Scope
from minecraft_plugin_shader.resolver import Resolver


class GraphResolver(Resolver):
    """In-memory resolver: `edges` maps a coordinate string to its POM dependencies"""

    def __init__(self, edges=None, delays=None, missing=()):
        self.edges = edges or {}
        self.delays = delays or {}
        self.missing = set(missing)
        self.resolved = []
        self.lock = threading.Lock()

    def fetch_pom(self, coordinate):
        return [Coordinate.parse(c) for c in self.edges.get(str(coordinate), [])]

    def resolve(self, declaration, transitive_of=None):
        coordinate = str(declaration.coordinate)
        time.sleep(self.delays.get(coordinate, 0))
        if coordinate in self.missing:
            raise ResolutionError(coordinate, "not found")
        with self.lock:
            self.resolved.append(coordinate)
        return make_artifact(coordinate, {f"{declaration.coordinate.artifact}.txt": b"x"},
                             scope=declaration.scope, transitive_of=transitive_of)


def declare(coordinate, scope=Scope.BUNDLED, transitive=True):
    return DependencyDeclaration(Coordinate.parse(coordinate), scope, transitive=transitive)


def test_results_keep_declaration_order():
    resolver = GraphResolver(delays={"org.example:slow:1.0": 0.2})
    declarations = [declare("org.example:slow:1.0"), declare("org.example:fast:1.0"),
                    declare("org.example:faster:1.0")]

    artifacts = resolve_graph(declarations, resolver, workers=3)

    assert [str(a.coordinate) for a in artifacts] == [
        "org.example:slow:1.0", "org.example:fast:1.0", "org.example:faster:1.0",
    ]
    assert resolver.resolved[-1] == "org.example:slow:1.0"


def test_transitive_dependencies_inherit_root_scope():
    resolver = GraphResolver(edges={
        "org.example:lib-c:1.0": ["org.example:child:1.0"],
        "org.example:child:1.0": ["org.example:grandchild:2.0"],
    })

    artifacts = resolve_graph([declare("org.example:lib-c:1.0", Scope.RELOCATE)], resolver)

    assert [str(a.coordinate) for a in artifacts] == [
        "org.example:lib-c:1.0", "org.example:child:1.0", "org.example:grandchild:2.0",
    ]
    assert all(a.scope == Scope.RELOCATE for a in artifacts)
    root = Coordinate.parse("org.example:lib-c:1.0")
    assert artifacts[1].transitive_of == root
    assert artifacts[2].transitive_of == root
    assert artifacts[0].dependencies == [Coordinate.parse("org.example:child:1.0")]


def test_explicit_declaration_wins_over_transitive():
    resolver = GraphResolver(edges={"org.example:a:1.0": ["org.example:b:9.9"]})

    entries = expand_transitive(
        [declare("org.example:a:1.0", Scope.RELOCATE), declare("org.example:b:1.0", Scope.BUNDLED)],
        resolver,
    )

    assert [(str(e.declaration.coordinate), e.declaration.scope) for e in entries] == [
        ("org.example:a:1.0", Scope.RELOCATE),
        ("org.example:b:1.0", Scope.BUNDLED),
    ]


def test_highest_transitive_version_wins():
    resolver = GraphResolver(edges={
        "org.example:a:1.0": ["org.example:shared:1.2"],
        "org.example:b:1.0": ["org.example:shared:1.10"],
    })

    entries = expand_transitive([declare("org.example:a:1.0"), declare("org.example:b:1.0")], resolver)

    assert [str(e.declaration.coordinate) for e in entries][-1] == "org.example:shared:1.10"
    assert len(entries) == 3


def test_non_transitive_declaration_is_not_expanded():
    resolver = GraphResolver(edges={"org.example:a:1.0": ["org.example:child:1.0"]})

    artifacts = resolve_graph([declare("org.example:a:1.0", transitive=False)], resolver)

    assert [str(a.coordinate) for a in artifacts] == ["org.example:a:1.0"]


def test_transitive_can_be_disabled_globally():
    resolver = GraphResolver(edges={"org.example:a:1.0": ["org.example:child:1.0"]})

    artifacts = resolve_graph([declare("org.example:a:1.0")], resolver, transitive=False)

    assert len(artifacts) == 1


def test_failure_propagates():
    resolver = GraphResolver(missing={"org.example:gone:1.0"})

    with pytest.raises(ResolutionError) as excinfo:
        resolve_graph([declare("org.example:ok:1.0"), declare("org.example:gone:1.0")], resolver, workers=2)

    assert excinfo.value.coordinate == "org.example:gone:1.0"


def test_empty_declarations():
    assert resolve_graph([], GraphResolver()) == []


def test_upgraded_version_has_its_pom_walked():
    resolver = GraphResolver(edges={
        "org.example:a:1.0": ["org.example:shared:1.2"],
        "org.example:b:1.0": ["org.example:mid:1.0"],
        "org.example:mid:1.0": ["org.example:shared:1.10"],
        "org.example:shared:1.2": ["org.example:old-only:1.0"],
        "org.example:shared:1.10": ["org.example:new-only:1.0"],
    })

    entries = expand_transitive([declare("org.example:a:1.0"), declare("org.example:b:1.0")], resolver)

    by_key = {e.declaration.coordinate.key: e for e in entries}
    shared = by_key["org.example:shared"]
    assert str(shared.declaration.coordinate) == "org.example:shared:1.10"
    assert shared.dependencies == [Coordinate.parse("org.example:new-only:1.0")]
    assert "org.example:new-only" in by_key
    assert by_key["org.example:new-only"].root == Coordinate.parse("org.example:a:1.0")
    assert "org.example:old-only" in by_key


def test_excluded_keys_are_never_added_transitively():
    resolver = GraphResolver(edges={
        "org.example:a:1.0": ["com.example:host-api:1.0", "org.example:child:1.0"],
        "org.example:child:1.0": ["com.example:host-api:2.0"],
    })

    artifacts = resolve_graph([declare("org.example:a:1.0")], resolver, exclude=["com.example:host-api"])

    assert [str(a.coordinate) for a in artifacts] == ["org.example:a:1.0", "org.example:child:1.0"]
    assert not any("host-api" in coordinate for coordinate in resolver.resolved)
