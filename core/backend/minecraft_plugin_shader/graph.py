"""
Dependency Graph

Expands declarations with their transitive runtime dependencies and resolves
the whole set concurrently. Results always come back in declaration order,
whatever order the fetches finish in.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence

from .models import Coordinate, DependencyDeclaration, ResolvedArtifact
from .resolver import Resolver
from .versions import MavenVersion

logger = logging.getLogger(__name__)


@dataclass
class GraphEntry:
    """A declaration to resolve, and the declared root that pulled it in"""

    declaration: DependencyDeclaration
    root: Optional[Coordinate] = None
    dependencies: Optional[List[Coordinate]] = None


def expand_transitive(declarations: Sequence[DependencyDeclaration], resolver: Resolver,
                      workers: int = 4, exclude: Iterable[str] = ()) -> List[GraphEntry]:
    """
    Walk POMs breadth-first and add transitive dependencies

    A transitive dependency inherits the scope of its declared root. Explicit
    declarations always win over transitive ones; between transitive
    requests for the same library the highest version wins, and the upgraded
    entry's POM is walked again. Libraries already reached through the
    superseded version stay in the graph.

    Args:
        declarations: Declarations in author order
        resolver: Resolver collaborator
        workers: Maximum concurrent POM fetches
        exclude: Group:artifact keys never added transitively, such as
            libraries the server already provides

    Returns:
        Declared entries in order, each followed later by the transitive
        entries discovered beneath it
    """
    explicit = {declaration.coordinate.key for declaration in declarations} | set(exclude)
    entries: Dict[str, GraphEntry] = {}
    for declaration in declarations:
        entries[declaration.coordinate.key] = GraphEntry(declaration)

    frontier = [entry for entry in entries.values() if entry.declaration.transitive]

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        while frontier:
            poms = list(executor.map(lambda e: resolver.fetch_pom(e.declaration.coordinate), frontier))
            next_frontier: List[GraphEntry] = []

            for parent, children in zip(frontier, poms):
                parent.dependencies = children
                root = parent.root or parent.declaration.coordinate

                for child in children:
                    if child.key in explicit:
                        continue

                    existing = entries.get(child.key)
                    if existing is not None:
                        if MavenVersion(child.version) > MavenVersion(existing.declaration.coordinate.version):
                            logger.info(
                                f"  {child.key}: {existing.declaration.coordinate.version} -> {child.version} "
                                f"(requested by {parent.declaration.coordinate})"
                            )
                            existing.declaration = replace(existing.declaration, coordinate=child)
                            if not any(queued is existing for queued in next_frontier):
                                next_frontier.append(existing)
                        continue

                    entry = GraphEntry(
                        DependencyDeclaration(coordinate=child, scope=parent.declaration.scope),
                        root=root,
                    )
                    entries[child.key] = entry
                    next_frontier.append(entry)
                    logger.debug(f"  + {child} (via {parent.declaration.coordinate})")

            frontier = next_frontier

    return list(entries.values())


def resolve_all(entries: Sequence[GraphEntry], resolver: Resolver,
                workers: int = 4) -> List[ResolvedArtifact]:
    """
    Resolve entries concurrently, returning artifacts in entry order

    The first failure cancels fetches that have not started yet and is
    re-raised.
    """
    if not entries:
        return []

    executor = ThreadPoolExecutor(max_workers=max(1, workers))
    futures = [
        executor.submit(resolver.resolve, entry.declaration, entry.root)
        for entry in entries
    ]
    try:
        artifacts = [future.result() for future in futures]
    except BaseException:
        executor.shutdown(wait=True, cancel_futures=True)
        raise
    executor.shutdown(wait=True)

    for entry, artifact in zip(entries, artifacts):
        if entry.dependencies:
            artifact.dependencies = list(entry.dependencies)
    return artifacts


def resolve_graph(declarations: Sequence[DependencyDeclaration], resolver: Resolver,
                  workers: int = 4, transitive: bool = True,
                  exclude: Iterable[str] = ()) -> List[ResolvedArtifact]:
    """
    Resolve declarations (and optionally their transitive dependencies)

    Args:
        declarations: Declarations in author order
        resolver: Resolver collaborator
        workers: Maximum concurrent fetches
        transitive: Walk POMs for transitive dependencies
        exclude: Group:artifact keys kept out of the transitive walk

    Returns:
        Resolved artifacts; declared ones in declaration order, transitive
        ones after them in discovery order
    """
    if transitive:
        entries = expand_transitive(declarations, resolver, workers, exclude)
    else:
        entries = [GraphEntry(declaration) for declaration in declarations]

    added = len(entries) - len(declarations)
    if added:
        logger.info(f"  {added} transitive dependenc{'y' if added == 1 else 'ies'} added")

    return resolve_all(entries, resolver, workers)
