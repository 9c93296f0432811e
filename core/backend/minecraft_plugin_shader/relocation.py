"""
Relocation Engine

Rewrites library namespaces under a private prefix so that several plugins can
bundle their own copy of a library inside one server process.

Rewriting covers class-file constants (internal names, descriptors, generic
signatures and dotted string constants), service registrations, configured text
resources, and the entry paths that encode a namespace.
"""

import logging
import re
from dataclasses import replace
from fnmatch import fnmatchcase
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .classfile import rewrite_class
from .errors import PathCollision, RelocationConflict
from .models import DependencyDeclaration, RelocationRule, ResolvedArtifact

logger = logging.getLogger(__name__)

SERVICES_DIR = "META-INF/services/"
_VERSIONED_PREFIX = re.compile(r"^META-INF/versions/\d+/")

_NAME_CHARS = rb"A-Za-z0-9_$\x80-\xff"
# A namespace may start a constant, follow a non-name character, or follow the
# 'L' that opens an object type inside a descriptor or signature, which may
# come straight after a primitive type letter
_START = (
    rb"(?:(?<![" + _NAME_CHARS + rb"./])"
    rb"|(?<=^L)"
    rb"|(?<=[(\[;)<>:^+\-*BCDFIJSZ]L))"
)
_END = rb"(?![" + _NAME_CHARS + rb"])"
_NAME_TAIL = re.compile(rb"[" + _NAME_CHARS + rb"./]*")


def sort_rules(rules: Iterable[RelocationRule]) -> List[RelocationRule]:
    """Longest source first, then lexicographic, so the order never depends on input order"""
    return sorted(rules, key=lambda rule: (-len(rule.source), rule.source, rule.target))


def check_rules(rules: Iterable[RelocationRule]) -> List[RelocationRule]:
    """
    Drop duplicate rules and reject contradictory ones

    Returns:
        The distinct rules in application order

    Raises:
        RelocationConflict: If one source namespace has two different targets
    """
    by_source: Dict[str, RelocationRule] = {}
    for rule in rules:
        existing = by_source.get(rule.source)
        if existing is None:
            by_source[rule.source] = rule
        elif existing.target != rule.target:
            raise RelocationConflict(rule.source, existing, rule)
        elif existing.excludes != rule.excludes:
            merged = tuple(sorted(set(existing.excludes) | set(rule.excludes)))
            by_source[rule.source] = replace(existing, excludes=merged)
    return sort_rules(by_source.values())


def rules_from_declarations(declarations: Iterable[DependencyDeclaration],
                            prefix: str) -> List[RelocationRule]:
    """
    Derive one relocation rule per relocate-scoped declaration

    Without an explicit `relocate_from` the group id is used as the source
    namespace; without `relocate_to` the target is `<prefix>.<source>`.

    Raises:
        RelocationConflict: If two declarations disagree on a namespace's target
    """
    rules = []
    for declaration in declarations:
        source = declaration.relocate_from or declaration.coordinate.group
        target = declaration.relocate_to or f"{prefix}.{source}"
        rules.append(RelocationRule(
            source=source,
            target=target,
            excludes=tuple(declaration.excludes),
            origin=str(declaration.coordinate),
        ))
    return check_rules(rules)


class Relocator:
    """Applies a fixed rule set to bytes, paths and whole artifacts"""

    def __init__(self, rules: Sequence[RelocationRule], resource_extensions: Sequence[str] = ()):
        self.rules = check_rules(rules)
        self.resource_extensions = tuple(ext.lower() for ext in resource_extensions)
        self._targets: Dict[bytes, RelocationRule] = {}

        alternatives: List[bytes] = []
        for rule in self.rules:
            for form in (rule.source.encode("utf-8"), rule.source_path.encode("utf-8")):
                if form not in self._targets:
                    self._targets[form] = rule
                    alternatives.append(form)

        self._pattern: Optional[re.Pattern] = None
        if alternatives:
            alternatives.sort(key=lambda form: (-len(form), form))
            body = b"|".join(re.escape(form) for form in alternatives)
            self._pattern = re.compile(_START + b"(" + body + b")" + _END)

    def _is_excluded(self, rule: RelocationRule, data: bytes, match: re.Match) -> bool:
        if not rule.excludes:
            return False
        tail = _NAME_TAIL.match(data, match.end()).group(0)
        name = (match.group(1) + tail).decode("utf-8", "replace").replace("/", ".").rstrip(".")
        if name.endswith(".class"):
            name = name[:-len(".class")]
        return any(fnmatchcase(name, pattern) for pattern in rule.excludes)

    def _replacement(self, data: bytes, match: re.Match) -> bytes:
        matched = match.group(1)
        rule = self._targets[matched]
        if self._is_excluded(rule, data, match):
            return matched

        if b"/" in matched:
            slashed = True
        elif b"." in matched:
            slashed = False
        else:
            # Single-segment namespace: the separator that follows decides the form
            following = data[match.end():match.end() + 1]
            slashed = following == b"/" or (following != b"." and b"/" in data)
        return (rule.target_path if slashed else rule.target).encode("utf-8")

    def rewrite(self, data: bytes) -> bytes:
        """Rewrite every namespace reference in a byte string"""
        if self._pattern is None or self._pattern.search(data) is None:
            return data
        return self._pattern.sub(lambda match: self._replacement(data, match), data)

    def rewrite_text(self, text: str) -> str:
        return self.rewrite(text.encode("utf-8")).decode("utf-8")

    def relocate_path(self, path: str) -> str:
        """
        Rewrite the namespace encoded in an entry path

        Handles plain class/resource paths, multi-release paths under
        META-INF/versions/N/ and service registration file names.
        """
        prefix = ""
        versioned = _VERSIONED_PREFIX.match(path)
        if versioned:
            prefix = versioned.group(0)
            path = path[len(prefix):]

        if path.startswith(SERVICES_DIR):
            name = path[len(SERVICES_DIR):]
            return prefix + SERVICES_DIR + self.rewrite_text(name)

        return prefix + self.rewrite_text(path)

    def _rewrites_content(self, path: str) -> bool:
        if path.startswith(SERVICES_DIR):
            return True
        lowered = path.lower()
        return any(lowered.endswith(ext) for ext in self.resource_extensions)

    def relocate_entry(self, path: str, data: bytes, rewrite_paths: bool = True) -> Tuple[str, bytes]:
        if path.endswith(".class"):
            data = rewrite_class(data, self.rewrite, path)
        elif self._rewrites_content(path):
            data = self.rewrite(data)

        if rewrite_paths:
            path = self.relocate_path(path)
        return path, data

    def relocate_artifact(self, artifact: ResolvedArtifact, rewrite_paths: bool = True) -> ResolvedArtifact:
        """
        Relocate one artifact

        Returns:
            The same artifact if nothing matched, otherwise a new artifact with
            rewritten entries in the original entry order

        Raises:
            PathCollision: If two entries end up at the same path with different content
            ArchiveError: If a class file is malformed
        """
        entries: Dict[str, bytes] = {}
        changed = 0

        for path, data in artifact.entries.items():
            new_path, new_data = self.relocate_entry(path, data, rewrite_paths)
            if new_path != path or new_data != data:
                changed += 1

            existing = entries.get(new_path)
            if existing is not None and existing != new_data:
                raise PathCollision(new_path, artifact.label, artifact.label)
            entries.setdefault(new_path, new_data)

        if not changed:
            logger.debug(f"  {artifact.label}: no namespace matched, unchanged")
            return artifact

        logger.debug(f"  {artifact.label}: rewrote {changed} of {len(artifact.entries)} entries")
        return replace(artifact, entries=entries)


def relocate(artifact: ResolvedArtifact, rules: Sequence[RelocationRule],
             resource_extensions: Sequence[str] = ()) -> ResolvedArtifact:
    """
    Relocate an artifact's namespaces, references and paths

    Args:
        artifact: Artifact to relocate
        rules: Relocation rules; applied longest source first
        resource_extensions: Extensions of text resources whose contents are rewritten

    Returns:
        Relocated artifact (the input itself when no rule matches)

    Raises:
        RelocationConflict: If two rules disagree on a namespace's target
    """
    return Relocator(rules, resource_extensions).relocate_artifact(artifact)


def rewrite_references(artifact: ResolvedArtifact, rules: Sequence[RelocationRule],
                       resource_extensions: Sequence[str] = ()) -> ResolvedArtifact:
    """Rewrite references to relocated namespaces but keep the artifact's own paths"""
    return Relocator(rules, resource_extensions).relocate_artifact(artifact, rewrite_paths=False)
