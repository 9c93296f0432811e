"""
Build Errors

Exception hierarchy raised by the shading pipeline. Every error carries the
coordinate, rule or path involved so a failed build can be diagnosed from the
log alone.
"""

from typing import List, Optional


class ShaderError(Exception):
    """Base class for all build failures"""


class ConfigError(ShaderError):
    """Build description failed validation"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid build description:\n" + "\n".join(f"  - {e}" for e in self.errors))


class ScopeConflict(ShaderError):
    """Same coordinate declared under two incompatible scopes"""

    def __init__(self, coordinate: str, first_scope: str, second_scope: str):
        self.coordinate = coordinate
        self.first_scope = first_scope
        self.second_scope = second_scope
        super().__init__(
            f"{coordinate} is declared both as '{first_scope}' and as '{second_scope}'"
        )


class ResolutionError(ShaderError):
    """Coordinate could not be resolved"""

    def __init__(self, coordinate: str, reason: str, transient: bool = False):
        self.coordinate = coordinate
        self.reason = reason
        self.transient = transient
        super().__init__(f"Failed to resolve {coordinate}: {reason}")


class RelocationConflict(ShaderError):
    """Two relocation rules map the same namespace to different targets"""

    def __init__(self, source: str, first, second):
        self.source = source
        self.first = first
        self.second = second
        super().__init__(
            f"Namespace '{source}' is relocated to '{first.target}' by {first.origin or '<config>'} "
            f"and to '{second.target}' by {second.origin or '<config>'}"
        )


class PathCollision(ShaderError):
    """
    Two inputs contribute the same output path

    Raised only when the contents differ (fatal). Content-identical duplicates
    are recorded on the output artifact as non-fatal instances instead.
    """

    def __init__(self, path: str, first: str, second: str, fatal: bool = True):
        self.path = path
        self.first = first
        self.second = second
        self.fatal = fatal
        kind = "conflicting" if fatal else "duplicate"
        super().__init__(f"{kind} entry '{path}' from {first} and {second}")


class PublishError(ShaderError):
    """Upload to the artifact repository failed"""

    def __init__(self, coordinate: Optional[str], reason: str, transient: bool = False):
        self.coordinate = coordinate
        self.reason = reason
        self.transient = transient
        target = coordinate or "artifact"
        super().__init__(f"Failed to publish {target}: {reason}")


class ArchiveError(ShaderError):
    """Archive or class file could not be read"""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
