"""
Scope Classifier

Partitions dependency declarations into provided, bundled and relocated sets.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from .errors import ScopeConflict
from .models import DependencyDeclaration, Scope
from .versions import MavenVersion

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    """Disjoint partition of the declarations, each in declaration order"""

    provided: List[DependencyDeclaration] = field(default_factory=list)
    plain: List[DependencyDeclaration] = field(default_factory=list)
    relocate: List[DependencyDeclaration] = field(default_factory=list)

    def bundled(self) -> List[DependencyDeclaration]:
        return self.plain + self.relocate

    def __len__(self) -> int:
        return len(self.provided) + len(self.plain) + len(self.relocate)


def classify(declarations: List[DependencyDeclaration]) -> Classification:
    """
    Split declarations by scope

    Args:
        declarations: Declarations in author order

    Returns:
        Classification with one entry per distinct coordinate

    Raises:
        ScopeConflict: If a coordinate is declared under two different scopes
    """
    chosen: Dict[str, DependencyDeclaration] = {}
    order: List[str] = []

    for declaration in declarations:
        key = declaration.coordinate.key
        existing = chosen.get(key)

        if existing is None:
            chosen[key] = declaration
            order.append(key)
            continue

        if existing.scope != declaration.scope:
            raise ScopeConflict(key, existing.scope.value, declaration.scope.value)

        if existing.coordinate.version != declaration.coordinate.version:
            newer = MavenVersion(declaration.coordinate.version) > MavenVersion(existing.coordinate.version)
            winner = declaration if newer else existing
            logger.warning(
                f"⚠ {key} declared twice ({existing.coordinate.version}, "
                f"{declaration.coordinate.version}), using {winner.coordinate.version}"
            )
            chosen[key] = winner

    result = Classification()
    for key in order:
        declaration = chosen[key]
        if declaration.scope == Scope.PROVIDED:
            result.provided.append(declaration)
        elif declaration.scope == Scope.BUNDLED:
            result.plain.append(declaration)
        else:
            result.relocate.append(declaration)

    logger.debug(
        f"Classified {len(result)} dependencies: {len(result.provided)} provided, "
        f"{len(result.plain)} bundled, {len(result.relocate)} relocated"
    )
    return result
