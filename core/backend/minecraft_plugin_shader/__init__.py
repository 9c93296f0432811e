"""
Minecraft Plugin Shader

Dependency relocation and shading for Minecraft (Paper) plugins: bundles
declared libraries into one plugin JAR, relocating their packages under a
private prefix so plugins sharing a server never clash on library versions.

Version: 1.0.0
"""

__version__ = "1.0.0"
__description__ = "Dependency relocation and shading for Minecraft plugins"

from .builder import ShadowPluginBuilder
from .classifier import classify
from .relocation import relocate
from .assembler import assemble

__all__ = [
    "ShadowPluginBuilder",
    "classify",
    "relocate",
    "assemble",
]
