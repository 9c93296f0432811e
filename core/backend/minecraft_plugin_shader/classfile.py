"""
Class File Constant Pool

Minimal reader/writer for the JVM class-file constant pool. Only CONSTANT_Utf8
entries are exposed for rewriting; everything after the pool (access flags,
fields, methods, attributes) only refers to pool indices and is copied through
untouched, so resizing a Utf8 entry never invalidates the rest of the file.
"""

import struct
from typing import Callable, List, Optional, Tuple

from .errors import ArchiveError

MAGIC = 0xCAFEBABE

CONSTANT_UTF8 = 1
CONSTANT_LONG = 5
CONSTANT_DOUBLE = 6

# Payload size (bytes after the tag) of every fixed-size constant kind
FIXED_SIZES = {
    3: 4,   # Integer
    4: 4,   # Float
    5: 8,   # Long
    6: 8,   # Double
    7: 2,   # Class
    8: 2,   # String
    9: 4,   # Fieldref
    10: 4,  # Methodref
    11: 4,  # InterfaceMethodref
    12: 4,  # NameAndType
    15: 3,  # MethodHandle
    16: 2,  # MethodType
    17: 4,  # Dynamic
    18: 4,  # InvokeDynamic
    19: 2,  # Module
    20: 2,  # Package
}


class ClassFile:
    """A class file split into header, constant pool and untouched remainder"""

    def __init__(self, header: bytes, constants: List[Optional[Tuple[int, bytes]]], body: bytes):
        self.header = header
        # Index 0 and the slot after each Long/Double are None
        self.constants = constants
        self.body = body

    @classmethod
    def parse(cls, data: bytes, path: str = "<class>") -> "ClassFile":
        if len(data) < 10:
            raise ArchiveError(path, "truncated class file")

        magic, _minor, _major, count = struct.unpack_from(">IHHH", data, 0)
        if magic != MAGIC:
            raise ArchiveError(path, f"bad class file magic 0x{magic:08X}")

        constants: List[Optional[Tuple[int, bytes]]] = [None]
        offset = 10
        index = 1
        try:
            while index < count:
                tag = data[offset]
                if tag == CONSTANT_UTF8:
                    (length,) = struct.unpack_from(">H", data, offset + 1)
                    start = offset + 3
                    if start + length > len(data):
                        raise ArchiveError(path, f"truncated Utf8 constant #{index}")
                    constants.append((tag, data[start:start + length]))
                    offset = start + length
                elif tag in FIXED_SIZES:
                    size = FIXED_SIZES[tag]
                    constants.append((tag, data[offset + 1:offset + 1 + size]))
                    offset += 1 + size
                else:
                    raise ArchiveError(path, f"unknown constant pool tag {tag} at #{index}")

                index += 1
                if tag in (CONSTANT_LONG, CONSTANT_DOUBLE):
                    constants.append(None)
                    index += 1
        except (IndexError, struct.error):
            raise ArchiveError(path, "truncated constant pool")

        if offset > len(data):
            raise ArchiveError(path, "truncated constant pool")

        return cls(data[:8], constants, data[offset:])

    def utf8_values(self) -> List[bytes]:
        return [entry[1] for entry in self.constants if entry and entry[0] == CONSTANT_UTF8]

    def rewrite_utf8(self, rewrite: Callable[[bytes], bytes]) -> bool:
        """
        Apply `rewrite` to every Utf8 constant

        Returns:
            True if any constant changed
        """
        changed = False
        for index, entry in enumerate(self.constants):
            if not entry or entry[0] != CONSTANT_UTF8:
                continue
            updated = rewrite(entry[1])
            if updated != entry[1]:
                if len(updated) > 0xFFFF:
                    raise ValueError(f"Utf8 constant #{index} exceeds 65535 bytes after rewrite")
                self.constants[index] = (CONSTANT_UTF8, updated)
                changed = True
        return changed

    def to_bytes(self) -> bytes:
        parts = [self.header, struct.pack(">H", len(self.constants))]
        for entry in self.constants[1:]:
            if entry is None:
                continue
            tag, payload = entry
            if tag == CONSTANT_UTF8:
                parts.append(struct.pack(">BH", tag, len(payload)))
            else:
                parts.append(struct.pack(">B", tag))
            parts.append(payload)
        parts.append(self.body)
        return b"".join(parts)


def rewrite_class(data: bytes, rewrite: Callable[[bytes], bytes], path: str = "<class>") -> bytes:
    """Rewrite a class file's Utf8 constants, returning the original bytes if nothing matched"""
    class_file = ClassFile.parse(data, path)
    try:
        changed = class_file.rewrite_utf8(rewrite)
    except ValueError as e:
        raise ArchiveError(path, str(e))
    if not changed:
        return data
    return class_file.to_bytes()
