import struct
import sys
import zipfile
from pathlib import Path

# Add core/backend to sys.path so we can import minecraft_plugin_shader
SRC_PATH = Path(__file__).resolve().parent.parent
if SRC_PATH.as_posix() not in sys.path:
    sys.path.insert(0, SRC_PATH.as_posix())

from minecraft_plugin_shader.models import Coordinate, ResolvedArtifact, Scope  # noqa: E402


class ClassBuilder:
    """Builds a minimal but well-formed class file constant pool"""

    def __init__(self):
        self.parts = []
        self.next_index = 1

    def _add(self, payload: bytes, slots: int = 1) -> int:
        index = self.next_index
        self.parts.append(payload)
        self.next_index += slots
        return index

    def utf8(self, text: str) -> int:
        data = text.encode("utf-8")
        return self._add(struct.pack(">BH", 1, len(data)) + data)

    def class_ref(self, name: str) -> int:
        return self._add(struct.pack(">BH", 7, self.utf8(name)))

    def string(self, text: str) -> int:
        return self._add(struct.pack(">BH", 8, self.utf8(text)))

    def long(self, value: int) -> int:
        return self._add(struct.pack(">Bq", 5, value), slots=2)

    def build(self, this_index: int, super_index: int) -> bytes:
        header = struct.pack(">IHHH", 0xCAFEBABE, 0, 52, self.next_index)
        body = struct.pack(">HHHHHHH", 0x0021, this_index, super_index, 0, 0, 0, 0)
        return header + b"".join(self.parts) + body


def make_class(name: str, super_name: str = "java/lang/Object", references=(), strings=(),
               with_long: bool = True) -> bytes:
    """
    Class file for internal name `name`

    `references` become raw Utf8 constants (descriptors, signatures),
    `strings` become String constants.
    """
    builder = ClassBuilder()
    this_index = builder.class_ref(name)
    super_index = builder.class_ref(super_name)
    if with_long:
        builder.long(42)
    for reference in references:
        builder.utf8(reference)
    for text in strings:
        builder.string(text)
    return builder.build(this_index, super_index)


def make_jar(path: Path, entries: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


def make_artifact(coordinate: str, entries: dict, scope: Scope = Scope.BUNDLED, **kwargs) -> ResolvedArtifact:
    return ResolvedArtifact(
        coordinate=Coordinate.parse(coordinate),
        scope=scope,
        entries=dict(entries),
        **kwargs,
    )


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b""):
        self.status_code = status_code
        self.content = content


class FakeSession:
    """
    Stand-in for requests.Session

    `routes` maps URL -> response, exception, or a list of those consumed in
    order (the last one repeats). Unknown URLs answer 404 to GET and
    `put_default` (201) to PUT.
    """

    def __init__(self, routes=None, put_default=None):
        self.routes = dict(routes or {})
        self.put_default = put_default or FakeResponse(201)
        self.headers = {}
        self.auth = None
        self.calls = []
        self.uploads = {}

    def _answer(self, method: str, url: str, default):
        self.calls.append((method, url))
        route = self.routes.get(url, default)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, BaseException):
            raise route
        return route

    def get(self, url, timeout=None, **kwargs):
        return self._answer("GET", url, FakeResponse(404))

    def put(self, url, data=None, timeout=None, **kwargs):
        response = self._answer("PUT", url, self.put_default)
        if response.status_code < 400:
            self.uploads[url] = data
        return response

