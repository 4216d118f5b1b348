from __future__ import annotations

from dataclasses import dataclass
import re
import secrets
import string

from firestore_lite.errors import InvalidPathError


AUTO_ID_LENGTH = 20
AUTO_ID_ALPHABET = string.ascii_letters + string.digits
DOCUMENT_ID_FIELD = "__name__"

_SIMPLE_FIELD_NAME = re.compile(r"^[_a-zA-Z][_a-zA-Z0-9]*$")


def auto_id() -> str:
    return "".join(secrets.choice(AUTO_ID_ALPHABET) for _ in range(AUTO_ID_LENGTH))


def _validate_segment(segment: object, *, raw: object) -> str:
    if not isinstance(segment, str):
        raise InvalidPathError(f"Path segments must be strings: {raw!r}")
    if not segment:
        raise InvalidPathError(f"Path must not contain empty segments: {raw!r}")
    if "/" in segment:
        raise InvalidPathError(f"Path segment must not contain '/': {segment!r}")
    return segment


@dataclass(frozen=True)
class ResourcePath:
    """Slash separated location of a collection or document."""

    segments: tuple[str, ...]

    def __post_init__(self) -> None:
        segments = tuple(self.segments)
        if not segments:
            raise InvalidPathError("Path must have at least one segment.")
        for segment in segments:
            _validate_segment(segment, raw="/".join(map(str, segments)))
        object.__setattr__(self, "segments", segments)

    @classmethod
    def from_string(cls, path: str) -> "ResourcePath":
        if not isinstance(path, str) or not path:
            raise InvalidPathError(f"Path must be a non-empty string: {path!r}")
        # Leading and trailing slashes are tolerated; inner "//" is not.
        stripped = path.strip("/")
        if not stripped:
            raise InvalidPathError(f"Path must be a non-empty string: {path!r}")
        parts = stripped.split("/")
        for part in parts:
            _validate_segment(part, raw=path)
        return cls(tuple(parts))

    @property
    def id(self) -> str:
        return self.segments[-1]

    @property
    def is_document(self) -> bool:
        return len(self.segments) % 2 == 0

    @property
    def is_collection(self) -> bool:
        return len(self.segments) % 2 == 1

    @property
    def parent(self) -> "ResourcePath | None":
        if len(self.segments) == 1:
            return None
        return ResourcePath(self.segments[:-1])

    def child(self, *segments: str) -> "ResourcePath":
        for segment in segments:
            _validate_segment(segment, raw=segments)
        return ResourcePath(self.segments + tuple(segments))

    def __str__(self) -> str:
        return "/".join(self.segments)


def _quote_field(segment: str) -> str:
    if _SIMPLE_FIELD_NAME.match(segment):
        return segment
    escaped = segment.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


class FieldPath:
    """Address of a (possibly nested) field inside a document."""

    __slots__ = ("_segments",)

    def __init__(self, *segments: str) -> None:
        if not segments:
            raise InvalidPathError("Field path must have at least one segment.")
        for segment in segments:
            if not isinstance(segment, str) or not segment:
                raise InvalidPathError(f"Invalid field path segment: {segment!r}")
        self._segments = tuple(segments)

    @classmethod
    def from_dotted(cls, path: "str | FieldPath") -> "FieldPath":
        if isinstance(path, FieldPath):
            return path
        if not isinstance(path, str) or not path:
            raise InvalidPathError(f"Field path must be a non-empty string: {path!r}")
        parts = path.split(".")
        if any(not part for part in parts):
            raise InvalidPathError(f"Field path must not contain empty segments: {path!r}")
        return cls(*parts)

    @classmethod
    def document_id(cls) -> "FieldPath":
        return cls(DOCUMENT_ID_FIELD)

    @property
    def segments(self) -> tuple[str, ...]:
        return self._segments

    @property
    def parent(self) -> "FieldPath | None":
        if len(self._segments) == 1:
            return None
        return FieldPath(*self._segments[:-1])

    def child(self, segment: str) -> "FieldPath":
        return FieldPath(*self._segments, segment)

    def is_prefix_of(self, other: "FieldPath") -> bool:
        return other._segments[: len(self._segments)] == self._segments

    def to_api_repr(self) -> str:
        return ".".join(_quote_field(segment) for segment in self._segments)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldPath):
            return NotImplemented
        return self._segments == other._segments

    def __lt__(self, other: "FieldPath") -> bool:
        return self._segments < other._segments

    def __hash__(self) -> int:
        return hash(self._segments)

    def __repr__(self) -> str:
        return f"FieldPath{self._segments!r}"

    def __str__(self) -> str:
        return self.to_api_repr()
