"""Message content: wire shapes and the internal tagged union.

On the wire a message body is either a plain string or an ordered list of
``text`` / ``image_url`` parts (the OpenAI chat format).  Inside the engine
every body is converted once into :class:`TextContent` or
:class:`PartsContent`; each variant owns the *single* signature function used
for comparisons so alignment and diffing never compare raw payloads.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Annotated
from typing import Any
from typing import Dict
from typing import List
from typing import Literal
from typing import Optional
from typing import Tuple
from typing import Union

from pydantic import BaseModel
from pydantic import Field
from pydantic import TypeAdapter
from pydantic import ValidationError


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    url: str
    detail: Optional[str] = None


class ImagePart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: Union[str, ImageURL]


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]

# What clients may send as ``content``.
WireContent = Union[str, List[ContentPart]]

_parts_adapter = TypeAdapter(List[ContentPart])

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Collapse whitespace runs to one space and trim both ends."""

    return _WHITESPACE_RE.sub(" ", text or "").strip()


def _canonical_part(part: Union[TextPart, ImagePart]) -> Dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    image = part.image_url
    if isinstance(image, str):
        return {"type": "image_url", "image_url": {"url": image}}
    payload: Dict[str, Any] = {"url": image.url}
    if image.detail is not None:
        payload["detail"] = image.detail
    return {"type": "image_url", "image_url": payload}


# ---------------------------------------------------------------------------
# Internal tagged union
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextContent:
    text: str

    def signature(self) -> Tuple[str, str]:
        return ("text", normalize_text(self.text))

    def plain_text(self) -> str:
        return self.text

    def parts_json(self) -> Optional[List[Dict[str, Any]]]:
        return None

    def to_wire(self) -> WireContent:
        return self.text


@dataclass(frozen=True)
class PartsContent:
    """Mixed content; ``parts`` hold canonical part dicts in display order."""

    parts: Tuple[Dict[str, Any], ...]

    def signature(self) -> Tuple[str, str]:
        normalized = []
        for part in self.parts:
            if part["type"] == "text":
                normalized.append({"type": "text", "text": normalize_text(part["text"])})
            else:
                normalized.append(part)
        return ("parts", json.dumps(normalized, sort_keys=True, separators=(",", ":")))

    def plain_text(self) -> str:
        # Text projection stored in the ``content`` column.
        return "\n".join(part["text"] for part in self.parts if part["type"] == "text")

    def parts_json(self) -> Optional[List[Dict[str, Any]]]:
        return [dict(part) for part in self.parts]

    def to_wire(self) -> WireContent:
        return [dict(part) for part in self.parts]


Content = Union[TextContent, PartsContent]


def _parts_from(raw: List[Any]) -> PartsContent:
    items = [item.model_dump(exclude_none=True) if isinstance(item, BaseModel) else item for item in raw]
    parts = _parts_adapter.validate_python(items)
    return PartsContent(parts=tuple(_canonical_part(part) for part in parts))


def to_content(raw: Any) -> Content:
    """Convert a wire body into :data:`Content`.

    A string that parses as a JSON list of parts is treated as parts content;
    any other string is plain text.  Lists are validated as parts and raise
    ``ValueError`` when malformed.
    """

    if isinstance(raw, (TextContent, PartsContent)):
        return raw
    if raw is None:
        return TextContent(text="")
    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except ValueError:
                return TextContent(text=raw)
            if isinstance(decoded, list) and decoded:
                try:
                    return _parts_from(decoded)
                except ValidationError:
                    return TextContent(text=raw)
        return TextContent(text=raw)
    if isinstance(raw, (list, tuple)):
        if not raw:
            return TextContent(text="")
        return _parts_from(list(raw))
    raise ValueError(f"Unsupported message content type: {type(raw).__name__}")


def from_stored(content: Optional[str], content_json: Optional[List[Dict[str, Any]]]) -> Content:
    """Rebuild :data:`Content` from the two persisted columns."""

    if content_json:
        return PartsContent(parts=tuple(dict(part) for part in content_json))
    return TextContent(text=content or "")


__all__ = [
    "TextPart",
    "ImageURL",
    "ImagePart",
    "ContentPart",
    "WireContent",
    "TextContent",
    "PartsContent",
    "Content",
    "normalize_text",
    "to_content",
    "from_stored",
]
