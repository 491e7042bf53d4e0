"""Streaming XML document builder with scoped element handles."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from substack_wxr.errors import StructuralError
from substack_wxr.writer import Writer

_INVALID_XML_CHARS_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.:-]*$")

_TEXT_ESCAPE_MAP = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
}

_ATTRIBUTE_ESCAPE_MAP = {
    **_TEXT_ESCAPE_MAP,
    '"': "&quot;",
    "\t": "&#9;",
    "\n": "&#10;",
    "\r": "&#13;",
}

CDATA_START = "<![CDATA["
CDATA_END = "]]>"


class EscapeMode(str, Enum):
    TEXT = "text"
    CDATA = "cdata"


def strip_invalid_xml_chars(value: str) -> str:
    """Remove characters that XML 1.0 does not allow anywhere in a document.

    Lone surrogates are removed too: they cannot be encoded as UTF-8.
    """

    return _INVALID_XML_CHARS_RE.sub("", value)


def escape_text(value: str) -> str:
    """Escape character data for use between tags."""

    cleaned = strip_invalid_xml_chars(value)
    return "".join(_TEXT_ESCAPE_MAP.get(char, char) for char in cleaned)


def escape_attribute(value: str) -> str:
    """Escape a value for use inside a double-quoted attribute."""

    cleaned = strip_invalid_xml_chars(value)
    return "".join(_ATTRIBUTE_ESCAPE_MAP.get(char, char) for char in cleaned)


def cdata_section(value: str) -> str:
    """Wrap value in CDATA, splitting any `]]>` so the section stays well-formed.

    `a]]>b` becomes `<![CDATA[a]]]]><![CDATA[>b]]>`: the first section ends
    with `]]`, the second starts with `>`, and a parser joins them back into
    the original text.
    """

    cleaned = strip_invalid_xml_chars(value)
    body = cleaned.replace(CDATA_END, f"]]{CDATA_END}{CDATA_START}>")
    return f"{CDATA_START}{body}{CDATA_END}"


@dataclass
class _Frame:
    name: str
    has_children: bool = False


class DocumentBuilder:
    """Build nested XML on top of a Writer.

    Start tags are placed on their own tab-indented line. An end tag gets its
    own line only when its element contained child elements, so leaf
    elements stay on one line.

    `open_elements` names elements already opened in the writer's output by an
    earlier session; new content is appended inside the innermost one.
    """

    def __init__(self, writer: Writer, *, open_elements: tuple[str, ...] = ()) -> None:
        self._writer = writer
        self._stack: list[_Frame] = [_Frame(name, has_children=True) for name in open_elements]
        self._finalized = False

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def open_elements(self) -> tuple[str, ...]:
        return tuple(frame.name for frame in self._stack)

    def declaration(self, encoding: str = "UTF-8") -> None:
        if self._stack or self._finalized:
            raise StructuralError("XML declaration must come before any element")
        self._writer.write(f'<?xml version="1.0" encoding="{encoding}"?>')

    def start(self, name: str, attributes: Mapping[str, str] | None = None) -> None:
        self._ensure_writable()
        if not _NAME_RE.match(name):
            raise StructuralError(f"Invalid element name: {name!r}")

        if self._stack:
            self._stack[-1].has_children = True

        rendered_attributes = "".join(
            f' {key}="{escape_attribute(value)}"' for key, value in (attributes or {}).items()
        )
        self._writer.write(f"\n{self._indent()}<{name}{rendered_attributes}>")
        self._stack.append(_Frame(name))

    def element(self, name: str, attributes: Mapping[str, str] | None = None) -> "ElementHandle":
        """Open an element and return a handle that closes it on scope exit."""

        self.start(name, attributes)
        return ElementHandle(self, len(self._stack))

    def leaf(
        self,
        name: str,
        value: str | None = None,
        *,
        cdata: bool = False,
        attributes: Mapping[str, str] | None = None,
    ) -> None:
        """Write a complete element holding only text."""

        self.start(name, attributes)
        if value is not None and (value or cdata):
            self.text(value, EscapeMode.CDATA if cdata else EscapeMode.TEXT)
        self.close_element(name)

    def text(self, value: str, escape_mode: EscapeMode = EscapeMode.TEXT) -> None:
        self._ensure_writable()
        if not self._stack:
            raise StructuralError("Text must be written inside an element")

        if escape_mode == EscapeMode.CDATA:
            self._writer.write(cdata_section(value))
        else:
            self._writer.write(escape_text(value))

    def cdata(self, value: str) -> None:
        self.text(value, EscapeMode.CDATA)

    def close_element(self, name: str | None = None) -> None:
        self._ensure_writable()
        if not self._stack:
            raise StructuralError("No open element to close")

        frame = self._stack[-1]
        if name is not None and frame.name != name:
            raise StructuralError(f"Cannot close <{name}>: innermost open element is <{frame.name}>")

        self._stack.pop()
        if frame.has_children:
            self._writer.write(f"\n{self._indent()}</{frame.name}>")
        else:
            self._writer.write(f"</{frame.name}>")

    def finalize(self) -> None:
        if self._stack:
            names = ", ".join(self.open_elements)
            raise StructuralError(f"Cannot finalize document with open elements: {names}")
        if not self._finalized:
            self._writer.write("\n")
            self._finalized = True

    def _indent(self) -> str:
        return "\t" * len(self._stack)

    def _ensure_writable(self) -> None:
        if self._finalized:
            raise StructuralError("Document is already finalized")


class ElementHandle:
    """Scoped handle for one open element."""

    def __init__(self, builder: DocumentBuilder, depth: int) -> None:
        self._builder = builder
        self._depth = depth
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def element(self, name: str, attributes: Mapping[str, str] | None = None) -> "ElementHandle":
        self._ensure_innermost()
        return self._builder.element(name, attributes)

    def leaf(
        self,
        name: str,
        value: str | None = None,
        *,
        cdata: bool = False,
        attributes: Mapping[str, str] | None = None,
    ) -> "ElementHandle":
        self._ensure_innermost()
        self._builder.leaf(name, value, cdata=cdata, attributes=attributes)
        return self

    def text(self, value: str, escape_mode: EscapeMode = EscapeMode.TEXT) -> "ElementHandle":
        self._ensure_innermost()
        self._builder.text(value, escape_mode)
        return self

    def cdata(self, value: str) -> "ElementHandle":
        return self.text(value, EscapeMode.CDATA)

    def close(self) -> None:
        if self._closed:
            return
        self._ensure_innermost()
        self._builder.close_element()
        self._closed = True

    def __enter__(self) -> "ElementHandle":
        return self

    def __exit__(self, exc_type: object, *exc_info: object) -> None:
        # Leave the stack untouched while an exception is propagating so the
        # original error is what the caller sees.
        if exc_type is None:
            self.close()

    def _ensure_innermost(self) -> None:
        if self._closed:
            raise StructuralError("Element handle is already closed")
        if self._builder.depth != self._depth:
            raise StructuralError("Element handle is not the innermost open element")
