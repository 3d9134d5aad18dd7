# === NAVMAP v1 ===
# {
#   "module": "CloudPost.loader",
#   "purpose": "Streaming parser turning add/delete command XML into documents and delete requests",
#   "sections": [
#     {"id": "xmlevent", "name": "XmlEvent", "anchor": "class-xmlevent", "kind": "dataclass"},
#     {"id": "iter-xml-events", "name": "iter_xml_events", "anchor": "function-iter-xml-events", "kind": "function"},
#     {"id": "parse-commands", "name": "parse_commands", "anchor": "function-parse-commands", "kind": "function"},
#     {"id": "iter-commands", "name": "iter_commands", "anchor": "function-iter-commands", "kind": "function"},
#     {"id": "parse-bool", "name": "parse_bool", "anchor": "function-parse-bool", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Streaming parser for add/delete command files.

The parser works in two layers:

1. :func:`iter_xml_events` feeds a binary stream into
   :class:`xml.etree.ElementTree.XMLPullParser` chunk by chunk and re-emits it as
   a forward-only sequence of ``START``/``TEXT``/``END`` events. Completed
   elements are detached from the tree as soon as their trailing text has been
   emitted, so memory use does not grow with the file.
2. :func:`parse_commands` consumes those events and lazily yields
   :class:`~CloudPost.models.Document` and
   :class:`~CloudPost.models.DeleteRequest` units.

Grammar::

    <add>
      <doc boost="1.0">
        <field name="id" boost="2.0" null="false" update="set">text</field>
        <doc> ... nested, same shape ... </doc>
      </doc>
      <delete><id>...</id></delete>
    </add>

    <delete><id>...</id></delete>

Nested ``doc`` elements are handled with an explicit stack of frames, so deep
nesting cannot exhaust the interpreter stack.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from CloudPost.errors import MalformedInputError, UnsupportedElementError
from CloudPost.models import DeleteRequest, Document, ParsedUnit

__all__ = [
    "ADD",
    "DELETE",
    "DOC",
    "FIELD",
    "ID",
    "EventKind",
    "XmlEvent",
    "iter_xml_events",
    "parse_commands",
    "iter_commands",
    "parse_bool",
]

LOGGER = logging.getLogger(__name__)

ADD = "add"
DELETE = "delete"
DOC = "doc"
FIELD = "field"
ID = "id"

CHUNK_SIZE = 64 * 1024

_TRUE_VALUES = frozenset({"true", "on", "yes", "1"})
_FALSE_VALUES = frozenset({"false", "off", "no", "0"})


class EventKind(Enum):
    START = "start"
    END = "end"
    TEXT = "text"


@dataclass(frozen=True)
class XmlEvent:
    """One token of the command stream."""

    kind: EventKind
    name: str = ""
    attrs: Mapping[str, str] = field(default_factory=dict)
    text: str = ""


def _local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[-1]
    return tag


def iter_xml_events(
    stream: IO[bytes],
    *,
    source: Optional[str] = None,
    chunk_size: int = CHUNK_SIZE,
) -> Iterator[XmlEvent]:
    """Tokenize ``stream`` into start/text/end events in document order.

    Args:
        stream: Binary stream containing one XML document
        source: Name used in error messages
        chunk_size: Bytes read per ``feed`` call

    Raises:
        MalformedInputError: If the stream is not well-formed XML
    """
    parser = ET.XMLPullParser(events=("start", "end"))
    open_elements: List[ET.Element] = []
    # The element whose .text/.tail is complete once the next event arrives.
    pending: Optional[Tuple[ET.Element, str]] = None
    detach: Optional[Tuple[ET.Element, ET.Element]] = None

    try:
        while True:
            chunk = stream.read(chunk_size)
            if chunk:
                parser.feed(chunk)
            else:
                parser.close()

            for kind, elem in parser.read_events():
                if pending is not None:
                    owner, attr = pending
                    text = getattr(owner, attr)
                    if text:
                        yield XmlEvent(EventKind.TEXT, text=text)
                if detach is not None:
                    parent, child = detach
                    parent.remove(child)
                    detach = None

                name = _local_name(elem.tag)
                if kind == "start":
                    open_elements.append(elem)
                    pending = (elem, "text")
                    attrs = {_local_name(key): value for key, value in elem.attrib.items()}
                    yield XmlEvent(EventKind.START, name=name, attrs=attrs)
                else:
                    open_elements.pop()
                    pending = (elem, "tail")
                    if open_elements:
                        detach = (open_elements[-1], elem)
                    yield XmlEvent(EventKind.END, name=name)

            if not chunk:
                break
    except ET.ParseError as exc:
        raise MalformedInputError(f"Invalid XML: {exc}", source=source) from exc


def parse_bool(value: str, *, source: Optional[str] = None) -> bool:
    """Parse the conventional textual booleans (true/on/yes/1, false/off/no/0)."""
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise MalformedInputError(f"Invalid boolean value: {value!r}", source=source)


def _parse_boost(value: str, element: str, source: Optional[str]) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise MalformedInputError(
            f"XML element <{element}> has invalid boost: {value!r}",
            source=source,
            element=element,
        ) from exc


@dataclass
class _OpenField:
    name: str
    boost: float = 1.0
    is_null: bool = False
    update: Optional[str] = None


@dataclass
class _DocFrame:
    """Parse state of one ``doc`` element that has not been closed yet."""

    document: Document
    children: List[Document] = field(default_factory=list)
    updates: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    open_field: Optional[_OpenField] = None

    def begin_field(
        self, attrs: Mapping[str, str], source: Optional[str], log: logging.Logger
    ) -> None:
        name: Optional[str] = None
        boost = 1.0
        is_null = False
        update: Optional[str] = None
        for attr_name, attr_value in attrs.items():
            if attr_name == "name":
                name = attr_value
            elif attr_name == "boost":
                boost = _parse_boost(attr_value, FIELD, source)
            elif attr_name == "null":
                is_null = parse_bool(attr_value, source=source)
            elif attr_name == "update":
                update = attr_value
            else:
                log.warning(
                    "XML element <field> has invalid XML attr: %s",
                    attr_name,
                    extra={"source": source},
                )
        if name is None:
            raise MalformedInputError(
                "XML element <field> is missing the required 'name' attribute",
                source=source,
                element=FIELD,
            )
        self.open_field = _OpenField(name=name, boost=boost, is_null=is_null, update=update)

    def end_field(self, text: str) -> None:
        current = self.open_field
        if current is None:
            return
        self.open_field = None
        value = None if current.is_null else text

        if current.update is None:
            self.document.add_field(current.name, value, current.boost)
            return

        operations = self.updates.setdefault(current.name, {})
        if current.update not in operations:
            operations[current.update] = value
            return
        existing = operations[current.update]
        if isinstance(existing, list):
            existing.append(value)
        else:
            operations[current.update] = [existing, value]

    def close(self) -> Document:
        if self.children:
            self.document.add_child_documents(self.children)
            self.children = []
        # Atomic updates are applied last and replace same-named direct fields.
        for name, operations in self.updates.items():
            self.document.set_field(name, operations, 1.0)
        return self.document


def _new_document(
    attrs: Mapping[str, str], source: Optional[str], log: logging.Logger
) -> Document:
    document = Document()
    for attr_name, attr_value in attrs.items():
        if attr_name == "boost":
            document.boost = _parse_boost(attr_value, DOC, source)
        else:
            log.warning(
                "XML element <doc> has invalid XML attr: %s",
                attr_name,
                extra={"source": source},
            )
    return document


def _read_doc(
    events: Iterator[XmlEvent],
    start: XmlEvent,
    source: Optional[str],
    log: logging.Logger,
) -> Document:
    stack = [_DocFrame(_new_document(start.attrs, source, log))]
    text: List[str] = []

    for event in events:
        frame = stack[-1]
        if event.kind is EventKind.TEXT:
            text.append(event.text)
        elif event.kind is EventKind.START:
            text.clear()
            if event.name == DOC:
                stack.append(_DocFrame(_new_document(event.attrs, source, log)))
            elif event.name == FIELD:
                frame.begin_field(event.attrs, source, log)
            else:
                raise MalformedInputError(
                    f"XML element <doc> has invalid XML child element: {event.name}",
                    source=source,
                    element=event.name,
                )
        elif event.name == FIELD:
            frame.end_field("".join(text))
        elif event.name == DOC:
            document = frame.close()
            stack.pop()
            if not stack:
                return document
            stack[-1].children.append(document)

    raise MalformedInputError("Unexpected end of stream inside <doc>", source=source, element=DOC)


def _read_delete_ids(events: Iterator[XmlEvent], source: Optional[str]) -> DeleteRequest:
    ids: List[str] = []
    text: List[str] = []

    for event in events:
        if event.kind is EventKind.TEXT:
            text.append(event.text)
        elif event.kind is EventKind.START:
            if event.name != ID:
                raise MalformedInputError(
                    f"XML element <delete> has invalid XML child element: {event.name}",
                    source=source,
                    element=event.name,
                )
            text.clear()
        elif event.name == ID:
            ids.append("".join(text))
        elif event.name == DELETE:
            return DeleteRequest(ids)

    raise MalformedInputError(
        "Unexpected end of stream inside <delete>", source=source, element=DELETE
    )


def _parse_add(
    events: Iterator[XmlEvent], source: Optional[str], log: logging.Logger
) -> Iterator[ParsedUnit]:
    for event in events:
        if event.kind is EventKind.START:
            if event.name == DOC:
                yield _read_doc(events, event, source, log)
            elif event.name == DELETE:
                yield _read_delete_ids(events, source)
            else:
                raise UnsupportedElementError(event.name, source=source)
        elif event.kind is EventKind.END and event.name == ADD:
            return
    raise MalformedInputError("Unexpected end of stream inside <add>", source=source, element=ADD)


def parse_commands(
    events: Iterable[XmlEvent],
    *,
    source: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> Iterator[ParsedUnit]:
    """Lazily parse a command event stream into documents and delete requests.

    The stream must hold exactly one top-level ``add`` or ``delete`` element.
    The returned generator is single-use.

    Raises:
        UnsupportedElementError: Top-level (or ``add``-level) element other than
            ``add``/``delete``/``doc``
        MalformedInputError: Invalid child element, attribute value, or
            truncated stream
    """
    log = logger or LOGGER
    iterator = iter(events)

    for event in iterator:
        if event.kind is EventKind.START:
            break
    else:
        return

    if event.name == ADD:
        yield from _parse_add(iterator, source, log)
    elif event.name == DELETE:
        yield _read_delete_ids(iterator, source)
    else:
        raise UnsupportedElementError(event.name, source=source)


def iter_commands(
    stream: IO[bytes],
    *,
    source: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> Iterator[ParsedUnit]:
    """Parse a binary command stream; shorthand for the two layers above."""
    return parse_commands(iter_xml_events(stream, source=source), source=source, logger=logger)
