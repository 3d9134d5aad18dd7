# === NAVMAP v1 ===
# {
#   "module": "CloudPost.models",
#   "purpose": "Documents, delete requests, submission units and job results",
#   "sections": [
#     {"id": "solrfield", "name": "SolrField", "anchor": "#class-solrfield", "kind": "dataclass"},
#     {"id": "document", "name": "Document", "anchor": "#class-document", "kind": "class"},
#     {"id": "deleterequest", "name": "DeleteRequest", "anchor": "#class-deleterequest", "kind": "dataclass"},
#     {"id": "submissionunit", "name": "SubmissionUnit", "anchor": "#class-submissionunit", "kind": "dataclass"},
#     {"id": "jobresult", "name": "JobResult", "anchor": "#class-jobresult", "kind": "dataclass"}
#   ]
# }
# === /NAVMAP ===

"""Data model shared by the parser, batch assembler, dispatcher and scheduler.

A :class:`Document` keeps its fields in encounter order. A field value is one of:

- a scalar string,
- ``None`` (the null marker produced by ``null="true"``),
- a list of values (the same plain field name occurred more than once),
- an atomic-update descriptor ``{operator: value | [values]}``.

Documents and delete requests live only until the :class:`SubmissionUnit` that
carries them has been dispatched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

from CloudPost.errors import ErrorKind

__all__ = [
    "FieldValue",
    "SolrField",
    "Document",
    "DeleteRequest",
    "ParsedUnit",
    "SubmissionUnit",
    "JobResult",
]

FieldValue = Union[None, str, List[Any], Dict[str, Any]]


@dataclass
class SolrField:
    """A named field value and its index-time boost."""

    name: str
    value: FieldValue
    boost: float = 1.0

    def add_value(self, value: FieldValue, boost: float = 1.0) -> None:
        """Append ``value``, turning the field into a multi-value list."""
        if isinstance(self.value, list):
            self.value.append(value)
        else:
            self.value = [self.value, value]
        self.boost *= boost

    @property
    def is_atomic_update(self) -> bool:
        return isinstance(self.value, dict)


class Document:
    """Ordered field container with an optional boost and child documents."""

    def __init__(self, boost: float = 1.0) -> None:
        self.boost = boost
        self._fields: Dict[str, SolrField] = {}
        self.children: List[Document] = []

    def add_field(self, name: str, value: FieldValue, boost: float = 1.0) -> None:
        """Add a value, accumulating into a multi-value list if ``name`` repeats."""
        existing = self._fields.get(name)
        if existing is None:
            self._fields[name] = SolrField(name, value, boost)
        else:
            existing.add_value(value, boost)

    def set_field(self, name: str, value: FieldValue, boost: float = 1.0) -> None:
        """Replace any previous value stored under ``name``."""
        self._fields[name] = SolrField(name, value, boost)

    def add_child_documents(self, children: List["Document"]) -> None:
        self.children.extend(children)

    def get_field(self, name: str) -> Optional[SolrField]:
        return self._fields.get(name)

    def get(self, name: str, default: Any = None) -> Any:
        entry = self._fields.get(name)
        return default if entry is None else entry.value

    def __getitem__(self, name: str) -> FieldValue:
        return self._fields[name].value

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[SolrField]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    @property
    def field_names(self) -> List[str]:
        return list(self._fields)

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping of field values, with children under ``_childDocuments_``."""
        payload: Dict[str, Any] = {f.name: f.value for f in self._fields.values()}
        if self.children:
            payload["_childDocuments_"] = [child.to_dict() for child in self.children]
        return payload

    def __repr__(self) -> str:
        return f"Document(boost={self.boost}, fields={self.to_dict()!r})"


@dataclass
class DeleteRequest:
    """Ordered identifiers to delete. An empty request is a no-op."""

    ids: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ids)


ParsedUnit = Union[Document, DeleteRequest]


@dataclass
class SubmissionUnit:
    """One network request worth of documents and delete identifiers.

    Attributes:
        documents: Documents in file order
        delete_request: Identifiers to delete, in file order
        commit_within_ms: Commit-within hint set by the dispatcher before sending
    """

    documents: List[Document] = field(default_factory=list)
    delete_request: DeleteRequest = field(default_factory=DeleteRequest)
    commit_within_ms: Optional[int] = None

    @property
    def delete_ids(self) -> List[str]:
        return self.delete_request.ids

    @property
    def operation_count(self) -> int:
        return len(self.documents) + len(self.delete_request.ids)

    @property
    def is_empty(self) -> bool:
        return self.operation_count == 0


@dataclass(frozen=True)
class JobResult:
    """Outcome of running one source file through the pipeline.

    Attributes:
        source: File identifier (name of the source)
        posted: Operations (documents + delete ids) accepted by the store
        success: Whether the whole file was posted
        error: Terminal exception when ``success`` is false
        error_kind: Classified failure kind
        duration_s: Wall-clock seconds spent in the job
    """

    source: str
    posted: int
    success: bool
    error: Optional[BaseException] = None
    error_kind: Optional[ErrorKind] = None
    duration_s: float = 0.0

    def is_success(self) -> bool:
        return self.success
