"""
HTTPX client for Solr-compatible XML update endpoints.

Architecture:
1. render_update_xml(unit) → one <update> message per SubmissionUnit
2. SolrUpdateClient.submit(unit) POSTs it with the commitWithin hint
3. commit()/optimize() run once after all files are posted

The underlying httpx.Client is thread-safe, so one SolrUpdateClient is shared by
every worker of a run. Non-2xx responses raise httpx.HTTPStatusError, which the
dispatcher treats as a non-transient rejection.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, Optional

import httpx

from CloudPost.config.models import StoreConfig
from CloudPost.models import Document, FieldValue, SubmissionUnit

__all__ = ["render_update_xml", "SolrUpdateClient"]

logger = logging.getLogger(__name__)

XML_CONTENT_TYPE = "text/xml; charset=utf-8"


def _append_field(
    parent: ET.Element,
    name: str,
    value: Any,
    *,
    boost: float = 1.0,
    update: Optional[str] = None,
) -> None:
    element = ET.SubElement(parent, "field", {"name": name})
    if update is not None:
        element.set("update", update)
    if boost != 1.0:
        element.set("boost", repr(boost))
    if value is None:
        element.set("null", "true")
    else:
        element.text = str(value)


def _append_values(parent: ET.Element, name: str, value: FieldValue, boost: float) -> None:
    if isinstance(value, dict):
        for operation, operand in value.items():
            operands = operand if isinstance(operand, list) else [operand]
            for item in operands:
                _append_field(parent, name, item, update=operation)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            # Field boost applies once per field, carried on the first value.
            _append_field(parent, name, item, boost=boost if index == 0 else 1.0)
    else:
        _append_field(parent, name, value, boost=boost)


def _append_document(parent: ET.Element, document: Document) -> None:
    element = ET.SubElement(parent, "doc")
    if document.boost != 1.0:
        element.set("boost", repr(document.boost))
    for solr_field in document:
        _append_values(element, solr_field.name, solr_field.value, solr_field.boost)
    for child in document.children:
        _append_document(element, child)


def render_update_xml(unit: SubmissionUnit) -> bytes:
    """Serialize a submission unit into a single XML update message."""
    root = ET.Element("update")
    if unit.documents:
        add = ET.SubElement(root, "add")
        if unit.commit_within_ms is not None:
            add.set("commitWithin", str(unit.commit_within_ms))
        for document in unit.documents:
            _append_document(add, document)
    if unit.delete_ids:
        delete = ET.SubElement(root, "delete")
        if unit.commit_within_ms is not None:
            delete.set("commitWithin", str(unit.commit_within_ms))
        for delete_id in unit.delete_ids:
            ET.SubElement(delete, "id").text = delete_id
    return ET.tostring(root, encoding="utf-8")


class SolrUpdateClient:
    """Thread-safe client posting submission units to ``{url}/{collection}/update``.

    Usage:
        with SolrUpdateClient("http://localhost:8983/solr", "articles") as client:
            client.submit(unit)
            client.commit()
    """

    def __init__(
        self,
        url: str,
        collection: Optional[str] = None,
        *,
        timeout_connect_s: float = 10.0,
        timeout_read_s: float = 60.0,
        verify_tls: bool = True,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        base = url.rstrip("/")
        self.update_url = f"{base}/{collection}/update" if collection else f"{base}/update"
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_read_s, connect=timeout_connect_s),
            verify=verify_tls,
            headers=headers or {},
        )

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SolrUpdateClient":
        return cls(
            config.url,
            config.collection,
            timeout_connect_s=config.timeout_connect_s,
            timeout_read_s=config.timeout_read_s,
            verify_tls=config.verify_tls,
            headers=dict(config.headers),
        )

    def _post(self, body: bytes, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        response = self._client.post(
            self.update_url,
            content=body,
            params=params,
            headers={"Content-Type": XML_CONTENT_TYPE},
        )
        response.raise_for_status()
        return response

    def submit(self, unit: SubmissionUnit) -> httpx.Response:
        """POST one unit as an XML update message."""
        params = None
        if unit.commit_within_ms is not None:
            params = {"commitWithin": unit.commit_within_ms}
        return self._post(render_update_xml(unit), params)

    def commit(self) -> httpx.Response:
        logger.info("COMMITting index changes...")
        return self._post(b"<commit/>")

    def optimize(self) -> httpx.Response:
        logger.info("Performing an OPTIMIZE...")
        return self._post(b"<optimize/>")

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SolrUpdateClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
