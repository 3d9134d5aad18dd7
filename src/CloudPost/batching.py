"""Batch assembly of parsed units into bounded submission units."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from CloudPost.models import DeleteRequest, Document, ParsedUnit, SubmissionUnit

if TYPE_CHECKING:
    from CloudPost.dispatch import Dispatcher

__all__ = ["DEFAULT_BATCH_SIZE", "BatchAssembler"]

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5000


class BatchAssembler:
    """Accumulates documents and delete ids for one job and flushes them in order.

    Every document and every delete identifier counts as one operation. Before an
    operation is admitted, a full batch (``max_batch_size`` operations) is handed
    to the dispatcher as one :class:`SubmissionUnit`, so no unit ever exceeds the
    limit and file order is preserved across units.

    Attributes:
        posted: Operations accepted by the store so far
        units_flushed: Number of non-empty units dispatched
    """

    def __init__(self, dispatcher: "Dispatcher", max_batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1, got {max_batch_size}")
        self.dispatcher = dispatcher
        self.max_batch_size = max_batch_size
        self.posted = 0
        self.units_flushed = 0
        self._documents: List[Document] = []
        self._delete_ids: List[str] = []
        self._count = 0

    @property
    def pending(self) -> int:
        """Operations accumulated but not yet flushed."""
        return self._count

    def offer(self, unit: ParsedUnit) -> None:
        """Admit a parsed document or delete request, flushing full batches first."""
        if isinstance(unit, DeleteRequest):
            for delete_id in unit.ids:
                self._make_room()
                self._delete_ids.append(delete_id)
                self._count += 1
        else:
            self._make_room()
            self._documents.append(unit)
            self._count += 1

    def finish(self) -> int:
        """Flush whatever remains at end of stream and return the total posted."""
        self.flush()
        return self.posted

    def flush(self) -> int:
        """Dispatch the accumulated operations as one unit; a no-op when empty."""
        if self._count == 0:
            return 0
        unit = SubmissionUnit(
            documents=self._documents,
            delete_request=DeleteRequest(self._delete_ids),
        )
        self._documents = []
        self._delete_ids = []
        self._count = 0

        accepted = self.dispatcher.submit(unit)
        self.posted += accepted
        self.units_flushed += 1
        return accepted

    def _make_room(self) -> Optional[int]:
        if self._count >= self.max_batch_size:
            return self.flush()
        return None
