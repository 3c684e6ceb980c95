"""
Chunked write orchestration over the document store.

A pass (scans, latest, history) is a list of :class:`PendingWrite` objects.
``commit_chunked`` splits it into fixed-size chunks and commits them one at a
time, pausing briefly between chunks, while reporting ``prepare`` / ``write``
/ ``done`` progress events.

Two write strategies implement :class:`WriteStrategy`:

  ``PerDocumentStrategy``
      Uses the store's bulk writer. Each write succeeds or fails on its own;
      ``create`` writes are atomic creates.

  ``BatchedTransactionStrategy``
      One atomic batch per chunk. Either the whole chunk lands or every write
      in it fails with the same error. There is no atomic create on this path:
      ``create`` becomes a plain ``set``, so an existing document in a
      protected collection fails with ``permission-denied``.

``select_write_strategy`` picks one by checking the store's capability.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Optional, Protocol

from scanvault.db.document_store import BulkWriter, SqliteDocumentStore
from scanvault.models.report import ImportProgress, ProgressCallback, WritePass

logger = logging.getLogger(__name__)

WriteMode = Literal["create", "set", "merge"]


@dataclass(frozen=True)
class PendingWrite:
    """One document write waiting to be committed.

    Attributes:
        collection: Collection path, e.g. ``players/p1/scans``.
        doc_id: Document id within the collection.
        data: Document payload.
        mode: ``create`` (fail if present), ``set`` (replace) or ``merge``.
        key: Caller-facing key for outcomes; defaults to the document path.
    """

    collection: str
    doc_id: str
    data: dict[str, Any]
    mode: WriteMode = "merge"
    key: Optional[str] = None

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.doc_id}"

    @property
    def result_key(self) -> str:
        return self.key or self.path


@dataclass(frozen=True)
class WriteOutcome:
    """Result of one :class:`PendingWrite`."""

    write: PendingWrite
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


OutcomeCallback = Callable[[WriteOutcome], None]


class WriteStrategy(Protocol):
    name: str
    atomic_create: bool

    def write_chunk(
        self,
        ops: Sequence[PendingWrite],
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> list[WriteOutcome]:
        ...

    def flush(self) -> None:
        ...


class PerDocumentStrategy:
    """Independent per-document writes through a :class:`BulkWriter`."""

    name = "per_document"
    atomic_create = True

    def __init__(self, writer: BulkWriter) -> None:
        self.writer = writer

    def write_chunk(
        self,
        ops: Sequence[PendingWrite],
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> list[WriteOutcome]:
        outcomes: list[WriteOutcome] = []
        for op in ops:
            try:
                _apply(self.writer, op, atomic_create=True)
                outcome = WriteOutcome(op)
            except Exception as exc:
                outcome = WriteOutcome(op, error=exc)
            outcomes.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)
        return outcomes

    def flush(self) -> None:
        self.writer.close()


class BatchedTransactionStrategy:
    """Whole-chunk atomic batches; the chunk succeeds or fails as one unit."""

    name = "batched_transaction"
    atomic_create = False

    def __init__(self, store: SqliteDocumentStore) -> None:
        self.store = store

    def write_chunk(
        self,
        ops: Sequence[PendingWrite],
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> list[WriteOutcome]:
        error: Optional[Exception] = None
        try:
            with self.store.batch() as batch:
                for op in ops:
                    _apply(batch, op, atomic_create=False)
        except Exception as exc:
            logger.warning("Batch of %d writes failed: %s", len(ops), exc)
            error = exc

        outcomes = [WriteOutcome(op, error=error) for op in ops]
        if on_outcome is not None:
            for outcome in outcomes:
                on_outcome(outcome)
        return outcomes

    def flush(self) -> None:
        self.store.commit()


def select_write_strategy(
    store: SqliteDocumentStore,
    prefer_bulk: bool = True,
) -> WriteStrategy:
    """Per-document strategy when the store offers a bulk writer, else batches."""
    writer = store.bulk_writer() if prefer_bulk else None
    if writer is not None:
        strategy: WriteStrategy = PerDocumentStrategy(writer)
    else:
        strategy = BatchedTransactionStrategy(store)
    logger.debug("Write strategy selected: %s", strategy.name)
    return strategy


def commit_chunked(
    strategy: WriteStrategy,
    ops: Sequence[PendingWrite],
    chunk_size: int,
    pass_name: WritePass,
    on_progress: Optional[ProgressCallback] = None,
    pause_s: float = 0.0,
    kind: Optional[str] = None,
    on_outcome: Optional[OutcomeCallback] = None,
    tally: Optional[Callable[[], dict[str, int]]] = None,
) -> list[WriteOutcome]:
    """Commit ``ops`` in sequential chunks of ``chunk_size``.

    Each chunk is flushed (made durable) before the next one starts, so a
    failing run keeps everything already committed.

    Args:
        strategy: Write strategy to use.
        ops: Writes in commit order.
        chunk_size: Writes per chunk (>= 1).
        pass_name: Progress pass label.
        on_progress: Optional progress callback.
        pause_s: Sleep between chunks, in seconds.
        kind: Entity kind attached to progress events.
        on_outcome: Called once per write outcome.
        tally: Returns extra progress counters (``created``, ``duplicate``,
            ``error``) attached to every event.

    Returns:
        One :class:`WriteOutcome` per write, in input order.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}.")

    total = len(ops)

    def emit(phase: str, current: int) -> None:
        if on_progress is None:
            return
        extra = tally() if tally is not None else {}
        on_progress(
            ImportProgress(
                phase=phase,  # type: ignore[arg-type]
                current=current,
                total=total,
                pass_name=pass_name,
                kind=kind,
                **extra,
            )
        )

    emit("prepare", 0)
    outcomes: list[WriteOutcome] = []
    for start in range(0, total, chunk_size):
        chunk = ops[start:start + chunk_size]
        outcomes.extend(strategy.write_chunk(chunk, on_outcome))
        strategy.flush()
        emit("write", min(start + len(chunk), total))
        if pause_s > 0 and start + chunk_size < total:
            time.sleep(pause_s)
    emit("done", total)

    failed = sum(1 for o in outcomes if not o.ok)
    logger.debug(
        "Pass %s committed | writes=%d | failed=%d | strategy=%s",
        pass_name, total, failed, strategy.name,
    )
    return outcomes


def _apply(target: Any, op: PendingWrite, atomic_create: bool) -> None:
    if op.mode == "create" and atomic_create:
        target.create(op.collection, op.doc_id, op.data)
    else:
        target.set(op.collection, op.doc_id, op.data, merge=op.mode == "merge")
