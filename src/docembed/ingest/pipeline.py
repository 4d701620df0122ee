from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.orm import sessionmaker

from docembed.embeddings import EmbeddingProvider, build_embeddings
from docembed.errors import IngestionError
from docembed.loader import Content, Failure, FileLoader
from docembed.storage import IngestionRunRecord
from docembed.types import Document, EmbeddedDocument, Point
from docembed.vectorstore import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class IngestionStats:
    """High-level counters returned to the CLI and tests."""

    run_id: str | None = None
    matched: int = 0
    loaded: int = 0
    failed: int = 0
    embedded: int = 0
    upserted: int = 0
    dimension: int | None = None


class IngestionPipeline:
    """
    Load files, embed them, and push the vectors into a store.

    Unreadable files are counted and skipped (or abort the run when `continue_on_error` is off).
    Embedding and store failures always abort: a half-embedded batch cannot be indexed safely.
    """

    def __init__(
        self,
        loader: FileLoader,
        embedder: EmbeddingProvider,
        store: VectorStore | None = None,
        *,
        session_factory: sessionmaker | None = None,
        batch_size: int = 64,
        continue_on_error: bool = True,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.loader = loader
        self.embedder = embedder
        self.store = store
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.continue_on_error = continue_on_error
        self.embedded_documents: list[EmbeddedDocument] = []

    def run(self) -> IngestionStats:
        stats = IngestionStats(run_id=str(uuid.uuid4()), matched=len(self.loader))
        self.embedded_documents = []
        self._start_run_record(stats)

        logger.info(
            "Starting ingestion",
            extra={"run_id": stats.run_id, "pattern": self.loader.pattern, "matched": stats.matched},
        )

        final_status = "success"
        fatal_error: Exception | None = None
        try:
            documents = self._load_documents(stats)
            if stats.failed:
                final_status = "partial"

            for start in range(0, len(documents), self.batch_size):
                batch = documents[start : start + self.batch_size]
                embedded = build_embeddings(self.embedder, batch)
                stats.embedded += len(embedded)
                self.embedded_documents.extend(embedded)
                if stats.dimension is None and embedded and embedded[0].vectors:
                    stats.dimension = len(embedded[0].vectors[0])
                if self.store is not None:
                    stats.upserted += self.store.upsert(to_points(embedded))
        except Exception as exc:
            final_status = "failed"
            fatal_error = exc
            logger.exception("Ingestion failed", extra={"run_id": stats.run_id})
        finally:
            self._finish_run_record(
                stats,
                status=final_status,
                error_message=str(fatal_error) if fatal_error is not None else None,
            )
            logger.info("Ingestion finished", extra={**stats.__dict__, "status": final_status})

        if fatal_error is not None:
            raise fatal_error
        return stats

    def _load_documents(self, stats: IngestionStats) -> list[Document]:
        documents: list[Document] = []
        for result in self.loader.iter_read():
            if isinstance(result, Failure):
                stats.failed += 1
                if not self.continue_on_error:
                    raise IngestionError(
                        f"Failed to read {result.path} ({result.kind}): {result.message}"
                    )
                continue
            stats.loaded += 1
            documents.append(to_document(result))
        return documents

    def _start_run_record(self, stats: IngestionStats) -> None:
        if self.session_factory is None:
            return
        with self.session_factory() as session:
            session.add(
                IngestionRunRecord(
                    id=stats.run_id,
                    pattern=self.loader.pattern,
                    status="running",
                    files_matched=stats.matched,
                )
            )
            session.commit()

    def _finish_run_record(
        self,
        stats: IngestionStats,
        *,
        status: str,
        error_message: str | None,
    ) -> None:
        if self.session_factory is None:
            return
        with self.session_factory() as session:
            run = session.get(IngestionRunRecord, stats.run_id)
            if run is None:
                return
            run.status = status
            run.finished_at = datetime.now(timezone.utc)
            run.files_loaded = stats.loaded
            run.files_failed = stats.failed
            run.documents_embedded = stats.embedded
            run.points_upserted = stats.upserted
            run.error_message = error_message
            session.commit()


def to_document(content: Content) -> Document:
    """Wrap file content as a document identified by its source path."""

    path = content.path
    return Document(
        id=str(path),
        text=content.text,
        metadata={
            "path": str(path),
            "filename": path.name,
            "suffix": path.suffix.lower(),
            "sha256": hashlib.sha256(content.text.encode("utf-8")).hexdigest(),
            "chars": len(content.text),
        },
    )


def to_points(embedded: Sequence[EmbeddedDocument]) -> list[Point]:
    points: list[Point] = []
    for item in embedded:
        multi = len(item.vectors) > 1
        for idx, vector in enumerate(item.vectors):
            point_id = f"{item.document.id}#{idx}" if multi else item.document.id
            payload = {**dict(item.document.metadata), "text": item.document.text}
            points.append(Point(id=point_id, vector=vector, payload=payload))
    return points
