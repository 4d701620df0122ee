from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from sqlalchemy.orm import sessionmaker

from docembed.config import Settings
from docembed.embeddings import EmbeddingProvider, HashEmbeddingClient, OpenAIEmbeddingClient
from docembed.errors import DocembedError
from docembed.ingest import IngestionPipeline
from docembed.loader import Content, FileLoader
from docembed.storage import create_session_factory, init_db
from docembed.vectorstore import QdrantVectorStore, SqlVectorStore, VectorStore

app = typer.Typer(help="Glob-based document loading, embedding and vector indexing CLI")

_PROVIDERS = ("openai", "hash")
_STORES = ("sql", "qdrant")


@app.callback()
def configure_logging(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    level = logging.DEBUG if verbose else Settings().log_level.upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


@app.command("load")
def load(
    pattern: Optional[str] = typer.Argument(
        None, help="Glob pattern, e.g. 'docs/*.toml'. Defaults to DOCEMBED_DOCUMENTS_DIR/DOCEMBED_GLOB_PATTERN"
    ),
    parallel: bool = typer.Option(
        False, "--parallel", help="Read files on worker threads (DOCEMBED_READ_CONCURRENCY at once)"
    ),
    concurrency: Optional[int] = typer.Option(None, min=1, help="Override the number of concurrent reads"),
) -> None:
    settings = Settings()
    with _handle_errors():
        loader = FileLoader.with_glob(pattern or settings.default_pattern, encoding=settings.file_encoding)
        if parallel or concurrency:
            results = asyncio.run(loader.aread(concurrency or settings.read_concurrency))
        else:
            results = loader.read()

    failures = 0
    for result in results:
        if isinstance(result, Content):
            typer.echo(f"OK {result.path} ({len(result.text)} chars)")
        else:
            failures += 1
            typer.echo(f"ERR {result.path} {result.kind}: {result.message}")
    typer.echo(f"Loaded {len(results) - failures} of {len(results)} matched files")


@app.command("embed")
def embed(
    pattern: Optional[str] = typer.Argument(None, help="Glob pattern of files to embed"),
    provider: str = typer.Option("openai", help="Embedding provider: openai or hash"),
    strict: bool = typer.Option(False, "--strict", help="Fail when any matched file cannot be read"),
) -> None:
    settings = Settings()
    with _handle_errors(), _open_embedder(settings, provider) as embedder:
        loader = FileLoader.with_glob(pattern or settings.default_pattern, encoding=settings.file_encoding)
        pipeline = IngestionPipeline(
            loader,
            embedder,
            batch_size=settings.embedding_batch_size,
            continue_on_error=not strict,
        )
        stats = pipeline.run()
    typer.echo(
        "Embedding complete: "
        f"matched={stats.matched} loaded={stats.loaded} failed={stats.failed} "
        f"embedded={stats.embedded} dimension={stats.dimension}"
    )


@app.command("ingest")
def ingest(
    pattern: Optional[str] = typer.Argument(None, help="Glob pattern of files to ingest"),
    provider: str = typer.Option("openai", help="Embedding provider: openai or hash"),
    store: str = typer.Option("sql", help="Vector store: sql or qdrant"),
    db_url: Optional[str] = typer.Option(None, envvar="DOCEMBED_DATABASE_URL"),
    collection: Optional[str] = typer.Option(None, help="Collection name (defaults to DOCEMBED_COLLECTION)"),
    strict: bool = typer.Option(False, "--strict", help="Fail when any matched file cannot be read"),
) -> None:
    settings = Settings()
    database_url = db_url or settings.database_url

    with _handle_errors(), _open_embedder(settings, provider) as embedder:
        session_factory = _open_database(database_url)
        loader = FileLoader.with_glob(pattern or settings.default_pattern, encoding=settings.file_encoding)
        with _open_store(settings, store, session_factory, collection, embedder) as vector_store:
            pipeline = IngestionPipeline(
                loader,
                embedder,
                vector_store,
                session_factory=session_factory,
                batch_size=settings.embedding_batch_size,
                continue_on_error=not strict,
            )
            stats = pipeline.run()
    typer.echo(
        "Ingestion complete: "
        f"run_id={stats.run_id} "
        f"matched={stats.matched} loaded={stats.loaded} failed={stats.failed} upserted={stats.upserted}"
    )


@app.command("query")
def query(
    text: str = typer.Argument(..., help="Text to search for"),
    provider: str = typer.Option("openai", help="Embedding provider: openai or hash"),
    store: str = typer.Option("sql", help="Vector store: sql or qdrant"),
    db_url: Optional[str] = typer.Option(None, envvar="DOCEMBED_DATABASE_URL"),
    collection: Optional[str] = typer.Option(None, help="Collection name (defaults to DOCEMBED_COLLECTION)"),
    limit: int = typer.Option(5, min=1, help="Number of nearest neighbours to return"),
) -> None:
    settings = Settings()
    database_url = db_url or settings.database_url

    with _handle_errors(), _open_embedder(settings, provider) as embedder:
        session_factory = _open_database(database_url) if store == "sql" else None
        vector = embedder.embed_texts([text])[0]
        with _open_store(settings, store, session_factory, collection, None) as vector_store:
            hits = vector_store.query(vector, limit=limit)

    if not hits:
        typer.echo("No matches")
        return
    for hit in hits:
        typer.echo(f"{hit.score:.4f} {hit.id}")


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except DocembedError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _open_database(database_url: str) -> sessionmaker:
    session_factory, engine = create_session_factory(database_url)
    init_db(engine)
    return session_factory


@contextmanager
def _open_embedder(settings: Settings, provider: str) -> Iterator[EmbeddingProvider]:
    if provider == "hash":
        yield HashEmbeddingClient(settings.hash_dimension)
        return
    if provider != "openai":
        raise typer.BadParameter(f"Unknown provider {provider!r}; expected one of {', '.join(_PROVIDERS)}")
    if not settings.openai_api_key:
        raise typer.BadParameter("An API key is required via OPENAI_API_KEY or DOCEMBED_OPENAI_API_KEY")
    with OpenAIEmbeddingClient(
        settings.openai_api_key,
        base_url=settings.openai_base_url,
        model=settings.embedding_model,
        timeout=settings.api_timeout,
        user_agent=settings.user_agent,
        batch_size=settings.embedding_batch_size,
        max_retries=settings.api_max_retries,
        backoff_seconds=settings.api_backoff_seconds,
        max_backoff_seconds=settings.api_max_backoff_seconds,
    ) as client:
        yield client


@contextmanager
def _open_store(
    settings: Settings,
    store: str,
    session_factory: sessionmaker | None,
    collection: str | None,
    embedder: EmbeddingProvider | None,
) -> Iterator[VectorStore]:
    name = collection or settings.collection
    if store == "sql":
        yield SqlVectorStore(session_factory, name)
        return
    if store != "qdrant":
        raise typer.BadParameter(f"Unknown store {store!r}; expected one of {', '.join(_STORES)}")
    with QdrantVectorStore(
        settings.qdrant_url,
        name,
        api_key=settings.qdrant_api_key,
        timeout=settings.api_timeout,
    ) as qdrant:
        if embedder is not None:
            dimension = embedder.dimension or len(embedder.embed_texts(["dimension check"])[0])
            qdrant.ensure_collection(dimension)
        yield qdrant


if __name__ == "__main__":
    app()
