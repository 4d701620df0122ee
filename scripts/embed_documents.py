#!/usr/bin/env python3
"""Load documents by glob pattern and embed them, printing one JSON line per document."""

from __future__ import annotations

import argparse
import json
import sys

from docembed import Content, DocembedError, FileLoader
from docembed.config import Settings
from docembed.embeddings import OpenAIEmbeddingClient, build_embeddings
from docembed.ingest import to_document


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "pattern",
        nargs="?",
        default=None,
        help="Glob pattern (default DOCEMBED_DOCUMENTS_DIR/DOCEMBED_GLOB_PATTERN, e.g. docs/*.toml)",
    )
    parser.add_argument(
        "--api-key",
        dest="api_key",
        default=None,
        help="OpenAI API key. Defaults to OPENAI_API_KEY/.env",
    )
    parser.add_argument(
        "--model",
        dest="model",
        default=None,
        help="Embedding model (default text-embedding-ada-002)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = Settings()
    api_key = args.api_key or settings.openai_api_key
    if not api_key:
        print("ERROR: API key required via --api-key or OPENAI_API_KEY", file=sys.stderr)
        return 2

    try:
        loader = FileLoader.with_glob(args.pattern or settings.default_pattern, encoding=settings.file_encoding)
    except DocembedError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    documents = []
    for result in loader.read():
        if isinstance(result, Content):
            documents.append(to_document(result))
        else:
            print(f"skipping {result.path}: {result.kind}", file=sys.stderr)

    if not documents:
        print("No readable documents matched", file=sys.stderr)
        return 1

    with OpenAIEmbeddingClient(
        api_key,
        base_url=settings.openai_base_url,
        model=args.model or settings.embedding_model,
        timeout=settings.api_timeout,
        user_agent=settings.user_agent,
        batch_size=settings.embedding_batch_size,
        max_retries=settings.api_max_retries,
        backoff_seconds=settings.api_backoff_seconds,
        max_backoff_seconds=settings.api_max_backoff_seconds,
    ) as client:
        try:
            embedded = build_embeddings(client, documents)
        except DocembedError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    for item in embedded:
        payload = {
            "id": item.document.id,
            "sha256": item.document.metadata["sha256"],
            "dimension": len(item.vectors[0]),
            "preview": item.vectors[0][:4],
        }
        print(json.dumps(payload, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
