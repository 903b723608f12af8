#!/usr/bin/env python
"""Index PDF leaflets in memory and ask a question about them.

Supports two modes:
- Answer mode (default): Retrieves passages and generates a cited answer
- Search mode (--search-only): Prints the retrieved passages with scores

Usage:
    python scripts/ask_pdfs.py leaflets/ibuprofen.pdf -q "What is the maximum dose?"
    python scripts/ask_pdfs.py leaflets/*.pdf -q "bleeding risk" --search-only --top-k 8
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import click
from loguru import logger

from rag_backend.config import load_config
from rag_backend.errors import RagBackendError
from rag_backend.service import RagService

# Configure logging
logger.remove()
logger.add(sys.stderr, level="INFO", format="<level>{message}</level>")


async def ask(
    pdfs: tuple[Path, ...], question: str, config_name: str, top_k: int, search_only: bool
):
    """Upload every PDF, then answer or search.

    Args:
        pdfs: PDF files to index
        question: Natural language question
        config_name: Hydra config profile under conf/pharmarag/
        top_k: Number of passages to retrieve
        search_only: If True, skip generation and print the passages
    """
    config = load_config(config_name, overrides=[f"retrieval.top_k={top_k}"])
    service = RagService.from_config(config)

    for pdf in pdfs:
        try:
            doc = await service.ingest_pdf(pdf)
        except RagBackendError as e:
            logger.error(f"❌ Skipping {pdf.name}: {e.message}")
            continue
        logger.info(f"📄 {doc.filename}: {doc.page_count} pages, {doc.chunk_count} chunks")

    _, stats = service.list_documents()
    if stats.total_documents == 0:
        logger.error("❌ No documents were indexed")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info(f"🔍 {question}")
    logger.info("=" * 60)

    if search_only:
        result = await service.pipeline.retrieve(question)
        if result.is_empty:
            logger.warning("No results found!")
            return
        for i, (record, score) in enumerate(result.pairs(), 1):
            text = record.text[:300] + "..." if len(record.text) > 300 else record.text
            logger.info(f"Result {i} (score: {score:.4f}) {record.source}, page {record.page}")
            logger.info(f"{text}\n")
        return

    answer = await service.ask(question)
    logger.success(answer.answer)
    for source in answer.sources:
        logger.info(f"  📎 {source.document}, page {source.page}")
    logger.info(f"\n{answer.disclaimer}")


@click.command()
@click.argument("pdfs", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--question", "-q", required=True, help="Question to ask about the documents")
@click.option("--config", "config_name", default="default", help="Config profile name")
@click.option("--top-k", default=4, help="Number of passages to retrieve")
@click.option("--search-only", is_flag=True, help="Print retrieved passages without generating")
def cli(pdfs: tuple[Path, ...], question: str, config_name: str, top_k: int, search_only: bool):
    """Answer a question from one or more PDF leaflets."""
    try:
        asyncio.run(ask(pdfs, question, config_name, top_k, search_only))
    except RagBackendError as e:
        logger.error(f"❌ {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
