"""Text chunking strategies for document passages.

Implements configurable chunking with token-aware splitting and boundary preservation.
All chunking is deterministic: same pages + config → same chunks.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import tiktoken
from langchain_text_splitters import RecursiveCharacterTextSplitter


@dataclass(frozen=True)
class ChunkingConfig:
    """Configuration for text chunking.

    Attributes:
        chunk_size: Target chunk size in tokens
        overlap: Number of overlapping tokens between chunks
        tokenizer: Tokenizer name (tiktoken encoding, e.g., "cl100k_base")
        preserve_boundaries: If True, adjust chunk boundaries to sentence ends
    """

    chunk_size: int = 400
    overlap: int = 50
    tokenizer: str = "cl100k_base"
    preserve_boundaries: bool = True

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.overlap < 0:
            raise ValueError(f"overlap must be non-negative, got {self.overlap}")
        if self.overlap >= self.chunk_size:
            raise ValueError(
                f"overlap ({self.overlap}) must be less than chunk_size ({self.chunk_size})"
            )


@dataclass(frozen=True)
class Chunk:
    """A single passage with position information.

    Attributes:
        text: Chunk text content
        page: 1-indexed page the chunk was taken from
        chunk_index: 0-indexed position in the document's list of chunks
        start_char: Starting character offset within the page text
        end_char: Ending character offset within the page text
        token_count: Number of tokens in this chunk
    """

    text: str
    page: int
    chunk_index: int
    start_char: int = 0
    end_char: int = 0
    token_count: int = 0

    def __post_init__(self) -> None:
        """Validate chunk properties."""
        if not self.text:
            raise ValueError("Chunk text cannot be empty")
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.chunk_index < 0:
            raise ValueError(f"chunk_index must be non-negative, got {self.chunk_index}")
        if self.start_char < 0 or self.end_char < self.start_char:
            raise ValueError(f"Invalid char offsets: start={self.start_char}, end={self.end_char}")
        if self.token_count < 0:
            raise ValueError(f"token_count must be non-negative, got {self.token_count}")


class Chunker(Protocol):
    """Protocol for page chunking implementations."""

    def chunk_pages(self, pages: Sequence[str]) -> list[Chunk]:
        """Split a document's pages into ordered passages.

        Args:
            pages: Page texts, first page first

        Returns:
            List of Chunk objects with contiguous chunk_index from 0
        """
        ...


class RecursiveTokenChunker:
    """Token-aware recursive text chunker.

    Uses langchain's RecursiveCharacterTextSplitter with tiktoken for accurate
    token counting. Respects sentence boundaries when preserve_boundaries=True.
    Chunks never span pages, so every passage has exactly one page number.
    """

    def __init__(self, config: ChunkingConfig | None = None):
        """Initialize chunker with configuration.

        Args:
            config: Chunking configuration (uses defaults if None)
        """
        self.config = config or ChunkingConfig()
        self.encoding = tiktoken.get_encoding(self.config.tokenizer)

        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.config.chunk_size,
            chunk_overlap=self.config.overlap,
            length_function=self._count_tokens,
            separators=["\n\n", "\n", ". ", " ", ""] if self.config.preserve_boundaries else None,
        )

    def _count_tokens(self, text: str) -> int:
        return len(self.encoding.encode(text, disallowed_special=()))

    def chunk_pages(self, pages: Sequence[str]) -> list[Chunk]:
        """Split every page and number the chunks across the whole document.

        Args:
            pages: Page texts, first page first. Blank pages are skipped but
                still count towards page numbering.

        Returns:
            List of Chunk objects in document order

        Raises:
            ValueError: If no page contains any text
        """
        chunks: list[Chunk] = []

        for page_number, page_text in enumerate(pages, start=1):
            if not page_text or not page_text.strip():
                continue

            current_pos = 0
            for piece in self.splitter.split_text(page_text):
                start_char = page_text.find(piece, current_pos)
                if start_char == -1:
                    # Splitter may strip whitespace; fall back to the running position
                    start_char = min(current_pos, len(page_text))
                end_char = min(start_char + len(piece), len(page_text))

                chunks.append(
                    Chunk(
                        text=piece,
                        page=page_number,
                        chunk_index=len(chunks),
                        start_char=start_char,
                        end_char=end_char,
                        token_count=self._count_tokens(piece),
                    )
                )
                current_pos = max(0, end_char - self.config.overlap)

        if not chunks:
            raise ValueError("Document contains no extractable text")

        return chunks


def chunk_pages(
    pages: Sequence[str],
    chunk_size: int = 400,
    overlap: int = 50,
    tokenizer: str = "cl100k_base",
    preserve_boundaries: bool = True,
) -> list[Chunk]:
    """Convenience function to chunk pages with an ad-hoc config.

    Example:
        >>> chunks = chunk_pages(["Page one text.", "Page two text."])
        >>> [c.page for c in chunks]
        [1, 2]
    """
    config = ChunkingConfig(
        chunk_size=chunk_size,
        overlap=overlap,
        tokenizer=tokenizer,
        preserve_boundaries=preserve_boundaries,
    )
    return RecursiveTokenChunker(config).chunk_pages(pages)
