"""Text extraction — thin wrappers around LangChain document loaders."""

from __future__ import annotations

from pathlib import Path

from langchain_community.document_loaders import PyPDFLoader, TextLoader


class SourceFileNotFoundError(FileNotFoundError):
    """A declared source file is missing from the data directory."""

    def __init__(self, path: str | Path) -> None:
        super().__init__(f"File not found: {path}")
        self.path = Path(path)


def ensure_exists(path: str | Path) -> Path:
    path = Path(path)
    if not path.is_file():
        raise SourceFileNotFoundError(path)
    return path


def extract_pdf_text(path: str | Path) -> str:
    """Return the text of every page of a PDF, joined with newlines."""
    pages = PyPDFLoader(str(ensure_exists(path))).load()
    return "\n".join(page.page_content for page in pages)


def extract_plain_text(path: str | Path) -> str:
    """Return the UTF-8 contents of a plain-text file."""
    docs = TextLoader(str(ensure_exists(path)), encoding="utf-8").load()
    return "".join(doc.page_content for doc in docs)
