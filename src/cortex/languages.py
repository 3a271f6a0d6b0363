"""File-extension to language lookup."""

from __future__ import annotations

from pathlib import PurePosixPath

LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".md": "markdown",
}


def language_for_path(file_path: str) -> str:
    """Language name from the file extension, ``"unknown"`` if unrecognised."""
    return LANGUAGE_BY_EXTENSION.get(PurePosixPath(file_path).suffix.lower(), "unknown")
