# utils/common.py
"""Common utilities: path management and upload validation"""
import os
from pathlib import Path

# ⚠️ DO NOT import settings at module level - causes circular import with config.py


# ============= Path Management =============

def get_project_root() -> str:
    """Returns the absolute path to the project's root directory."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def get_log_file_path() -> str:
    """Creates the log directory if it doesn't exist and returns the full log file path."""
    project_root = get_project_root()
    log_dir = os.path.join(project_root, 'log')

    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    return os.path.join(log_dir, 'docchat.log')


# ============= File Utilities =============

def get_file_extension(filename: str) -> str:
    """Extracts and normalizes the file extension from a filename."""
    return Path(filename).suffix[1:].lower()


def is_pdf_content(content: bytes) -> bool:
    """Magic number check for PDF payloads."""
    return content[:1024].lstrip().startswith(b'%PDF')


def preview(text: str, length: int = 80) -> str:
    """Single-line snippet used in log events."""
    flat = " ".join(text.split())
    return flat if len(flat) <= length else flat[:length] + "..."
