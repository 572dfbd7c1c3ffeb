# core/exceptions.py
"""Error taxonomy for the worker"""
from core.domain import ErrorCode


class RAGError(Exception):
    """Base error carrying a user-facing message and an error code"""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.PROCESSING_FAILED):
        self.message = message
        self.error_code = error_code
        super().__init__(message)

    def __str__(self):
        # Format used for logging
        return f"[{self.error_code.value}] {self.message}"


class LoadError(RAGError):
    """Inference engine failed to initialize. Fatal for the worker session."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.MODEL_LOAD_FAILED):
        super().__init__(message, error_code)


class IngestionError(RAGError):
    """Parsing, chunking or indexing of an uploaded document failed."""


class RetrievalError(RAGError):
    """Index query failed. Always absorbed by the retrieve stage."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.RETRIEVAL_FAILED):
        super().__init__(message, error_code)


class GenerationError(RAGError):
    """Inference engine invocation failed during rephrase, summarize or generate."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.GENERATION_FAILED):
        super().__init__(message, error_code)


class ProtocolError(RAGError):
    """Inbound worker message of a known type carried an invalid payload."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_MESSAGE):
        super().__init__(message, error_code)
