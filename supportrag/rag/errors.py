from __future__ import annotations

"""Error taxonomy shared by the ingestion and query paths."""


class ConfigurationError(RuntimeError):
    """Raised for invalid parameters or missing credentials."""
    pass


class EmbeddingSpaceMismatch(ConfigurationError):
    """Raised when a query embedding does not match the stored embedding space."""
    pass


class ConnectivityError(RuntimeError):
    """Raised when the vector store cannot be reached."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        detail = f"{message}: {cause}" if cause is not None else message
        super().__init__(detail)
        self.cause = cause


class EmbeddingFailure(RuntimeError):
    """Raised when a chunk (or a query) fails to embed."""

    def __init__(
        self,
        batch_index: int | None,
        cause: BaseException,
        chunk_id: str | None = None,
        query: str | None = None,
    ) -> None:
        if batch_index is not None:
            where = f"batch {batch_index}"
            if chunk_id:
                where = f"{where} (chunk {chunk_id})"
        else:
            where = f"query {query!r}"
        super().__init__(f"Embedding failed for {where}: {cause}")
        self.batch_index = batch_index
        self.chunk_id = chunk_id
        self.query = query
        self.cause = cause


class StoreWriteFailure(RuntimeError):
    """Raised when a batch write fails fully or partially."""

    def __init__(
        self,
        inserted: int,
        cause: BaseException | str,
        batch_index: int | None = None,
    ) -> None:
        prefix = f"Batch {batch_index} write failed" if batch_index is not None else "Write failed"
        super().__init__(f"{prefix} after {inserted} records: {cause}")
        self.inserted = inserted
        self.cause = cause
        self.batch_index = batch_index


class SynthesisFailure(RuntimeError):
    """Raised when answer synthesis fails for a single query."""

    def __init__(self, query: str, cause: BaseException) -> None:
        super().__init__(f"Answer synthesis failed for query {query!r}: {cause}")
        self.query = query
        self.cause = cause


class JudgeFailure(RuntimeError):
    """Raised when a judge call fails or returns an unparseable verdict."""

    def __init__(self, judge: str, query: str, cause: BaseException | str) -> None:
        super().__init__(f"{judge} judge failed for query {query!r}: {cause}")
        self.judge = judge
        self.query = query
        self.cause = cause
