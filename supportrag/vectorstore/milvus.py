from __future__ import annotations

"""Milvus-backed vector store with a named HNSW index."""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Sequence

from supportrag.rag.errors import ConfigurationError, ConnectivityError, StoreWriteFailure
from supportrag.rag.types import Chunk, EmbeddedChunk, RetrievalResult, StoredRecord


class MilvusDependencyError(RuntimeError):
    """Raised when Milvus dependencies are missing."""
    pass


SCALAR_FIELDS = ["chunk_id", "source_id", "chunk_index", "content", "metadata", "embedding_model"]


@dataclass
class MilvusConfig:
    """Configuration for Milvus connection and indexing."""
    uri: str
    token: str | None
    collection: str
    index_name: str
    dimension: int
    consistency: str = "Strong"
    metric_type: str = "COSINE"
    hnsw_m: int = 16
    hnsw_ef_construction: int = 200
    timeout: float = 5.0
    page_size: int = 1000
    alias: str = "default"
    max_content_length: int = 65535


def ping_milvus(uri: str, token: str | None, timeout: float) -> str:
    """Check reachability on a throwaway connection and return the server version."""
    try:
        from pymilvus import connections, utility
    except ImportError as exc:
        raise MilvusDependencyError("pymilvus is required to ping Milvus") from exc
    alias = f"preflight-{uuid.uuid4().hex[:8]}"
    try:
        connections.connect(alias=alias, uri=uri, token=token or "", timeout=timeout)
        return str(utility.get_server_version(using=alias, timeout=timeout))
    except Exception as exc:
        raise ConnectivityError(f"Milvus at {uri} is unreachable", exc) from exc
    finally:
        connections.disconnect(alias)


def record_to_row(record: EmbeddedChunk, max_content_length: int = 65535) -> dict[str, Any]:
    """Flatten an embedded chunk into a Milvus row."""
    chunk = record.chunk
    return {
        "chunk_id": chunk.chunk_id,
        "source_id": chunk.source_id,
        "chunk_index": chunk.chunk_index,
        "content": chunk.text[:max_content_length],
        "metadata": dict(chunk.source_metadata),
        "embedding_model": record.embedding_model,
        "embedding": list(record.embedding),
    }


def _deserialize_metadata(value: Any) -> dict[str, Any]:
    """Deserialize metadata from storage."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return {"raw": value}
    return {"raw": value}


def row_to_record(row: Any) -> StoredRecord:
    """Rebuild a StoredRecord from a query row or search hit entity."""
    chunk = Chunk(
        source_id=str(row.get("source_id")),
        chunk_index=int(row.get("chunk_index")),
        text=row.get("content") or "",
        source_metadata=_deserialize_metadata(row.get("metadata")),
    )
    embedding = row.get("embedding")
    return StoredRecord(
        record_id=str(row.get("chunk_id")),
        chunk=chunk,
        embedding=[float(value) for value in embedding] if embedding is not None else [],
        embedding_model=str(row.get("embedding_model") or ""),
    )


@dataclass
class MilvusVectorStore:
    """Milvus vector store keyed by chunk identity."""
    config: MilvusConfig
    collection: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Connect to Milvus and ensure collection exists."""
        try:
            from pymilvus import connections
        except ImportError as exc:
            raise MilvusDependencyError("pymilvus is required for MilvusVectorStore") from exc
        if self.config.dimension <= 0:
            raise ConfigurationError(
                "Embedding dimension must be set before initializing MilvusVectorStore"
            )
        try:
            connections.connect(
                alias=self.config.alias,
                uri=self.config.uri,
                token=self.config.token or "",
                timeout=self.config.timeout,
            )
        except Exception as exc:
            raise ConnectivityError(f"Failed to connect to Milvus at {self.config.uri}", exc) from exc
        self.ensure_collection()

    def ensure_collection(self) -> None:
        """Create collection schema and the named index when missing."""
        from pymilvus import Collection, CollectionSchema, DataType, FieldSchema, utility

        if utility.has_collection(
            self.config.collection, using=self.config.alias, timeout=self.config.timeout
        ):
            self.collection = Collection(
                self.config.collection,
                using=self.config.alias,
                consistency_level=self.config.consistency,
            )
            existing_dim = self._existing_embedding_dim()
            if existing_dim is not None and existing_dim != self.config.dimension:
                raise ConfigurationError(
                    "Milvus collection embedding dimension mismatch: "
                    f"{existing_dim} (collection) vs {self.config.dimension} (embedder). "
                    "Update EMBEDDING_DIMENSION or use a new MILVUS_COLLECTION."
                )
        else:
            fields = [
                FieldSchema(name="chunk_id", dtype=DataType.VARCHAR, is_primary=True, max_length=512),
                FieldSchema(name="source_id", dtype=DataType.VARCHAR, max_length=256),
                FieldSchema(name="chunk_index", dtype=DataType.INT64),
                FieldSchema(
                    name="content",
                    dtype=DataType.VARCHAR,
                    max_length=self.config.max_content_length,
                ),
                FieldSchema(name="metadata", dtype=DataType.JSON),
                FieldSchema(name="embedding_model", dtype=DataType.VARCHAR, max_length=128),
                FieldSchema(name="embedding", dtype=DataType.FLOAT_VECTOR, dim=self.config.dimension),
            ]
            schema = CollectionSchema(fields=fields, description="Support article chunks")
            self.collection = Collection(
                self.config.collection,
                schema,
                using=self.config.alias,
                consistency_level=self.config.consistency,
            )
        if not self.collection.has_index(index_name=self.config.index_name):
            self.collection.create_index(
                field_name="embedding",
                index_params={
                    "index_type": "HNSW",
                    "metric_type": self.config.metric_type,
                    "params": {
                        "M": self.config.hnsw_m,
                        "efConstruction": self.config.hnsw_ef_construction,
                    },
                },
                index_name=self.config.index_name,
                timeout=self.config.timeout,
            )

    def _existing_embedding_dim(self) -> int | None:
        """Read embedding dimension from existing collection schema."""
        for schema_field in self.collection.schema.fields:
            if schema_field.name != "embedding":
                continue
            params = getattr(schema_field, "params", None) or {}
            dim = params.get("dim")
            return int(dim) if dim is not None else None
        return None

    def ping(self) -> None:
        ping_milvus(self.config.uri, self.config.token, self.config.timeout)

    def insert_many(self, records: Sequence[EmbeddedChunk]) -> int:
        """Upsert rows by chunk_id so re-ingestion never duplicates chunks."""
        rows = [record_to_row(record, self.config.max_content_length) for record in records]
        if not rows:
            return 0
        try:
            result = self.collection.upsert(rows, timeout=self.config.timeout)
            self.collection.flush(timeout=self.config.timeout)
        except Exception as exc:
            raise StoreWriteFailure(0, exc) from exc
        written = int(getattr(result, "upsert_count", len(rows)))
        if written < len(rows):
            raise StoreWriteFailure(written, f"Milvus upserted {written} of {len(rows)} rows")
        return written

    def find_all(self) -> list[StoredRecord]:
        """Page through the whole collection."""
        self.collection.load(timeout=self.config.timeout)
        iterator = self.collection.query_iterator(
            batch_size=self.config.page_size,
            expr="chunk_index >= 0",
            output_fields=[*SCALAR_FIELDS, "embedding"],
            timeout=self.config.timeout,
        )
        records: list[StoredRecord] = []
        try:
            while True:
                page = iterator.next()
                if not page:
                    break
                records.extend(row_to_record(row) for row in page)
        finally:
            iterator.close()
        return records

    def vector_search(
        self, query_vector: list[float], k: int, candidate_pool: int
    ) -> list[RetrievalResult]:
        """Search the named HNSW index with ef set to the candidate pool."""
        if k <= 0:
            return []
        if not self.collection.has_index(index_name=self.config.index_name):
            raise ConfigurationError(
                f"Vector search requires index {self.config.index_name!r} on "
                f"collection {self.config.collection!r}"
            )
        self.collection.load(timeout=self.config.timeout)
        results = self.collection.search(
            data=[query_vector],
            anns_field="embedding",
            param={
                "metric_type": self.config.metric_type,
                "params": {"ef": max(candidate_pool, k)},
            },
            limit=k,
            output_fields=[*SCALAR_FIELDS, "embedding"],
            timeout=self.config.timeout,
        )
        return [
            RetrievalResult(record=row_to_record(hit.entity), score=float(hit.score))
            for hit in results[0]
        ]

    def stats(self) -> dict[str, Any]:
        """Return collection stats."""
        return {
            "backend": "milvus",
            "record_count": int(self.collection.num_entities),
            "collection": self.config.collection,
            "index": self.config.index_name,
        }
