"""
Qdrant record store adapter.

Wraps Qdrant client operations for storing domain records as points. Each
record kind gets its own collection; every point carries the serialized
record under ``record`` plus a few top-level keyword fields used for
filtering. Vectors are small feature summaries and are never searched.

The same wrapper serves both the durable (remote) store and the in-process
``:memory:`` store used when the gateway is degraded.
"""

from __future__ import annotations

import hashlib
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from qdrant_client import QdrantClient

from craftmatch.config import (
    COLLECTION_PREFIX,
    RECORD_VECTOR_DIM,
    STORE_API_KEY,
    STORE_TIMEOUT,
    STORE_URL,
    get_logger,
)
from craftmatch.utils import require_import, thread_safe_singleton

logger = get_logger(__name__)


class RecordKind(Enum):
    """Record kinds and their collection suffixes."""

    SEEKER_PROFILE = "seeker_profiles"
    PROVIDER_PROFILE = "provider_profiles"
    EXPERIENCE = "experiences"
    RECOMMENDATION = "recommendations"
    MATCHING_RECORD = "matching_records"
    POLICY_SNAPSHOT = "policy_snapshots"
    AGENT_PERFORMANCE = "agent_performance"


# Keyword payload fields indexed on the durable store, per kind.
INDEXED_FIELDS = {
    RecordKind.SEEKER_PROFILE: (),
    RecordKind.PROVIDER_PROFILE: ("craft", "region"),
    RecordKind.EXPERIENCE: ("agent_type",),
    RecordKind.RECOMMENDATION: ("seeker_id",),
    RecordKind.MATCHING_RECORD: ("seeker_id", "provider_id"),
    RecordKind.POLICY_SNAPSHOT: ("agent_type",),
    RecordKind.AGENT_PERFORMANCE: ("agent_type",),
}


def point_id(kind: RecordKind, key: str) -> str:
    """
    Deterministic point ID for a record key.

    MD5 of kind and key, formatted as a UUID so both the server and the
    local client accept it. Re-writing a record upserts the same point.
    """
    digest = hashlib.md5(f"{kind.value}:{key}".encode()).hexdigest()
    return str(uuid.UUID(digest))


@thread_safe_singleton
def get_client() -> "QdrantClient":
    """
    Get or create the global Qdrant client for the configured store URL.

    Raises:
        ImportError: If qdrant-client is not installed.
        ValueError: If no store URL is configured.
    """
    qdrant = require_import("qdrant_client", pip_name="qdrant-client")
    QdrantClient = qdrant.QdrantClient

    if not STORE_URL:
        raise ValueError("CRAFTMATCH_STORE_URL is not set")
    if STORE_API_KEY:
        return QdrantClient(url=STORE_URL, api_key=STORE_API_KEY, timeout=STORE_TIMEOUT)
    return QdrantClient(url=STORE_URL, timeout=STORE_TIMEOUT)


def memory_client() -> "QdrantClient":
    """A fresh in-process Qdrant instance. Nothing survives the process."""
    qdrant = require_import("qdrant_client", pip_name="qdrant-client")
    return qdrant.QdrantClient(location=":memory:")


class RecordStore:
    """
    Key/value style access to one Qdrant deployment.

    Args:
        client: Qdrant client (remote or ``:memory:``).
        prefix: Collection name prefix.
        auto_create: Create missing collections on first use. When False a
            missing collection surfaces as a backend error.
        create_indexes: Create keyword payload indexes with new collections.
            Only meaningful for a remote server.
    """

    def __init__(
        self,
        client,
        prefix: str = COLLECTION_PREFIX,
        auto_create: bool = True,
        create_indexes: bool = False,
    ):
        self.client = client
        self.prefix = prefix
        self.auto_create = auto_create
        self.create_indexes = create_indexes
        self._ready: set[RecordKind] = set()

    def collection_name(self, kind: RecordKind) -> str:
        return f"{self.prefix}_{kind.value}"

    def ping(self) -> None:
        """Connectivity check. Raises whatever the client raises."""
        self.client.get_collections()

    def ensure_collection(self, kind: RecordKind) -> None:
        if kind in self._ready or not self.auto_create:
            return

        from qdrant_client.models import Distance, PayloadSchemaType, VectorParams

        name = self.collection_name(kind)
        if not self.client.collection_exists(name):
            logger.info("Creating collection: %s", name)
            self.client.create_collection(
                collection_name=name,
                vectors_config=VectorParams(size=RECORD_VECTOR_DIM, distance=Distance.DOT),
            )
            if self.create_indexes:
                for field_name in INDEXED_FIELDS[kind]:
                    self.client.create_payload_index(
                        collection_name=name,
                        field_name=field_name,
                        field_schema=PayloadSchemaType.KEYWORD,
                    )
        self._ready.add(kind)

    def put(
        self,
        kind: RecordKind,
        key: str,
        record: dict,
        index: dict[str, Any] | None = None,
        vector: list[float] | None = None,
    ) -> None:
        """Upsert one record under ``key``."""
        from qdrant_client.models import PointStruct

        self.ensure_collection(kind)
        payload = {"key": key, **(index or {}), "record": record}
        self.client.upsert(
            collection_name=self.collection_name(kind),
            points=[
                PointStruct(
                    id=point_id(kind, key),
                    vector=_pad(vector),
                    payload=payload,
                )
            ],
        )

    def get(self, kind: RecordKind, key: str) -> dict | None:
        """Fetch one record by key, or None."""
        self.ensure_collection(kind)
        points = self.client.retrieve(
            collection_name=self.collection_name(kind),
            ids=[point_id(kind, key)],
            with_payload=True,
            with_vectors=False,
        )
        if not points:
            return None
        return points[0].payload["record"]

    def find(self, kind: RecordKind, page_size: int = 256, **match: Any) -> list[dict]:
        """
        All records of ``kind`` whose indexed fields equal ``match``.

        Pages through the collection with scroll; ordering is unspecified.
        """
        from qdrant_client.models import FieldCondition, Filter, MatchValue

        self.ensure_collection(kind)
        scroll_filter = None
        if match:
            scroll_filter = Filter(
                must=[
                    FieldCondition(key=k, match=MatchValue(value=v))
                    for k, v in match.items()
                ]
            )

        records: list[dict] = []
        offset = None
        while True:
            points, offset = self.client.scroll(
                collection_name=self.collection_name(kind),
                scroll_filter=scroll_filter,
                limit=page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            records.extend(p.payload["record"] for p in points)
            if offset is None:
                return records


def _pad(vector: list[float] | None) -> list[float]:
    values = list(vector or [])[:RECORD_VECTOR_DIM]
    return values + [0.0] * (RECORD_VECTOR_DIM - len(values))
