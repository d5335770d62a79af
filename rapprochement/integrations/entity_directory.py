"""
Entity directory: the back office's partner, subscription and declaration
lists, consumed only as (kind, id, label) triples.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import get_settings
from ..errors import EntityDirectoryError
from ..models import EntityKind

logger = structlog.get_logger()


@dataclass(frozen=True)
class EntityRef:
    """An entity as shown in the pickers."""
    id: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label}


class EntityDirectory(ABC):
    """Read-only view of the business entities a line can be linked to."""

    @abstractmethod
    async def list_entities(self, kind: EntityKind) -> List[EntityRef]:
        """All entities of a kind, for the pickers."""

    @abstractmethod
    async def get_entity_label(self, kind: EntityKind, entity_id: str) -> Optional[str]:
        """Display name of one entity, or None if unknown."""

    async def close(self) -> None:
        pass


class InMemoryEntityDirectory(EntityDirectory):
    """Directory backed by a static mapping, for development and tests."""

    def __init__(self, entries: Optional[Iterable[Tuple[EntityKind, str, str]]] = None):
        self._entities: Dict[EntityKind, Dict[str, str]] = {}
        for kind, entity_id, label in entries or []:
            self.add(kind, entity_id, label)

    def add(self, kind: EntityKind, entity_id: str, label: str) -> None:
        self._entities.setdefault(kind, {})[entity_id] = label

    async def list_entities(self, kind: EntityKind) -> List[EntityRef]:
        entities = self._entities.get(kind, {})
        return sorted(
            (EntityRef(id=entity_id, label=label) for entity_id, label in entities.items()),
            key=lambda ref: ref.label.lower(),
        )

    async def get_entity_label(self, kind: EntityKind, entity_id: str) -> Optional[str]:
        return self._entities.get(kind, {}).get(entity_id)


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, EntityDirectoryError) and (
        error.upstream_status == 0 or error.upstream_status >= 500
    )


class HttpEntityDirectory(EntityDirectory):
    """
    Client for the back office's entity endpoints.

    GET /entities/{kind}        -> [{"id": ..., "label": ...}]
    GET /entities/{kind}/{id}   -> {"id": ..., "label": ...}

    Only these idempotent reads are retried.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = get_settings()
        self.base_url = base_url or self.settings.entity_directory_url or ""
        self.token = token if token is not None else self.settings.entity_directory_token
        self.timeout = timeout or self.settings.entity_directory_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _get(self, endpoint: str) -> Optional[Any]:
        """GET a JSON resource; None on 404."""
        client = await self._get_client()

        try:
            response = await client.get(endpoint)
        except httpx.TimeoutException:
            raise EntityDirectoryError("Entity directory timeout")
        except httpx.RequestError as e:
            raise EntityDirectoryError(f"Entity directory request error: {str(e)}")

        if response.status_code == 404:
            return None

        if response.status_code >= 400:
            error_detail = response.text
            try:
                error_detail = response.json()
            except ValueError:
                pass
            raise EntityDirectoryError(
                f"Entity directory error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        return response.json()

    async def list_entities(self, kind: EntityKind) -> List[EntityRef]:
        data = await self._get(f"/entities/{kind.value}") or []
        return [EntityRef(id=str(item["id"]), label=str(item.get("label") or "")) for item in data]

    async def get_entity_label(self, kind: EntityKind, entity_id: str) -> Optional[str]:
        data = await self._get(f"/entities/{kind.value}/{entity_id}")
        if not data:
            logger.debug("Entity not found in directory", kind=kind.value, entity_id=entity_id)
            return None
        return data.get("label")
