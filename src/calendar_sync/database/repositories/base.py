"""Generic repository over a single Cosmos DB container."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar, cast

from calendar_sync.models.base import DocumentBase

if TYPE_CHECKING:
    from azure.cosmos.aio import ContainerProxy, DatabaseProxy

T = TypeVar("T", bound=DocumentBase)

# Cosmos DB accepts at most this many operations per patch request.
MAX_PATCH_OPERATIONS = 10


def field_path(*segments: str) -> str:
    """Build a JSON pointer from raw path segments, escaping ``~`` and ``/``."""
    escaped = (segment.replace("~", "~0").replace("/", "~1") for segment in segments)
    return "/" + "/".join(escaped)


def dotted_path(path: str) -> str:
    """Translate a dot-path (``channels.fbig.abc.title``) into a JSON pointer."""
    return field_path(*path.split("."))


class BaseRepository(Generic[T]):
    """CRUD helpers shared by every container repository."""

    container_name: ClassVar[str]
    model_class: type[T]

    def __init__(self, database: DatabaseProxy) -> None:
        self._container: ContainerProxy = database.get_container_client(self.container_name)

    async def create(self, item: T) -> T:
        await self._container.create_item(body=item.model_dump(mode="json"))
        return item

    async def get(self, item_id: str, partition_key: str) -> T | None:
        from azure.cosmos.exceptions import CosmosResourceNotFoundError  # noqa: PLC0415

        try:
            data = await self._container.read_item(item=item_id, partition_key=partition_key)
        except CosmosResourceNotFoundError:
            return None
        return self.model_class.model_validate(data)

    async def patch(
        self,
        item_id: str,
        partition_key: str,
        operations: list[dict[str, Any]],
    ) -> None:
        """Apply patch operations, split into chunks the service accepts."""
        for start in range(0, len(operations), MAX_PATCH_OPERATIONS):
            await self._container.patch_item(
                item=item_id,
                partition_key=partition_key,
                patch_operations=operations[start : start + MAX_PATCH_OPERATIONS],
            )

    async def query(
        self,
        sql: str,
        parameters: list[dict[str, Any]] | None = None,
        *,
        partition_key: str | None = None,
    ) -> list[T]:
        kwargs: dict[str, Any] = {"parameters": parameters or []}
        if partition_key is not None:
            kwargs["partition_key"] = partition_key
        results: list[T] = []
        async for item in self._container.query_items(sql, **kwargs):
            results.append(self.model_class.model_validate(cast("dict[str, Any]", item)))
        return results
