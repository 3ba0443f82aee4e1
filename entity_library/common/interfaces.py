"""
Common interfaces and protocols for the entity library.

These are the collaborator contracts consumed by the table and form pages.
"""

from typing import Any, Mapping, Optional, Protocol, Union


class EntityDataSourceProtocol(Protocol):
    async def get_all(
        self, params: Mapping[str, Any]
    ) -> Union[Mapping[str, Any], list[Any]]:
        ...

    async def update(self, entity_id: Any, data: Mapping[str, Any]) -> Any:
        ...

    async def invalidate_queries(self) -> None:
        ...


class EntityFormDataSourceProtocol(Protocol):
    async def create(self, data: Mapping[str, Any]) -> Any:
        ...

    async def update(self, entity_id: Any, data: Mapping[str, Any]) -> Any:
        ...

    async def get_by_id(self, entity_id: Any) -> Optional[Mapping[str, Any]]:
        ...

    async def invalidate_queries(self) -> None:
        ...


class OptionFetcherProtocol(Protocol):
    async def fetch(self, url: str, params: Mapping[str, Any]) -> Any:
        ...

    def close(self) -> None:
        ...
