import logging
from contextlib import aclosing
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from registry_purge.config import Settings
from registry_purge.models import Image, Namespace, Tag
from registry_purge.pagination import iter_pages


class GatewayError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RegistryGateway(Protocol):
    async def find_namespace(self, name: str) -> Namespace | None: ...

    async def list_images(self, namespace_id: str, page: int, page_size: int) -> list[Image]: ...

    async def list_tags(self, image_id: str, page: int, page_size: int) -> list[Tag]: ...

    async def delete_tag(self, tag_id: str) -> None: ...


def build_headers(settings: Settings) -> dict[str, str]:
    return {
        "Accept": "application/json",
        "User-Agent": "Registry purge",
        "X-Auth-Token": settings.secret_key,
    }


class ScalewayRegistry:
    """Scaleway Container Registry API v1 over a shared ``httpx.AsyncClient``."""

    def __init__(self, session: httpx.AsyncClient, settings: Settings) -> None:
        self.session = session
        self.settings = settings
        self.base_url = settings.region_url

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self.session.request(method, f"{self.base_url}{path}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as err:
            raise GatewayError(
                f"Error {action}. code: {err.response.status_code}, text: {err.response.text}",
                status_code=err.response.status_code,
            ) from err
        except httpx.HTTPError as err:
            raise GatewayError(f"Error {action}. Error: {err}") from err

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as err:
            raise GatewayError(f"Error {action}. Invalid response: {response.text}") from err
        if not isinstance(data, dict):
            raise GatewayError(f"Error {action}. Invalid response: {data}")
        return data

    async def _list(
        self, path: str, key: str, model: type, action: str, params: dict[str, Any]
    ) -> list:
        data = await self._request("GET", path, action, params=params)
        try:
            return [model.model_validate(item) for item in data.get(key) or []]
        except ValidationError as err:
            raise GatewayError(f"Error {action}. Invalid response: {err}") from err

    async def _namespaces_page(self, name: str, page: int, page_size: int) -> list[Namespace]:
        return await self._list(
            "/namespaces",
            "namespaces",
            Namespace,
            f"listing namespaces named {name}",
            {
                "name": name,
                "project_id": self.settings.project_id,
                "page": page,
                "page_size": page_size,
            },
        )

    async def find_namespace(self, name: str) -> Namespace | None:
        logging.info(f"Getting namespace: {name}")

        async def fetch_page(page: int, page_size: int) -> list[Namespace]:
            return await self._namespaces_page(name, page, page_size)

        # the API filter is not an exact match
        async with aclosing(iter_pages(fetch_page)) as namespaces:
            async for namespace in namespaces:
                if namespace.name == name:
                    return namespace
        return None

    async def list_images(self, namespace_id: str, page: int, page_size: int) -> list[Image]:
        return await self._list(
            "/images",
            "images",
            Image,
            f"listing images of namespace {namespace_id}",
            {"namespace_id": namespace_id, "page": page, "page_size": page_size},
        )

    async def list_tags(self, image_id: str, page: int, page_size: int) -> list[Tag]:
        return await self._list(
            f"/images/{image_id}/tags",
            "tags",
            Tag,
            f"listing tags of image {image_id}",
            {"page": page, "page_size": page_size},
        )

    async def delete_tag(self, tag_id: str) -> None:
        await self._request("DELETE", f"/tags/{tag_id}", f"deleting tag {tag_id}")
