# Copyright DataStax, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Dict, Optional, Tuple, Type, TYPE_CHECKING

import httpx

from dataapi.core.api import APICommander, AsyncAPICommander
from dataapi.core.defaults import (
    DEFAULT_AUTH_HEADER,
    DEFAULT_JSON_API_PATH,
    DEFAULT_JSON_API_VERSION,
    DEFAULT_KEYSPACE_NAME,
)
from dataapi.exceptions import MultiCallTimeoutManager

if TYPE_CHECKING:
    from dataapi.collection import AsyncCollection, Collection


logger = logging.getLogger(__name__)


def _commander_path(
    api_path: str,
    api_version: str,
    namespace: str,
    collection_name: Optional[str],
) -> str:
    path_parts = [api_path.strip("/"), api_version.strip("/"), namespace]
    if collection_name:
        path_parts.append(collection_name)
    return "/".join(part for part in path_parts if part)


class _DatabaseSettings:
    """The connection parameters shared by both database flavours."""

    def __init__(
        self,
        api_endpoint: str,
        token: str,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> None:
        self.api_endpoint = api_endpoint.rstrip("/")
        self.token = token
        self._namespace = namespace or DEFAULT_KEYSPACE_NAME
        self.caller_name = caller_name
        self.caller_version = caller_version
        self.api_path = api_path if api_path is not None else DEFAULT_JSON_API_PATH
        self.api_version = (
            api_version if api_version is not None else DEFAULT_JSON_API_VERSION
        )

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}(api_endpoint="{self.api_endpoint}", '
            f'token="{self.token[:12]}...", namespace="{self.namespace}")'
        )

    def _settings_tuple(self) -> Tuple[Optional[str], ...]:
        return (
            self.api_endpoint,
            self.token,
            self.namespace,
            self.caller_name,
            self.caller_version,
            self.api_path,
            self.api_version,
        )

    @property
    def namespace(self) -> str:
        """
        The working namespace, used whenever a call does not name one.

        Example:
            >>> my_db.namespace
            'default_keyspace'
        """

        return self._namespace

    def set_caller(
        self,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> None:
        """
        Change the caller identity reported in the User-Agent. Only
        collections obtained after the change pick it up.

        Example:
            >>> my_db.set_caller(caller_name="inventory-sync", caller_version="2.1")
        """

        logger.info(f"setting caller to {caller_name}/{caller_version}")
        self.caller_name = caller_name
        self.caller_version = caller_version


class Database(_DatabaseSettings):
    """
    Blocking handle on a database: hands out Collection objects and sends
    free-form commands.

    It knows where the API lives (endpoint, path, version), the token and
    the working namespace. Its collections reuse its httpx client.

    Args:
        api_endpoint: the database URL, such as
            "https://<database_id>-<region>.apps.astra.datastax.com".
        token: the token sent with every request, e.g. "AstraCS:xyz...".
        namespace: the working namespace, "default_keyspace" if omitted.
        caller_name: the caller name sent in the User-Agent.
        caller_version: the caller version sent in the User-Agent.
        api_path: the path after the endpoint, "/api/json" if omitted.
        api_version: the version segment after the path, "v1" if omitted.
        client: the httpx.Client for requests. A new one is made when
            omitted, and `close` releases it.

    Example:
        >>> from dataapi import DataAPIClient
        >>> my_db = DataAPIClient("AstraCS:...").get_database(
        ...    "https://01234567-....apps.astra.datastax.com"
        ... )

    Note:
        The database must already exist: nothing is created here.
    """

    def __init__(
        self,
        api_endpoint: str,
        token: str,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(
            api_endpoint=api_endpoint,
            token=token,
            namespace=namespace,
            caller_name=caller_name,
            caller_version=caller_version,
            api_path=api_path,
            api_version=api_version,
        )
        self._client = client or httpx.Client()

    def __getattr__(self, collection_name: str) -> Collection:
        if collection_name.startswith("_"):
            raise AttributeError(collection_name)
        return self.get_collection(name=collection_name)

    def __getitem__(self, collection_name: str) -> Collection:
        return self.get_collection(name=collection_name)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Database):
            return self._settings_tuple() == other._settings_tuple()
        else:
            return False

    def __enter__(self) -> Database:
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]] = None,
        exc_value: Optional[BaseException] = None,
        traceback: Optional[TracebackType] = None,
    ) -> None:
        self.close()

    def _copy(
        self,
        *,
        api_endpoint: Optional[str] = None,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Database:
        return Database(
            api_endpoint=api_endpoint or self.api_endpoint,
            token=token or self.token,
            namespace=namespace or self.namespace,
            caller_name=caller_name or self.caller_name,
            caller_version=caller_version or self.caller_version,
            api_path=api_path or self.api_path,
            api_version=api_version or self.api_version,
            client=self._client,
        )

    def with_options(
        self,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> Database:
        """
        A copy of this database, sharing its httpx client, with the
        given settings replaced.

        Example:
            >>> reports_db = my_db.with_options(namespace="reports")
        """

        return self._copy(
            namespace=namespace,
            caller_name=caller_name,
            caller_version=caller_version,
        )

    def to_async(
        self,
        *,
        api_endpoint: Optional[str] = None,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> AsyncDatabase:
        """
        The asyncio counterpart of this database, with the given overrides.
        It opens an httpx.AsyncClient of its own.

        Example:
            >>> my_async_db = my_db.to_async()
            >>> my_async_coll = my_async_db.get_collection("movies")
        """

        return AsyncDatabase(
            api_endpoint=api_endpoint or self.api_endpoint,
            token=token or self.token,
            namespace=namespace or self.namespace,
            caller_name=caller_name or self.caller_name,
            caller_version=caller_version or self.caller_version,
            api_path=api_path or self.api_path,
            api_version=api_version or self.api_version,
        )

    def _get_commander(
        self,
        collection_name: Optional[str] = None,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> APICommander:
        return APICommander(
            api_endpoint=self.api_endpoint,
            path=_commander_path(
                self.api_path,
                self.api_version,
                namespace or self.namespace,
                collection_name,
            ),
            token=self.token,
            caller_name=caller_name or self.caller_name,
            caller_version=caller_version or self.caller_version,
            auth_header=DEFAULT_AUTH_HEADER,
            client=self._client,
        )

    def get_collection(
        self, name: str, *, namespace: Optional[str] = None
    ) -> Collection:
        """
        A Collection for `name`, in `namespace` or else the working one.
        No request is made, so a missing collection only shows up on use.

        Example:
            >>> my_col = my_db.get_collection("my_collection")
            >>> my_col.count_documents({}, upper_bound=100)
            41

        Note:
            `my_db.movies` and `my_db["movies"]` are shorthands for
            `my_db.get_collection("movies")`.
        """

        # collection imports this module
        from dataapi.collection import Collection

        _namespace = namespace or self.namespace
        return Collection(self, name, namespace=_namespace)

    def command(
        self,
        body: Dict[str, Any],
        *,
        namespace: Optional[str] = None,
        collection_name: Optional[str] = None,
        max_time_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        POST `body` as it is and return the decoded response.

        Args:
            body: the JSON command.
            namespace: the target namespace, the working one if omitted.
            collection_name: when given, the command goes to that
                collection's URL rather than the namespace's.
            max_time_ms: a time budget for the request, in milliseconds.

        Example:
            >>> my_db.command({"findCollections": {}})
            {'status': {'collections': ['my_coll']}}
            >>> my_db.command({"countDocuments": {}}, collection_name="my_coll")
            {'status': {'count': 123}}
        """

        commander = self._get_commander(collection_name, namespace=namespace)
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        if collection_name:
            logger.info(f"issuing custom command to API (on '{collection_name}')")
        else:
            logger.info("issuing custom command to API")
        req_response = commander.execute(body, timeout_manager=timeout_manager)
        logger.info("finished issuing custom command to API")
        return req_response.raw

    def close(self) -> None:
        """
        Close the httpx client. Every collection and copy sharing it
        stops working as well.
        """

        self._client.close()


class AsyncDatabase(_DatabaseSettings):
    """
    The asyncio flavour of Database, handing out AsyncCollection objects.
    It takes the arguments of Database, with an httpx.AsyncClient as `client`.

    Example:
        >>> from dataapi import DataAPIClient
        >>> my_client = DataAPIClient("AstraCS:...")
        >>> async with my_client.get_async_database(
        ...    "https://01234567-....apps.astra.datastax.com"
        ... ) as my_async_db:
        ...     my_async_coll = my_async_db.get_collection("movies")
    """

    def __init__(
        self,
        api_endpoint: str,
        token: str,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            api_endpoint=api_endpoint,
            token=token,
            namespace=namespace,
            caller_name=caller_name,
            caller_version=caller_version,
            api_path=api_path,
            api_version=api_version,
        )
        self._client = client or httpx.AsyncClient()

    def __getattr__(self, collection_name: str) -> AsyncCollection:
        if collection_name.startswith("_"):
            raise AttributeError(collection_name)
        return self.get_collection(name=collection_name)

    def __getitem__(self, collection_name: str) -> AsyncCollection:
        return self.get_collection(name=collection_name)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, AsyncDatabase):
            return self._settings_tuple() == other._settings_tuple()
        else:
            return False

    async def __aenter__(self) -> AsyncDatabase:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]] = None,
        exc_value: Optional[BaseException] = None,
        traceback: Optional[TracebackType] = None,
    ) -> None:
        await self.aclose()

    def _copy(
        self,
        *,
        api_endpoint: Optional[str] = None,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> AsyncDatabase:
        return AsyncDatabase(
            api_endpoint=api_endpoint or self.api_endpoint,
            token=token or self.token,
            namespace=namespace or self.namespace,
            caller_name=caller_name or self.caller_name,
            caller_version=caller_version or self.caller_version,
            api_path=api_path or self.api_path,
            api_version=api_version or self.api_version,
            client=self._client,
        )

    def with_options(
        self,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> AsyncDatabase:
        """
        A copy sharing the httpx client, as in `Database.with_options`.
        """

        return self._copy(
            namespace=namespace,
            caller_name=caller_name,
            caller_version=caller_version,
        )

    def to_sync(
        self,
        *,
        api_endpoint: Optional[str] = None,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Database:
        """
        The blocking counterpart of this database, with the given overrides.
        It opens an httpx.Client of its own.
        """

        return Database(
            api_endpoint=api_endpoint or self.api_endpoint,
            token=token or self.token,
            namespace=namespace or self.namespace,
            caller_name=caller_name or self.caller_name,
            caller_version=caller_version or self.caller_version,
            api_path=api_path or self.api_path,
            api_version=api_version or self.api_version,
        )

    def _get_commander(
        self,
        collection_name: Optional[str] = None,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> AsyncAPICommander:
        return AsyncAPICommander(
            api_endpoint=self.api_endpoint,
            path=_commander_path(
                self.api_path,
                self.api_version,
                namespace or self.namespace,
                collection_name,
            ),
            token=self.token,
            caller_name=caller_name or self.caller_name,
            caller_version=caller_version or self.caller_version,
            auth_header=DEFAULT_AUTH_HEADER,
            client=self._client,
        )

    def get_collection(
        self, name: str, *, namespace: Optional[str] = None
    ) -> AsyncCollection:
        """
        An AsyncCollection for `name`. No request is made.

        Example:
            >>> my_async_coll = my_async_db.get_collection("my_collection")
            >>> asyncio.run(my_async_coll.count_documents({}, upper_bound=100))
            41
        """

        # collection imports this module
        from dataapi.collection import AsyncCollection

        _namespace = namespace or self.namespace
        return AsyncCollection(self, name, namespace=_namespace)

    async def command(
        self,
        body: Dict[str, Any],
        *,
        namespace: Optional[str] = None,
        collection_name: Optional[str] = None,
        max_time_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        POST `body` as it is, as in `Database.command`.
        """

        commander = self._get_commander(collection_name, namespace=namespace)
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        if collection_name:
            logger.info(f"issuing custom command to API (on '{collection_name}')")
        else:
            logger.info("issuing custom command to API")
        req_response = await commander.execute(body, timeout_manager=timeout_manager)
        logger.info("finished issuing custom command to API")
        return req_response.raw

    async def aclose(self) -> None:
        """Release the httpx client of this database."""

        await self._client.aclose()
