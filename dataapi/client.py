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
import re
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from dataapi.database import AsyncDatabase, Database


logger = logging.getLogger(__name__)


api_endpoint_matcher = re.compile(r"^https?://[^\s/]+")


class DataAPIClient:
    """
    Entry point of the library. A client holds the token and the caller
    identity, and hands out Database and AsyncDatabase objects; those in
    turn hand out collections.

    Args:
        token: the access token, such as `"AstraCS:xyz..."`.
        caller_name: name of the application or framework using the client,
            reported in the User-Agent of every request.
        caller_version: version of the caller, also reported.

    Example:
        >>> from dataapi import DataAPIClient
        >>> my_client = DataAPIClient("AstraCS:...")
        >>> my_db = my_client["https://01234567-....apps.astra.datastax.com"]
        >>> my_db.people.insert_one({"name": "Ann"})
    """

    def __init__(
        self,
        token: str,
        *,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> None:
        self.token = token
        self._caller_name = caller_name
        self._caller_version = caller_version

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}("{self.token[:12]}...")'

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, DataAPIClient):
            return (self.token, self._caller_name, self._caller_version) == (
                other.token,
                other._caller_name,
                other._caller_version,
            )
        else:
            return False

    def __getitem__(self, api_endpoint: str) -> Database:
        if not api_endpoint_matcher.match(api_endpoint):
            raise ValueError(
                "The provided input does not look like an API endpoint "
                f"('{api_endpoint}')."
            )
        return self.get_database(api_endpoint)

    def _copy(
        self,
        *,
        token: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> DataAPIClient:
        return DataAPIClient(
            token=token or self.token,
            caller_name=caller_name or self._caller_name,
            caller_version=caller_version or self._caller_version,
        )

    def with_options(
        self,
        *,
        token: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> DataAPIClient:
        """
        A copy of this client, with the given settings replaced.

        Example:
            >>> tagged_client = my_client.with_options(caller_name="nightly_job")
        """

        return self._copy(
            token=token,
            caller_name=caller_name,
            caller_version=caller_version,
        )

    def set_caller(
        self,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> None:
        """
        Change the caller identity in place. Databases obtained earlier
        keep the identity they were created with.
        """

        logger.info(f"setting caller to {caller_name}/{caller_version}")
        self._caller_name = caller_name
        self._caller_version = caller_version

    def get_database(
        self,
        api_endpoint: str,
        *,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Database:
        """
        A Database for the given endpoint. No request is made: the database
        must exist already.

        Args:
            api_endpoint: base URL of the Data API, without the path,
                such as "https://01234567-...-us-east1.apps.astra.datastax.com".
            token: a token to use for this database instead of the client's.
            namespace: the working namespace of the database. It defaults
                to "default_keyspace".
            api_path: the path after the endpoint. It defaults to "/api/json".
            api_version: the version segment after the path. It defaults to "v1".

        Returns:
            a Database.

        Example:
            >>> my_db = my_client.get_database(
            ...     "https://01234567-...-us-east1.apps.astra.datastax.com",
            ...     namespace="store",
            ... )
        """

        # lazy importing here against circular-import error
        from dataapi.database import Database

        logger.info(f"getting database for '{api_endpoint}'")
        return Database(
            api_endpoint=api_endpoint,
            token=token or self.token,
            namespace=namespace,
            caller_name=self._caller_name,
            caller_version=self._caller_version,
            api_path=api_path,
            api_version=api_version,
        )

    def get_async_database(
        self,
        api_endpoint: str,
        *,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        api_path: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> AsyncDatabase:
        """The async twin of `get_database`, returning an AsyncDatabase."""

        # lazy importing here against circular-import error
        from dataapi.database import AsyncDatabase

        logger.info(f"getting async database for '{api_endpoint}'")
        return AsyncDatabase(
            api_endpoint=api_endpoint,
            token=token or self.token,
            namespace=namespace,
            caller_name=self._caller_name,
            caller_version=self._caller_version,
            api_path=api_path,
            api_version=api_version,
        )
