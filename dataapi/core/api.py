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
from typing import Any, Optional

import httpx

from dataapi.core.core_types import API_COMMAND, ResponseEnvelope
from dataapi.core.defaults import DEFAULT_AUTH_HEADER
from dataapi.core.utils import amake_request, make_request, to_httpx_timeout
from dataapi.exceptions import (
    DataAPIFaultyResponseException,
    MultiCallTimeoutManager,
    recast_method_async,
    recast_method_sync,
)

logger = logging.getLogger(__name__)


def process_raw_api_response(raw_response: httpx.Response) -> ResponseEnvelope:
    """
    Decode an HTTP response into a ResponseEnvelope.
    A non-2XX status raises httpx.HTTPStatusError, to be recast by the caller.
    Any "errors" in a 2XX response are left in the envelope.
    """
    raw_response.raise_for_status()
    try:
        response_body: Any = raw_response.json()
    except ValueError:
        # Handle cases where json() parsing fails (e.g., empty body)
        raise DataAPIFaultyResponseException(
            text="Response is not valid JSON.",
            raw_response=raw_response.text,
        )
    envelope = ResponseEnvelope.from_raw(response_body)
    if envelope.has_errors:
        logger.debug(envelope.errors)
    return envelope


class _BaseAPICommander:
    def __init__(
        self,
        api_endpoint: str,
        path: str,
        token: str,
        *,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        auth_header: str = DEFAULT_AUTH_HEADER,
    ) -> None:
        self.api_endpoint = api_endpoint.rstrip("/")
        self.path = path
        self.token = token
        self.caller_name = caller_name
        self.caller_version = caller_version
        self.auth_header = auth_header
        self.full_path = f"{self.api_endpoint}/{self.path.strip('/')}"

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(full_path="{self.full_path}")'


class APICommander(_BaseAPICommander):
    """
    The command executor posting commands to a fixed Data API path
    (typically a collection) through a synchronous httpx client.

    Args:
        api_endpoint: the full "API Endpoint" string, e.g.
            "https://<db_id>-<region>.apps.astra.datastax.com".
        path: the path, after the endpoint, the commands are posted to.
        token: the token for the requests.
        caller_name: name of the application, for the User-Agent header.
        caller_version: version of the application, for the User-Agent header.
        client: an optional httpx.Client to use. If not supplied,
            a new one is created.
    """

    def __init__(
        self,
        api_endpoint: str,
        path: str,
        token: str,
        *,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        auth_header: str = DEFAULT_AUTH_HEADER,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(
            api_endpoint=api_endpoint,
            path=path,
            token=token,
            caller_name=caller_name,
            caller_version=caller_version,
            auth_header=auth_header,
        )
        self.client = client or httpx.Client()

    @recast_method_sync
    def execute(
        self,
        command: API_COMMAND,
        *,
        timeout_manager: MultiCallTimeoutManager,
    ) -> ResponseEnvelope:
        """
        Post a command and return the decoded response.

        Raises:
            DataAPITimeoutException: if the overall budget is exhausted before
                sending, or if the request itself times out.
            DataAPIHttpException: for non-success HTTP statuses.
            DataAPIFaultyResponseException: if the response cannot be decoded.
        """
        timeout_info = timeout_manager.remaining_timeout_info()
        raw_response = make_request(
            client=self.client,
            url=self.full_path,
            auth_header=self.auth_header,
            token=self.token,
            json_data=command,
            caller_name=self.caller_name,
            caller_version=self.caller_version,
            timeout=to_httpx_timeout(timeout_info),
        )
        return process_raw_api_response(raw_response)

    def close(self) -> None:
        self.client.close()


class AsyncAPICommander(_BaseAPICommander):
    """
    The async counterpart of APICommander, built on httpx.AsyncClient.
    Same constructor parameters, except for `client` which must be
    an httpx.AsyncClient.
    """

    def __init__(
        self,
        api_endpoint: str,
        path: str,
        token: str,
        *,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        auth_header: str = DEFAULT_AUTH_HEADER,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            api_endpoint=api_endpoint,
            path=path,
            token=token,
            caller_name=caller_name,
            caller_version=caller_version,
            auth_header=auth_header,
        )
        self.client = client or httpx.AsyncClient()

    @recast_method_async
    async def execute(
        self,
        command: API_COMMAND,
        *,
        timeout_manager: MultiCallTimeoutManager,
    ) -> ResponseEnvelope:
        timeout_info = timeout_manager.remaining_timeout_info()
        raw_response = await amake_request(
            client=self.client,
            url=self.full_path,
            auth_header=self.auth_header,
            token=self.token,
            json_data=command,
            caller_name=self.caller_name,
            caller_version=self.caller_version,
            timeout=to_httpx_timeout(timeout_info),
        )
        return process_raw_api_response(raw_response)

    async def aclose(self) -> None:
        await self.client.aclose()
