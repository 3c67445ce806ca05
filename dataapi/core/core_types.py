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

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol

from dataapi.exceptions import DataAPIFaultyResponseException

if TYPE_CHECKING:
    from dataapi.exceptions import MultiCallTimeoutManager


# A type for:
#     "dict from parsing a JSON from the API responses"
# This is not exactly == the JSON specs,
# (e.g. 'null' is valid JSON), but the Data API is committed to always
# return JSON objects with a mapping as top-level.
API_RESPONSE = Dict[str, Any]

# A type for:
#     "document stored on the collections"
# Identical to the above in its nature, but preferrably marked as
# 'a distinct thing, conceptually, from the returned JSONs'
API_DOC = Dict[str, Any]

# A command as sent to the Data API, e.g. {"insertMany": {...}}
API_COMMAND = Dict[str, Any]


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    A decoded response from the Data API.

    Any combination of the three sections may be present: an operation
    can return `status` and `data` alongside a non-empty `errors` list
    (e.g. an insertMany that stored some of the documents before failing).

    Attributes:
        raw: the response JSON exactly as received.
        status: the "status" section, an empty dict if absent.
        data: the "data" section, or None if absent.
        errors: the "errors" section, an empty list if absent.
    """

    raw: API_RESPONSE
    status: Dict[str, Any] = field(default_factory=dict)
    data: Optional[Dict[str, Any]] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @staticmethod
    def from_raw(raw_response: Any) -> ResponseEnvelope:
        """
        Validate the shape of a parsed response and wrap it.

        Raises:
            DataAPIFaultyResponseException: if any of the sections is
                not of the expected type.
        """

        if not isinstance(raw_response, dict):
            raise DataAPIFaultyResponseException(
                text="Response is not a JSON object.",
                raw_response=raw_response,
            )
        status = raw_response.get("status") or {}
        data = raw_response.get("data")
        errors = raw_response.get("errors") or []
        if not isinstance(status, dict):
            raise DataAPIFaultyResponseException(
                text="Faulty 'status' in response.",
                raw_response=raw_response,
            )
        if data is not None and not isinstance(data, dict):
            raise DataAPIFaultyResponseException(
                text="Faulty 'data' in response.",
                raw_response=raw_response,
            )
        if not isinstance(errors, list) or not all(
            isinstance(error, dict) for error in errors
        ):
            raise DataAPIFaultyResponseException(
                text="Faulty 'errors' in response.",
                raw_response=raw_response,
            )
        return ResponseEnvelope(
            raw=raw_response,
            status=status,
            data=data,
            errors=errors,
        )

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def next_page_state(self) -> Optional[str]:
        return self.status.get("nextPageState")

    @property
    def more_data(self) -> bool:
        return bool(self.status.get("moreData"))

    @property
    def documents(self) -> List[API_DOC]:
        """The documents of a page returned by a `find` command."""

        if self.data is None:
            return []
        return list(self.data.get("documents") or [])


# The seam between the collection logic and the transport: namespace and
# collection are bound when the executor is created.
class CommandExecutor(Protocol):
    def execute(
        self,
        command: API_COMMAND,
        *,
        timeout_manager: MultiCallTimeoutManager,
    ) -> ResponseEnvelope: ...


class AsyncCommandExecutor(Protocol):
    async def execute(
        self,
        command: API_COMMAND,
        *,
        timeout_manager: MultiCallTimeoutManager,
    ) -> ResponseEnvelope: ...
