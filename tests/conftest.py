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

"""
Fixtures for the unit tests: collections are bound to scripted command
executors, which record every command received and replay canned responses.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, AsyncIterator, Callable, Dict, Iterator, List, Union

import pytest

from dataapi import AsyncCollection, AsyncDatabase, Collection, Database
from dataapi.core.core_types import API_COMMAND, ResponseEnvelope
from dataapi.exceptions import MultiCallTimeoutManager

TEST_API_ENDPOINT = "https://01234567-89ab-cdef-0123-456789abcdef-us-east1.apps.example.com"
TEST_TOKEN = "AstraCS:test-token-0123456789"
TEST_COLLECTION_NAME = "test_coll"

# either a fixed list of responses (consumed in order) or a function
# computing the response from the command
Responder = Union[List[Any], Callable[[API_COMMAND], Any]]


def error_response(message: str, **kwargs: Any) -> Dict[str, Any]:
    return {"errors": [{"message": message, "errorCode": "TEST_ERROR"}], **kwargs}


class MockCommandExecutor:
    """
    A scripted CommandExecutor. A response that is an exception instance
    is raised instead of being returned.
    """

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.commands: List[API_COMMAND] = []
        self.lock = threading.Lock()

    def _next_raw(self, command: API_COMMAND) -> Any:
        with self.lock:
            self.commands.append(copy.deepcopy(command))
            if callable(self.responder):
                return self.responder(command)
            if not self.responder:
                raise AssertionError(f"Unexpected command: {command}")
            return self.responder.pop(0)

    def execute(
        self,
        command: API_COMMAND,
        *,
        timeout_manager: MultiCallTimeoutManager,
    ) -> ResponseEnvelope:
        timeout_manager.remaining_timeout_ms()
        raw = self._next_raw(command)
        if isinstance(raw, Exception):
            raise raw
        return ResponseEnvelope.from_raw(raw)


class AsyncMockCommandExecutor(MockCommandExecutor):
    async def execute(  # type: ignore[override]
        self,
        command: API_COMMAND,
        *,
        timeout_manager: MultiCallTimeoutManager,
    ) -> ResponseEnvelope:
        timeout_manager.remaining_timeout_ms()
        raw = self._next_raw(command)
        if isinstance(raw, Exception):
            raise raw
        return ResponseEnvelope.from_raw(raw)


def insert_many_responder(command: API_COMMAND) -> Dict[str, Any]:
    """Acknowledge all documents of an insertMany, echoing their _id."""
    documents = command["insertMany"]["documents"]
    return {"status": {"insertedIds": [document["_id"] for document in documents]}}


@pytest.fixture
def database() -> Iterator[Database]:
    db = Database(TEST_API_ENDPOINT, TEST_TOKEN)
    yield db
    db.close()


@pytest.fixture
async def async_database() -> AsyncIterator[AsyncDatabase]:
    db = AsyncDatabase(TEST_API_ENDPOINT, TEST_TOKEN)
    yield db
    await db.aclose()


@pytest.fixture
def make_collection(
    database: Database,
) -> Callable[[Responder], Collection]:
    def _make(responder: Responder) -> Collection:
        return Collection(
            database,
            TEST_COLLECTION_NAME,
            executor=MockCommandExecutor(responder),
        )

    return _make


@pytest.fixture
def make_async_collection(
    async_database: AsyncDatabase,
) -> Callable[[Responder], AsyncCollection]:
    def _make(responder: Responder) -> AsyncCollection:
        return AsyncCollection(
            async_database,
            TEST_COLLECTION_NAME,
            executor=AsyncMockCommandExecutor(responder),
        )

    return _make


def sent_commands(collection: Union[Collection, AsyncCollection]) -> List[API_COMMAND]:
    executor = collection._executor
    assert isinstance(executor, MockCommandExecutor)
    return executor.commands
