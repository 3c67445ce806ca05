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

import threading
import time
from typing import Any, Callable, Dict, List

import pytest

from dataapi import AsyncCollection, Collection
from dataapi.core.core_types import API_COMMAND
from dataapi.exceptions import DataAPIHttpException, InsertManyException

from .conftest import Responder, error_response, insert_many_responder, sent_commands


def _documents(n: int) -> List[Dict[str, Any]]:
    return [{"_id": f"d{i}", "seq": i} for i in range(n)]


def _failing_chunk_responder(failing_first_id: str) -> Callable[[API_COMMAND], Any]:
    """
    Reject the chunk starting with `failing_first_id`: only its first
    document is reported as inserted.
    """

    def _responder(command: API_COMMAND) -> Dict[str, Any]:
        documents = command["insertMany"]["documents"]
        if documents[0]["_id"] == failing_first_id:
            return error_response(
                "Document already exists",
                status={"insertedIds": [documents[0]["_id"]]},
            )
        return insert_many_responder(command)

    return _responder


class TestInsertManySync:
    @pytest.mark.describe("insert_many splits documents into chunks, in order")
    def test_insert_many_ordered_chunks(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(insert_many_responder)
        result = coll.insert_many(_documents(12), chunk_size=5)

        commands = sent_commands(coll)
        assert [len(cmd["insertMany"]["documents"]) for cmd in commands] == [5, 5, 2]
        assert all(cmd["insertMany"]["options"] == {"ordered": True} for cmd in commands)
        assert result.inserted_ids == [f"d{i}" for i in range(12)]
        assert result.inserted_count == 12
        assert len(result.raw_results) == 3

    @pytest.mark.describe("insert_many uses a default chunk size of 50")
    def test_insert_many_default_chunk_size(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(insert_many_responder)
        coll.insert_many(_documents(120))
        sizes = [len(cmd["insertMany"]["documents"]) for cmd in sent_commands(coll)]
        assert sizes == [50, 50, 20]

    @pytest.mark.describe("insert_many with no documents issues no requests")
    def test_insert_many_empty(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection([])
        result = coll.insert_many([], ordered=False)
        assert result.inserted_ids == []
        assert result.raw_results == []
        assert sent_commands(coll) == []

    @pytest.mark.describe("ordered insert_many stops at the first failing chunk")
    def test_insert_many_ordered_failure(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_failing_chunk_responder("d4"))
        with pytest.raises(InsertManyException) as exc_info:
            coll.insert_many(_documents(10), chunk_size=2)

        # chunks d0-d1, d2-d3 fine; d4-d5 fails after storing d4
        assert len(sent_commands(coll)) == 3
        exc = exc_info.value
        assert exc.partial_result.inserted_ids == ["d0", "d1", "d2", "d3", "d4"]
        assert len(exc.partial_result.raw_results) == 3
        assert exc.text == "Document already exists"
        assert len(exc.detailed_error_descriptors) == 1
        assert exc.detailed_error_descriptors[0].command == sent_commands(coll)[2]

    @pytest.mark.describe("unordered insert_many attempts all chunks despite failures")
    def test_insert_many_unordered_failures(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        def _responder(command: API_COMMAND) -> Dict[str, Any]:
            documents = command["insertMany"]["documents"]
            if documents[0]["_id"] in {"d2", "d6"}:
                return error_response(
                    f"failed at {documents[0]['_id']}",
                    status={"insertedIds": [documents[1]["_id"]]},
                )
            return insert_many_responder(command)

        coll = make_collection(_responder)
        with pytest.raises(InsertManyException) as exc_info:
            coll.insert_many(
                _documents(10), ordered=False, chunk_size=2, concurrency=3
            )

        assert len(sent_commands(coll)) == 5
        exc = exc_info.value
        assert sorted(exc.partial_result.inserted_ids) == sorted(
            ["d0", "d1", "d3", "d4", "d5", "d7", "d8", "d9"]
        )
        assert len(exc.detailed_error_descriptors) == 2
        assert {e_d.message for e_d in exc.error_descriptors} == {
            "failed at d2",
            "failed at d6",
        }
        assert "(+ 1 more errors)" in str(exc)
        assert all(
            cmd["insertMany"]["options"] == {"ordered": False}
            for cmd in sent_commands(coll)
        )

    @pytest.mark.describe("unordered insert_many reports IDs in chunk order")
    def test_insert_many_unordered_ids_order(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(insert_many_responder)
        result = coll.insert_many(
            _documents(9), ordered=False, chunk_size=3, concurrency=3
        )
        assert result.inserted_ids == [f"d{i}" for i in range(9)]

    @pytest.mark.describe("unordered insert_many never exceeds its concurrency")
    def test_insert_many_concurrency_bound(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        in_flight = 0
        max_in_flight = 0
        counter_lock = threading.Lock()

        def _responder(command: API_COMMAND) -> Dict[str, Any]:
            nonlocal in_flight, max_in_flight
            with counter_lock:
                in_flight += 1
                max_in_flight = max(max_in_flight, in_flight)
            time.sleep(0.01)
            with counter_lock:
                in_flight -= 1
            return insert_many_responder(command)

        coll = make_collection(_responder)
        coll._executor.lock = _NullLock()  # type: ignore[attr-defined]
        result = coll.insert_many(
            _documents(40), ordered=False, chunk_size=2, concurrency=4
        )
        assert result.inserted_count == 40
        assert 1 <= max_in_flight <= 4

    @pytest.mark.describe("insert_many rejects ordered insertions with concurrency")
    def test_insert_many_ordered_concurrency_error(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection([])
        with pytest.raises(ValueError):
            coll.insert_many(_documents(3), ordered=True, concurrency=2)
        with pytest.raises(ValueError):
            coll.insert_many(_documents(3), chunk_size=-1)
        assert sent_commands(coll) == []

    @pytest.mark.describe("insert_many attaches vectors to documents")
    def test_insert_many_vectors(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(insert_many_responder)
        coll.insert_many(
            [{"_id": "a"}, {"_id": "b"}],
            vectors=[[0.1, 0.2], None],
        )
        documents = sent_commands(coll)[0]["insertMany"]["documents"]
        assert documents == [{"_id": "a", "$vector": [0.1, 0.2]}, {"_id": "b"}]

        with pytest.raises(ValueError):
            coll.insert_many([{"_id": "a"}], vectors=[[0.1], [0.2]])

    @pytest.mark.describe("insert_many lets hard errors through")
    def test_insert_many_hard_error(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        http_error = DataAPIHttpException(
            "500 Server Error",
            status_code=500,
            endpoint=None,
            error_descriptors=[],
        )
        coll = make_collection([{"status": {"insertedIds": ["d0"]}}, http_error])
        with pytest.raises(DataAPIHttpException):
            coll.insert_many(_documents(2), chunk_size=1)


class _NullLock:
    def __enter__(self) -> None:
        return None

    def __exit__(self, *pargs: Any) -> None:
        return None


class TestInsertManyAsync:
    @pytest.mark.describe("insert_many splits documents into chunks, in order, async")
    async def test_insert_many_ordered_chunks_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        acoll = make_async_collection(insert_many_responder)
        result = await acoll.insert_many(_documents(7), chunk_size=3)
        sizes = [len(cmd["insertMany"]["documents"]) for cmd in sent_commands(acoll)]
        assert sizes == [3, 3, 1]
        assert result.inserted_ids == [f"d{i}" for i in range(7)]

    @pytest.mark.describe("ordered insert_many stops at the first failing chunk, async")
    async def test_insert_many_ordered_failure_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        acoll = make_async_collection(_failing_chunk_responder("d2"))
        with pytest.raises(InsertManyException) as exc_info:
            await acoll.insert_many(_documents(6), chunk_size=2)
        assert len(sent_commands(acoll)) == 2
        assert exc_info.value.partial_result.inserted_ids == ["d0", "d1", "d2"]

    @pytest.mark.describe("unordered insert_many aggregates all failures, async")
    async def test_insert_many_unordered_failures_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        acoll = make_async_collection(_failing_chunk_responder("d4"))
        with pytest.raises(InsertManyException) as exc_info:
            await acoll.insert_many(
                _documents(8), ordered=False, chunk_size=2, concurrency=2
            )
        assert len(sent_commands(acoll)) == 4
        assert exc_info.value.partial_result.inserted_ids == [
            "d0",
            "d1",
            "d2",
            "d3",
            "d4",
            "d6",
            "d7",
        ]
        assert len(exc_info.value.detailed_error_descriptors) == 1

    @pytest.mark.describe("unordered insert_many succeeds with concurrency, async")
    async def test_insert_many_unordered_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        acoll = make_async_collection(insert_many_responder)
        result = await acoll.insert_many(
            _documents(25), ordered=False, chunk_size=4, concurrency=5
        )
        assert result.inserted_ids == [f"d{i}" for i in range(25)]
        assert len(result.raw_results) == 7
