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

import time
from typing import Any, Callable, Dict, List, Optional

import pytest

from dataapi import AsyncCollection, Collection
from dataapi.constants import SortDocuments
from dataapi.cursors import CursorState
from dataapi.exceptions import (
    CursorIsStartedException,
    DataAPIFaultyResponseException,
    DataAPIResponseException,
    DataAPITimeoutException,
)

from .conftest import Responder, error_response, sent_commands


def _page(
    seqs: List[int], next_page_state: Optional[str] = None
) -> Dict[str, Any]:
    data: Dict[str, Any] = {"documents": [{"_id": f"d{i}", "seq": i} for i in seqs]}
    if next_page_state is not None:
        data["nextPageState"] = next_page_state
    return {"data": data}


def _three_pages() -> List[Any]:
    return [
        _page([0, 1, 2], "p1"),
        _page([3, 4, 5], "p2"),
        _page([6]),
    ]


class TestCursorSync:
    @pytest.mark.describe("cursor iterates over all pages")
    def test_cursor_pages(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages())
        cursor = coll.find({"tag": "x"}, projection=["seq"])
        assert cursor.state == CursorState.IDLE
        assert [doc["seq"] for doc in cursor] == list(range(7))
        assert cursor.state == CursorState.EXHAUSTED
        assert not cursor.alive
        assert cursor.consumed == 7
        assert cursor.retrieved == 7

        commands = sent_commands(coll)
        assert commands[0] == {
            "find": {"filter": {"tag": "x"}, "projection": {"seq": True}}
        }
        assert commands[1]["find"]["options"] == {"pageState": "p1"}
        assert commands[2]["find"]["options"] == {"pageState": "p2"}

    @pytest.mark.describe("cursor honours the limit and passes options along")
    def test_cursor_limit(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages())
        cursor = coll.find(
            {}, sort={"seq": SortDocuments.DESCENDING}, skip=2, limit=4
        )
        assert [doc["seq"] for doc in cursor] == [0, 1, 2, 3]
        assert len(sent_commands(coll)) == 2
        assert sent_commands(coll)[0]["find"] == {
            "filter": {},
            "sort": {"seq": -1},
            "options": {"limit": 4, "skip": 2},
        }
        assert cursor.state == CursorState.EXHAUSTED

    @pytest.mark.describe("cursor has_next starts the cursor and peeks ahead")
    def test_cursor_has_next(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection([_page([0], "p1"), _page([])])
        cursor = coll.find()
        assert cursor.has_next()
        assert cursor.state == CursorState.STARTED
        assert cursor.buffered_count == 1
        assert next(cursor)["seq"] == 0
        assert not cursor.has_next()
        with pytest.raises(StopIteration):
            next(cursor)
        assert cursor.state == CursorState.EXHAUSTED

    @pytest.mark.describe("cursor setters work only on idle cursors")
    def test_cursor_setters(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages())
        cursor = coll.find().filter({"a": 1}).limit(2).skip(1).sort({"a": 1})
        next(cursor)
        assert sent_commands(coll)[0]["find"]["sort"] == {"a": 1}
        assert sent_commands(coll)[0]["find"]["filter"] == {"a": 1}
        with pytest.raises(CursorIsStartedException) as exc_info:
            cursor.sort({"b": SortDocuments.DESCENDING})
        assert exc_info.value.cursor_state == CursorState.STARTED.value
        with pytest.raises(CursorIsStartedException):
            cursor.limit(3)
        with pytest.raises(CursorIsStartedException):
            cursor.distinct("seq")
        with pytest.raises(ValueError):
            coll.find(limit=-1)
        with pytest.raises(ValueError):
            coll.find().sort({"a": True})

    @pytest.mark.describe("cursor buffer can be consumed without API calls")
    def test_cursor_consume_buffer(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages())
        cursor = coll.find()
        next(cursor)
        assert cursor.buffered_count == 2
        assert [doc["seq"] for doc in cursor.consume_buffer(1)] == [1]
        assert cursor.consumed == 2
        assert [doc["seq"] for doc in cursor.consume_buffer()] == [2]
        assert cursor.consume_buffer(5) == []
        assert len(sent_commands(coll)) == 1
        with pytest.raises(ValueError):
            cursor.consume_buffer(-1)
        assert next(cursor)["seq"] == 3

    @pytest.mark.describe("cursor clone and rewind restart from scratch")
    def test_cursor_clone_rewind(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages() + _three_pages() + _three_pages())
        cursor = coll.find({"a": 1}, limit=10)
        assert len(cursor.to_list()) == 7
        clone = cursor.clone()
        assert clone.state == CursorState.IDLE
        assert len(clone.to_list()) == 7
        cursor.rewind()
        assert cursor.state == CursorState.IDLE
        assert cursor.consumed == 0
        assert len(cursor.to_list()) == 7
        assert all(cmd["find"]["filter"] == {"a": 1} for cmd in sent_commands(coll))

    @pytest.mark.describe("closed and exhausted cursors refuse to iterate again")
    def test_cursor_close(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages())
        cursor = coll.find()
        next(cursor)
        cursor.close()
        assert cursor.state == CursorState.CLOSED
        assert not cursor.has_next()
        with pytest.raises(CursorIsStartedException):
            cursor.to_list()

    @pytest.mark.describe("cursor for_each stops when the function returns False")
    def test_cursor_for_each(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages())
        seen: List[int] = []

        def _visit(doc: Dict[str, Any]) -> bool:
            seen.append(doc["seq"])
            return doc["seq"] < 3

        cursor = coll.find()
        cursor.for_each(_visit)
        assert seen == [0, 1, 2, 3]
        assert cursor.alive
        assert next(cursor)["seq"] == 4

    @pytest.mark.describe("cursor raises on API errors and faulty pages")
    def test_cursor_errors(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection([_page([0], "p1"), error_response("Bad filter")])
        cursor = coll.find()
        next(cursor)
        with pytest.raises(DataAPIResponseException) as exc_info:
            next(cursor)
        assert exc_info.value.text == "Bad filter"

        coll2 = make_collection([{"status": {}}])
        with pytest.raises(DataAPIFaultyResponseException):
            coll2.find().to_list()

    @pytest.mark.describe("cursor timeout covers the whole iteration")
    def test_cursor_timeout(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages())
        cursor = coll.find(max_time_ms=1)
        with pytest.raises(DataAPITimeoutException):
            # a deadline of 1 ms is certainly spent before the third page
            for _ in cursor:
                time.sleep(0.002)

    @pytest.mark.describe("find validates include_similarity against vector sorts")
    def test_find_include_similarity(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection([_page([])])
        with pytest.raises(ValueError):
            coll.find({}, include_similarity=True)
        with pytest.raises(ValueError):
            coll.find({}, vector=[0.1], sort={"a": 1})
        coll.find(
            {}, vector=[0.1, 0.2], include_similarity=True, include_sort_vector=True
        ).to_list()
        assert sent_commands(coll)[0]["find"] == {
            "filter": {},
            "sort": {"$vector": [0.1, 0.2]},
            "options": {"includeSimilarity": True, "includeSortVector": True},
        }

    @pytest.mark.describe("read_buffered_documents is a deprecated alias")
    def test_cursor_deprecated_alias(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection(_three_pages())
        cursor = coll.find()
        next(cursor)
        with pytest.warns(DeprecationWarning):
            documents = cursor.read_buffered_documents(1)
        assert [doc["seq"] for doc in documents] == [1]


    @pytest.mark.describe("cursor goes past empty pages that carry a page state")
    def test_cursor_empty_middle_page(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        coll = make_collection([_page([0], "p1"), _page([], "p2"), _page([1])])
        assert [doc["seq"] for doc in coll.find({}).to_list()] == [0, 1]
        commands = sent_commands(coll)
        assert len(commands) == 3
        assert commands[2]["find"]["options"] == {"pageState": "p2"}

        coll2 = make_collection([_page([], "p1"), _page([], "p2"), _page([5])])
        cursor = coll2.find({})
        assert cursor.has_next()
        assert cursor.retrieved == 1
        assert next(cursor)["seq"] == 5
        assert not cursor.has_next()
        assert len(sent_commands(coll2)) == 3

    @pytest.mark.describe("cursor returns the sort vector sent with the first page")
    def test_cursor_sort_vector(
        self, make_collection: Callable[[Responder], Collection]
    ) -> None:
        first_page = _page([0], "p1")
        first_page["status"] = {"sortVector": [0.5, 0.25]}
        coll = make_collection([first_page, _page([1])])
        cursor = coll.find({}, vector=[0.5, 0.25], include_sort_vector=True)
        assert cursor.get_sort_vector() == [0.5, 0.25]
        assert cursor.state == CursorState.STARTED
        assert len(sent_commands(coll)) == 1
        assert sent_commands(coll)[0]["find"]["options"] == {"includeSortVector": True}
        assert [doc["seq"] for doc in cursor] == [0, 1]
        assert cursor.get_sort_vector() == [0.5, 0.25]
        assert len(sent_commands(coll)) == 2

        coll2 = make_collection([])
        assert coll2.find({}, vector=[0.5, 0.25]).get_sort_vector() is None
        assert sent_commands(coll2) == []


class TestCursorAsync:
    @pytest.mark.describe("cursor iterates over all pages, async")
    async def test_cursor_pages_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        acoll = make_async_collection(_three_pages())
        cursor = acoll.find({})
        assert [doc["seq"] async for doc in cursor] == list(range(7))
        assert cursor.state == CursorState.EXHAUSTED
        assert len(sent_commands(acoll)) == 3

    @pytest.mark.describe("cursor has_next and limit, async")
    async def test_cursor_has_next_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        acoll = make_async_collection(_three_pages())
        cursor = acoll.find({}, limit=2)
        assert await cursor.has_next()
        assert [doc["seq"] for doc in await cursor.to_list()] == [0, 1]
        assert not await cursor.has_next()

    @pytest.mark.describe("cursor for_each stops early, async")
    async def test_cursor_for_each_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        acoll = make_async_collection(_three_pages())
        seen: List[int] = []

        def _visit(doc: Dict[str, Any]) -> Optional[bool]:
            seen.append(doc["seq"])
            if doc["seq"] == 4:
                return False
            return None

        await acoll.find({}).for_each(_visit)
        assert seen == [0, 1, 2, 3, 4]

    @pytest.mark.describe("cursor goes past empty pages that carry a page state, async")
    async def test_cursor_empty_middle_page_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        acoll = make_async_collection(
            [_page([0], "p1"), _page([], "p2"), _page([1])]
        )
        cursor = acoll.find({})
        assert [doc["seq"] for doc in await cursor.to_list()] == [0, 1]
        assert len(sent_commands(acoll)) == 3
        assert cursor.state == CursorState.EXHAUSTED

    @pytest.mark.describe("cursor returns the sort vector, async")
    async def test_cursor_sort_vector_async(
        self, make_async_collection: Callable[[Responder], AsyncCollection]
    ) -> None:
        first_page = _page([0])
        first_page["status"] = {"sortVector": [1.0, 0.0]}
        acoll = make_async_collection([first_page])
        cursor = acoll.find({}, vector=[1.0, 0.0], include_sort_vector=True)
        assert await cursor.get_sort_vector() == [1.0, 0.0]
        assert [doc["seq"] async for doc in cursor] == [0]
        assert len(sent_commands(acoll)) == 1
