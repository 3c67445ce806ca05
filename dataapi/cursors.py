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
from enum import Enum
from typing import (
    Any,
    Callable,
    List,
    Optional,
    TypeVar,
    Union,
    TYPE_CHECKING,
)

import deprecation

from dataapi import __version__
from dataapi.constants import (
    DocumentType,
    FilterType,
    ProjectionType,
    SortType,
    normalize_optional_projection,
    normalize_optional_sort,
)
from dataapi.core.core_types import API_COMMAND, ResponseEnvelope
from dataapi.core.utils import make_options, make_payload
from dataapi.distinct import DistinctCollector, DistinctPath
from dataapi.exceptions import (
    CursorIsStartedException,
    DataAPIFaultyResponseException,
    DataAPIResponseException,
    MultiCallTimeoutManager,
)

if TYPE_CHECKING:
    from dataapi.collection import AsyncCollection, Collection


logger = logging.getLogger(__name__)


BC = TypeVar("BC", bound="BaseCursor")


class CursorState(Enum):
    """
    Lifecycle of a cursor.

    Values:
        IDLE: nothing fetched; settings may still change.
        STARTED: at least one page requested.
        EXHAUSTED: every result, or `limit` of them, handed out.
        CLOSED: stopped by `close()`.
    """

    IDLE = "idle"
    STARTED = "started"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


class BaseCursor:
    """
    State and settings common to Cursor and AsyncCursor. Not meant to be
    used directly.

    Documents arrive one page at a time into a buffer. When the buffer runs
    dry, the next page is requested with the page state of the last response.

    Note:
        Outside vector search there is no snapshot: documents written during
        the iteration may be missed or seen twice.
    """

    _collection: Union[Collection, AsyncCollection]
    _filter: Optional[FilterType]
    _projection: Optional[ProjectionType]
    _sort: Optional[SortType]
    _limit: Optional[int]
    _skip: Optional[int]
    _include_similarity: Optional[bool]
    _include_sort_vector: Optional[bool]
    _max_time_ms: Optional[int]
    _state: CursorState
    _buffer: List[DocumentType]
    _next_page_state: Optional[str]
    _sort_vector: Optional[List[float]]
    _pages_retrieved: int
    _retrieved: int
    _consumed: int
    _timeout_manager: Optional[MultiCallTimeoutManager]

    def __init__(
        self,
        collection: Union[Collection, AsyncCollection],
        filter: Optional[FilterType] = None,
        projection: Optional[ProjectionType] = None,
        sort: Optional[SortType] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
        include_similarity: Optional[bool] = None,
        include_sort_vector: Optional[bool] = None,
        max_time_ms: Optional[int] = None,
    ) -> None:
        self._collection = collection
        self._filter = filter
        self._projection = projection
        self._sort = normalize_optional_sort(sort)
        self._limit = self._validate_limit(limit)
        self._skip = self._validate_skip(skip)
        self._include_similarity = include_similarity
        self._include_sort_vector = include_sort_vector
        self._max_time_ms = max_time_ms
        self._reset()

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}("{self._collection.name}", '
            f"{self._state.value}, "
            f"retrieved so far: {self._retrieved})"
        )

    @staticmethod
    def _validate_limit(limit: Optional[int]) -> Optional[int]:
        if limit is not None and limit < 0:
            raise ValueError("Cursor limit cannot be negative.")
        # a zero limit means no limit at all
        return limit or None

    @staticmethod
    def _validate_skip(skip: Optional[int]) -> Optional[int]:
        if skip is not None and skip < 0:
            raise ValueError("Cursor skip cannot be negative.")
        return skip

    def _reset(self) -> None:
        self._state = CursorState.IDLE
        self._buffer = []
        self._next_page_state = None
        self._sort_vector = None
        self._pages_retrieved = 0
        self._retrieved = 0
        self._consumed = 0
        self._timeout_manager = None

    def _ensure_alive(self) -> None:
        if not self.alive:
            raise CursorIsStartedException(
                text="Cursor is stopped.",
                cursor_state=self._state.value,
            )

    def _ensure_idle(self) -> None:
        if self._state != CursorState.IDLE:
            raise CursorIsStartedException(
                text="Cursor is already initialized and cannot be configured.",
                cursor_state=self._state.value,
            )

    def _copy(self: BC) -> BC:
        return self.__class__(
            collection=self._collection,
            filter=self._filter,
            projection=self._projection,
            sort=self._sort,
            limit=self._limit,
            skip=self._skip,
            include_similarity=self._include_similarity,
            include_sort_vector=self._include_sort_vector,
            max_time_ms=self._max_time_ms,
        )

    def _limit_reached(self) -> bool:
        return self._limit is not None and self._consumed >= self._limit

    def _needs_page(self) -> bool:
        if self._buffer:
            return False
        if self._state == CursorState.IDLE:
            return True
        if self._state == CursorState.STARTED:
            return self._next_page_state is not None
        return False

    def _start_page_request(self) -> API_COMMAND:
        """
        Build the `find` command for the next page and move to STARTED.
        The time budget is armed on the first call.
        """
        if self._timeout_manager is None:
            self._timeout_manager = MultiCallTimeoutManager(
                overall_max_time_ms=self._max_time_ms
            )
        self._state = CursorState.STARTED
        options = make_options(
            limit=self._limit,
            skip=self._skip,
            includeSimilarity=self._include_similarity,
            includeSortVector=self._include_sort_vector,
            pageState=self._next_page_state,
        )
        page_str = self._next_page_state or "(empty page state)"
        logger.info(f"cursor fetching a page: {page_str} from '{self._collection.name}'")
        return make_payload(
            "find",
            filter=self._filter or {},
            projection=normalize_optional_projection(self._projection),
            sort=self._sort,
            options=options,
        )

    def _ingest_page(self, command: API_COMMAND, response: ResponseEnvelope) -> None:
        if response.has_errors:
            raise DataAPIResponseException.from_response(
                command=command, raw_response=response.raw
            )
        if response.data is None or "documents" not in response.data:
            raise DataAPIFaultyResponseException(
                text="Faulty response from find API command (no 'documents').",
                raw_response=response.raw,
            )
        if self._pages_retrieved == 0 and response.status:
            self._sort_vector = response.status.get("sortVector")
        self._buffer = response.documents
        self._next_page_state = response.data.get("nextPageState")
        self._pages_retrieved += 1
        self._retrieved += len(self._buffer)
        logger.info(
            f"cursor finished fetching a page from '{self._collection.name}' "
            f"({len(self._buffer)} documents)"
        )

    def _exhaust(self) -> None:
        self._state = CursorState.EXHAUSTED
        self._buffer = []

    def _pop_document(self) -> DocumentType:
        document = self._buffer[0]
        self._buffer = self._buffer[1:]
        self._consumed += 1
        return document

    @property
    def state(self) -> CursorState:
        """The current state of this cursor, a value in CursorState."""

        return self._state

    @property
    def alive(self) -> bool:
        """True while IDLE or STARTED."""

        return self._state in {CursorState.IDLE, CursorState.STARTED}

    @property
    def consumed(self) -> int:
        """Documents handed out so far."""

        return self._consumed

    @property
    def retrieved(self) -> int:
        """
        Documents received from the server so far, buffered ones included.
        """

        return self._retrieved

    @property
    def buffered_count(self) -> int:
        """
        Documents waiting in the buffer. No request is made.
        """

        return len(self._buffer)

    @property
    def collection(self) -> Union[Collection, AsyncCollection]:
        """The collection being read."""

        return self._collection

    def clone(self: BC) -> BC:
        """
        A fresh IDLE cursor with these settings and no progress.
        """

        return self._copy()

    def close(self) -> None:
        """
        Move to CLOSED from any state and drop the buffer.
        """

        self._state = CursorState.CLOSED
        self._buffer = []

    def rewind(self: BC) -> BC:
        """
        Back to IDLE with counters and buffer cleared. Settings stay.
        Returns the cursor itself.
        """

        self._reset()
        return self

    def consume_buffer(self, n: Optional[int] = None) -> List[DocumentType]:
        """
        Take up to `n` buffered documents (all of them without `n`) and
        count them as consumed. No request is made.
        """
        _n = n if n is not None else len(self._buffer)
        if _n < 0:
            raise ValueError("A negative amount of items was requested.")
        returned, remaining = self._buffer[:_n], self._buffer[_n:]
        self._buffer = remaining
        self._consumed += len(returned)
        return returned

    @deprecation.deprecated(  # type: ignore
        deprecated_in="1.1.0",
        removed_in="2.0.0",
        current_version=__version__,
        details="Use the 'consume_buffer' method instead",
    )
    def read_buffered_documents(self, n: Optional[int] = None) -> List[DocumentType]:
        return self.consume_buffer(n)

    def filter(self: BC, filter: Optional[FilterType]) -> BC:
        """
        Replace the filter. IDLE cursors only; returns the cursor.
        """

        self._ensure_idle()
        self._filter = filter
        return self

    def projection(self: BC, projection: Optional[ProjectionType]) -> BC:
        """
        Replace the projection. IDLE cursors only; returns the cursor.
        """

        self._ensure_idle()
        self._projection = projection
        return self

    def sort(self: BC, sort: Optional[SortType]) -> BC:
        """
        Replace the sort, e.g. with {"year": SortDocuments.DESCENDING}.
        None removes it. IDLE cursors only; returns the cursor.
        """

        self._ensure_idle()
        self._sort = normalize_optional_sort(sort)
        return self

    def limit(self: BC, limit: Optional[int]) -> BC:
        """
        Cap the number of documents yielded. Zero and None remove the cap.
        IDLE cursors only; returns the cursor.
        """

        self._ensure_idle()
        self._limit = self._validate_limit(limit)
        return self

    def skip(self: BC, skip: Optional[int]) -> BC:
        """
        Replace the skip count. IDLE cursors only; returns the cursor.
        """

        self._ensure_idle()
        self._skip = self._validate_skip(skip)
        return self

    def include_similarity(self: BC, include_similarity: Optional[bool]) -> BC:
        """
        Ask for (or stop asking for) "$similarity" scores.
        IDLE cursors only; returns the cursor.
        """

        self._ensure_idle()
        self._include_similarity = include_similarity
        return self

    def include_sort_vector(self: BC, include_sort_vector: Optional[bool]) -> BC:
        self._ensure_idle()
        self._include_sort_vector = include_sort_vector
        return self

    def _distinct_cursor(self: BC, path: DistinctPath) -> BC:
        self._ensure_idle()
        d_cursor = self._copy()
        d_cursor._projection = path.projection()
        return d_cursor


class Cursor(BaseCursor):
    """
    Blocking iterator over the results of `Collection.find`, which is
    where cursors normally come from.

    Example:
        >>> cursor = collection.find({"tag": "a"}).sort({"n": 1}).limit(30)
        >>> for document in cursor:
        ...     print(document["n"])
    """

    _collection: Collection

    def _try_ensure_fill_buffer(self) -> None:
        # empty pages may still carry a page state
        while self._needs_page():
            command = self._start_page_request()
            assert self._timeout_manager is not None
            response = self._collection._executor.execute(
                command, timeout_manager=self._timeout_manager
            )
            self._ingest_page(command, response)

    def __iter__(self) -> Cursor:
        self._ensure_alive()
        return self

    def __next__(self) -> DocumentType:
        if not self.alive:
            raise StopIteration
        if self._limit_reached():
            self._exhaust()
            raise StopIteration
        self._try_ensure_fill_buffer()
        if not self._buffer:
            self._exhaust()
            raise StopIteration
        return self._pop_document()

    def has_next(self) -> bool:
        """
        True if another document is available. May fetch a page, which
        starts an IDLE cursor.
        """

        if not self.alive or self._limit_reached():
            return False
        self._try_ensure_fill_buffer()
        return len(self._buffer) > 0

    def get_sort_vector(self) -> Optional[List[float]]:
        """
        The query vector of a vector search, as returned by the server
        with the first page. None unless the cursor was created with
        `include_sort_vector=True`.

        On an IDLE cursor this fetches the first page, starting the cursor
        as `has_next` does. Once a page has been read, no request is made,
        and the method works on closed and exhausted cursors too.

        Example:
            >>> cursor = collection.find(
            ...     {}, vector=[0.1, 0.2], include_sort_vector=True, limit=3
            ... )
            >>> cursor.get_sort_vector()
            [0.1, 0.2]
        """

        if self._include_sort_vector and self._state == CursorState.IDLE:
            self._try_ensure_fill_buffer()
        return self._sort_vector

    def to_list(self) -> List[DocumentType]:
        """
        Drain the cursor into a list.
        """

        self._ensure_alive()
        return [document for document in self]

    def for_each(self, function: Callable[[DocumentType], Optional[bool]]) -> None:
        """
        Call `function` on every remaining document. A False return
        stops the loop, leaving the cursor where it is.
        """

        self._ensure_alive()
        for document in self:
            if function(document) is False:
                break

    def distinct(self, key: str) -> List[Any]:
        """
        The different values at `key` over what this cursor would yield,
        in first-seen order.

        The reading is done by a clone, so this cursor (which must be IDLE)
        is left untouched.

        Args:
            key: a dotted path, e.g. "city", "address.city" or "tags.0".
                Numeric segments index into lists; lists met without an index
                are walked item by item.

        Note:
            Every matching document is fetched, page after page, to the client.
        """

        path = DistinctPath(key)
        collector = DistinctCollector(path)
        d_cursor = self._distinct_cursor(path)
        logger.info(f"running distinct() on '{self._collection.name}'")
        for document in d_cursor:
            collector.add_document(document)
        logger.info(f"finished running distinct() on '{self._collection.name}'")
        return collector.values


class AsyncCursor(BaseCursor):
    """
    Cursor for `AsyncCollection.find`, consumed with `async for`.

    Example:
        >>> cursor = async_collection.find({"tag": "a"}).limit(30)
        >>> async for document in cursor:
        ...     print(document["n"])
    """

    _collection: AsyncCollection

    async def _try_ensure_fill_buffer(self) -> None:
        while self._needs_page():
            command = self._start_page_request()
            assert self._timeout_manager is not None
            response = await self._collection._executor.execute(
                command, timeout_manager=self._timeout_manager
            )
            self._ingest_page(command, response)

    def __aiter__(self) -> AsyncCursor:
        self._ensure_alive()
        return self

    async def __anext__(self) -> DocumentType:
        if not self.alive:
            raise StopAsyncIteration
        if self._limit_reached():
            self._exhaust()
            raise StopAsyncIteration
        await self._try_ensure_fill_buffer()
        if not self._buffer:
            self._exhaust()
            raise StopAsyncIteration
        return self._pop_document()

    async def has_next(self) -> bool:
        """
        True if another document is available. May fetch a page, which
        starts an IDLE cursor.
        """

        if not self.alive or self._limit_reached():
            return False
        await self._try_ensure_fill_buffer()
        return len(self._buffer) > 0

    async def get_sort_vector(self) -> Optional[List[float]]:
        """As `Cursor.get_sort_vector`."""

        if self._include_sort_vector and self._state == CursorState.IDLE:
            await self._try_ensure_fill_buffer()
        return self._sort_vector

    async def to_list(self) -> List[DocumentType]:
        """
        Drain the cursor into a list.
        """

        self._ensure_alive()
        return [document async for document in self]

    async def for_each(
        self, function: Callable[[DocumentType], Optional[bool]]
    ) -> None:
        """
        Call `function` on every remaining document until it returns False.
        """

        self._ensure_alive()
        async for document in self:
            if function(document) is False:
                break

    async def distinct(self, key: str) -> List[Any]:
        """
        As `Cursor.distinct`, awaiting each page.
        """

        path = DistinctPath(key)
        collector = DistinctCollector(path)
        d_cursor = self._distinct_cursor(path)
        logger.info(f"running distinct() on '{self._collection.name}'")
        async for document in d_cursor:
            collector.add_document(document)
        logger.info(f"finished running distinct() on '{self._collection.name}'")
        return collector.values
