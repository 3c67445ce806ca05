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
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
    TYPE_CHECKING,
)

from dataapi.constants import (
    DocumentType,
    FilterType,
    ProjectionType,
    ReturnDocument,
    SortType,
    VectorType,
    normalize_optional_projection,
    normalize_optional_sort,
)
from dataapi.core.core_types import (
    API_COMMAND,
    AsyncCommandExecutor,
    CommandExecutor,
    ResponseEnvelope,
)
from dataapi.core.defaults import (
    DEFAULT_BULK_WRITE_CONCURRENCY,
    DEFAULT_INSERT_MANY_CHUNK_SIZE,
    DEFAULT_INSERT_MANY_CONCURRENCY,
)
from dataapi.core.utils import make_options, make_payload
from dataapi.cursors import AsyncCursor, Cursor
from dataapi.exceptions import (
    BulkWriteException,
    CumulativeOperationException,
    DataAPIFaultyResponseException,
    DataAPIResponseException,
    DeleteManyException,
    InsertManyException,
    MultiCallTimeoutManager,
    TooManyDocumentsToCountException,
    UpdateManyException,
)
from dataapi.results import (
    BulkWriteResult,
    DeleteResult,
    InsertManyResult,
    InsertOneResult,
    UpdateResult,
)
from dataapi.scheduling import WorkerPoolState, arun_worker_pool, run_worker_pool

if TYPE_CHECKING:
    from dataapi.database import AsyncDatabase, Database
    from dataapi.operations import BaseOperation


logger = logging.getLogger(__name__)


# outcome of one operation in an unordered bulk write
_BulkEither = Tuple[Optional[BulkWriteResult], Optional[DataAPIResponseException]]


def _check_response(command: API_COMMAND, response: ResponseEnvelope) -> None:
    if response.has_errors:
        raise DataAPIResponseException.from_response(
            command=command,
            raw_response=response.raw,
        )


def _prepare_update_result(responses: List[ResponseEnvelope]) -> UpdateResult:
    upserted_ids = [
        response.status["upsertedId"]
        for response in responses
        if "upsertedId" in response.status
    ]
    return UpdateResult(
        raw_results=[response.raw for response in responses],
        matched_count=sum(
            response.status.get("matchedCount", 0) for response in responses
        ),
        modified_count=sum(
            response.status.get("modifiedCount", 0) for response in responses
        ),
        upserted_count=len(upserted_ids),
        upserted_id=upserted_ids[0] if upserted_ids else None,
    )


def _collate_vector_to_sort(
    sort: Optional[SortType],
    vector: Optional[VectorType],
) -> Optional[SortType]:
    if vector is None:
        return normalize_optional_sort(sort)
    if sort:
        raise ValueError("The `vector` and `sort` clauses are mutually exclusive.")
    return {"$vector": list(vector)}


def _is_vector_sort(sort: Optional[SortType]) -> bool:
    if sort is None:
        return False
    else:
        return "$vector" in sort


def _collate_vector_to_document(
    document0: DocumentType, vector: Optional[VectorType]
) -> DocumentType:
    if vector is None:
        return document0
    if "$vector" in document0:
        raise ValueError(
            "Cannot specify the `vector` separately for a document with "
            "its '$vector' field already."
        )
    return {**document0, "$vector": list(vector)}


def _collate_vectors_to_documents(
    documents: Iterable[DocumentType],
    vectors: Optional[Iterable[Optional[VectorType]]],
) -> List[DocumentType]:
    if vectors is None:
        return list(documents)
    _documents = list(documents)
    _vectors = list(vectors)
    if len(_documents) != len(_vectors):
        raise ValueError(
            "The `documents` and `vectors` parameters must have the same length"
        )
    return [
        _collate_vector_to_document(_doc, _vec)
        for _doc, _vec in zip(_documents, _vectors)
    ]


def _resolve_concurrency(
    ordered: bool, concurrency: Optional[int], default_concurrency: int
) -> int:
    if concurrency is None:
        return 1 if ordered else default_concurrency
    if concurrency < 1:
        raise ValueError("The `concurrency` parameter must be a positive integer.")
    if concurrency > 1 and ordered:
        raise ValueError("Cannot run ordered operations concurrently.")
    return concurrency


def _split_into_chunks(
    documents: List[DocumentType], chunk_size: Optional[int]
) -> List[List[DocumentType]]:
    _chunk_size = chunk_size or DEFAULT_INSERT_MANY_CHUNK_SIZE
    if _chunk_size < 1:
        raise ValueError("The `chunk_size` parameter must be a positive integer.")
    return [
        documents[i : i + _chunk_size] for i in range(0, len(documents), _chunk_size)
    ]


def _insert_many_command(chunk: List[DocumentType], ordered: bool) -> API_COMMAND:
    return make_payload(
        "insertMany",
        documents=chunk,
        options={"ordered": ordered},
    )


def _inserted_ids(response: ResponseEnvelope) -> List[Any]:
    return list(response.status.get("insertedIds") or [])


def _unordered_insert_result(
    chunk_responses: Dict[int, ResponseEnvelope]
) -> InsertManyResult:
    # chunks complete in any order: results are regrouped by chunk position
    ordered_responses = [chunk_responses[i] for i in sorted(chunk_responses)]
    return InsertManyResult(
        raw_results=[response.raw for response in ordered_responses],
        inserted_ids=[
            inserted_id
            for response in ordered_responses
            for inserted_id in _inserted_ids(response)
        ],
    )


def _parse_insert_one(
    command: API_COMMAND, response: ResponseEnvelope
) -> InsertOneResult:
    _check_response(command, response)
    inserted_ids = _inserted_ids(response)
    if inserted_ids:
        return InsertOneResult(raw_results=[response.raw], inserted_id=inserted_ids[0])
    else:
        raise DataAPIFaultyResponseException(
            text="Faulty response from insert_one API command.",
            raw_response=response.raw,
        )


def _parse_returned_document(
    command_name: str, command: API_COMMAND, response: ResponseEnvelope
) -> Union[DocumentType, None]:
    _check_response(command, response)
    if response.data is not None and "document" in response.data:
        return response.data["document"]  # type: ignore[no-any-return]
    elif command_name == "findOneAndDelete" and response.status.get(
        "deletedCount"
    ) == 0:
        return None
    else:
        raise DataAPIFaultyResponseException(
            text=f"Faulty response from {command_name} API command.",
            raw_response=response.raw,
        )


def _parse_update_one(command: API_COMMAND, response: ResponseEnvelope) -> UpdateResult:
    _check_response(command, response)
    if "matchedCount" not in response.status:
        raise DataAPIFaultyResponseException(
            text="Faulty response from update API command.",
            raw_response=response.raw,
        )
    return _prepare_update_result([response])


def _parse_delete_one(command: API_COMMAND, response: ResponseEnvelope) -> DeleteResult:
    _check_response(command, response)
    if "deletedCount" in response.status:
        return DeleteResult(
            raw_results=[response.raw],
            deleted_count=response.status["deletedCount"],
        )
    else:
        raise DataAPIFaultyResponseException(
            text="Faulty response from delete_one API command.",
            raw_response=response.raw,
        )


def _parse_delete_all(command: API_COMMAND, response: ResponseEnvelope) -> DeleteResult:
    _check_response(command, response)
    deleted_count = response.status.get("deletedCount")
    # the API reports -1 for unfiltered deletes
    if deleted_count is None or deleted_count < 0:
        deleted_count = None
    return DeleteResult(raw_results=[response.raw], deleted_count=deleted_count)


def _parse_count(
    command: API_COMMAND, response: ResponseEnvelope, upper_bound: int
) -> int:
    _check_response(command, response)
    if "count" not in response.status:
        raise DataAPIFaultyResponseException(
            text="Faulty response from count_documents API command.",
            raw_response=response.raw,
        )
    count: int = response.status["count"]
    if response.more_data:
        raise TooManyDocumentsToCountException.for_limit(
            limit=count, server_max_count_exceeded=True
        )
    if count > upper_bound:
        raise TooManyDocumentsToCountException.for_limit(
            limit=upper_bound, server_max_count_exceeded=False
        )
    return count


def _parse_estimated_count(command: API_COMMAND, response: ResponseEnvelope) -> int:
    _check_response(command, response)
    if "count" in response.status:
        count: int = response.status["count"]
        return count
    else:
        raise DataAPIFaultyResponseException(
            text="Faulty response from estimated_document_count API command.",
            raw_response=response.raw,
        )


def _validate_upper_bound(upper_bound: int) -> None:
    if upper_bound < 0:
        raise ValueError("The `upper_bound` parameter cannot be negative.")


def _validate_delete_many_filter(filter: FilterType) -> None:
    if not filter:
        raise ValueError(
            "The `filter` parameter to method `delete_many` cannot be "
            "empty. In order to completely clear the contents of a "
            "collection, please use the `delete_all` method."
        )


def _bulk_write_failure(
    exceptions: List[Tuple[int, DataAPIResponseException]],
    bulk_write_results: List[BulkWriteResult],
) -> BulkWriteException:
    # lazy importing here against circular-import error
    from dataapi.operations import reduce_bulk_write_results

    sorted_exceptions = sorted(exceptions, key=lambda index_exc: index_exc[0])
    partial_results_from_failures = [
        exc.partial_result.to_bulk_write_result(index_in_bulk_write=operation_i)
        for operation_i, exc in sorted_exceptions
        if isinstance(exc, CumulativeOperationException)
    ]
    partial_bw_result = reduce_bulk_write_results(
        bulk_write_results + partial_results_from_failures
    )
    return BulkWriteException.from_exceptions(
        exceptions=[exc.data_api_response_exception() for _, exc in sorted_exceptions],
        partial_result=partial_bw_result,
    )


class Collection:
    """
    Blocking handle on one collection: the entry point for document reads
    and writes.

    Endpoint and token come from the Database it is created with.

    Args:
        database: the Database holding the collection.
        name: the collection name. No check is made that it exists.
        namespace: where the collection lives. Defaults to the namespace
            of `database`.
        caller_name: the caller name sent in the User-Agent.
        caller_version: the caller version sent in the User-Agent.
        executor: the object actually sending the commands, bound to this
            collection. If not specified, an APICommander is obtained from
            the database.

    Examples:
        >>> from dataapi import DataAPIClient, Collection
        >>> my_client = DataAPIClient("AstraCS:...")
        >>> my_db = my_client.get_database("https://01234567-....apps.astra.datastax.com")
        >>> my_coll_1 = Collection(database=my_db, name="my_collection")
        >>> my_coll_2 = my_db.get_collection("my_collection")
        >>> my_coll_3 = my_db["my_collection"]

    Note:
        creating an instance of Collection does not trigger actual creation
        of the collection on the database. The collection should have been
        created beforehand.
    """

    def __init__(
        self,
        database: Database,
        name: str,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        executor: Optional[CommandExecutor] = None,
    ) -> None:
        self._database = database._copy(namespace=namespace)
        self._name = name
        self._caller_name = caller_name or database.caller_name
        self._caller_version = caller_version or database.caller_version
        self._executor: CommandExecutor = executor or self._database._get_commander(
            collection_name=name,
            caller_name=self._caller_name,
            caller_version=self._caller_version,
        )

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}(name="{self.name}", '
            f'namespace="{self.namespace}", database={self.database})'
        )

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Collection):
            return all(
                [
                    self.database == other.database,
                    self.name == other.name,
                    self._caller_name == other._caller_name,
                    self._caller_version == other._caller_version,
                ]
            )
        else:
            return False

    def __call__(self, *pargs: Any, **kwargs: Any) -> None:
        raise TypeError(
            f"'{self.__class__.__name__}' object is not callable. If you "
            f"meant to call the '{self.name}' method on a "
            f"'{self.database.__class__.__name__}' object "
            "it is failing because no such method exists."
        )

    def _copy(
        self,
        *,
        database: Optional[Database] = None,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> Collection:
        return Collection(
            database=database or self.database,
            name=name or self.name,
            namespace=namespace or self.namespace,
            caller_name=caller_name or self._caller_name,
            caller_version=caller_version or self._caller_version,
        )

    def with_options(
        self,
        *,
        name: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> Collection:
        """
        Create a clone of this collection with some changed attributes.
        The clone gets a new command executor from the database.

        Args:
            name: another collection name, for a sibling collection in the
                same namespace.
            caller_name: a new caller name for the User-Agent.
            caller_version: a new caller version for the User-Agent.

        Returns:
            a new Collection instance.

        Example:
            >>> my_other_coll = my_coll.with_options(
            ...     name="the_other_coll",
            ...     caller_name="caller_identity",
            ... )
        """

        return self._copy(
            name=name,
            caller_name=caller_name,
            caller_version=caller_version,
        )

    def to_async(
        self,
        *,
        database: Optional[AsyncDatabase] = None,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> AsyncCollection:
        """
        The async counterpart of this collection. Settings not overridden
        by the arguments are carried over, and the database is converted
        with its `to_async` method.

        Example:
            >>> asyncio.run(my_coll.to_async().count_documents({}, upper_bound=100))
            77
        """

        return AsyncCollection(
            database=database or self.database.to_async(),
            name=name or self.name,
            namespace=namespace or self.namespace,
            caller_name=caller_name or self._caller_name,
            caller_version=caller_version or self._caller_version,
        )

    @property
    def database(self) -> Database:
        """
        The Database this collection lives in, set to the collection's namespace.

        Example:
            >>> my_coll.database.namespace
            'default_keyspace'
        """

        return self._database

    @property
    def namespace(self) -> str:
        """
        The namespace this collection is in.

        Example:
            >>> my_coll.namespace
            'default_keyspace'
        """

        return self.database.namespace

    @property
    def name(self) -> str:
        """
        The name of this collection.

        Example:
            >>> my_coll.name
            'my_v_collection'
        """

        return self._name

    @property
    def full_name(self) -> str:
        """
        The collection name qualified by its namespace, as in "store.people".
        """

        return f"{self.namespace}.{self.name}"

    def _run(self, command: API_COMMAND, max_time_ms: Optional[int]) -> ResponseEnvelope:
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        return self._executor.execute(command, timeout_manager=timeout_manager)

    def insert_one(
        self,
        document: DocumentType,
        *,
        vector: Optional[VectorType] = None,
        max_time_ms: Optional[int] = None,
    ) -> InsertOneResult:
        """
        Write one document with a single `insertOne` command.

        Args:
            document: the document. Without an `_id`, the server assigns one.
            vector: shorthand for the "$vector" field of the document. Do not
                pass both.
            max_time_ms: a time budget for the request, in milliseconds.

        Returns:
            an InsertOneResult object.

        Example:
            >>> my_coll.insert_one({"name": "Ann", "age": 34})
            InsertOneResult(raw_results=..., inserted_id='e4586d67-...')
        """

        _document = _collate_vector_to_document(document, vector)
        command = make_payload("insertOne", document=_document)
        logger.info(f"inserting one document in '{self.name}'")
        io_response = self._run(command, max_time_ms)
        logger.info(f"finished inserting one document in '{self.name}'")
        return _parse_insert_one(command, io_response)

    def insert_many(
        self,
        documents: Iterable[DocumentType],
        *,
        vectors: Optional[Iterable[Optional[VectorType]]] = None,
        ordered: bool = True,
        chunk_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        max_time_ms: Optional[int] = None,
    ) -> InsertManyResult:
        """
        Write many documents, split into chunks of `chunk_size` sent as
        separate `insertMany` commands. The operation as a whole is not atomic.

        Args:
            documents: the documents. Those without an `_id` get one from
                the server.
            vectors: one entry per document, each a vector to store as its
                "$vector" or None to leave that document alone. The length
                must match that of `documents`.
            ordered: True (default) sends the chunks one at a time and stops
                at the first chunk reporting errors. False sends all chunks,
                up to `concurrency` at once, and reports every failure at the end.
            chunk_size: documents per request. The default suits the server
                limits; larger values may be refused by the API.
            concurrency: how many requests may be in flight at once. Ordered
                insertions only accept 1.
            max_time_ms: a time budget for all requests together, in milliseconds.

        Returns:
            an InsertManyResult object.

        Raises:
            InsertManyException: if any of the chunks reports errors. Its
                `partial_result` holds the IDs of the documents that were
                inserted nonetheless.

        Examples:
            >>> my_coll.count_documents({}, upper_bound=10)
            0
            >>> my_coll.insert_many([{"a": 10}, {"a": 5}, {"b": [True, False, False]}])
            InsertManyResult(raw_results=..., inserted_ids=['184bb06f-...', ...])
            >>> my_coll.count_documents({}, upper_bound=100)
            3

            >>> my_coll.insert_many(
            ...     [{"seq": i} for i in range(50)],
            ...     ordered=False,
            ...     concurrency=5,
            ... )
            InsertManyResult(raw_results=..., inserted_ids=[... ...])

        Note:
            With `ordered=False` the chunks reach the database in no particular
            order, yet `inserted_ids` still lists the IDs in input order.
        """

        _concurrency = _resolve_concurrency(
            ordered, concurrency, DEFAULT_INSERT_MANY_CONCURRENCY
        )
        _documents = _collate_vectors_to_documents(documents, vectors)
        chunks = _split_into_chunks(_documents, chunk_size)
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        logger.info(f"inserting {len(_documents)} documents in '{self.name}'")

        if ordered:
            raw_results: List[Dict[str, Any]] = []
            inserted_ids: List[Any] = []
            for chunk in chunks:
                command = _insert_many_command(chunk, ordered=True)
                logger.debug(f"inserting a chunk of documents in '{self.name}'")
                chunk_response = self._executor.execute(
                    command, timeout_manager=timeout_manager
                )
                # the failing chunk may still have stored some of its documents
                inserted_ids += _inserted_ids(chunk_response)
                raw_results += [chunk_response.raw]
                if chunk_response.has_errors:
                    raise InsertManyException.from_response(
                        command=command,
                        raw_response=chunk_response.raw,
                        partial_result=InsertManyResult(
                            raw_results=raw_results,
                            inserted_ids=inserted_ids,
                        ),
                    )
            logger.info(
                f"finished inserting {len(_documents)} documents in '{self.name}'"
            )
            return InsertManyResult(
                raw_results=raw_results,
                inserted_ids=inserted_ids,
            )

        else:
            chunk_responses: Dict[int, ResponseEnvelope] = {}

            def _chunk_insertor(
                index: int, chunk: List[DocumentType]
            ) -> Tuple[API_COMMAND, ResponseEnvelope]:
                command = _insert_many_command(chunk, ordered=False)
                logger.debug(f"inserting chunk {index} of documents in '{self.name}'")
                return command, self._executor.execute(
                    command, timeout_manager=timeout_manager
                )

            def _collect(
                state: WorkerPoolState[List[DocumentType]],
                index: int,
                outcome: Tuple[API_COMMAND, ResponseEnvelope],
            ) -> None:
                command, chunk_response = outcome
                chunk_responses[index] = chunk_response
                if chunk_response.has_errors:
                    state.record_failure(command, chunk_response.raw)

            pool_state = run_worker_pool(
                chunks,
                concurrency=_concurrency,
                process=_chunk_insertor,
                collect=_collect,
            )
            full_result = _unordered_insert_result(chunk_responses)
            if pool_state.has_failures:
                raise InsertManyException.from_responses(
                    commands=pool_state.failed_commands,
                    raw_responses=pool_state.failed_responses,
                    partial_result=full_result,
                )
            logger.info(
                f"finished inserting {len(_documents)} documents in '{self.name}'"
            )
            return full_result

    def find(
        self,
        filter: Optional[FilterType] = None,
        *,
        projection: Optional[ProjectionType] = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
        vector: Optional[VectorType] = None,
        include_similarity: Optional[bool] = None,
        include_sort_vector: Optional[bool] = None,
        sort: Optional[SortType] = None,
        max_time_ms: Optional[int] = None,
    ) -> Cursor:
        """
        Select documents. Nothing is sent until the returned Cursor is consumed;
        the cursor then fetches the results one page at a time.

        The server does not take a snapshot of the collection. A cursor with
        a regular (non-vector) sort may therefore skip or repeat documents
        written to while it runs.

        Args:
            filter: the selection criteria in the Data API filter language,
                e.g. {"name": "Ann"}, {"age": {"$lt": 40}} or
                {"$and": [{"name": "Ann"}, {"age": {"$lt": 40}}]}.
                None or {} select every document.
            projection: the fields to return. Either a list of field names,
                or a dictionary mapping fields to True (keep only these)
                or to False (drop these).
            skip: how many of the sorted results to leave out. It requires an
                ascending/descending `sort` and does not apply to vector search.
            limit: the most documents the cursor will yield.
            vector: a query vector: results come back most similar first.
                It cannot be combined with `sort`.
            include_similarity: add a "$similarity" score to each document.
                Vector search only.
            include_sort_vector: have the server return the query vector
                along with the first page, for `Cursor.get_sort_vector`.
            sort: the ordering of the results. See the Note.
            max_time_ms: a time budget for the entire iteration, in
                milliseconds, counted from the first page fetch.

        Returns:
            a Cursor over the matching documents. Iterating it with a `for`
            loop is the simplest way to use it.

        Examples:
            >>> filter = {"seq": {"$exists": True}}
            >>> for doc in my_coll.find(filter, projection={"seq": True}, limit=5):
            ...     print(doc["seq"])
            ...
            37
            35
            10
            36
            27
            >>> cursor1 = my_coll.find(
            ...     {},
            ...     limit=4,
            ...     sort={"seq": dataapi.constants.SortDocuments.DESCENDING},
            ... )
            >>> [doc["_id"] for doc in cursor1]
            ['97e85f81-...', '1581efe4-...', '...', '...']

        Note:
            A sort is a dictionary from field names to directions, applied
            in key order:
                sort={"year": SortDocuments.DESCENDING}
                sort={"year": SortDocuments.DESCENDING, "title": SortDocuments.ASCENDING}
            No sort (None or {}) means no particular order.
            The server caps how many documents a vector search can return,
            and returns only a top window for other sorted queries. The cursor
            stops where the server stops.
        """

        _sort = _collate_vector_to_sort(sort, vector)
        if include_similarity is not None and not _is_vector_sort(_sort):
            raise ValueError(
                "Cannot use `include_similarity` when not searching through `vector`."
            )
        return Cursor(
            collection=self,
            filter=filter,
            projection=projection,
            sort=_sort,
            limit=limit,
            skip=skip,
            include_similarity=include_similarity,
            include_sort_vector=include_sort_vector,
            max_time_ms=max_time_ms,
        )

    def find_one(
        self,
        filter: Optional[FilterType] = None,
        *,
        projection: Optional[ProjectionType] = None,
        vector: Optional[VectorType] = None,
        include_similarity: Optional[bool] = None,
        sort: Optional[SortType] = None,
        max_time_ms: Optional[int] = None,
    ) -> Union[DocumentType, None]:
        """
        The first document matching the filter, or None.

        Args:
            filter: the selection criteria, as in `find`.
            projection: the fields to return, as in `find`.
            vector: a query vector, making this the most similar match.
                It cannot be combined with `sort`.
            include_similarity: add a "$similarity" score to the document.
                Vector search only.
            sort: decides which match comes first, as in `find`.
            max_time_ms: a time budget for the request, in milliseconds.

        Example:
            >>> my_coll.find_one({})
            {'_id': '68d1e515-...', 'seq': 37}
            >>> my_coll.find_one({"seq": 10})
            {'_id': 'd560e217-...', 'seq': 10}
            >>> my_coll.find_one({"seq": 1011})
            >>> # (returns None for no matches)
        """

        _sort = _collate_vector_to_sort(sort, vector)
        if include_similarity is not None and not _is_vector_sort(_sort):
            raise ValueError(
                "Cannot use `include_similarity` when not searching through `vector`."
            )
        command = make_payload(
            "findOne",
            filter=filter or {},
            projection=normalize_optional_projection(projection),
            sort=_sort,
            options=make_options(includeSimilarity=include_similarity),
        )
        logger.info(f"calling find_one on '{self.name}'")
        fo_response = self._run(command, max_time_ms)
        logger.info(f"finished calling find_one on '{self.name}'")
        return _parse_returned_document("findOne", command, fo_response)

    def distinct(
        self,
        key: str,
        *,
        filter: Optional[FilterType] = None,
        max_time_ms: Optional[int] = None,
    ) -> List[Any]:
        """
        The different values found at `key` in the matching documents,
        in the order they are first met.

        Args:
            key: a dotted path such as "city", "address.city", "tags.0" or
                "orders.2.total". Numeric segments index into lists. Lists met
                on the way without an index are walked item by item, and a
                list found at the end of the path contributes its items.
            filter: the selection criteria, as in `find`.
            max_time_ms: a time budget for reading all matches, in milliseconds.

        Example:
            >>> my_coll.insert_many(
            ...     [
            ...         {"name": "Marco", "food": ["apple", "orange"], "city": "Helsinki"},
            ...         {"name": "Emma", "food": {"likes_fruit": True, "allergies": []}},
            ...     ]
            ... )
            InsertManyResult(raw_results=..., inserted_ids=['c5b99f37-...', 'd6416321-...'])
            >>> my_coll.distinct("name")
            ['Marco', 'Emma']
            >>> my_coll.distinct("city")
            ['Helsinki']
            >>> my_coll.distinct("food")
            ['apple', 'orange', {'likes_fruit': True, 'allergies': []}]
            >>> my_coll.distinct("food.1")
            ['orange']
            >>> my_coll.distinct("food.allergies")
            []
            >>> my_coll.distinct("food.likes_fruit")
            [True]

        Note:
            The work happens in the client: every matching document is read
            through `find`, which can be slow and costly on large collections.
        """

        return self.find(filter=filter, max_time_ms=max_time_ms).distinct(key)

    def count_documents(
        self,
        filter: FilterType,
        *,
        upper_bound: int,
        max_time_ms: Optional[int] = None,
    ) -> int:
        """
        The exact number of documents matching the filter.

        Args:
            filter: the selection criteria, as in `find`.
            upper_bound: the largest count the caller is prepared to accept.
                It must not be negative.
            max_time_ms: a time budget for the request, in milliseconds.

        Raises:
            TooManyDocumentsToCountException: if the count exceeds `upper_bound`,
                or if the server gives up counting at its own ceiling.

        Example:
            >>> my_coll.insert_many([{"seq": i} for i in range(20)])
            InsertManyResult(...)
            >>> my_coll.count_documents({}, upper_bound=100)
            20
            >>> my_coll.count_documents({"seq":{"$gt": 15}}, upper_bound=100)
            4
            >>> my_coll.count_documents({}, upper_bound=10)
            Traceback (most recent call last):
                ... ...
            dataapi.exceptions.TooManyDocumentsToCountException

        Note:
            Counting is expensive on the server. Keep `upper_bound` close to
            what the application expects.
        """

        _validate_upper_bound(upper_bound)
        command = make_payload("countDocuments", filter=filter)
        logger.info(f"calling count_documents on '{self.name}'")
        cd_response = self._run(command, max_time_ms)
        logger.info(f"finished calling count_documents on '{self.name}'")
        return _parse_count(command, cd_response, upper_bound)

    def estimated_document_count(
        self,
        *,
        max_time_ms: Optional[int] = None,
    ) -> int:
        """
        The server's estimate of how many documents the whole collection holds.
        Cheap, approximate and not filterable.

        Example:
            >>> my_coll.estimated_document_count()
            35700
        """

        command: API_COMMAND = {"estimatedDocumentCount": {}}
        logger.info(f"calling estimated_document_count on '{self.name}'")
        ed_response = self._run(command, max_time_ms)
        logger.info(f"finished calling estimated_document_count on '{self.name}'")
        return _parse_estimated_count(command, ed_response)

    def find_one_and_replace(
        self,
        filter: FilterType,
        replacement: DocumentType,
        *,
        projection: Optional[ProjectionType] = None,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        upsert: bool = False,
        return_document: str = ReturnDocument.BEFORE,
        max_time_ms: Optional[int] = None,
    ) -> Union[DocumentType, None]:
        """
        Swap one matching document for `replacement` and return it,
        with `findOneAndReplace`.

        Args:
            filter: the selection criteria, as in `find`.
            replacement: the full new content of the document.
            projection: the fields to return, as in `find`.
            vector: a query vector: the most similar match is replaced.
                It cannot be combined with `sort`.
            sort: decides which match is replaced when there are several.
            upsert: with no match, insert `replacement` instead of doing nothing.
            return_document: `ReturnDocument.BEFORE` ("before", the default)
                returns the document as it was, `ReturnDocument.AFTER` ("after")
                as it became.
            max_time_ms: a time budget for the request, in milliseconds.

        Returns:
            the document (projected as requested), or None when nothing
            matched (and, with "after", nothing was upserted).

        Example:
            >>> my_coll.insert_one({"_id": "rule1", "text": "all animals are equal"})
            InsertOneResult(...)
            >>> my_coll.find_one_and_replace(
            ...     {"_id": "rule1"},
            ...     {"text": "some animals are more equal!"},
            ... )
            {'_id': 'rule1', 'text': 'all animals are equal'}
        """

        command = make_payload(
            "findOneAndReplace",
            filter=filter,
            replacement=replacement,
            projection=normalize_optional_projection(projection),
            sort=_collate_vector_to_sort(sort, vector),
            options={"returnDocument": return_document, "upsert": upsert},
        )
        logger.info(f"calling find_one_and_replace on '{self.name}'")
        fo_response = self._run(command, max_time_ms)
        logger.info(f"finished calling find_one_and_replace on '{self.name}'")
        return _parse_returned_document("findOneAndReplace", command, fo_response)

    def replace_one(
        self,
        filter: FilterType,
        replacement: DocumentType,
        *,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        upsert: bool = False,
        max_time_ms: Optional[int] = None,
    ) -> UpdateResult:
        """
        Like `find_one_and_replace`, but returning counts instead of the
        document.

        Args:
            filter: the selection criteria, as in `find`.
            replacement: the full new content of the document.
            vector: a query vector: the most similar match is replaced.
            sort: decides which match is replaced when there are several.
            upsert: with no match, insert `replacement` instead.
            max_time_ms: a time budget for the request, in milliseconds.

        Example:
            >>> my_coll.insert_one({"Marco": "Polo"})
            InsertOneResult(...)
            >>> my_coll.replace_one({"Marco": {"$exists": True}}, {"Buda": "Pest"})
            UpdateResult(raw_results=..., matched_count=1, modified_count=1, ...)
        """

        command = make_payload(
            "findOneAndReplace",
            filter=filter,
            replacement=replacement,
            projection={"*": False},
            sort=_collate_vector_to_sort(sort, vector),
            options={"returnDocument": ReturnDocument.BEFORE, "upsert": upsert},
        )
        logger.info(f"calling find_one_and_replace on '{self.name}'")
        fo_response = self._run(command, max_time_ms)
        logger.info(f"finished calling find_one_and_replace on '{self.name}'")
        return _parse_update_one(command, fo_response)

    def find_one_and_update(
        self,
        filter: FilterType,
        update: Dict[str, Any],
        *,
        projection: Optional[ProjectionType] = None,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        upsert: bool = False,
        return_document: str = ReturnDocument.BEFORE,
        max_time_ms: Optional[int] = None,
    ) -> Union[DocumentType, None]:
        """
        Apply `update` to one matching document and return it,
        with `findOneAndUpdate`.

        Args:
            filter: the selection criteria, as in `find`.
            update: update operators, such as {"$set": {"status": "done"}},
                {"$inc": {"visits": 1}} or {"$unset": {"draft": ""}}.
            projection: the fields to return, as in `find`.
            vector: a query vector: the most similar match is updated.
                It cannot be combined with `sort`.
            sort: decides which match is updated when there are several.
            upsert: with no match, insert the result of applying `update`
                to an empty document.
            return_document: "before" (the default) or "after" the update.
            max_time_ms: a time budget for the request, in milliseconds.

        Returns:
            the document (projected as requested), or None when nothing
            matched (and, with "after", nothing was upserted).

        Example:
            >>> my_coll.find_one_and_update(
            ...     {"Marco": {"$exists": True}},
            ...     {"$set": {"title": "Mr."}},
            ... )
            {'_id': 'a80106f2-...', 'Marco': 'Polo'}
        """

        command = make_payload(
            "findOneAndUpdate",
            filter=filter,
            update=update,
            projection=normalize_optional_projection(projection),
            sort=_collate_vector_to_sort(sort, vector),
            options={"returnDocument": return_document, "upsert": upsert},
        )
        logger.info(f"calling find_one_and_update on '{self.name}'")
        fo_response = self._run(command, max_time_ms)
        logger.info(f"finished calling find_one_and_update on '{self.name}'")
        return _parse_returned_document("findOneAndUpdate", command, fo_response)

    def update_one(
        self,
        filter: FilterType,
        update: Dict[str, Any],
        *,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        upsert: bool = False,
        max_time_ms: Optional[int] = None,
    ) -> UpdateResult:
        """
        Apply `update` to at most one matching document, with `updateOne`.

        Args:
            filter: the selection criteria, as in `find`.
            update: update operators, as in `find_one_and_update`.
            vector: a query vector: the most similar match is updated.
            sort: decides which match is updated when there are several.
            upsert: with no match, insert the result of applying `update`
                to an empty document.
            max_time_ms: a time budget for the request, in milliseconds.

        Example:
            >>> my_coll.update_one({"Marco": {"$exists": True}}, {"$inc": {"rank": 3}})
            UpdateResult(raw_results=..., matched_count=1, modified_count=1, ...)
            >>> my_coll.update_one({"Mirko": {"$exists": True}}, {"$inc": {"rank": 3}}, upsert=True)
            UpdateResult(..., upserted_count=1, upserted_id='2a45ff60-...')
        """

        command = make_payload(
            "updateOne",
            filter=filter,
            update=update,
            sort=_collate_vector_to_sort(sort, vector),
            options={"upsert": upsert},
        )
        logger.info(f"calling update_one on '{self.name}'")
        uo_response = self._run(command, max_time_ms)
        logger.info(f"finished calling update_one on '{self.name}'")
        return _parse_update_one(command, uo_response)

    def update_many(
        self,
        filter: FilterType,
        update: Dict[str, Any],
        *,
        upsert: bool = False,
        max_time_ms: Optional[int] = None,
    ) -> UpdateResult:
        """
        Apply `update` to every matching document.

        The server works through the matches a page at a time. The same
        `updateMany` command is sent again with each returned page state,
        and the counts are summed, until no page state comes back.

        Args:
            filter: the selection criteria, as in `find`.
            update: update operators, as in `find_one_and_update`.
            upsert: with no match, insert the result of applying `update`
                to an empty document.
            max_time_ms: a time budget for all pages together, in milliseconds.

        Raises:
            UpdateManyException: if any of the pages reports errors. Its
                `partial_result` holds the counts accumulated so far,
                including those reported by the failing request.

        Example:
            >>> my_coll.insert_many([{"c": "red"}, {"c": "green"}, {"c": "blue"}])
            InsertManyResult(...)
            >>> my_coll.update_many({"c": {"$ne": "green"}}, {"$set": {"nongreen": True}})
            UpdateResult(raw_results=..., matched_count=2, modified_count=2, ...)
        """

        base_options = {"upsert": upsert}
        page_state_options: Dict[str, str] = {}
        um_commands: List[API_COMMAND] = []
        um_responses: List[ResponseEnvelope] = []
        must_proceed = True
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        logger.info(f"starting update_many on '{self.name}'")
        while must_proceed:
            command = make_payload(
                "updateMany",
                filter=filter,
                update=update,
                options={**base_options, **page_state_options},
            )
            logger.debug(f"calling update_many on '{self.name}'")
            this_um_response = self._executor.execute(
                command, timeout_manager=timeout_manager
            )
            um_commands.append(command)
            um_responses.append(this_um_response)
            # if errors, quit early
            if this_um_response.has_errors:
                raise UpdateManyException.from_responses(
                    commands=um_commands,
                    raw_responses=[response.raw for response in um_responses],
                    partial_result=_prepare_update_result(um_responses),
                )
            if "matchedCount" not in this_um_response.status:
                raise DataAPIFaultyResponseException(
                    text="Faulty response from update_many API command.",
                    raw_response=this_um_response.raw,
                )
            next_page_state = this_um_response.next_page_state
            if next_page_state is not None:
                must_proceed = True
                page_state_options = {"pageState": next_page_state}
            else:
                must_proceed = False

        logger.info(f"finished update_many on '{self.name}'")
        return _prepare_update_result(um_responses)

    def find_one_and_delete(
        self,
        filter: FilterType,
        *,
        projection: Optional[ProjectionType] = None,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        max_time_ms: Optional[int] = None,
    ) -> Union[DocumentType, None]:
        """
        Delete one matching document and return what it contained,
        or None if nothing matched.

        Args:
            filter: the selection criteria, as in `find`.
            projection: the fields to return, as in `find`.
            vector: a query vector: the most similar match is deleted.
            sort: decides which match is deleted when there are several.
            max_time_ms: a time budget for the request, in milliseconds.

        Example:
            >>> my_coll.find_one_and_delete({"species": {"$ne": "frog"}})
            {'_id': 'd7b8...', 'species': 'lizard'}
        """

        command = make_payload(
            "findOneAndDelete",
            filter=filter,
            projection=normalize_optional_projection(projection),
            sort=_collate_vector_to_sort(sort, vector),
        )
        logger.info(f"calling find_one_and_delete on '{self.name}'")
        fo_response = self._run(command, max_time_ms)
        logger.info(f"finished calling find_one_and_delete on '{self.name}'")
        return _parse_returned_document("findOneAndDelete", command, fo_response)

    def delete_one(
        self,
        filter: FilterType,
        *,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        max_time_ms: Optional[int] = None,
    ) -> DeleteResult:
        """
        Delete at most one matching document, with `deleteOne`.

        Args:
            filter: the selection criteria, as in `find`.
            vector: a query vector: the most similar match is deleted.
            sort: decides which match is deleted when there are several.
            max_time_ms: a time budget for the request, in milliseconds.

        Example:
            >>> my_coll.delete_one({"seq": 1})
            DeleteResult(raw_results=..., deleted_count=1)
        """

        command = make_payload(
            "deleteOne",
            filter=filter,
            sort=_collate_vector_to_sort(sort, vector),
        )
        logger.info(f"calling delete_one on '{self.name}'")
        do_response = self._run(command, max_time_ms)
        logger.info(f"finished calling delete_one on '{self.name}'")
        return _parse_delete_one(command, do_response)

    def delete_many(
        self,
        filter: FilterType,
        *,
        max_time_ms: Optional[int] = None,
    ) -> DeleteResult:
        """
        Delete every matching document.

        Each `deleteMany` command removes a batch; it is sent again for as
        long as the server answers with "moreData".

        Args:
            filter: the selection criteria, as in `find`. An empty filter is
                refused before any request: `delete_all` empties a collection.
            max_time_ms: a time budget for all batches together, in milliseconds.

        Raises:
            DeleteManyException: if any of the batches reports errors. Its
                `partial_result` holds the count of documents deleted so far.

        Example:
            >>> my_coll.insert_many([{"seq": 1}, {"seq": 0}, {"seq": 2}])
            InsertManyResult(...)
            >>> my_coll.delete_many({"seq": {"$lte": 1}})
            DeleteResult(raw_results=..., deleted_count=2)
            >>> my_coll.delete_many({"seq": {"$lte": 1}})
            DeleteResult(raw_results=..., deleted_count=0)
        """

        _validate_delete_many_filter(filter)
        command = make_payload("deleteMany", filter=filter)
        dm_commands: List[API_COMMAND] = []
        dm_responses: List[ResponseEnvelope] = []
        deleted_count = 0
        must_proceed = True
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        logger.info(f"starting delete_many on '{self.name}'")
        while must_proceed:
            logger.debug(f"calling delete_many on '{self.name}'")
            this_dm_response = self._executor.execute(
                command, timeout_manager=timeout_manager
            )
            dm_commands.append(command)
            dm_responses.append(this_dm_response)
            this_dc = this_dm_response.status.get("deletedCount")
            # if errors, quit early
            if this_dm_response.has_errors:
                raise DeleteManyException.from_responses(
                    commands=dm_commands,
                    raw_responses=[response.raw for response in dm_responses],
                    partial_result=DeleteResult(
                        raw_results=[response.raw for response in dm_responses],
                        deleted_count=deleted_count + (this_dc or 0),
                    ),
                )
            if this_dc is None or this_dc < 0:
                raise DataAPIFaultyResponseException(
                    text="Faulty response from delete_many API command.",
                    raw_response=this_dm_response.raw,
                )
            deleted_count += this_dc
            must_proceed = this_dm_response.more_data

        logger.info(f"finished delete_many on '{self.name}'")
        return DeleteResult(
            raw_results=[response.raw for response in dm_responses],
            deleted_count=deleted_count,
        )

    def delete_all(self, *, max_time_ms: Optional[int] = None) -> DeleteResult:
        """
        Empty the collection with one unfiltered `deleteMany` command.
        The result has `deleted_count=None`: the server does not count.
        """

        command = make_payload("deleteMany", filter={})
        logger.info(f"calling unfiltered delete_many on '{self.name}'")
        dm_response = self._run(command, max_time_ms)
        logger.info(f"finished calling unfiltered delete_many on '{self.name}'")
        return _parse_delete_all(command, dm_response)

    def bulk_write(
        self,
        requests: Iterable[BaseOperation],
        *,
        ordered: bool = True,
        concurrency: Optional[int] = None,
        max_time_ms: Optional[int] = None,
    ) -> BulkWriteResult:
        """
        Run a list of write operations (see `dataapi.operations`), each
        through the collection method of the same name. There is no
        atomicity across them.

        Args:
            requests: the operations, such as `InsertOne({...})` or
                `DeleteMany({...})`, built with the arguments of the
                matching collection methods.
            ordered: True (default) runs the operations in sequence and stops
                at the first failure. False runs them up to `concurrency`
                at a time and attempts all of them.
            concurrency: how many operations may run at once. Ordered bulk
                writes only accept 1.
            max_time_ms: a time budget for the whole list, in milliseconds.
                When it runs out, an unknown part of the list may have been
                applied.

        Returns:
            a BulkWriteResult summing up all operations. Its dictionaries are
            keyed by the position of the operation in `requests`.

        Raises:
            BulkWriteException: if any operation reports errors. Ordered bulk
                writes stop at the first failing operation; unordered ones
                attempt all operations and report all failures together.

        Example:
            >>> from dataapi.operations import InsertOne, ReplaceOne, DeleteMany
            >>> op1 = InsertOne({"a": 1})
            >>> op2 = ReplaceOne({"z": 9}, replacement={"z": 9, "replaced": True}, upsert=True)
            >>> op3 = DeleteMany({"a": 1})
            >>> my_coll.bulk_write([op1, op2, op3])
            BulkWriteResult(bulk_api_results={...}, deleted_count=1, inserted_count=1, ...)
        """

        # lazy importing here against circular-import error
        from dataapi.operations import reduce_bulk_write_results

        _concurrency = _resolve_concurrency(
            ordered, concurrency, DEFAULT_BULK_WRITE_CONCURRENCY
        )
        _requests = list(requests)
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        logger.info(f"starting a bulk write on '{self.name}'")
        if ordered:
            bulk_write_results: List[BulkWriteResult] = []
            for operation_i, operation in enumerate(_requests):
                try:
                    this_bw_result = operation.execute(
                        self,
                        index_in_bulk_write=operation_i,
                        bulk_write_timeout_ms=timeout_manager.remaining_timeout_ms(),
                    )
                    bulk_write_results.append(this_bw_result)
                except DataAPIResponseException as exc:
                    raise _bulk_write_failure([(operation_i, exc)], bulk_write_results)
            logger.info(f"finished a bulk write on '{self.name}'")
            return reduce_bulk_write_results(bulk_write_results)
        else:
            successes: List[BulkWriteResult] = []
            failures: List[Tuple[int, DataAPIResponseException]] = []

            def _execute_as_either(
                operation_i: int, operation: BaseOperation
            ) -> _BulkEither:
                try:
                    ex_result = operation.execute(
                        self,
                        index_in_bulk_write=operation_i,
                        bulk_write_timeout_ms=timeout_manager.remaining_timeout_ms(),
                    )
                    return (ex_result, None)
                except DataAPIResponseException as exc:
                    return (None, exc)

            def _collect(
                state: WorkerPoolState[BaseOperation],
                operation_i: int,
                either: _BulkEither,
            ) -> None:
                bw_result, bw_failure = either
                if bw_failure is not None:
                    failures.append((operation_i, bw_failure))
                elif bw_result is not None:
                    successes.append(bw_result)

            run_worker_pool(
                _requests,
                concurrency=_concurrency,
                process=_execute_as_either,
                collect=_collect,
            )
            if failures:
                raise _bulk_write_failure(failures, successes)
            logger.info(f"finished a bulk write on '{self.name}'")
            return reduce_bulk_write_results(successes)

    def command(
        self,
        body: Dict[str, Any],
        *,
        max_time_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Send `body` as is to this collection's endpoint and return the raw
        response. Any "errors" in it are left for the caller to inspect.

        Example:
            >>> my_coll.command({"countDocuments": {}})
            {'status': {'count': 123}}
        """

        logger.info(f"calling command on '{self.name}'")
        command_result = self._run(body, max_time_ms)
        logger.info(f"finished calling command on '{self.name}'")
        return command_result.raw


class AsyncCollection:
    """
    The asyncio flavour of Collection. Methods mirror their Collection
    namesakes but are coroutines, and unordered writes run as concurrent
    tasks on the event loop.

    Args:
        database: the AsyncDatabase holding the collection.
        name: the collection name.
        namespace: where the collection lives. Defaults to the namespace
            of `database`.
        caller_name: the caller name sent in the User-Agent.
        caller_version: the caller version sent in the User-Agent.
        executor: an async command executor bound to this collection. If not
            specified, an AsyncAPICommander is obtained from the database.

    Examples:
        >>> my_async_coll = my_async_db.get_collection("my_collection")
        >>> asyncio.run(my_async_coll.insert_one({"a": 1}))
        InsertOneResult(raw_results=..., inserted_id='...')
    """

    def __init__(
        self,
        database: AsyncDatabase,
        name: str,
        *,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
        executor: Optional[AsyncCommandExecutor] = None,
    ) -> None:
        self._database = database._copy(namespace=namespace)
        self._name = name
        self._caller_name = caller_name or database.caller_name
        self._caller_version = caller_version or database.caller_version
        self._executor: AsyncCommandExecutor = (
            executor
            or self._database._get_commander(
                collection_name=name,
                caller_name=self._caller_name,
                caller_version=self._caller_version,
            )
        )

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}(name="{self.name}", '
            f'namespace="{self.namespace}", database={self.database})'
        )

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, AsyncCollection):
            return all(
                [
                    self.database == other.database,
                    self.name == other.name,
                    self._caller_name == other._caller_name,
                    self._caller_version == other._caller_version,
                ]
            )
        else:
            return False

    def __call__(self, *pargs: Any, **kwargs: Any) -> None:
        raise TypeError(
            f"'{self.__class__.__name__}' object is not callable. If you "
            f"meant to call the '{self.name}' method on a "
            f"'{self.database.__class__.__name__}' object "
            "it is failing because no such method exists."
        )

    def _copy(
        self,
        *,
        database: Optional[AsyncDatabase] = None,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> AsyncCollection:
        return AsyncCollection(
            database=database or self.database,
            name=name or self.name,
            namespace=namespace or self.namespace,
            caller_name=caller_name or self._caller_name,
            caller_version=caller_version or self._caller_version,
        )

    def with_options(
        self,
        *,
        name: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> AsyncCollection:
        """
        Create a clone of this collection with some changed attributes.
        See the `with_options` method of Collection.
        """

        return self._copy(
            name=name,
            caller_name=caller_name,
            caller_version=caller_version,
        )

    def to_sync(
        self,
        *,
        database: Optional[Database] = None,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        caller_name: Optional[str] = None,
        caller_version: Optional[str] = None,
    ) -> Collection:
        """
        The blocking counterpart of this collection, with the database
        converted by its `to_sync` method and the given overrides applied.
        """

        return Collection(
            database=database or self.database.to_sync(),
            name=name or self.name,
            namespace=namespace or self.namespace,
            caller_name=caller_name or self._caller_name,
            caller_version=caller_version or self._caller_version,
        )

    @property
    def database(self) -> AsyncDatabase:
        return self._database

    @property
    def namespace(self) -> str:
        return self.database.namespace

    @property
    def name(self) -> str:
        return self._name

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}"

    async def _run(
        self, command: API_COMMAND, max_time_ms: Optional[int]
    ) -> ResponseEnvelope:
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        return await self._executor.execute(command, timeout_manager=timeout_manager)

    async def insert_one(
        self,
        document: DocumentType,
        *,
        vector: Optional[VectorType] = None,
        max_time_ms: Optional[int] = None,
    ) -> InsertOneResult:
        """
        Insert a single document in the collection in an atomic operation.
        See the `insert_one` method of Collection.
        """

        _document = _collate_vector_to_document(document, vector)
        command = make_payload("insertOne", document=_document)
        logger.info(f"inserting one document in '{self.name}'")
        io_response = await self._run(command, max_time_ms)
        logger.info(f"finished inserting one document in '{self.name}'")
        return _parse_insert_one(command, io_response)

    async def insert_many(
        self,
        documents: Iterable[DocumentType],
        *,
        vectors: Optional[Iterable[Optional[VectorType]]] = None,
        ordered: bool = True,
        chunk_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        max_time_ms: Optional[int] = None,
    ) -> InsertManyResult:
        """
        Insert a list of documents into the collection.
        This is not an atomic operation.

        Unordered insertions run as up to `concurrency` asyncio tasks,
        each claiming the next chunk to insert as soon as it is free.
        See the `insert_many` method of Collection for the parameters.

        Example:
            >>> asyncio.run(my_async_coll.insert_many(
            ...     [{"seq": i} for i in range(50)],
            ...     ordered=False,
            ...     concurrency=5,
            ... ))
            InsertManyResult(raw_results=..., inserted_ids=[... ...])
        """

        _concurrency = _resolve_concurrency(
            ordered, concurrency, DEFAULT_INSERT_MANY_CONCURRENCY
        )
        _documents = _collate_vectors_to_documents(documents, vectors)
        chunks = _split_into_chunks(_documents, chunk_size)
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        logger.info(f"inserting {len(_documents)} documents in '{self.name}'")

        if ordered:
            raw_results: List[Dict[str, Any]] = []
            inserted_ids: List[Any] = []
            for chunk in chunks:
                command = _insert_many_command(chunk, ordered=True)
                logger.debug(f"inserting a chunk of documents in '{self.name}'")
                chunk_response = await self._executor.execute(
                    command, timeout_manager=timeout_manager
                )
                inserted_ids += _inserted_ids(chunk_response)
                raw_results += [chunk_response.raw]
                if chunk_response.has_errors:
                    raise InsertManyException.from_response(
                        command=command,
                        raw_response=chunk_response.raw,
                        partial_result=InsertManyResult(
                            raw_results=raw_results,
                            inserted_ids=inserted_ids,
                        ),
                    )
            logger.info(
                f"finished inserting {len(_documents)} documents in '{self.name}'"
            )
            return InsertManyResult(
                raw_results=raw_results,
                inserted_ids=inserted_ids,
            )

        else:
            chunk_responses: Dict[int, ResponseEnvelope] = {}

            async def _chunk_insertor(
                index: int, chunk: List[DocumentType]
            ) -> Tuple[API_COMMAND, ResponseEnvelope]:
                command = _insert_many_command(chunk, ordered=False)
                logger.debug(f"inserting chunk {index} of documents in '{self.name}'")
                chunk_response = await self._executor.execute(
                    command, timeout_manager=timeout_manager
                )
                return command, chunk_response

            def _collect(
                state: WorkerPoolState[List[DocumentType]],
                index: int,
                outcome: Tuple[API_COMMAND, ResponseEnvelope],
            ) -> None:
                command, chunk_response = outcome
                chunk_responses[index] = chunk_response
                if chunk_response.has_errors:
                    state.record_failure(command, chunk_response.raw)

            pool_state = await arun_worker_pool(
                chunks,
                concurrency=_concurrency,
                process=_chunk_insertor,
                collect=_collect,
            )
            full_result = _unordered_insert_result(chunk_responses)
            if pool_state.has_failures:
                raise InsertManyException.from_responses(
                    commands=pool_state.failed_commands,
                    raw_responses=pool_state.failed_responses,
                    partial_result=full_result,
                )
            logger.info(
                f"finished inserting {len(_documents)} documents in '{self.name}'"
            )
            return full_result

    def find(
        self,
        filter: Optional[FilterType] = None,
        *,
        projection: Optional[ProjectionType] = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
        vector: Optional[VectorType] = None,
        include_similarity: Optional[bool] = None,
        include_sort_vector: Optional[bool] = None,
        sort: Optional[SortType] = None,
        max_time_ms: Optional[int] = None,
    ) -> AsyncCursor:
        """
        Find documents on the collection, matching a certain provided filter.
        The method returns an AsyncCursor, to be iterated over with `async for`.
        See the `find` method of Collection for the parameters.

        Example:
            >>> async def run_finds(acol: AsyncCollection) -> None:
            ...     async for doc in acol.find({"seq": {"$gt": 1}}, limit=3):
            ...         print(doc["seq"])
        """

        _sort = _collate_vector_to_sort(sort, vector)
        if include_similarity is not None and not _is_vector_sort(_sort):
            raise ValueError(
                "Cannot use `include_similarity` when not searching through `vector`."
            )
        return AsyncCursor(
            collection=self,
            filter=filter,
            projection=projection,
            sort=_sort,
            limit=limit,
            skip=skip,
            include_similarity=include_similarity,
            include_sort_vector=include_sort_vector,
            max_time_ms=max_time_ms,
        )

    async def find_one(
        self,
        filter: Optional[FilterType] = None,
        *,
        projection: Optional[ProjectionType] = None,
        vector: Optional[VectorType] = None,
        include_similarity: Optional[bool] = None,
        sort: Optional[SortType] = None,
        max_time_ms: Optional[int] = None,
    ) -> Union[DocumentType, None]:
        _sort = _collate_vector_to_sort(sort, vector)
        if include_similarity is not None and not _is_vector_sort(_sort):
            raise ValueError(
                "Cannot use `include_similarity` when not searching through `vector`."
            )
        command = make_payload(
            "findOne",
            filter=filter or {},
            projection=normalize_optional_projection(projection),
            sort=_sort,
            options=make_options(includeSimilarity=include_similarity),
        )
        logger.info(f"calling find_one on '{self.name}'")
        fo_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling find_one on '{self.name}'")
        return _parse_returned_document("findOne", command, fo_response)

    async def distinct(
        self,
        key: str,
        *,
        filter: Optional[FilterType] = None,
        max_time_ms: Optional[int] = None,
    ) -> List[Any]:
        """
        The different values at `key` among the matching documents.
        Computed in the client, as in `Collection.distinct`.
        """

        return await self.find(filter=filter, max_time_ms=max_time_ms).distinct(key)

    async def count_documents(
        self,
        filter: FilterType,
        *,
        upper_bound: int,
        max_time_ms: Optional[int] = None,
    ) -> int:
        """
        Count the documents in the collection matching the specified filter.
        See the `count_documents` method of Collection.
        """

        _validate_upper_bound(upper_bound)
        command = make_payload("countDocuments", filter=filter)
        logger.info(f"calling count_documents on '{self.name}'")
        cd_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling count_documents on '{self.name}'")
        return _parse_count(command, cd_response, upper_bound)

    async def estimated_document_count(
        self,
        *,
        max_time_ms: Optional[int] = None,
    ) -> int:
        command: API_COMMAND = {"estimatedDocumentCount": {}}
        logger.info(f"calling estimated_document_count on '{self.name}'")
        ed_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling estimated_document_count on '{self.name}'")
        return _parse_estimated_count(command, ed_response)

    async def find_one_and_replace(
        self,
        filter: FilterType,
        replacement: DocumentType,
        *,
        projection: Optional[ProjectionType] = None,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        upsert: bool = False,
        return_document: str = ReturnDocument.BEFORE,
        max_time_ms: Optional[int] = None,
    ) -> Union[DocumentType, None]:
        command = make_payload(
            "findOneAndReplace",
            filter=filter,
            replacement=replacement,
            projection=normalize_optional_projection(projection),
            sort=_collate_vector_to_sort(sort, vector),
            options={"returnDocument": return_document, "upsert": upsert},
        )
        logger.info(f"calling find_one_and_replace on '{self.name}'")
        fo_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling find_one_and_replace on '{self.name}'")
        return _parse_returned_document("findOneAndReplace", command, fo_response)

    async def replace_one(
        self,
        filter: FilterType,
        replacement: DocumentType,
        *,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        upsert: bool = False,
        max_time_ms: Optional[int] = None,
    ) -> UpdateResult:
        command = make_payload(
            "findOneAndReplace",
            filter=filter,
            replacement=replacement,
            projection={"*": False},
            sort=_collate_vector_to_sort(sort, vector),
            options={"returnDocument": ReturnDocument.BEFORE, "upsert": upsert},
        )
        logger.info(f"calling find_one_and_replace on '{self.name}'")
        fo_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling find_one_and_replace on '{self.name}'")
        return _parse_update_one(command, fo_response)

    async def find_one_and_update(
        self,
        filter: FilterType,
        update: Dict[str, Any],
        *,
        projection: Optional[ProjectionType] = None,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        upsert: bool = False,
        return_document: str = ReturnDocument.BEFORE,
        max_time_ms: Optional[int] = None,
    ) -> Union[DocumentType, None]:
        command = make_payload(
            "findOneAndUpdate",
            filter=filter,
            update=update,
            projection=normalize_optional_projection(projection),
            sort=_collate_vector_to_sort(sort, vector),
            options={"returnDocument": return_document, "upsert": upsert},
        )
        logger.info(f"calling find_one_and_update on '{self.name}'")
        fo_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling find_one_and_update on '{self.name}'")
        return _parse_returned_document("findOneAndUpdate", command, fo_response)

    async def update_one(
        self,
        filter: FilterType,
        update: Dict[str, Any],
        *,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        upsert: bool = False,
        max_time_ms: Optional[int] = None,
    ) -> UpdateResult:
        command = make_payload(
            "updateOne",
            filter=filter,
            update=update,
            sort=_collate_vector_to_sort(sort, vector),
            options={"upsert": upsert},
        )
        logger.info(f"calling update_one on '{self.name}'")
        uo_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling update_one on '{self.name}'")
        return _parse_update_one(command, uo_response)

    async def update_many(
        self,
        filter: FilterType,
        update: Dict[str, Any],
        *,
        upsert: bool = False,
        max_time_ms: Optional[int] = None,
    ) -> UpdateResult:
        """
        Apply an update operations to all documents matching a condition,
        following the page state returned by the API until completion.
        See the `update_many` method of Collection.
        """

        base_options = {"upsert": upsert}
        page_state_options: Dict[str, str] = {}
        um_commands: List[API_COMMAND] = []
        um_responses: List[ResponseEnvelope] = []
        must_proceed = True
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        logger.info(f"starting update_many on '{self.name}'")
        while must_proceed:
            command = make_payload(
                "updateMany",
                filter=filter,
                update=update,
                options={**base_options, **page_state_options},
            )
            logger.debug(f"calling update_many on '{self.name}'")
            this_um_response = await self._executor.execute(
                command, timeout_manager=timeout_manager
            )
            um_commands.append(command)
            um_responses.append(this_um_response)
            if this_um_response.has_errors:
                raise UpdateManyException.from_responses(
                    commands=um_commands,
                    raw_responses=[response.raw for response in um_responses],
                    partial_result=_prepare_update_result(um_responses),
                )
            if "matchedCount" not in this_um_response.status:
                raise DataAPIFaultyResponseException(
                    text="Faulty response from update_many API command.",
                    raw_response=this_um_response.raw,
                )
            next_page_state = this_um_response.next_page_state
            if next_page_state is not None:
                must_proceed = True
                page_state_options = {"pageState": next_page_state}
            else:
                must_proceed = False

        logger.info(f"finished update_many on '{self.name}'")
        return _prepare_update_result(um_responses)

    async def find_one_and_delete(
        self,
        filter: FilterType,
        *,
        projection: Optional[ProjectionType] = None,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        max_time_ms: Optional[int] = None,
    ) -> Union[DocumentType, None]:
        command = make_payload(
            "findOneAndDelete",
            filter=filter,
            projection=normalize_optional_projection(projection),
            sort=_collate_vector_to_sort(sort, vector),
        )
        logger.info(f"calling find_one_and_delete on '{self.name}'")
        fo_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling find_one_and_delete on '{self.name}'")
        return _parse_returned_document("findOneAndDelete", command, fo_response)

    async def delete_one(
        self,
        filter: FilterType,
        *,
        vector: Optional[VectorType] = None,
        sort: Optional[SortType] = None,
        max_time_ms: Optional[int] = None,
    ) -> DeleteResult:
        command = make_payload(
            "deleteOne",
            filter=filter,
            sort=_collate_vector_to_sort(sort, vector),
        )
        logger.info(f"calling delete_one on '{self.name}'")
        do_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling delete_one on '{self.name}'")
        return _parse_delete_one(command, do_response)

    async def delete_many(
        self,
        filter: FilterType,
        *,
        max_time_ms: Optional[int] = None,
    ) -> DeleteResult:
        """
        Delete all documents matching a provided filter, repeating the
        command as long as the API reports more matches.
        See the `delete_many` method of Collection.
        """

        _validate_delete_many_filter(filter)
        command = make_payload("deleteMany", filter=filter)
        dm_commands: List[API_COMMAND] = []
        dm_responses: List[ResponseEnvelope] = []
        deleted_count = 0
        must_proceed = True
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        logger.info(f"starting delete_many on '{self.name}'")
        while must_proceed:
            logger.debug(f"calling delete_many on '{self.name}'")
            this_dm_response = await self._executor.execute(
                command, timeout_manager=timeout_manager
            )
            dm_commands.append(command)
            dm_responses.append(this_dm_response)
            this_dc = this_dm_response.status.get("deletedCount")
            if this_dm_response.has_errors:
                raise DeleteManyException.from_responses(
                    commands=dm_commands,
                    raw_responses=[response.raw for response in dm_responses],
                    partial_result=DeleteResult(
                        raw_results=[response.raw for response in dm_responses],
                        deleted_count=deleted_count + (this_dc or 0),
                    ),
                )
            if this_dc is None or this_dc < 0:
                raise DataAPIFaultyResponseException(
                    text="Faulty response from delete_many API command.",
                    raw_response=this_dm_response.raw,
                )
            deleted_count += this_dc
            must_proceed = this_dm_response.more_data

        logger.info(f"finished delete_many on '{self.name}'")
        return DeleteResult(
            raw_results=[response.raw for response in dm_responses],
            deleted_count=deleted_count,
        )

    async def delete_all(self, *, max_time_ms: Optional[int] = None) -> DeleteResult:
        command = make_payload("deleteMany", filter={})
        logger.info(f"calling unfiltered delete_many on '{self.name}'")
        dm_response = await self._run(command, max_time_ms)
        logger.info(f"finished calling unfiltered delete_many on '{self.name}'")
        return _parse_delete_all(command, dm_response)

    async def bulk_write(
        self,
        requests: Iterable[BaseOperation],
        *,
        ordered: bool = True,
        concurrency: Optional[int] = None,
        max_time_ms: Optional[int] = None,
    ) -> BulkWriteResult:
        """
        Execute an arbitrary amount of operations such as inserts, updates, deletes
        either sequentially or concurrently (as asyncio tasks).
        See the `bulk_write` method of Collection.
        """

        # lazy importing here against circular-import error
        from dataapi.operations import reduce_bulk_write_results

        _concurrency = _resolve_concurrency(
            ordered, concurrency, DEFAULT_BULK_WRITE_CONCURRENCY
        )
        _requests = list(requests)
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=max_time_ms)
        logger.info(f"starting a bulk write on '{self.name}'")
        if ordered:
            bulk_write_results: List[BulkWriteResult] = []
            for operation_i, operation in enumerate(_requests):
                try:
                    this_bw_result = await operation.async_execute(
                        self,
                        index_in_bulk_write=operation_i,
                        bulk_write_timeout_ms=timeout_manager.remaining_timeout_ms(),
                    )
                    bulk_write_results.append(this_bw_result)
                except DataAPIResponseException as exc:
                    raise _bulk_write_failure([(operation_i, exc)], bulk_write_results)
            logger.info(f"finished a bulk write on '{self.name}'")
            return reduce_bulk_write_results(bulk_write_results)
        else:
            successes: List[BulkWriteResult] = []
            failures: List[Tuple[int, DataAPIResponseException]] = []

            async def _execute_as_either(
                operation_i: int, operation: BaseOperation
            ) -> _BulkEither:
                try:
                    ex_result = await operation.async_execute(
                        self,
                        index_in_bulk_write=operation_i,
                        bulk_write_timeout_ms=timeout_manager.remaining_timeout_ms(),
                    )
                    return (ex_result, None)
                except DataAPIResponseException as exc:
                    return (None, exc)

            def _collect(
                state: WorkerPoolState[BaseOperation],
                operation_i: int,
                either: _BulkEither,
            ) -> None:
                bw_result, bw_failure = either
                if bw_failure is not None:
                    failures.append((operation_i, bw_failure))
                elif bw_result is not None:
                    successes.append(bw_result)

            await arun_worker_pool(
                _requests,
                concurrency=_concurrency,
                process=_execute_as_either,
                collect=_collect,
            )
            if failures:
                raise _bulk_write_failure(failures, successes)
            logger.info(f"finished a bulk write on '{self.name}'")
            return reduce_bulk_write_results(successes)

    async def command(
        self,
        body: Dict[str, Any],
        *,
        max_time_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        logger.info(f"calling command on '{self.name}'")
        command_result = await self._run(body, max_time_ms)
        logger.info(f"finished calling command on '{self.name}'")
        return command_result.raw
