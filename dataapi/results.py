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

from abc import ABC, abstractmethod

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _bulk_write_entry(
    index_in_bulk_write: int,
    raw_results: List[Dict[str, Any]],
    *,
    deleted_count: int = 0,
    inserted_count: int = 0,
    matched_count: int = 0,
    modified_count: int = 0,
    upserted_count: int = 0,
    upserted_id: Any = None,
) -> BulkWriteResult:
    return BulkWriteResult(
        bulk_api_results={index_in_bulk_write: raw_results},
        deleted_count=deleted_count,
        inserted_count=inserted_count,
        matched_count=matched_count,
        modified_count=modified_count,
        upserted_count=upserted_count,
        upserted_ids={index_in_bulk_write: upserted_id} if upserted_count else {},
    )


@dataclass
class OperationResult(ABC):
    """
    Base of the results returned by the write methods.

    Attributes:
        raw_results: the responses of all requests the operation made,
            in order. Single-request methods have exactly one.
    """

    raw_results: List[Dict[str, Any]]

    @abstractmethod
    def to_bulk_write_result(self, index_in_bulk_write: int) -> BulkWriteResult:
        """Express this result as the contribution of one bulk_write entry."""
        ...


@dataclass
class DeleteResult(OperationResult):
    """
    Outcome of `delete_one`, `delete_many` and `delete_all`.

    Attributes:
        deleted_count: how many documents went away. None after `delete_all`,
            for which the API does not give a number.
    """

    deleted_count: Optional[int]

    def to_bulk_write_result(self, index_in_bulk_write: int) -> BulkWriteResult:
        return _bulk_write_entry(
            index_in_bulk_write,
            self.raw_results,
            deleted_count=self.deleted_count or 0,
        )


@dataclass
class InsertOneResult(OperationResult):
    """Outcome of `insert_one`: the `inserted_id` of the new document."""

    inserted_id: Any

    def to_bulk_write_result(self, index_in_bulk_write: int) -> BulkWriteResult:
        return _bulk_write_entry(
            index_in_bulk_write, self.raw_results, inserted_count=1
        )


@dataclass
class InsertManyResult(OperationResult):
    """
    Outcome of `insert_many`.

    Attributes:
        inserted_ids: the IDs of the documents written. They follow the
            order of the input documents, for unordered insertions too.
    """

    inserted_ids: List[Any]

    @property
    def inserted_count(self) -> int:
        return len(self.inserted_ids)

    def to_bulk_write_result(self, index_in_bulk_write: int) -> BulkWriteResult:
        return _bulk_write_entry(
            index_in_bulk_write,
            self.raw_results,
            inserted_count=self.inserted_count,
        )


@dataclass
class UpdateResult(OperationResult):
    """
    Outcome of the update and replace methods.

    Attributes:
        matched_count: documents selected by the filter.
        modified_count: documents that actually changed.
        upserted_count: 1 when the upsert created a document, 0 otherwise.
        upserted_id: the ID of that document, if any.
    """

    matched_count: int
    modified_count: int
    upserted_count: int = 0
    upserted_id: Any = None

    @property
    def update_info(self) -> Dict[str, Any]:
        """
        The same outcome in the form familiar to MongoDB users:
        "n", "updatedExisting", "ok", "nModified", plus "upserted"
        when a document was created.
        """

        update_info: Dict[str, Any] = {
            "n": self.matched_count + self.upserted_count,
            "updatedExisting": self.modified_count > 0,
            "ok": 1.0,
            "nModified": self.modified_count,
        }
        if self.upserted_count:
            update_info["upserted"] = self.upserted_id
        return update_info

    def to_bulk_write_result(self, index_in_bulk_write: int) -> BulkWriteResult:
        return _bulk_write_entry(
            index_in_bulk_write,
            self.raw_results,
            matched_count=self.matched_count,
            modified_count=self.modified_count,
            upserted_count=self.upserted_count,
            upserted_id=self.upserted_id,
        )


@dataclass
class BulkWriteResult:
    """
    Outcome of `bulk_write`, summed over all of its operations.

    The two dictionaries are keyed by the position of the operation in the
    list given to `bulk_write`.

    Attributes:
        bulk_api_results: the raw responses of each operation.
        deleted_count: total of deleted documents.
        inserted_count: total of inserted documents.
        matched_count: total of matched documents.
        modified_count: total of modified documents.
        upserted_count: total of upserted documents.
        upserted_ids: the ID created by each upserting operation. Only
            operations that upserted have an entry.
    """

    bulk_api_results: Dict[int, List[Dict[str, Any]]]
    deleted_count: int
    inserted_count: int
    matched_count: int
    modified_count: int
    upserted_count: int
    upserted_ids: Dict[int, Any] = field(default_factory=dict)

    @staticmethod
    def zero() -> BulkWriteResult:
        """The neutral element of `merge`: no responses, all counts at zero."""

        return BulkWriteResult(
            bulk_api_results={},
            deleted_count=0,
            inserted_count=0,
            matched_count=0,
            modified_count=0,
            upserted_count=0,
            upserted_ids={},
        )

    def merge(self, other: BulkWriteResult) -> BulkWriteResult:
        return BulkWriteResult(
            bulk_api_results={**self.bulk_api_results, **other.bulk_api_results},
            deleted_count=self.deleted_count + other.deleted_count,
            inserted_count=self.inserted_count + other.inserted_count,
            matched_count=self.matched_count + other.matched_count,
            modified_count=self.modified_count + other.modified_count,
            upserted_count=self.upserted_count + other.upserted_count,
            upserted_ids={**self.upserted_ids, **other.upserted_ids},
        )
