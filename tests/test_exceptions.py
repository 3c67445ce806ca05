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

import pytest

from dataapi.exceptions import (
    BulkWriteException,
    DataAPIErrorDescriptor,
    DataAPIResponseException,
    DataAPITimeoutException,
    DeleteManyException,
    InsertManyException,
    MultiCallTimeoutManager,
)
from dataapi.results import BulkWriteResult, DeleteResult, InsertManyResult


class TestErrorAggregation:
    @pytest.mark.describe("from_responses skips responses without errors")
    def test_from_responses(self) -> None:
        exc = InsertManyException.from_responses(
            commands=[{"c": 0}, {"c": 1}, {"c": 2}],
            raw_responses=[
                {"errors": [{"message": "first", "errorCode": "E1", "id": 7}]},
                {"status": {"insertedIds": ["a"]}},
                {"errors": [{"message": "second"}, {"message": "third"}]},
            ],
            partial_result=InsertManyResult(raw_results=[], inserted_ids=["a"]),
        )

        assert exc.text == "first (+ 2 more errors)"
        assert str(exc) == "first (+ 2 more errors)"
        assert [e_d.message for e_d in exc.error_descriptors] == [
            "first",
            "second",
            "third",
        ]
        assert exc.error_descriptors[0].error_code == "E1"
        assert exc.error_descriptors[0].attributes == {"id": 7}
        assert [d_e_d.command for d_e_d in exc.detailed_error_descriptors] == [
            {"c": 0},
            {"c": 2},
        ]
        assert exc.partial_result.inserted_ids == ["a"]
        assert isinstance(exc, DataAPIResponseException)

    @pytest.mark.describe("error summaries without messages")
    def test_summary_without_message(self) -> None:
        exc = DataAPIResponseException.from_response(
            command=None,
            raw_response={"errors": [{"errorCode": "X"}]},
        )
        assert exc.text == "Something went wrong (1 errors)"

    @pytest.mark.describe("partial results are read-only")
    def test_partial_result_read_only(self) -> None:
        exc = DeleteManyException.from_response(
            command=None,
            raw_response={"errors": [{"message": "m"}]},
            partial_result=DeleteResult(raw_results=[], deleted_count=3),
        )
        assert exc.partial_result.deleted_count == 3
        with pytest.raises(AttributeError):
            exc.partial_result = DeleteResult(raw_results=[], deleted_count=0)  # type: ignore[misc]

    @pytest.mark.describe("bulk write exceptions gather all underlying errors")
    def test_bulk_write_from_exceptions(self) -> None:
        exc1 = DataAPIResponseException.from_response(
            command={"op": 1}, raw_response={"errors": [{"message": "one"}]}
        )
        exc2 = InsertManyException.from_responses(
            commands=[{"op": 2}, {"op": 3}],
            raw_responses=[
                {"errors": [{"message": "two"}]},
                {"errors": [{"message": "three"}]},
            ],
            partial_result=InsertManyResult(raw_results=[], inserted_ids=[]),
        )
        bw_exc = BulkWriteException.from_exceptions(
            exceptions=[exc1, exc2.data_api_response_exception()],
            partial_result=BulkWriteResult.zero(),
        )

        assert bw_exc.text == "one (+ 2 more errors)"
        assert [d_e_d.command for d_e_d in bw_exc.detailed_error_descriptors] == [
            {"op": 1},
            {"op": 2},
            {"op": 3},
        ]
        assert len(bw_exc.exceptions) == 2
        assert type(bw_exc.exceptions[1]) is DataAPIResponseException
        assert bw_exc.partial_result == BulkWriteResult.zero()

    @pytest.mark.describe("error descriptors compare by content")
    def test_error_descriptor_equality(self) -> None:
        assert DataAPIErrorDescriptor(
            {"message": "m", "errorCode": "C", "x": 1}
        ) == DataAPIErrorDescriptor({"errorCode": "C", "x": 1, "message": "m"})
        assert DataAPIErrorDescriptor({"message": "m"}) != DataAPIErrorDescriptor(
            {"message": "n"}
        )


class TestTimeoutManager:
    @pytest.mark.describe("timeout manager without a deadline")
    def test_no_deadline(self) -> None:
        manager = MultiCallTimeoutManager(overall_max_time_ms=None)
        assert manager.remaining_timeout_ms() is None
        assert manager.remaining_timeout_info() is None

    @pytest.mark.describe("timeout manager counts down and expires")
    def test_deadline(self) -> None:
        manager = MultiCallTimeoutManager(overall_max_time_ms=10000)
        remaining = manager.remaining_timeout_ms()
        assert remaining is not None
        assert 0 < remaining <= 10000
        timeout_info = manager.remaining_timeout_info()
        assert timeout_info is not None
        assert 0 < timeout_info["base"] <= 10.0

        expiring = MultiCallTimeoutManager(overall_max_time_ms=1)
        time.sleep(0.01)
        with pytest.raises(DataAPITimeoutException) as exc_info:
            expiring.remaining_timeout_ms()
        assert exc_info.value.timeout_type == "generic"
