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

from typing import Any, Dict, Iterable, Optional, Union


DocumentType = Dict[str, Any]
ProjectionType = Union[Iterable[str], Dict[str, bool]]
SortType = Dict[str, Any]
FilterType = Dict[str, Any]
VectorType = Iterable[float]


def normalize_optional_projection(
    projection: Optional[ProjectionType],
) -> Optional[Dict[str, bool]]:
    """
    A list of field names becomes an inclusion dictionary, a dictionary
    is kept as it is. Empty projections mean no projection.
    """
    if not projection:
        return None
    if isinstance(projection, dict):
        return dict(projection)
    return {field_name: True for field_name in projection}


def normalize_optional_sort(sort: Optional[SortType]) -> Optional[SortType]:
    """
    Sort values are passed through as they are, except that booleans
    are rejected (they are almost certainly a mistake for 1/-1).
    An empty sort is treated as no sort at all.
    """
    if not sort:
        return None
    for sort_key, sort_value in sort.items():
        if isinstance(sort_value, bool):
            raise ValueError(
                f"Invalid sort value for '{sort_key}': use SortDocuments.ASCENDING "
                "or SortDocuments.DESCENDING."
            )
    return dict(sort)


class ReturnDocument:
    """
    Whether the `find_one_and_*` methods return the document as it was
    before the change or as it is after it.
    """

    def __init__(self) -> None:
        raise NotImplementedError

    BEFORE = "before"
    AFTER = "after"


class SortDocuments:
    """Sort directions, as in `sort={"year": SortDocuments.DESCENDING}`."""

    def __init__(self) -> None:
        raise NotImplementedError

    ASCENDING = 1
    DESCENDING = -1


__pdoc__ = {
    "normalize_optional_projection": False,
    "normalize_optional_sort": False,
}
