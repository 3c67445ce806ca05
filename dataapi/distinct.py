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

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterator, List, Optional, Set, Tuple


@dataclass(frozen=True)
class PathSegment:
    """
    One dot-separated component of a distinct key.

    Attributes:
        key: the literal text of the segment, used to look into dicts.
        index: the list index the segment can stand for, or None if the
            segment is not a canonical non-negative integer ("3" is an index,
            "03" and "-1" are not). Against a list, a segment without an
            index is a wildcard over all items.
    """

    key: str
    index: Optional[int]


def _maybe_valid_list_index(key_block: str) -> Optional[int]:
    # '0', '1' is good. '00', '01', '-30' are not.
    try:
        kb_index = int(key_block)
        if kb_index >= 0 and key_block == str(kb_index):
            return kb_index
        else:
            return None
    except ValueError:
        return None


def parse_distinct_key(key: str) -> List[PathSegment]:
    if key == "":
        raise ValueError("Field path specification cannot be empty")
    key_blocks = key.split(".")
    if any(kb_str == "" for kb_str in key_blocks):
        raise ValueError("Field path components cannot be empty")
    return [
        PathSegment(key=kb_str, index=_maybe_valid_list_index(kb_str))
        for kb_str in key_blocks
    ]


class DistinctPath:
    """
    A parsed distinct key, able to extract the matching values from documents.

    Example:
        >>> path = DistinctPath("a.b")
        >>> list(path.extract({"a": [{"b": 1}, {"b": [2, 3]}, {"c": 4}]}))
        [1, 2, 3]
    """

    def __init__(self, key: str) -> None:
        self.key = key
        self.segments = parse_distinct_key(key)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}("{self.key}")'

    @property
    def projection_key(self) -> str:
        """
        The longest leading portion of the key that is safe to project on.

        Segments that could be list indices are ambiguous, as "0" may also
        be a dict key: see for instance document {'x': [{'y': 1, '0': 2}]}
        with key "x.0". Projecting on the full key would lose the 'y' part.
        """
        safe_segments = []
        for segment in self.segments:
            if segment.index is not None:
                break
            safe_segments.append(segment.key)
        return ".".join(safe_segments)

    def projection(self) -> Optional[Dict[str, bool]]:
        """
        The projection to request from the API, or None if the key starts
        with an index-like segment (in which case whole documents are needed).
        """
        projection_key = self.projection_key
        if projection_key == "":
            return None
        return {"_id": False, **{projection_key: True}}

    def extract(self, document: Dict[str, Any]) -> Iterator[Any]:
        """
        Yield all values found at this path in a document, in document order.

        Walking rules, for each segment:
            dict: descend into the named key, if present;
            list, with an index segment: descend into that item, if in range;
            list, otherwise: apply the same segment to each item;
            anything else: no contribution.
        A list found at the end of the path contributes each of its items.
        """
        n_segments = len(self.segments)
        stack: List[Tuple[int, Any]] = [(0, document)]
        while stack:
            position, value = stack.pop()
            if position == n_segments:
                if isinstance(value, list):
                    yield from value
                else:
                    yield value
                continue
            segment = self.segments[position]
            if isinstance(value, dict):
                if segment.key in value:
                    stack.append((position + 1, value[segment.key]))
            elif isinstance(value, list):
                if segment.index is not None:
                    if segment.index < len(value):
                        stack.append((position + 1, value[segment.index]))
                else:
                    stack.extend((position, item) for item in reversed(value))


def _hash_distinct_value(value: Any) -> Hashable:
    if isinstance(value, (dict, list)):
        _normalized_json = json.dumps(
            value, sort_keys=True, separators=(",", ":"), default=str
        )
        return ("document", hashlib.md5(_normalized_json.encode()).hexdigest())
    # keep True apart from 1 and False apart from 0
    return ("scalar", isinstance(value, bool), value)


class DistinctCollector:
    """
    Accumulates the unique values found at a path across documents,
    in order of first occurrence. Structurally equal dicts/lists
    count as the same value.
    """

    def __init__(self, path: DistinctPath) -> None:
        self.path = path
        self._item_hashes: Set[Hashable] = set()
        self._distinct_items: List[Any] = []

    def add_document(self, document: Dict[str, Any]) -> None:
        for item in self.path.extract(document):
            _item_hash = _hash_distinct_value(item)
            if _item_hash not in self._item_hashes:
                self._item_hashes.add(_item_hash)
                self._distinct_items.append(item)

    @property
    def values(self) -> List[Any]:
        return list(self._distinct_items)
