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
from functools import wraps
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    NoReturn,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
    TYPE_CHECKING,
)

import httpx

from dataapi.core.utils import TimeoutInfo

if TYPE_CHECKING:
    from dataapi.results import (
        BulkWriteResult,
        DeleteResult,
        InsertManyResult,
        OperationResult,
        UpdateResult,
    )


RE = TypeVar("RE", bound="DataAPIResponseException")

# most specific first: the httpx timeout classes share a common parent
_HTTPX_TIMEOUT_TYPES: List[Tuple[Type[httpx.TimeoutException], str]] = [
    (httpx.ConnectTimeout, "connect"),
    (httpx.ReadTimeout, "read"),
    (httpx.WriteTimeout, "write"),
    (httpx.PoolTimeout, "pool"),
]


class DataAPIErrorDescriptor:
    """
    One entry of the "errors" list in a Data API response.

    Such entries may come with an otherwise successful response: a single
    request can report several of them, and a request that did part of its
    job (e.g. inserted some of the documents in a chunk) lists here what failed.

    Attributes:
        error_code: the "errorCode" of the entry, if any.
        message: the human-readable "message" of the entry, if any.
        attributes: every other field of the entry, as returned.
    """

    error_code: Optional[str]
    message: Optional[str]
    attributes: Dict[str, Any]

    def __init__(self, error_dict: Dict[str, Any]) -> None:
        self.error_code = error_dict.get("errorCode")
        self.message = error_dict.get("message")
        self.attributes = {
            key: value
            for key, value in error_dict.items()
            if key not in ("errorCode", "message")
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(error_code={self.error_code!r}, "
            f"message={self.message!r}, attributes={self.attributes!r})"
        )

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, DataAPIErrorDescriptor):
            return (self.error_code, self.message, self.attributes) == (
                other.error_code,
                other.message,
                other.attributes,
            )
        else:
            return False


@dataclass
class DataAPIDetailedErrorDescriptor:
    """
    The errors reported by one response, kept together with the command
    that produced them and the response itself.

    Attributes:
        error_descriptors: the entries of the response "errors" list.
        command: the command sent, if known.
        raw_response: the response, as a dictionary.
    """

    error_descriptors: List[DataAPIErrorDescriptor]
    command: Optional[Dict[str, Any]]
    raw_response: Dict[str, Any]


class DataAPIException(ValueError):
    """
    Root of the errors raised when talking to the Data API: error reports
    in a response, HTTP failures, timeouts, malformed responses.

    Invalid method arguments are not in this family: they are detected
    before any request and raised as plain ValueErrors.
    """

    pass


@dataclass
class DataAPIHttpException(DataAPIException):
    """
    A request got an HTTP status outside the 2XX range.
    The whole operation is aborted and no partial result is attached.

    Attributes:
        text: a description of the failure.
        status_code: the HTTP status of the response.
        endpoint: the URL of the failed request.
        error_descriptors: whatever "errors" the response body carried,
            parsed. Often empty.
    """

    text: str
    status_code: int
    endpoint: Optional[str]
    error_descriptors: List[DataAPIErrorDescriptor]

    def __init__(
        self,
        text: str,
        *,
        status_code: int,
        endpoint: Optional[str],
        error_descriptors: List[DataAPIErrorDescriptor],
    ) -> None:
        super().__init__(text)
        self.text = text
        self.status_code = status_code
        self.endpoint = endpoint
        self.error_descriptors = error_descriptors

    @classmethod
    def from_httpx_error(
        cls, httpx_error: httpx.HTTPStatusError
    ) -> DataAPIHttpException:
        response = httpx_error.response
        error_descriptors: List[DataAPIErrorDescriptor] = []
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error_descriptors = [
                DataAPIErrorDescriptor(error_dict)
                for error_dict in body.get("errors") or []
                if isinstance(error_dict, dict)
            ]
        first_message = error_descriptors[0].message if error_descriptors else None
        if first_message:
            text = f"{httpx_error} ({first_message})"
        else:
            text = str(httpx_error)
        return cls(
            text=text,
            status_code=response.status_code,
            endpoint=str(httpx_error.request.url),
            error_descriptors=error_descriptors,
        )


@dataclass
class DataAPITimeoutException(DataAPIException):
    """
    The time allowed for a request, or for a whole operation made of
    several requests, ran out.

    Attributes:
        text: a description of the failure.
        timeout_type: "connect", "read", "write" or "pool" when raised by
            the HTTP layer; "generic" when the operation budget was found
            exhausted before a request could start.
        endpoint: the URL of the request that timed out, if any.
        raw_payload: the body of the request that timed out, if any.
    """

    text: str
    timeout_type: str
    endpoint: Optional[str]
    raw_payload: Optional[str]

    def __init__(
        self,
        text: str,
        *,
        timeout_type: str,
        endpoint: Optional[str],
        raw_payload: Optional[str],
    ) -> None:
        super().__init__(text)
        self.text = text
        self.timeout_type = timeout_type
        self.endpoint = endpoint
        self.raw_payload = raw_payload


@dataclass
class CursorIsStartedException(DataAPIException):
    """
    A cursor setting was changed after the cursor left its idle state.

    Attributes:
        text: a description of the failure.
        cursor_state: the state the cursor was found in.
    """

    text: str
    cursor_state: str

    def __init__(
        self,
        text: str,
        *,
        cursor_state: str,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.cursor_state = cursor_state


@dataclass
class TooManyDocumentsToCountException(DataAPIException):
    """
    `count_documents` found more documents than it was allowed to count.

    Attributes:
        text: a description of the failure.
        limit: with `server_max_count_exceeded`, the count at which the
            server gave up; otherwise the upper bound passed by the caller.
        server_max_count_exceeded: whether the server's own ceiling was
            reached, in which case a larger upper bound would not help.
    """

    text: str
    limit: int
    server_max_count_exceeded: bool

    def __init__(
        self,
        text: str,
        *,
        limit: int,
        server_max_count_exceeded: bool,
    ) -> None:
        super().__init__(text)
        self.text = text
        self.limit = limit
        self.server_max_count_exceeded = server_max_count_exceeded

    @classmethod
    def for_limit(
        cls, limit: int, server_max_count_exceeded: bool
    ) -> TooManyDocumentsToCountException:
        if server_max_count_exceeded:
            text = f"Too many documents to count (server limit of {limit} reached)"
        else:
            text = f"Too many documents to count (provided limit is {limit})"
        return cls(
            text,
            limit=limit,
            server_max_count_exceeded=server_max_count_exceeded,
        )

    @property
    def hit_server_limit(self) -> bool:
        return self.server_max_count_exceeded


@dataclass
class DataAPIFaultyResponseException(DataAPIException):
    """
    A response could not be understood: not JSON, not a JSON object,
    or with fields of the wrong shape.
    """

    text: str
    raw_response: Optional[Any]

    def __init__(
        self,
        text: str,
        raw_response: Optional[Any],
    ) -> None:
        super().__init__(text)
        self.text = text
        self.raw_response = raw_response


def _summarize_error_descriptors(
    error_descriptors: Sequence[DataAPIErrorDescriptor],
) -> str:
    if error_descriptors and error_descriptors[0].message:
        more_count = len(error_descriptors) - 1
        if more_count:
            return f"{error_descriptors[0].message} (+ {more_count} more errors)"
        return error_descriptors[0].message
    return f"Something went wrong ({len(error_descriptors)} errors)"


@dataclass
class DataAPIResponseException(DataAPIException):
    """
    One or more responses of an operation came back with an "errors" list.

    The exception is about the operation as the caller invoked it, which
    may have taken many requests: all errorful responses are gathered here.

    Attributes:
        text: the message of the first error, with a count of the others
            appended when there are more.
        error_descriptors: every error of every response, flattened.
        detailed_error_descriptors: one entry per errorful response,
            in the order the responses were collected.
    """

    text: Optional[str]
    error_descriptors: List[DataAPIErrorDescriptor]
    detailed_error_descriptors: List[DataAPIDetailedErrorDescriptor]

    def __init__(
        self,
        text: Optional[str],
        *,
        error_descriptors: List[DataAPIErrorDescriptor],
        detailed_error_descriptors: List[DataAPIDetailedErrorDescriptor],
    ) -> None:
        super().__init__(text)
        self.text = text
        self.error_descriptors = error_descriptors
        self.detailed_error_descriptors = detailed_error_descriptors

    @property
    def message(self) -> Optional[str]:
        return self.text

    @classmethod
    def from_response(
        cls: Type[RE],
        command: Optional[Dict[str, Any]],
        raw_response: Dict[str, Any],
        **kwargs: Any,
    ) -> RE:
        return cls.from_responses(
            commands=[command],
            raw_responses=[raw_response],
            **kwargs,
        )

    @classmethod
    def from_responses(
        cls: Type[RE],
        commands: Sequence[Optional[Dict[str, Any]]],
        raw_responses: Sequence[Dict[str, Any]],
        **kwargs: Any,
    ) -> RE:
        """
        Build the exception from the commands sent and the responses received,
        paired by position. Responses without errors are ignored.

        Extra keyword arguments go to the constructor of `cls`: this is how
        the cumulative subclasses receive their `partial_result`.
        """

        detailed_error_descriptors = [
            DataAPIDetailedErrorDescriptor(
                error_descriptors=[
                    DataAPIErrorDescriptor(error_dict)
                    for error_dict in raw_response["errors"]
                ],
                command=command,
                raw_response=raw_response,
            )
            for command, raw_response in zip(commands, raw_responses)
            if raw_response.get("errors")
        ]
        error_descriptors = [
            error_descriptor
            for detailed_error_descriptor in detailed_error_descriptors
            for error_descriptor in detailed_error_descriptor.error_descriptors
        ]
        return cls(
            _summarize_error_descriptors(error_descriptors),
            error_descriptors=error_descriptors,
            detailed_error_descriptors=detailed_error_descriptors,
            **kwargs,
        )

    def data_api_response_exception(self) -> DataAPIResponseException:
        """The same errors, as a plain DataAPIResponseException."""

        return DataAPIResponseException(
            text=self.text,
            error_descriptors=self.error_descriptors,
            detailed_error_descriptors=self.detailed_error_descriptors,
        )


class CumulativeOperationException(DataAPIResponseException):
    """
    A DataAPIResponseException from an operation made of several requests,
    carrying what the operation achieved before (and including) the failure.

    The subclasses differ only in the type of `partial_result`, and are
    all constructed with `from_responses(..., partial_result=...)`.

    Attributes:
        partial_result: a result of the same kind the operation returns on
            success. It cannot be reassigned after construction.
    """

    _partial_result: OperationResult

    def __init__(
        self,
        text: Optional[str],
        partial_result: Any,
        *pargs: Any,
        **kwargs: Any,
    ) -> None:
        super().__init__(text, *pargs, **kwargs)
        self._partial_result = partial_result

    @property
    def partial_result(self) -> Any:
        return self._partial_result


class InsertManyException(CumulativeOperationException):
    """
    Failure of an `insert_many`. The partial result lists the IDs that
    made it: those before the failure for ordered insertions, all the
    successful ones for unordered insertions.
    """

    _partial_result: InsertManyResult

    @property
    def partial_result(self) -> InsertManyResult:
        return self._partial_result


class DeleteManyException(CumulativeOperationException):
    """Failure of a `delete_many`, with the deletions counted so far."""

    _partial_result: DeleteResult

    @property
    def partial_result(self) -> DeleteResult:
        return self._partial_result


class UpdateManyException(CumulativeOperationException):
    """Failure of an `update_many`, with the counts accumulated so far."""

    _partial_result: UpdateResult

    @property
    def partial_result(self) -> UpdateResult:
        return self._partial_result


class BulkWriteException(CumulativeOperationException):
    """
    Failure of a `bulk_write`.

    Attributes:
        partial_result: the merged BulkWriteResult of everything that
            succeeded, plus what the failed operations managed to do.
        exceptions: one DataAPIResponseException per failed operation,
            in the order of the operations. An ordered bulk write stops at
            its first failure, so the list then has exactly one element.
    """

    _partial_result: BulkWriteResult
    exceptions: List[DataAPIResponseException]

    def __init__(
        self,
        text: Optional[str],
        partial_result: BulkWriteResult,
        *pargs: Any,
        exceptions: Optional[List[DataAPIResponseException]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(text, partial_result, *pargs, **kwargs)
        self.exceptions = exceptions or []

    @property
    def partial_result(self) -> BulkWriteResult:
        return self._partial_result

    @classmethod
    def from_exceptions(
        cls,
        exceptions: List[DataAPIResponseException],
        partial_result: BulkWriteResult,
    ) -> BulkWriteException:
        """Merge the failures of the single operations of a bulk write."""

        detailed_error_descriptors = [
            detailed_error_descriptor
            for exc in exceptions
            for detailed_error_descriptor in exc.detailed_error_descriptors
        ]
        return cls.from_responses(
            commands=[ded.command for ded in detailed_error_descriptors],
            raw_responses=[ded.raw_response for ded in detailed_error_descriptors],
            partial_result=partial_result,
            exceptions=exceptions,
        )


def to_dataapi_timeout_exception(
    httpx_timeout: httpx.TimeoutException,
) -> DataAPITimeoutException:
    timeout_type = next(
        (
            type_name
            for timeout_class, type_name in _HTTPX_TIMEOUT_TYPES
            if isinstance(httpx_timeout, timeout_class)
        ),
        "generic",
    )
    endpoint: Optional[str] = None
    raw_payload: Optional[str] = None
    request: Optional[httpx.Request]
    try:
        request = httpx_timeout.request
    except RuntimeError:
        # not bound to a request
        request = None
    if request is not None:
        endpoint = str(request.url)
        if isinstance(request.content, bytes):
            raw_payload = request.content.decode()
    return DataAPITimeoutException(
        text=str(httpx_timeout),
        timeout_type=timeout_type,
        endpoint=endpoint,
        raw_payload=raw_payload,
    )


def _reraise_httpx_error(exc: httpx.HTTPError) -> NoReturn:
    if isinstance(exc, httpx.TimeoutException):
        raise to_dataapi_timeout_exception(exc)
    if isinstance(exc, httpx.HTTPStatusError):
        raise DataAPIHttpException.from_httpx_error(exc)
    raise exc


def recast_method_sync(method: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorate a sync method that issues HTTP requests, so that httpx
    timeouts and HTTP status errors surface as DataAPIException subclasses.
    """

    @wraps(method)
    def _wrapped_sync(*pargs: Any, **kwargs: Any) -> Any:
        try:
            return method(*pargs, **kwargs)
        except (httpx.TimeoutException, httpx.HTTPStatusError) as exc:
            _reraise_httpx_error(exc)

    return _wrapped_sync


def recast_method_async(
    method: Callable[..., Awaitable[Any]]
) -> Callable[..., Awaitable[Any]]:
    """Same as `recast_method_sync`, for coroutine methods."""

    @wraps(method)
    async def _wrapped_async(*pargs: Any, **kwargs: Any) -> Any:
        try:
            return await method(*pargs, **kwargs)
        except (httpx.TimeoutException, httpx.HTTPStatusError) as exc:
            _reraise_httpx_error(exc)

    return _wrapped_async


def base_timeout_info(max_time_ms: Optional[int]) -> Union[TimeoutInfo, None]:
    if max_time_ms is None:
        return None
    return {"base": max_time_ms / 1000.0}


class MultiCallTimeoutManager:
    """
    The time budget of one logical operation, shared by all of its requests.

    The clock starts when the manager is created. Each request asks for the
    remaining time right before being sent, and no request starts once the
    budget is spent.

    Args:
        overall_max_time_ms: the budget in milliseconds, or None for no limit.
    """

    overall_max_time_ms: Optional[int]
    started_ms: int
    deadline_ms: Optional[int]

    def __init__(self, overall_max_time_ms: Optional[int]) -> None:
        self.overall_max_time_ms = overall_max_time_ms
        self.started_ms = int(time.time() * 1000)
        self.deadline_ms = (
            None
            if overall_max_time_ms is None
            else self.started_ms + overall_max_time_ms
        )

    def remaining_timeout_ms(self) -> Union[int, None]:
        """
        Milliseconds left in the budget, None if unlimited.

        Raises:
            DataAPITimeoutException: if the deadline has passed.
        """

        if self.deadline_ms is None:
            return None
        remaining_ms = self.deadline_ms - int(time.time() * 1000)
        if remaining_ms <= 0:
            raise DataAPITimeoutException(
                text="Operation timed out.",
                timeout_type="generic",
                endpoint=None,
                raw_payload=None,
            )
        return remaining_ms

    def remaining_timeout_info(self) -> Union[TimeoutInfo, None]:
        """The remaining budget in the form expected by the HTTP layer."""

        return base_timeout_info(max_time_ms=self.remaining_timeout_ms())


__pdoc__ = {
    "base_timeout_info": False,
    "to_dataapi_timeout_exception": False,
    "MultiCallTimeoutManager": False,
}
