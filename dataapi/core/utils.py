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
from typing import (
    Any,
    Dict,
    Optional,
    TypedDict,
    Union,
)
import json
import logging
import copy

import httpx

from dataapi import __version__
from dataapi.core.defaults import (
    DEFAULT_AUTH_HEADER,
    DEFAULT_TIMEOUT,
    USER_AGENT_NAME,
)


class CustomLogger(logging.Logger):
    def trace(self, msg: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(5):
            self._log(5, msg, args, **kwargs)


# Add a new TRACE logging level
logging.addLevelName(5, "TRACE")

# Tell the logging system to use your custom logger
logging.setLoggerClass(CustomLogger)


logger = logging.getLogger(__name__)


user_agent_dataapi = f"{USER_AGENT_NAME}/{__version__}"


def log_request(
    method: str,
    url: str,
    headers: Dict[str, str],
    json_data: Optional[Dict[str, Any]],
) -> None:
    """Log an outgoing request. The token never reaches the logs."""
    logger.debug(f"Request url: {url}")
    logger.debug(f"Request method: {method}")

    # Redact the token from the request headers
    headers_log = copy.deepcopy(headers)
    if DEFAULT_AUTH_HEADER in headers_log:
        headers_log[DEFAULT_AUTH_HEADER] = "<...>"

    logger.debug(f"Request headers: {headers_log}")

    if json_data:
        logger.trace(f"Request payload: {json_data}")  # type: ignore


def log_response(r: httpx.Response) -> None:
    """Log status and headers at DEBUG, the body at TRACE."""
    logger.debug(f"Response status code: {r.status_code}")
    logger.debug(f"Response headers: {r.headers}")
    logger.trace(f"Response content: {r.text}")  # type: ignore


def compose_user_agent(
    caller_name: Optional[str], caller_version: Optional[str]
) -> str:
    if caller_name and caller_version:
        return f"{caller_name}/{caller_version} {user_agent_dataapi}"
    if caller_name:
        return f"{caller_name} {user_agent_dataapi}"
    return user_agent_dataapi


class TimeoutInfo(TypedDict, total=False):
    read: float
    write: float
    base: float


TimeoutInfoWideType = Union[TimeoutInfo, float, None]


def to_httpx_timeout(timeout_info: TimeoutInfoWideType) -> Union[httpx.Timeout, None]:
    if timeout_info is None:
        return None
    if isinstance(timeout_info, float) or isinstance(timeout_info, int):
        return httpx.Timeout(timeout_info)
    elif isinstance(timeout_info, dict):
        _base = timeout_info.get("base") or DEFAULT_TIMEOUT / 1000.0
        _read = timeout_info.get("read") or _base
        _write = timeout_info.get("write") or _base
        return httpx.Timeout(_base, read=_read, write=_write)
    else:
        raise ValueError("Invalid timeout info provided.")


def _request_headers(
    auth_header: str,
    token: str,
    caller_name: Optional[str],
    caller_version: Optional[str],
) -> Dict[str, str]:
    return {
        auth_header: token,
        "Content-Type": "application/json",
        "User-Agent": compose_user_agent(caller_name, caller_version),
    }


def _encode_payload(json_data: Optional[Dict[str, Any]]) -> bytes:
    return json.dumps(json_data, allow_nan=False, separators=(",", ":")).encode()


def make_request(
    client: httpx.Client,
    url: str,
    auth_header: str,
    token: str,
    json_data: Optional[Dict[str, Any]],
    caller_name: Optional[str],
    caller_version: Optional[str],
    timeout: Optional[Union[httpx.Timeout, float]],
) -> httpx.Response:
    """
    POST a JSON command and return the response as it is.

    The body is compact JSON (NaN and infinities are refused). Headers carry
    the token under `auth_header` and a User-Agent made from the caller
    identity. Without a timeout, the library default applies.
    """
    request_headers = _request_headers(auth_header, token, caller_name, caller_version)

    log_request("POST", url, request_headers, json_data)

    r = client.request(
        method="POST",
        url=url,
        content=_encode_payload(json_data),
        timeout=timeout or DEFAULT_TIMEOUT / 1000.0,
        headers=request_headers,
    )

    log_response(r)

    return r


async def amake_request(
    client: httpx.AsyncClient,
    url: str,
    auth_header: str,
    token: str,
    json_data: Optional[Dict[str, Any]],
    caller_name: Optional[str],
    caller_version: Optional[str],
    timeout: Optional[Union[httpx.Timeout, float]],
) -> httpx.Response:
    """
    POST a JSON command to a specified URL, async version.
    Same parameters as `make_request`.
    """
    request_headers = _request_headers(auth_header, token, caller_name, caller_version)

    log_request("POST", url, request_headers, json_data)

    r = await client.request(
        method="POST",
        url=url,
        content=_encode_payload(json_data),
        timeout=timeout or DEFAULT_TIMEOUT / 1000.0,
        headers=request_headers,
    )

    log_response(r)

    return r


def make_payload(top_level: str, **kwargs: Any) -> Dict[str, Any]:
    """
    Build `{top_level: {...}}` out of the keyword arguments,
    leaving out those set to None.
    """
    return {
        top_level: {key: value for key, value in kwargs.items() if value is not None}
    }


def make_options(**kwargs: Any) -> Optional[Dict[str, Any]]:
    """
    Build the "options" block of a command, omitting unset values.
    Returns None if no options at all are set.
    """
    options = {key: value for key, value in kwargs.items() if value is not None}
    return options or None
