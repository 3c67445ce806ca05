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

import json
from typing import Callable, List

import httpx
import pytest

from dataapi.core.api import APICommander, AsyncAPICommander
from dataapi.exceptions import (
    DataAPIFaultyResponseException,
    DataAPIHttpException,
    DataAPITimeoutException,
    MultiCallTimeoutManager,
)

ENDPOINT = "https://db-region.apps.example.com"
PATH = "/api/json/v1/ks/coll"

Handler = Callable[[httpx.Request], httpx.Response]


def _commander(handler: Handler, requests: List[httpx.Request]) -> APICommander:
    def _recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return APICommander(
        api_endpoint=ENDPOINT + "/",
        path=PATH,
        token="AstraCS:secret",
        caller_name="my_app",
        caller_version="0.1",
        client=httpx.Client(transport=httpx.MockTransport(_recording_handler)),
    )


def _no_deadline() -> MultiCallTimeoutManager:
    return MultiCallTimeoutManager(overall_max_time_ms=None)


class TestAPICommander:
    @pytest.mark.describe("commander posts the command to the full path")
    def test_commander_request(self) -> None:
        requests: List[httpx.Request] = []
        commander = _commander(
            lambda request: httpx.Response(200, json={"status": {"count": 3}}),
            requests,
        )
        assert commander.full_path == ENDPOINT + PATH
        envelope = commander.execute(
            {"countDocuments": {"filter": {}}}, timeout_manager=_no_deadline()
        )
        commander.close()

        assert envelope.status == {"count": 3}
        assert envelope.data is None
        assert not envelope.has_errors
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == ENDPOINT + PATH
        assert request.headers["Token"] == "AstraCS:secret"
        assert request.headers["User-Agent"].startswith("my_app/0.1 dataapi/")
        assert json.loads(request.content) == {"countDocuments": {"filter": {}}}

    @pytest.mark.describe("commander keeps API errors in the envelope")
    def test_commander_soft_errors(self) -> None:
        commander = _commander(
            lambda request: httpx.Response(
                200,
                json={
                    "status": {"insertedIds": ["a"]},
                    "errors": [{"message": "dupe"}],
                },
            ),
            [],
        )
        envelope = commander.execute({"insertMany": {}}, timeout_manager=_no_deadline())
        assert envelope.has_errors
        assert envelope.status == {"insertedIds": ["a"]}
        assert envelope.errors == [{"message": "dupe"}]

    @pytest.mark.describe("commander raises on non-success HTTP statuses")
    def test_commander_http_error(self) -> None:
        commander = _commander(
            lambda request: httpx.Response(
                401, json={"errors": [{"message": "Unauthorized token"}]}
            ),
            [],
        )
        with pytest.raises(DataAPIHttpException) as exc_info:
            commander.execute({"findOne": {}}, timeout_manager=_no_deadline())
        exc = exc_info.value
        assert exc.status_code == 401
        assert exc.endpoint == ENDPOINT + PATH
        assert exc.error_descriptors[0].message == "Unauthorized token"
        assert "Unauthorized token" in exc.text

    @pytest.mark.describe("commander raises on undecodable responses")
    def test_commander_faulty_response(self) -> None:
        commander = _commander(lambda request: httpx.Response(200, text="<html>"), [])
        with pytest.raises(DataAPIFaultyResponseException):
            commander.execute({"findOne": {}}, timeout_manager=_no_deadline())

        commander2 = _commander(lambda request: httpx.Response(200, json=[1, 2]), [])
        with pytest.raises(DataAPIFaultyResponseException):
            commander2.execute({"findOne": {}}, timeout_manager=_no_deadline())

        commander3 = _commander(
            lambda request: httpx.Response(200, json={"errors": "wrong"}), []
        )
        with pytest.raises(DataAPIFaultyResponseException):
            commander3.execute({"findOne": {}}, timeout_manager=_no_deadline())

    @pytest.mark.describe("commander recasts request timeouts")
    def test_commander_timeout(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        commander = _commander(_handler, [])
        with pytest.raises(DataAPITimeoutException) as exc_info:
            commander.execute(
                {"find": {}},
                timeout_manager=MultiCallTimeoutManager(overall_max_time_ms=5000),
            )
        assert exc_info.value.timeout_type == "read"
        assert exc_info.value.endpoint == ENDPOINT + PATH
        assert exc_info.value.raw_payload == '{"find":{}}'

    @pytest.mark.describe("commander refuses to send once the budget is spent")
    def test_commander_expired_budget(self) -> None:
        requests: List[httpx.Request] = []
        commander = _commander(
            lambda request: httpx.Response(200, json={}), requests
        )
        timeout_manager = MultiCallTimeoutManager(overall_max_time_ms=0)
        with pytest.raises(DataAPITimeoutException):
            commander.execute({"find": {}}, timeout_manager=timeout_manager)
        assert requests == []


class TestAsyncAPICommander:
    @pytest.mark.describe("async commander posts and decodes, async")
    async def test_async_commander(self) -> None:
        requests: List[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"data": {"documents": []}})

        commander = AsyncAPICommander(
            api_endpoint=ENDPOINT,
            path="api/json/v1/ks",
            token="AstraCS:secret",
            client=httpx.AsyncClient(transport=httpx.MockTransport(_handler)),
        )
        envelope = await commander.execute({"find": {}}, timeout_manager=_no_deadline())
        await commander.aclose()
        assert envelope.documents == []
        assert str(requests[0].url) == ENDPOINT + "/api/json/v1/ks"
        assert requests[0].headers["User-Agent"].startswith("dataapi/")

    @pytest.mark.describe("async commander raises on HTTP errors, async")
    async def test_async_commander_http_error(self) -> None:
        commander = AsyncAPICommander(
            api_endpoint=ENDPOINT,
            path=PATH,
            token="AstraCS:secret",
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(503))
            ),
        )
        with pytest.raises(DataAPIHttpException) as exc_info:
            await commander.execute({"find": {}}, timeout_manager=_no_deadline())
        assert exc_info.value.status_code == 503
        assert exc_info.value.error_descriptors == []
