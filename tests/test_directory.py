"""
Directory Gateway Tests
-----------------------
Tests for enumerating policy links through the directory query gateway.
"""

import httpx
import pytest

from gpowatch.core.exceptions import DirectoryQueryFailure
from gpowatch.services.directory import DirectoryClient

pytestmark = pytest.mark.asyncio

BASE_URL = "http://directory.test"
ROOT = "OU=Corp,DC=CORP,DC=CONTOSO,DC=COM"

LINKS = [
    {
        "id": "{31B2F340-016D-11D2-945F-00C04FB984F9}",
        "displayName": "Default Domain Policy",
        "modificationTime": "2025-02-01T10:15:00Z",
        "enabled": True,
        "location": "DC=CORP,DC=CONTOSO,DC=COM"
    },
    {
        "id": "{6AC1786C-016F-11D2-945F-00C04FB984F9}",
        "displayName": "Finance Lockdown",
        "modificationTime": "2025-02-03T16:40:00Z",
        "enabled": False,
        "location": "OU=Finance,OU=Corp,DC=CORP,DC=CONTOSO,DC=COM"
    }
]


def make_client(handler, **kwargs) -> DirectoryClient:
    kwargs.setdefault("retry_delay", 0)
    return DirectoryClient(base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


async def test_lists_linked_policies():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"value": LINKS})

    links = await make_client(handler).list_linked_policies(ROOT)

    assert [link.display_name for link in links] == ["Default Domain Policy", "Finance Lockdown"]
    assert links[1].enabled is False
    assert links[1].location == LINKS[1]["location"]
    assert links[0].modification_time.year == 2025
    assert requests[0].url.path == "/gpo/links"
    assert requests[0].url.params["root"] == ROOT


async def test_empty_result_is_valid():
    client = make_client(lambda request: httpx.Response(200, json={"value": []}))

    assert await client.list_linked_policies(ROOT) == []


async def test_retries_transient_errors():
    responses = iter([
        httpx.Response(503, headers={"Retry-After": "0"}, text="busy"),
        httpx.Response(429, headers={"Retry-After": "0"}, text="slow down"),
        httpx.Response(200, json={"value": LINKS[:1]}),
    ])

    links = await make_client(lambda request: next(responses)).list_linked_policies(ROOT)

    assert len(links) == 1


async def test_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, text="boom")

    with pytest.raises(DirectoryQueryFailure) as exc_info:
        await make_client(handler, retries=2).list_linked_policies(ROOT)

    assert len(calls) == 2
    assert "HTTP 500" in exc_info.value.message


async def test_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403, text="forbidden")

    with pytest.raises(DirectoryQueryFailure):
        await make_client(handler).list_linked_policies(ROOT)

    assert len(calls) == 1


async def test_connection_errors_are_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(DirectoryQueryFailure):
        await make_client(handler, retries=3).list_linked_policies(ROOT)

    assert len(calls) == 3


@pytest.mark.parametrize("payload", [
    {"links": []},
    {"value": "not a list"},
    ["not", "an", "object"],
])
async def test_unexpected_payload_fails(payload):
    client = make_client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(DirectoryQueryFailure):
        await client.list_linked_policies(ROOT)


async def test_malformed_link_fails():
    broken = {"id": "x", "displayName": "No timestamp"}
    client = make_client(lambda request: httpx.Response(200, json={"value": [broken]}))

    with pytest.raises(DirectoryQueryFailure):
        await client.list_linked_policies(ROOT)
