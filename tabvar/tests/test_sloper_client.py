import json
import unittest

import httpx

from tabvar.sloper.client import AUTH_PATH, CRAGS_PATH, ISSUES_PATH, ROUTES_PATH, SloperClient
from tabvar.sloper.exceptions import AuthError, FetchError


class _FakeSloper:
    """Records requests and answers like the Sloper API."""

    def __init__(self, auth_response=None, data_response=None) -> None:
        self.requests: list[httpx.Request] = []
        self.auth_response = auth_response or httpx.Response(200, json={"accessToken": "tok-1"})
        self.data_response = data_response

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == AUTH_PATH:
            return self.auth_response
        if self.data_response is not None:
            return self.data_response
        return httpx.Response(200, json={"data": [{"path": request.url.path}]})

    @property
    def auth_calls(self) -> int:
        return sum(1 for r in self.requests if r.url.path == AUTH_PATH)


def _client(fake: _FakeSloper) -> SloperClient:
    return SloperClient(
        base_url="https://sloper.test",
        username="syncer",
        password="hunter2",
        transport=httpx.MockTransport(fake),
    )


class SloperClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_login_sends_credentials_and_caches_token(self) -> None:
        fake = _FakeSloper()
        async with _client(fake) as client:
            await client.fetch_crags("11")
            await client.fetch_routes("42")

        self.assertEqual(fake.auth_calls, 1)
        auth = fake.requests[0]
        self.assertEqual(auth.method, "POST")
        self.assertEqual(json.loads(auth.content), {"u": "syncer", "p": "hunter2"})

    async def test_data_requests_carry_bearer_and_params(self) -> None:
        fake = _FakeSloper()
        async with _client(fake) as client:
            crags = await client.fetch_crags("22")
            await client.fetch_routes("42")
            await client.fetch_issues()

        self.assertEqual(crags, [{"path": CRAGS_PATH}])
        crag_req, route_req, issue_req = fake.requests[1:]
        self.assertEqual(crag_req.headers["Authorization"], "Bearer tok-1")
        self.assertEqual(crag_req.url.params["guidebookId"], "22")
        self.assertEqual(crag_req.url.params["isEnabled"], "1")
        self.assertEqual(route_req.url.path, ROUTES_PATH)
        self.assertEqual(route_req.url.params["sectorId"], "42")
        self.assertEqual(issue_req.method, "POST")
        self.assertEqual(issue_req.url.path, ISSUES_PATH)

    async def test_rejected_login_raises_auth_error(self) -> None:
        fake = _FakeSloper(auth_response=httpx.Response(401, json={"message": "nope"}))
        async with _client(fake) as client:
            with self.assertRaises(AuthError):
                await client.fetch_crags("11")
        self.assertEqual(len(fake.requests), 1)

    async def test_login_without_token_raises_auth_error(self) -> None:
        fake = _FakeSloper(auth_response=httpx.Response(200, json={"user": "syncer"}))
        async with _client(fake) as client:
            with self.assertRaises(AuthError):
                await client.authenticate()

    async def test_http_error_on_data_raises_fetch_error(self) -> None:
        fake = _FakeSloper(data_response=httpx.Response(500, text="boom"))
        async with _client(fake) as client:
            with self.assertRaises(FetchError) as ctx:
                await client.fetch_routes("42")
        self.assertEqual(ctx.exception.status_code, 500)

    async def test_missing_data_array_raises_fetch_error(self) -> None:
        fake = _FakeSloper(data_response=httpx.Response(200, json={"items": []}))
        async with _client(fake) as client:
            with self.assertRaises(FetchError):
                await client.fetch_issues()

    async def test_invalid_json_raises_fetch_error(self) -> None:
        fake = _FakeSloper(data_response=httpx.Response(200, text="<html>"))
        async with _client(fake) as client:
            with self.assertRaises(FetchError):
                await client.fetch_crags("11")


if __name__ == "__main__":
    unittest.main()
