import unittest
from datetime import timedelta

import httpx

from dataprovider.core.security import issue_token
from dataprovider.services.auth_provider import BearerTokenAuthProvider
from dataprovider.services.errors import DataIntegrityError, HttpError, TransportError

API_URL = "http://backend.test"


def _token(minutes: int = 30, **claims) -> str:
    payload = {"sub": "7", "email": "editor@example.com", "role": "EDITOR", **claims}
    return issue_token(payload, "any-secret", timedelta(minutes=minutes))


class BearerTokenAuthProviderTests(unittest.IsolatedAsyncioTestCase):
    def make_auth(self, handler, **kwargs) -> BearerTokenAuthProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.addAsyncCleanup(client.aclose)
        return BearerTokenAuthProvider(API_URL, client=client, **kwargs)

    async def test_login_stores_token_and_check_passes(self):
        token = _token()
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"access_token": token})

        auth = self.make_auth(handler)
        result = await auth.login({"email": "editor@example.com", "password": "x"})
        self.assertTrue(result.success)
        self.assertEqual(result.redirect_to, "/")
        self.assertEqual(auth.token, token)
        self.assertEqual(seen[0].url.path, "/auth/login")
        self.assertTrue((await auth.check()).authenticated)
        self.assertEqual(await auth.get_identity(), {"id": "7", "email": "editor@example.com", "role": "EDITOR"})
        self.assertEqual(await auth.get_permissions(), "EDITOR")

    async def test_custom_login_path_and_token_field(self):
        auth = self.make_auth(
            lambda r: httpx.Response(200, json={"jwt": _token()}) if r.url.path == "/session" else httpx.Response(404),
            login_path="/session/",
            token_field="jwt",
        )
        self.assertTrue((await auth.login({})).success)

    async def test_expired_token_fails_check(self):
        auth = self.make_auth(lambda r: httpx.Response(200, json={"access_token": _token(minutes=-5)}))
        await auth.login({})
        verdict = await auth.check()
        self.assertFalse(verdict.success)
        self.assertTrue(verdict.logout)
        self.assertEqual(verdict.redirect_to, "/login")

    async def test_garbage_token_fails_check(self):
        auth = self.make_auth(lambda r: httpx.Response(200, json={"access_token": "not-a-jwt"}))
        await auth.login({})
        self.assertFalse((await auth.check()).success)
        self.assertIsNone(await auth.get_identity())

    async def test_rejected_login_returns_error(self):
        auth = self.make_auth(lambda r: httpx.Response(401, json={"detail": "Invalid email or password"}))
        result = await auth.login({"email": "x", "password": "y"})
        self.assertFalse(result.success)
        self.assertIsInstance(result.error, HttpError)
        self.assertEqual(result.error.message, "Invalid email or password")
        self.assertIsNone(auth.token)

    async def test_unreachable_backend_returns_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        auth = self.make_auth(handler)
        result = await auth.login({})
        self.assertFalse(result.success)
        self.assertIsInstance(result.error, TransportError)

    async def test_login_response_without_token_is_integrity_failure(self):
        auth = self.make_auth(lambda r: httpx.Response(200, json={"ok": True}))
        with self.assertRaises(DataIntegrityError):
            await auth.login({})

    async def test_login_response_not_json_is_integrity_failure(self):
        auth = self.make_auth(lambda r: httpx.Response(200, content=b"<html>ok</html>"))
        with self.assertRaises(DataIntegrityError):
            await auth.login({})
        self.assertIsNone(auth.token)

    async def test_logout_clears_token(self):
        auth = self.make_auth(lambda r: httpx.Response(200, json={"access_token": _token()}))
        await auth.login({})
        result = await auth.logout()
        self.assertTrue(result.success)
        self.assertIsNone(auth.token)
        self.assertIsNone(await auth.get_permissions())

    async def test_on_error_requests_logout_only_for_auth_failures(self):
        auth = self.make_auth(lambda r: httpx.Response(200))
        self.assertTrue((await auth.on_error(HttpError("Unauthorized", 401))).logout)
        self.assertTrue((await auth.on_error(HttpError("Forbidden", 403))).logout)
        self.assertFalse((await auth.on_error(HttpError("Not found", 404))).logout)
        self.assertFalse((await auth.on_error(TransportError())).logout)

    async def test_httpx_auth_injects_bearer_header(self):
        token = _token()
        seen = []

        def handler(request):
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={"access_token": token})

        auth = self.make_auth(handler)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), auth=auth.httpx_auth())
        self.addAsyncCleanup(client.aclose)
        await client.get(f"{API_URL}/posts")
        await auth.login({})
        await client.get(f"{API_URL}/posts")
        self.assertEqual(seen[0], None)
        self.assertEqual(seen[-1], f"Bearer {token}")


if __name__ == "__main__":
    unittest.main()
