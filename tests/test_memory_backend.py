import unittest

from fastapi.testclient import TestClient

from dataprovider.api.memory_backend import create_memory_backend
from dataprovider.core.config import settings

SEED = {
    "posts": [
        {"id": 1, "title": "Alpha", "status": "published", "hit": 10, "featured": True},
        {"id": 2, "title": "Beta", "status": "draft", "hit": 30, "featured": False},
        {"id": 3, "title": "Gamma", "status": "rejected", "hit": 20, "featured": False},
        {"id": 4, "title": "Delta alpha", "status": "published", "hit": 20, "featured": True},
    ],
}


class MemoryBackendTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(create_memory_backend(SEED))

    def tearDown(self):
        self.client.close()

    def _ids(self, response) -> list:
        return [row["id"] for row in response.json()]

    def test_health_lists_resources(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json().get("resources"), ["posts"])

    def test_list_window_and_total_header(self):
        response = self.client.get("/posts", params={"_start": 1, "_end": 3, "_sort": "id", "_order": "asc"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._ids(response), [2, 3])
        self.assertEqual(response.headers.get("x-total-count"), "4")

    def test_multi_key_sort(self):
        response = self.client.get("/posts", params={"_sort": "hit,title", "_order": "desc,asc"})
        self.assertEqual(self._ids(response), [2, 4, 3, 1])

    def test_rows_without_sort_field_come_last(self):
        client = TestClient(create_memory_backend({"posts": [{"id": 1, "hit": 5}, {"id": 2}, {"id": 3, "hit": 9}]}))
        self.addCleanup(client.close)
        ascending = client.get("/posts", params={"_sort": "hit", "_order": "asc"})
        descending = client.get("/posts", params={"_sort": "hit", "_order": "desc"})
        self.assertEqual(self._ids(ascending), [1, 3, 2])
        self.assertEqual(self._ids(descending), [3, 1, 2])

    def test_eq_filter_and_membership(self):
        response = self.client.get("/posts", params={"status": "published"})
        self.assertEqual(sorted(self._ids(response)), [1, 4])
        response = self.client.get("/posts?id=1&id=3")
        self.assertEqual(sorted(self._ids(response)), [1, 3])
        self.assertEqual(response.headers.get("x-total-count"), "2")

    def test_suffix_filters(self):
        self.assertEqual(sorted(self._ids(self.client.get("/posts", params={"hit_gte": "20"}))), [2, 3, 4])
        self.assertEqual(sorted(self._ids(self.client.get("/posts", params={"hit_lte": "10"}))), [1])
        self.assertEqual(sorted(self._ids(self.client.get("/posts", params={"status_ne": "published"}))), [2, 3])
        self.assertEqual(sorted(self._ids(self.client.get("/posts", params={"title_like": "ALPHA"}))), [1, 4])

    def test_boolean_filter_is_coerced(self):
        response = self.client.get("/posts", params={"featured": "true"})
        self.assertEqual(sorted(self._ids(response)), [1, 4])

    def test_bad_numeric_filter_returns_400(self):
        response = self.client.get("/posts", params={"hit_gte": "many"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("hit", response.json().get("message"))

    def test_unknown_resource_returns_404_with_message(self):
        response = self.client.get("/comments")
        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertEqual(body.get("message"), body.get("detail"))

    def test_crud_round(self):
        created = self.client.post("/posts", json={"title": "Epsilon", "status": "draft"})
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["id"], 5)

        patched = self.client.patch("/posts/5", json={"status": "published", "id": 99})
        self.assertEqual(patched.status_code, 200)
        self.assertEqual(patched.json(), {"id": 5, "title": "Epsilon", "status": "published"})

        replaced = self.client.put("/posts/5", json={"title": "Zeta"})
        self.assertEqual(replaced.json(), {"id": 5, "title": "Zeta"})

        deleted = self.client.delete("/posts/5")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(deleted.json()["id"], 5)
        self.assertEqual(self.client.get("/posts/5").status_code, 404)

    def test_duplicate_id_conflicts(self):
        response = self.client.post("/posts", json={"id": 1, "title": "Again"})
        self.assertEqual(response.status_code, 409)

    def test_request_id_is_echoed(self):
        response = self.client.get("/health", headers={"X-Request-ID": "trace-123"})
        self.assertEqual(response.headers.get("x-request-id"), "trace-123")
        response = self.client.get("/health", headers={"X-Request-ID": "bad id"})
        self.assertNotEqual(response.headers.get("x-request-id"), "bad id")

    def test_seed_is_not_mutated(self):
        self.client.delete("/posts/1")
        self.assertEqual(len(SEED["posts"]), 4)


class MemoryBackendAuthTests(unittest.TestCase):
    def setUp(self):
        self._backup = {"MEMORY_BACKEND_USERS": settings.MEMORY_BACKEND_USERS}
        settings.MEMORY_BACKEND_USERS = "editor@example.com:secret"
        self.client = TestClient(create_memory_backend(SEED, require_auth=True))

    def tearDown(self):
        self.client.close()
        for key, value in self._backup.items():
            setattr(settings, key, value)

    def test_data_routes_require_token(self):
        self.assertEqual(self.client.get("/posts").status_code, 401)

    def test_login_then_list(self):
        response = self.client.post("/auth/login", json={"email": "Editor@example.com", "password": "secret"})
        self.assertEqual(response.status_code, 200)
        token = response.json()["access_token"]
        listed = self.client.get("/posts", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(listed.status_code, 200)
        self.assertEqual(listed.headers.get("x-total-count"), "4")

    def test_wrong_password_rejected(self):
        response = self.client.post("/auth/login", json={"email": "editor@example.com", "password": "nope"})
        self.assertEqual(response.status_code, 401)

    def test_health_is_public(self):
        self.assertEqual(self.client.get("/health").status_code, 200)


if __name__ == "__main__":
    unittest.main()
