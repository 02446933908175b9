import pytest

URL = "https://acme.example/"
REVISION_HTML = "<html><body><p>This is revision {} of the landing page copy for the product.</p></body></html>"


class TestDiagnoseEndpoint:
    def test_requires_bearer_token(self, client, fake_renderer):
        response = client.post("/api/v1/diagnose", json={"url": URL})

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["status"] == "error"
        assert fake_renderer.calls == []

    def test_rejects_invalid_token(self, client, token_factory):
        headers = {"Authorization": f"Bearer {token_factory(expires_in=-60)}"}
        response = client.post("/api/v1/diagnose", json={"url": URL}, headers=headers)

        assert response.status_code == 401
        assert response.json()["message"] == "Token has expired"

    def test_miss_then_cached(self, client, auth_headers, oracle_client):
        first = client.post("/api/v1/diagnose", json={"url": URL, "language": "en"}, headers=auth_headers)

        assert first.status_code == 200
        body = first.json()
        assert body["message"] == "Diagnosis complete"
        assert body["data"]["cached"] is False
        assert body["data"]["url"] == URL
        assert body["data"]["language"] == "en"
        assert body["data"]["result"]["geo_score"] == 64
        assert body["data"]["result"]["scores"]["credibility"] == 65

        second = client.post("/api/v1/diagnose", json={"url": URL, "language": "en"}, headers=auth_headers)

        assert second.status_code == 200
        assert second.json()["message"] == "Diagnosis retrieved from cache"
        assert second.json()["data"]["cached"] is True
        assert second.json()["data"]["result"] == body["data"]["result"]
        oracle_client.chat.completions.create.assert_awaited_once()

    @pytest.mark.parametrize(
        "url, error_code",
        [
            ("http://localhost/", "blocked_host"),
            ("http://10.0.0.5/admin", "blocked_network"),
            ("ftp://acme.example/", "invalid_url"),
        ],
    )
    def test_rejected_urls(self, client, auth_headers, fake_renderer, url, error_code):
        response = client.post("/api/v1/diagnose", json={"url": url}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["data"]["error_code"] == error_code
        assert fake_renderer.calls == []

    def test_oracle_garbage_is_bad_gateway(self, client, auth_headers, oracle_client, oracle_client_factory):
        oracle_client.chat.completions.create = oracle_client_factory("sorry").chat.completions.create

        response = client.post("/api/v1/diagnose", json={"url": URL}, headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["data"]["error_code"] == "oracle_response_malformed"

    def test_validation_error(self, client, auth_headers):
        response = client.post("/api/v1/diagnose", json={"url": URL, "language": "fr"}, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["message"] == "Validation failed"

    def test_usage_limit_is_payment_required(self, client, token_factory, fake_renderer):
        headers = {"Authorization": f"Bearer {token_factory('heavy-user')}"}

        for i in range(3):
            fake_renderer.html = REVISION_HTML.format(i)
            assert client.post("/api/v1/diagnose", json={"url": URL}, headers=headers).status_code == 200

        fake_renderer.html = REVISION_HTML.format(3)
        response = client.post("/api/v1/diagnose", json={"url": URL}, headers=headers)

        assert response.status_code == 402
        assert response.json()["data"]["error_code"] == "usage_limit_exceeded"


class TestUsageEndpoint:
    def test_usage_for_new_user(self, client, auth_headers):
        response = client.get("/api/v1/me/usage", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data == {
            "user_id": "user-1",
            "is_premium": False,
            "free_credits": 3,
            "pro_monthly_usage": 0,
            "pro_monthly_limit": 100,
        }

    def test_usage_drops_after_a_miss_only(self, client, auth_headers):
        client.post("/api/v1/diagnose", json={"url": URL}, headers=auth_headers)
        client.post("/api/v1/diagnose", json={"url": URL}, headers=auth_headers)

        response = client.get("/api/v1/me/usage", headers=auth_headers)
        assert response.json()["data"]["free_credits"] == 2

    def test_usage_requires_auth(self, client):
        assert client.get("/api/v1/me/usage").status_code == 401
