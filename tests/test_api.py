import pytest
import asyncio
import httpx
from fastapi.testclient import TestClient

from main import app
from config import get_settings

client = TestClient(app)

WORKED_EXAMPLE = """type,client,tx,amount
deposit, 1, 1, 1
deposit, 2, 3, 10.1234
withdrawal, 1, 2, 1
deposit, 1, 4, 0.6666
dispute, 1, 2,
chargeback, 1, 2,
deposit, 3, 5, 1.7777
dispute, 3, 5,
deposit, 1, 5, 2
"""


def post_batch(body, **params):
    return client.post(
        "/batches",
        content=body,
        params=params,
        headers={"Content-Type": "text/csv"},
    )


class TestBatches:
    """Test batch processing over HTTP."""

    def test_worked_example(self):
        """Final balances are returned at full precision, sorted by client."""
        response = post_batch(WORKED_EXAMPLE)

        assert response.status_code == 200
        data = response.json()

        assert data["accounts"] == [
            {"client": 1, "available": "1.6666", "held": "0", "total": "1.6666", "locked": True},
            {"client": 2, "available": "10.1234", "held": "0", "total": "10.1234", "locked": False},
            {"client": 3, "available": "0.0000", "held": "1.7777", "total": "1.7777", "locked": False},
        ]
        assert data["applied"] == 8
        assert data["rejected"] == [{
            "line": None,
            "client": 1,
            "tx": 5,
            "error_code": "ACCOUNT_LOCKED",
            "detail": "transaction ID `5` was tried on a locked account",
        }]

    def test_csv_output(self):
        """format=csv returns the same rows the command line prints."""
        response = post_batch(WORKED_EXAMPLE, format="csv")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text == (
            "client,available,held,total,locked\n"
            "1,1.6666,0,1.6666,true\n"
            "2,10.1234,0,10.1234,false\n"
            "3,0.0000,1.7777,1.7777,false\n"
        )

    def test_batches_do_not_share_state(self):
        """Each request replays its body against fresh accounts."""
        body = "type,client,tx,amount\ndeposit,1,1,5\n"

        first = post_batch(body)
        second = post_batch(body)

        assert first.json() == second.json()
        assert second.json()["rejected"] == []

    def test_unknown_client_reference(self):
        response = post_batch("type,client,tx,amount\ndispute,9,99,\n")

        data = response.json()
        assert data["accounts"] == [
            {"client": 9, "available": "0", "held": "0", "total": "0", "locked": False}
        ]
        assert data["rejected"][0]["error_code"] == "TRANSACTION_NOT_FOUND"

    def test_malformed_rows_are_reported(self):
        response = post_batch("type,client,tx,amount\ndeposit,1,1,\ndeposit,1,2,3\n")

        assert response.status_code == 200
        data = response.json()
        assert data["applied"] == 1
        assert data["rejected"][0]["error_code"] == "DECODE_ERROR"
        assert data["rejected"][0]["line"] == 2

    def test_amounts_never_use_exponent_notation(self):
        response = post_batch("type,client,tx,amount\ndeposit,1,1,0.0000001\nwithdrawal,1,2,0.0000001\n")

        assert response.status_code == 200
        account = response.json()["accounts"][0]
        assert account["available"] == "0.0000000"
        assert account["total"] == "0.0000000"
        for field in ("available", "held", "total"):
            assert "E" not in account[field]

    def test_replay_runs_in_threadpool(self, monkeypatch):
        import main
        from services import LedgerService

        called = []
        real_run_in_threadpool = main.run_in_threadpool

        async def spy(func, *args, **kwargs):
            called.append(func)
            return await real_run_in_threadpool(func, *args, **kwargs)

        monkeypatch.setattr(main, "run_in_threadpool", spy)
        response = post_batch("type,client,tx,amount\ndeposit,1,1,2\n")

        assert response.status_code == 200
        assert len(called) == 1
        assert called[0].__func__ is LedgerService.process


class TestErrorHandling:
    """Test errors that reject a whole batch."""

    def test_malformed_header(self):
        response = post_batch("kind,account\ndeposit,1\n")

        assert response.status_code == 400
        assert response.json()["error_code"] == "MALFORMED_INPUT"

    def test_empty_body(self):
        response = post_batch("")

        assert response.status_code == 400
        assert response.json()["error_code"] == "MALFORMED_INPUT"

    def test_strict_decoding(self):
        response = post_batch("type,client,tx,amount\ndeposit,1,1,\n", strict="true")

        assert response.status_code == 422
        data = response.json()
        assert data["error_code"] == "DECODE_ERROR"
        assert "deposit transaction must have amount" in data["detail"]

    def test_non_utf8_body(self):
        response = post_batch("type,client,tx,amount\n".encode("utf-16"))

        assert response.status_code == 400
        assert response.json()["error_code"] == "HTTP_400"

    def test_body_too_large(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_request_size", 16)

        response = post_batch(WORKED_EXAMPLE)

        assert response.status_code == 413
        assert response.json()["error_code"] == "HTTP_413"


class TestConcurrency:
    """Concurrent batches never see each other's accounts."""

    @pytest.mark.asyncio
    async def test_concurrent_batches(self):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            tasks = [
                ac.post(
                    "/batches",
                    content=f"type,client,tx,amount\ndeposit,{i},1,{i}.5\n",
                    headers={"Content-Type": "text/csv"},
                )
                for i in range(5)
            ]
            results = await asyncio.gather(*tasks)

        for i, result in enumerate(results):
            assert result.status_code == 200
            assert result.json()["accounts"] == [
                {"client": i, "available": f"{i}.5", "held": "0", "total": f"{i}.5", "locked": False}
            ]


class TestHealthAndUtility:
    """Test health check and utility endpoints."""

    def test_health_check(self):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()

        assert data["status"] == "healthy"
        assert data["version"] == get_settings().app_version
        assert "timestamp" in data

    def test_root_endpoint(self):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()

        assert "message" in data
        assert "docs" in data
