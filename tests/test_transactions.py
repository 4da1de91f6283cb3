import pytest
import asyncio
import re
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from unittest.mock import ANY, patch

from main import app

client = TestClient(app)

# ISO timestamp carrying a UTC offset ("Z" or "+HH:MM")
AWARE_TIMESTAMP = re.compile(r"(Z|[+-]\d{2}:\d{2})$")


def post_transaction(account_id, amount, kind, description):
    return client.post(f"/accounts/{account_id}/transactions", json={
        "amount": amount,
        "kind": kind,
        "description": description
    })


def get_statement(account_id):
    return client.get(f"/accounts/{account_id}/statement")


class TestBasicTransactions:
    """Test basic transaction functionality."""

    def test_credit_transaction_success(self):
        """Test successful credit transaction."""
        response = post_transaction(1, 1000, "credit", "dep")

        assert response.status_code == 200
        assert response.json() == {"creditLimit": 100000, "balance": 1000}

    def test_debit_transaction_success(self):
        """Test debit into the credit limit."""
        response = post_transaction(2, 30000, "debit", "rent")

        assert response.status_code == 200
        assert response.json() == {"creditLimit": 80000, "balance": -30000}

    def test_debit_to_exact_limit(self):
        """A balance equal to the negative limit is allowed."""
        response = post_transaction(2, 80000, "debit", "all in")

        assert response.status_code == 200
        assert response.json()["balance"] == -80000

    def test_limit_exceeded(self):
        """Test debit that would go past the credit limit."""
        post_transaction(1, 1000, "credit", "dep")

        response = post_transaction(1, 150000, "debit", "too much")

        assert response.status_code == 422
        data = response.json()
        assert data["error_code"] == "LIMIT_EXCEEDED"
        assert "credit limit" in data["detail"]

        statement = get_statement(1).json()
        assert statement["balance"] == 1000
        assert len(statement["lastTransactions"]) == 1

    def test_account_not_found(self):
        """Test transaction with non-existent account."""
        response = post_transaction(999, 100, "credit", "ghost")

        assert response.status_code == 404
        data = response.json()
        assert data["detail"] == "Account not found"
        assert data["error_code"] == "ACCOUNT_NOT_FOUND"
        assert AWARE_TIMESTAMP.search(data["timestamp"])

    def test_non_numeric_account_id(self):
        """Test account id that is not an integer."""
        response = post_transaction("abc", 100, "credit", "ghost")

        assert response.status_code == 404

    def test_oversized_account_id(self):
        """Digit strings too long to convert are unknown accounts, not errors."""
        huge_id = "9" * 5000

        assert post_transaction(huge_id, 100, "credit", "ghost").status_code == 404
        response = get_statement(huge_id)
        assert response.status_code == 404
        assert response.json()["error_code"] == "ACCOUNT_NOT_FOUND"

    def test_not_found_takes_precedence_over_validation(self):
        response = post_transaction(999, 0, "x", "")

        assert response.status_code == 404


class TestStatement:
    """Test statement functionality."""

    def test_initial_statement(self):
        response = get_statement(3)

        assert response.status_code == 200
        data = response.json()
        assert data["balance"] == 0
        assert data["creditLimit"] == 1000000
        assert data["lastTransactions"] == []
        assert "snapshotAt" in data

    def test_statement_reflects_transaction(self):
        """Returned balance and statement agree after a transaction."""
        result = post_transaction(4, 2500, "debit", "groceries").json()

        data = get_statement(4).json()

        assert data["balance"] == result["balance"] == -2500
        assert data["creditLimit"] == result["creditLimit"]
        entry = data["lastTransactions"][0]
        assert entry["amount"] == 2500
        assert entry["kind"] == "debit"
        assert entry["description"] == "groceries"
        assert "appliedAt" in entry

    def test_statement_shows_last_ten_most_recent_first(self):
        for i in range(11):
            assert post_transaction(1, 1, "credit", f"t{i}").status_code == 200

        data = get_statement(1).json()

        assert data["balance"] == 11
        descriptions = [t["description"] for t in data["lastTransactions"]]
        assert descriptions == [f"t{i}" for i in range(10, 0, -1)]

    def test_statement_account_not_found(self):
        response = get_statement(999)

        assert response.status_code == 404
        assert response.json()["error_code"] == "ACCOUNT_NOT_FOUND"


class TestValidation:
    """Test input validation."""

    def test_invalid_kind(self):
        response = post_transaction(1, 100, "x", "bad kind")

        assert response.status_code == 422
        data = response.json()
        assert data["error_code"] == "VALIDATION_REJECTED"
        assert data["reasons"] == ["invalid-kind"]
        assert get_statement(1).json()["lastTransactions"] == []

    def test_short_kind_codes_rejected(self):
        response = post_transaction(1, 100, "c", "short")

        assert response.status_code == 422

    def test_zero_amount(self):
        response = post_transaction(1, 0, "credit", "zero")

        assert response.status_code == 422
        assert response.json()["reasons"] == ["non-positive-amount"]

    def test_negative_amount(self):
        response = post_transaction(1, -100, "debit", "negative")

        assert response.status_code == 422
        assert response.json()["reasons"] == ["non-positive-amount"]

    def test_empty_description(self):
        response = post_transaction(1, 100, "credit", "")

        assert response.status_code == 422
        assert response.json()["reasons"] == ["invalid-description-length"]

    def test_description_too_long(self):
        response = post_transaction(1, 100, "credit", "a" * 11)

        assert response.status_code == 422
        assert response.json()["reasons"] == ["invalid-description-length"]

    def test_multibyte_description_counts_characters(self):
        response = post_transaction(1, 100, "credit", "ção" * 3 + "ç")

        assert response.status_code == 200

    def test_all_failures_reported(self):
        response = post_transaction(1, 0, "x", "")

        assert response.status_code == 422
        assert response.json()["reasons"] == [
            "invalid-kind",
            "non-positive-amount",
            "invalid-description-length",
        ]

    def test_fractional_amount(self):
        response = post_transaction(1, 1.5, "credit", "cents")

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_REQUEST"


class TestConcurrency:
    """Test concurrent transaction processing."""

    @pytest.mark.asyncio
    async def test_concurrent_debits_respect_limit(self):
        """Only the debits that fit in the credit limit are applied."""
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            # Account 2 has a limit of 80000: eight debits of 10000 fit
            tasks = [
                ac.post("/accounts/2/transactions", json={
                    "amount": 10000,
                    "kind": "debit",
                    "description": f"debit {i}"
                })
                for i in range(10)
            ]
            results = await asyncio.gather(*tasks)

            successful = [r for r in results if r.status_code == 200]
            failed = [r for r in results if r.status_code == 422]
            assert len(successful) == 8
            assert len(failed) == 2
            assert all(r.json()["error_code"] == "LIMIT_EXCEEDED" for r in failed)

            statement = (await ac.get("/accounts/2/statement")).json()
            assert statement["balance"] == -80000
            assert len(statement["lastTransactions"]) == 8

    @pytest.mark.asyncio
    async def test_concurrent_mixed_transactions(self):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            tasks = []
            for i in range(6):
                tasks.append(ac.post("/accounts/1/transactions", json={
                    "amount": 500, "kind": "credit", "description": f"c{i}"
                }))
                tasks.append(ac.post("/accounts/1/transactions", json={
                    "amount": 200, "kind": "debit", "description": f"d{i}"
                }))
            results = await asyncio.gather(*tasks)

            assert all(r.status_code == 200 for r in results)

            statement = (await ac.get("/accounts/1/statement")).json()
            assert statement["balance"] == 6 * 500 - 6 * 200
            assert len(statement["lastTransactions"]) == 10


class TestHealthAndUtility:
    """Test health check and utility endpoints."""

    def test_health_check(self):
        post_transaction(5, 100, "credit", "dep")
        post_transaction(5, 10**9, "debit", "rejected")

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert AWARE_TIMESTAMP.search(data["timestamp"])
        assert data["accounts_count"] == 5
        assert data["transactions_processed"] == 1

    def test_root_endpoint(self):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert "message" in data
        assert "docs" in data


class TestErrorHandling:
    """Test error handling scenarios."""

    def test_malformed_json(self):
        response = client.post(
            "/accounts/1/transactions",
            content="{'invalid': 'json'",
            headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_REQUEST"

    def test_missing_required_fields(self):
        response = client.post("/accounts/1/transactions", json={"amount": 100})

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_REQUEST"

    @patch("main.logger")
    def test_request_completion_logged(self, mock_logger):
        client.get("/health")

        mock_logger.info.assert_any_call("Request completed", status_code=200, duration_ms=ANY)

    @patch('services.logger')
    def test_logging_on_error(self, mock_logger):
        """Test that rejections are logged."""
        response = post_transaction(999, 100, "credit", "log test")

        assert response.status_code == 404
        mock_logger.warning.assert_called()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
