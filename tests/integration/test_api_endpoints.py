"""API endpoint integration tests.

Tests the FastAPI endpoints for staging and breakdown edits.
"""

from decimal import Decimal

from httpx import AsyncClient

from payrun_engine.services.attendance import AttendanceUnavailableError


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Health endpoint should report the database as healthy."""
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert "timestamp" in data

    async def test_readiness_check(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestStageEndpoint:
    """Test POST /api/v1/pay-periods/{id}/stage."""

    async def test_stage_pay_period(self, client: AsyncClient, staging_data):
        """Staging returns the payslip data set."""
        response = await client.post(f"/api/v1/pay-periods/{staging_data.pay_period_id}/stage")
        assert response.status_code == 200

        data = response.json()
        assert data["pay_period"]["id"] == staging_data.pay_period_id
        assert len(data["payrolls"]) == 2
        assert len(data["breakdowns"]) == 7
        assert [p["id"] for p in data["earnings"]] == [1, 2]
        assert [p["id"] for p in data["deductions"]] == [3, 4, 5]
        assert set(data["calculated_amounts"]) == {"1", "2"}
        assert data["errors"] == {}

        basic = next(
            b for b in data["breakdowns"] if b["payroll_id"] == 1 and b["payhead_id"] == 1
        )
        assert Decimal(basic["amount"]) == Decimal("20000")

    async def test_unknown_pay_period(self, client: AsyncClient, staging_data):
        response = await client.post("/api/v1/pay-periods/999/stage")
        assert response.status_code == 404
        assert response.json()["detail"] == "Pay period not found"

    async def test_processed_pay_period(self, client: AsyncClient, staging_data):
        response = await client.post(
            f"/api/v1/pay-periods/{staging_data.processed_pay_period_id}/stage"
        )
        assert response.status_code == 409

    async def test_attendance_failure(self, client: AsyncClient, attendance_source, staging_data):
        """A failed stage answers 503 and names the stage."""
        attendance_source.error = AttendanceUnavailableError("attendance service down")

        response = await client.post(f"/api/v1/pay-periods/{staging_data.pay_period_id}/stage")
        assert response.status_code == 503

        data = response.json()
        assert data["stage"] == "fetch"
        assert data["code"] == "STAGE_FAILURE"

        listing = await client.get(f"/api/v1/pay-periods/{staging_data.pay_period_id}/breakdowns")
        assert listing.json()["total"] == 0

    async def test_invalid_pay_period_id(self, client: AsyncClient):
        response = await client.post("/api/v1/pay-periods/0/stage")
        assert response.status_code == 422


class TestBreakdownEndpoints:
    """Test breakdown listing and manual edits."""

    async def test_list_breakdowns(self, client: AsyncClient, staging_data):
        await client.post(f"/api/v1/pay-periods/{staging_data.pay_period_id}/stage")

        response = await client.get(f"/api/v1/pay-periods/{staging_data.pay_period_id}/breakdowns")
        assert response.status_code == 200

        data = response.json()
        assert data["pay_period_id"] == staging_data.pay_period_id
        assert data["total"] == 7
        keys = [(b["payroll_id"], b["payhead_id"]) for b in data["items"]]
        assert keys == sorted(keys)

    async def test_list_unknown_pay_period(self, client: AsyncClient, staging_data):
        response = await client.get("/api/v1/pay-periods/999/breakdowns")
        assert response.status_code == 404

    async def test_update_existing_breakdown(self, client: AsyncClient, staging_data):
        await client.post(f"/api/v1/pay-periods/{staging_data.pay_period_id}/stage")

        response = await client.put(
            "/api/v1/breakdowns",
            json={"payroll_id": 1, "payhead_id": 2, "amount": "4800.00"},
        )
        assert response.status_code == 200

        data = response.json()
        assert Decimal(data["amount"]) == Decimal("4800")
        assert data["link_id"] == staging_data.approved_advance_id

        listing = await client.get(f"/api/v1/pay-periods/{staging_data.pay_period_id}/breakdowns")
        assert listing.json()["total"] == 7

    async def test_create_breakdown(self, client: AsyncClient, staging_data):
        response = await client.put(
            "/api/v1/breakdowns",
            json={"payroll_id": 2, "payhead_id": 3, "amount": "125.50"},
        )
        assert response.status_code == 200
        assert Decimal(response.json()["amount"]) == Decimal("125.50")

        listing = await client.get(f"/api/v1/pay-periods/{staging_data.pay_period_id}/breakdowns")
        assert listing.json()["total"] == 1

    async def test_update_unknown_payroll(self, client: AsyncClient, staging_data):
        response = await client.put(
            "/api/v1/breakdowns",
            json={"payroll_id": 99, "payhead_id": 1, "amount": "10.00"},
        )
        assert response.status_code == 404

    async def test_amount_with_too_many_decimals(self, client: AsyncClient, staging_data):
        response = await client.put(
            "/api/v1/breakdowns",
            json={"payroll_id": 1, "payhead_id": 1, "amount": "10.005"},
        )
        assert response.status_code == 422
