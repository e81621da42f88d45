"""Tests for the SIIGO API client."""

from datetime import timedelta

import httpx
import pytest

from ledgerboard.connectors.siigo import DateFilter, ProviderSession
from ledgerboard.exceptions import (
    AuthenticationError,
    ProviderError,
    RateLimitError,
    TransportError,
)


def invoices(n):
    return [{"id": f"inv-{i}", "date": "2024-06-01", "total": 100, "balance": 0} for i in range(n)]


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_authenticate_stores_session(self, make_client, siigo, clock):
        client = make_client()
        session = await client.authenticate()

        assert isinstance(session, ProviderSession)
        assert session.token == "token-1"
        assert session.expires_at == clock.now + timedelta(seconds=86400)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_auth_request_body_and_partner_header(self, make_client, siigo):
        async with make_client() as client:
            await client.authenticate()

        auth = siigo.requests[0]
        assert auth.method == "POST"
        assert auth.headers["Partner-Id"] == "TestPartner"
        assert b'"username"' in auth.content
        assert b'"access_key"' in auth.content

    @pytest.mark.asyncio
    async def test_token_reused_across_reads(self, make_client, siigo):
        siigo.resources["customers"] = [{"id": "c1"}]
        async with make_client() as client:
            await client.get_all_customers()
            await client.get_all_invoices()
            await client.get_purchases()
            await client.get_all_accounts()
            await client.get_products()

        assert siigo.auth_calls == 1

    @pytest.mark.asyncio
    async def test_reauthenticates_after_expiry(self, make_client, siigo, clock):
        siigo.expires_in = 3600
        async with make_client() as client:
            await client.get_all_customers()
            clock.now += timedelta(hours=2)
            await client.get_all_customers()
            token = client.session.token

        assert siigo.auth_calls == 2
        assert token == "token-2"

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, make_client, siigo):
        siigo.auth_status = 401
        async with make_client() as client:
            with pytest.raises(AuthenticationError) as exc_info:
                await client.authenticate()

        assert exc_info.value.status_code == 401
        assert "SIIGO Auth failed: 401" in exc_info.value.message
        assert client.session is None

    @pytest.mark.asyncio
    async def test_missing_access_token(self, make_client, siigo):
        siigo.auth_payload = {"expires_in": 3600}
        async with make_client() as client:
            with pytest.raises(AuthenticationError):
                await client.authenticate()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"access_token": "t", "expires_in": "24h"},
        {"access_token": "t", "expires_in": "3600.0"},
        {"access_token": "t", "expires_in": {"seconds": 3600}},
        {"access_token": 12345, "expires_in": 3600},
    ])
    async def test_malformed_token_response(self, make_client, siigo, payload):
        siigo.auth_payload = payload
        async with make_client() as client:
            with pytest.raises(AuthenticationError) as exc_info:
                await client.authenticate()

        assert exc_info.value.message.startswith("SIIGO Auth failed")
        assert client.session is None

    @pytest.mark.asyncio
    async def test_network_failure_is_transport_error(self, make_client):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(transport=httpx.MockTransport(unreachable)) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.authenticate()

        assert isinstance(exc_info.value.original_error, httpx.ConnectError)


class TestRequests:
    @pytest.mark.asyncio
    async def test_read_headers(self, make_client, siigo):
        async with make_client() as client:
            await client.get_all_customers()

        read = siigo.reads("customers")[0]
        assert read.headers["Authorization"] == "Bearer token-1"
        assert read.headers["Partner-Id"] == "TestPartner"
        assert read.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_date_filter_forwarded(self, make_client, siigo):
        async with make_client() as client:
            await client.get_all_invoices(DateFilter(start="2024-01-01", end="2024-03-31"))

        params = siigo.reads("invoices")[0].url.params
        assert params["start_date"] == "2024-01-01"
        assert params["end_date"] == "2024-03-31"
        assert params["page"] == "1"
        assert params["page_size"] == "100"

    @pytest.mark.asyncio
    async def test_open_date_filter_sends_no_dates(self, make_client, siigo):
        async with make_client() as client:
            await client.get_purchases(DateFilter())

        params = siigo.reads("purchases")[0].url.params
        assert "start_date" not in params
        assert "end_date" not in params

    @pytest.mark.asyncio
    async def test_rate_limit(self, make_client, siigo):
        siigo.failures[("invoices", 1)] = (429, {"Retry-After": "7"})
        async with make_client() as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.get_page("invoices")

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_rejected_token(self, make_client, siigo):
        siigo.failures[("invoices", 1)] = (401, {})
        async with make_client() as client:
            with pytest.raises(AuthenticationError):
                await client.get_page("invoices")

    @pytest.mark.asyncio
    async def test_server_error(self, make_client, siigo):
        siigo.failures[("invoices", 1)] = (500, {})
        async with make_client() as client:
            with pytest.raises(ProviderError) as exc_info:
                await client.get_page("invoices")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_trial_balance_report_single_request(self, make_client, siigo):
        async with make_client() as client:
            report = await client.get_trial_balance_report(DateFilter(start="2024-01-01"))

        reads = siigo.reads("trial-balance")
        assert len(reads) == 1
        assert reads[0].url.params["start_date"] == "2024-01-01"
        assert "results" in report


class TestPagination:
    @pytest.mark.asyncio
    async def test_drains_all_pages(self, make_client, siigo):
        siigo.resources["invoices"] = invoices(250)
        async with make_client() as client:
            results = await client.get_all_invoices()

        assert len(results) == 250
        assert [int(r.url.params["page"]) for r in siigo.reads("invoices")] == [1, 2, 3]
        assert results[0]["id"] == "inv-0"
        assert results[-1]["id"] == "inv-249"

    @pytest.mark.asyncio
    async def test_exact_page_multiple_stops(self, make_client, siigo):
        siigo.resources["invoices"] = invoices(200)
        async with make_client() as client:
            results = await client.get_all_invoices()

        assert len(results) == 200
        assert len(siigo.reads("invoices")) == 2

    @pytest.mark.asyncio
    async def test_empty_collection(self, make_client, siigo):
        async with make_client() as client:
            assert await client.get_all_customers() == []

        assert len(siigo.reads("customers")) == 1

    @pytest.mark.asyncio
    async def test_failing_page_returns_partial_results(self, make_client, siigo):
        siigo.resources["invoices"] = invoices(250)
        siigo.failures[("invoices", 2)] = (500, {})
        async with make_client() as client:
            results = await client.get_all_invoices()

        assert len(results) == 100
        assert len(siigo.reads("invoices")) == 2

    @pytest.mark.asyncio
    async def test_page_pacing(self, make_client, siigo):
        class CountingDelay:
            waits = 0

            async def wait(self):
                self.waits += 1

        pacing = CountingDelay()
        siigo.resources["customers"] = [{"id": str(i)} for i in range(250)]
        async with make_client(pacing=pacing) as client:
            await client.get_all_customers()

        assert pacing.waits == 2
