"""
Request id handling in the request logging middleware
"""

from uuid import UUID

import httpx
import pytest

from journeyline.main import app
from journeyline.middleware.logging import REQUEST_ID_HEADER, inbound_request_id


class TestInboundRequestId:

    def test_accepts_plain_ids(self):
        assert inbound_request_id("req-123") == "req-123"
        assert inbound_request_id("6f1c2a.trace_01") == "6f1c2a.trace_01"

    def test_rejects_unsafe_or_missing_ids(self):
        assert inbound_request_id(None) is None
        assert inbound_request_id("") is None
        assert inbound_request_id("two words") is None
        assert inbound_request_id('{"forged": true}') is None
        assert inbound_request_id("x" * 65) is None


@pytest.mark.asyncio
async def test_unsafe_header_is_replaced_with_generated_id():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/", headers={REQUEST_ID_HEADER: "not a safe id"})

    assert response.status_code == 200
    echoed = response.headers[REQUEST_ID_HEADER]
    assert echoed != "not a safe id"
    UUID(echoed)
