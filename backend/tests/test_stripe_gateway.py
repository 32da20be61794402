"""
Stripe gateway: SDK calls run off the event loop, results come back as plain
dicts and Stripe errors become CollaboratorUnavailable.
"""
from unittest.mock import MagicMock, patch

import pytest
import stripe

from services.stripe_gateway import StripeGateway
from services.webhook_errors import CollaboratorUnavailable


@pytest.mark.asyncio
async def test_retrieve_customer_passes_api_key():
    gateway = StripeGateway("sk_test_123")
    with patch("stripe.Customer.retrieve", return_value={"id": "cus_001", "email": "a@b.com"}) as retrieve:
        customer = await gateway.retrieve_customer("cus_001")
    assert customer == {"id": "cus_001", "email": "a@b.com"}
    retrieve.assert_called_once_with("cus_001", api_key="sk_test_123")


@pytest.mark.asyncio
async def test_list_line_items_returns_data():
    gateway = StripeGateway("sk_test_123")
    page = MagicMock()
    page.to_dict.return_value = {"object": "list", "data": [{"price": {"product": "prod_annual"}}]}
    with patch("stripe.checkout.Session.list_line_items", return_value=page) as list_items:
        items = await gateway.list_line_items("cs_001")
    assert items == [{"price": {"product": "prod_annual"}}]
    list_items.assert_called_once_with("cs_001", api_key="sk_test_123")


@pytest.mark.asyncio
async def test_retrieve_subscription():
    gateway = StripeGateway("sk_test_123")
    with patch("stripe.Subscription.retrieve", return_value={"id": "sub_001", "status": "active"}):
        assert (await gateway.retrieve_subscription("sub_001"))["status"] == "active"


@pytest.mark.asyncio
async def test_stripe_error_becomes_collaborator_unavailable():
    gateway = StripeGateway("sk_test_123")
    with patch("stripe.Customer.retrieve", side_effect=stripe.APIConnectionError("network down")):
        with pytest.raises(CollaboratorUnavailable) as exc_info:
            await gateway.retrieve_customer("cus_001")
    assert exc_info.value.collaborator == "stripe"


@pytest.mark.asyncio
async def test_missing_api_key_fails_without_calling_stripe():
    gateway = StripeGateway("")
    with patch("stripe.Customer.retrieve") as retrieve:
        with pytest.raises(CollaboratorUnavailable):
            await gateway.retrieve_customer("cus_001")
    retrieve.assert_not_called()
