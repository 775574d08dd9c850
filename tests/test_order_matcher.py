"""
Tests for matching inbound replies to awaiting orders.

Tests cover:
- Suffix match selects exactly the matching order
- Only awaiting_response orders are candidates
- Shared suffixes resolved by exact number, otherwise rejected
- Anonymized chat ids resolved through the contact lookup
"""

from cod_confirm.config.constants import STATUS_AWAITING_RESPONSE, STATUS_CONFIRMED, STATUS_PENDING
from cod_confirm.models.message import InboundMessage
from cod_confirm.services.order_matcher import OrderMatcher, select_order


def reply(sender: str, body: str = "1", from_me: bool = False, recipient: str = "573000000000@c.us") -> InboundMessage:
    return InboundMessage.model_validate({"from": sender, "to": recipient, "body": body, "fromMe": from_me})


class TestOrderMatcher:
    """Phone-suffix matching against the database."""

    async def test_selects_order_with_matching_suffix(self, session_factory, messaging, order_factory):
        first = await order_factory(phone="3001245678", status=STATUS_AWAITING_RESPONSE)
        await order_factory(phone="3009999999", status=STATUS_AWAITING_RESPONSE)

        result = await OrderMatcher(session_factory, messaging).match(reply("573001245678@c.us"))

        assert result.matched
        assert result.order.id == first.id
        assert [order.id for order in result.candidates] == [first.id]

    async def test_ignores_orders_not_awaiting(self, session_factory, messaging, order_factory):
        await order_factory(phone="3001245678", status=STATUS_PENDING)
        await order_factory(phone="3001245678", status=STATUS_CONFIRMED)

        result = await OrderMatcher(session_factory, messaging).match(reply("573001245678@c.us"))

        assert not result.matched
        assert not result.ambiguous

    async def test_no_match(self, session_factory, messaging, order_factory):
        await order_factory(phone="3001245678", status=STATUS_AWAITING_RESPONSE)

        result = await OrderMatcher(session_factory, messaging).match(reply("573117777777@c.us"))

        assert not result.matched

    async def test_same_customer_newest_order_wins(self, session_factory, messaging, order_factory):
        await order_factory(phone="3001245678", status=STATUS_AWAITING_RESPONSE)
        newest = await order_factory(phone="+57 300 124 5678", status=STATUS_AWAITING_RESPONSE)

        result = await OrderMatcher(session_factory, messaging).match(reply("573001245678@c.us"))

        assert result.order.id == newest.id
        assert len(result.candidates) == 2

    async def test_different_customers_sharing_suffix_rejected(self, session_factory, messaging, order_factory):
        await order_factory(phone="+57 300 124 5678", status=STATUS_AWAITING_RESPONSE)
        await order_factory(phone="+57 310 124 5678", status=STATUS_AWAITING_RESPONSE)

        result = await OrderMatcher(session_factory, messaging).match(reply("573201245678@c.us"))

        assert not result.matched
        assert result.ambiguous

    async def test_self_sent_message_matches_recipient(self, session_factory, messaging, order_factory):
        order = await order_factory(phone="3001245678", status=STATUS_AWAITING_RESPONSE)

        message = reply("573000000000@c.us", from_me=True, recipient="573001245678@c.us")
        result = await OrderMatcher(session_factory, messaging).match(message)

        assert result.order.id == order.id

    async def test_anonymized_chat_resolved_through_contact(self, session_factory, messaging, order_factory):
        order = await order_factory(phone="3001245678", status=STATUS_AWAITING_RESPONSE)
        messaging.contacts["208315523456@lid"] = "573001245678"

        result = await OrderMatcher(session_factory, messaging).match(reply("208315523456@lid"))

        assert result.order.id == order.id


class TestSelectOrder:
    """Candidate selection without the database."""

    def test_no_candidates(self):
        assert select_order([], "573001245678") == (None, False)
