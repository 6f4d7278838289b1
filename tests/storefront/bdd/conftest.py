"""Shared BDD fixtures and step definitions for the fulfillment pipeline."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from storefront.order.order import Order
from storefront.webhooks.parsing import parse_payment_event


@pytest.fixture()
def context():
    """Container for results and captured errors shared between steps."""
    return {"result": None, "error": None, "baseline": 0}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a paid order for "{customer_email}"'), target_fixture="order_id")
def _(orchestrator, payment_body, customer_email):
    outcome = orchestrator.confirm_payment(parse_payment_event(payment_body(customer_email=customer_email)))
    return outcome.order_id


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def _(orders, order_id, status):
    assert orders.get_by_id(order_id).status == status


@then(parsers.cfparse('{count:d} order exists'))
def _(count):
    assert len(current_domain.repository_for(Order)._dao.query.all().items) == count


@then(parsers.cfparse('{count:d} email was sent to "{recipient}"'))
def _(email, count, recipient):
    assert len(email.sent_to(recipient)) == count


@then(parsers.re(r"(?P<count>\d+) new emails? (?:was|were) sent"), converters={"count": int})
def _(email, context, count):
    assert len(email.sent_emails) - context["baseline"] == count
