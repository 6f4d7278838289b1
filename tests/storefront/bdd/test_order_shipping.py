"""BDD tests for admin shipping transitions."""

from pytest_bdd import parsers, scenarios, then, when

from storefront.errors import StateConflict

scenarios("features/order_shipping.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the admin ships the order with parcel "{shipment_id}"'))
def _(orchestrator, order_id, shipment_id):
    orchestrator.advance_order_status(order_id, "shipped", shipment_id=shipment_id)


@when(parsers.cfparse('the admin marks the order "{status}"'))
def _(orchestrator, order_id, status):
    orchestrator.advance_order_status(order_id, status)


@when(parsers.cfparse('the admin tries to mark the order "{status}"'))
def _(orchestrator, order_id, status, context):
    try:
        orchestrator.advance_order_status(order_id, status)
    except StateConflict as exc:
        context["error"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the order records when it shipped")
def _(orders, order_id):
    assert orders.get_by_id(order_id).shipped_at is not None


@then(parsers.cfparse('the last email to "{recipient}" mentions "{text}"'))
def _(email, recipient, text):
    assert text in email.sent_to(recipient)[-1]["html_body"]


@then(parsers.cfparse('the change is refused as a conflict from "{status}"'))
def _(context, status):
    assert isinstance(context["error"], StateConflict)
    assert context["error"].current_status == status
