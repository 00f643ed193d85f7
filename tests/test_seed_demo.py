from __future__ import annotations

from propdesk.cli.seed_demo import seed_demo
from propdesk.domain.audit import activity_for
from propdesk.services import financial


def test_seed_creates_linked_sample_data(db):
    out = seed_demo(admin_email="boss@propdesk.local", admin_name="Boss")
    assert out.admin_ref.startswith("user:")
    assert out.property_id is not None

    timeline = activity_for(db, "Property", out.property_id)
    assert {e.entity for e in timeline} >= {"Property", "Task", "Booking", "Invoice"}
    assert financial.billing_status(db, payable_type="task", payable_id=out.task_id) == "open"


def test_seed_is_repeatable_for_the_admin(db):
    first = seed_demo(admin_email="boss@propdesk.local", admin_name="Boss", create_sample_data=False)
    second = seed_demo(admin_email="boss@propdesk.local", admin_name="Boss", create_sample_data=False)
    assert first.admin_ref == second.admin_ref
    assert first.property_id is None
