"""
Tests for the read-side selectors used by approver inboxes and the
requester dashboard.
"""

from uuid import uuid4

import pytest

from procurement_kernel.domain.mrf import MRFStage
from procurement_kernel.exceptions import MRFNotFoundError, RFQNotFoundError
from procurement_kernel.selectors import MRFSelector, RFQSelector
from tests.conftest import make_draft


def test_inbox_by_stage(gate, session, requester, advance_mrf, deterministic_clock):
    first = gate.submit_mrf(requester, make_draft(title="A"))
    deterministic_clock.tick()
    second = gate.submit_mrf(requester, make_draft(title="B"))
    advance_mrf(second.id, MRFStage.EXECUTIVE)

    selector = MRFSelector(session)

    assert [m.id for m in selector.list_by_stage([MRFStage.SUBMITTED])] == [first.id]
    assert [m.id for m in selector.list_by_stage(["executive"])] == [second.id]
    assert [m.id for m in selector.list_by_stage([MRFStage.SUBMITTED, MRFStage.EXECUTIVE])] == [
        first.id, second.id,
    ]


def test_lookup_by_control_number(session, submitted_mrf):
    selector = MRFSelector(session)

    assert selector.by_control_number(submitted_mrf.control_number).id == submitted_mrf.id
    assert selector.by_control_number("MRF-1999-0001") is None


def test_missing_ids(session, engine):
    assert MRFSelector(session).find(uuid4()) is None
    with pytest.raises(MRFNotFoundError):
        MRFSelector(session).get(uuid4())
    with pytest.raises(RFQNotFoundError):
        RFQSelector(session).get(uuid4())


def test_active_rfq(session, open_rfq):
    selector = RFQSelector(session)

    assert selector.active_for_mrf(open_rfq.mrf_id).id == open_rfq.id
    assert selector.active_for_mrf(uuid4()) is None
