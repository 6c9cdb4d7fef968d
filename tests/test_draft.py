"""Unit tests for the booking draft and wizard navigation."""

import pytest

from autohaul.domain.draft import BookingDraft
from autohaul.domain.enums import STEP_ORDER, BookingStep
from autohaul.domain.workflow import BookingWorkflow, build_shipment_request
from tests.factories import VALID_FORM, filled_draft


class TestBookingDraft:
    def test_initial_state(self):
        draft = BookingDraft()
        assert draft.current_step is BookingStep.CUSTOMER
        assert not draft.is_draft
        assert not any(draft.validity.values())
        assert draft.steps == STEP_ORDER

    def test_update_merges_shallowly(self):
        draft = BookingDraft()
        draft.update(BookingStep.CUSTOMER, {"full_name": "Ava", "email": "a@b.co"})
        draft.update(BookingStep.CUSTOMER, {"email": "ava@example.com"})
        data = draft.form_data[BookingStep.CUSTOMER]
        assert data.full_name == "Ava"
        assert data.email == "ava@example.com"
        assert draft.is_draft

    def test_update_revalidates_only_that_step(self):
        draft = BookingDraft()
        result = draft.update(BookingStep.CUSTOMER, VALID_FORM[BookingStep.CUSTOMER])
        assert result.valid
        assert draft.validity[BookingStep.CUSTOMER]
        assert not draft.validity[BookingStep.VEHICLE]

    def test_update_can_invalidate(self):
        draft = filled_draft()
        result = draft.update(BookingStep.VEHICLE, {"year": 1975})
        assert result.invalid == ("year",)
        assert not draft.validity[BookingStep.VEHICLE]

    def test_unknown_field_is_rejected(self):
        draft = BookingDraft()
        with pytest.raises(ValueError, match="colour"):
            draft.update(BookingStep.VEHICLE, {"colour": "red"})

    def test_lists_stored_as_tuples(self):
        draft = BookingDraft()
        draft.update(BookingStep.VISUAL, {"front_view": ["p1", "p2"]})
        assert draft.form_data[BookingStep.VISUAL].front_view == ("p1", "p2")

    def test_bare_string_for_list_field_becomes_one_item(self):
        draft = BookingDraft()
        draft.update(BookingStep.VISUAL, {"front_view": "p1", "rear_view": "  "})
        data = draft.form_data[BookingStep.VISUAL]
        assert data.front_view == ("p1",)
        assert data.rear_view == ()

    @pytest.mark.parametrize(
        "step, changes",
        [
            (BookingStep.PICKUP, {"address": 12345}),
            (BookingStep.PICKUP, {"address": ["1 Main St"]}),
            (BookingStep.CUSTOMER, {"email": {"primary": "a@b.co"}}),
            (BookingStep.VEHICLE, {"year": True}),
            (BookingStep.TERMS, {"service_agreement_accepted": "yes"}),
            (BookingStep.VISUAL, {"front_view": [1, 2]}),
            (BookingStep.PAYMENT, {"quote_price": [100]}),
        ],
    )
    def test_wrong_value_types_are_rejected(self, step, changes):
        draft = filled_draft()
        before = draft.form_data[step]
        with pytest.raises(ValueError, match=next(iter(changes))):
            draft.update(step, changes)
        assert draft.form_data[step] == before
        assert draft.validity[step]

    def test_reset_issues_new_submission_key(self):
        draft = filled_draft()
        old_key, draft_id = draft.submission_key, draft.id
        draft.reset()
        assert draft.submission_key != old_key
        assert draft.id == draft_id
        assert draft.current_step is BookingStep.CUSTOMER
        assert not draft.is_draft
        assert draft.form_data[BookingStep.CUSTOMER].full_name is None

    def test_progress(self):
        draft = BookingDraft()
        assert draft.progress() == pytest.approx(100 / 9)
        draft.set_step(BookingStep.PAYMENT)
        assert draft.progress() == pytest.approx(100.0)

    def test_revalidate_all_reports_in_step_order(self):
        draft = BookingDraft()
        draft.update(BookingStep.VEHICLE, VALID_FORM[BookingStep.VEHICLE])
        failing = [f.step for f in draft.revalidate_all()]
        assert failing == [s for s in STEP_ORDER if s is not BookingStep.VEHICLE]


class TestDraftSerialisation:
    def test_round_trip_keeps_data_and_pointer(self):
        draft = filled_draft(at_step=BookingStep.TOWING)
        restored = BookingDraft.from_dict(draft.to_dict())
        assert restored.id == draft.id
        assert restored.client_id == draft.client_id
        assert restored.submission_key == draft.submission_key
        assert restored.current_step is BookingStep.TOWING
        assert restored.form_data == draft.form_data

    def test_validity_recomputed_not_trusted(self):
        doc = filled_draft().to_dict()
        doc["form_data"]["vehicle"]["year"] = 1901
        doc["validity"] = {step.value: True for step in STEP_ORDER}
        restored = BookingDraft.from_dict(doc)
        assert not restored.validity[BookingStep.VEHICLE]
        assert restored.validity[BookingStep.CUSTOMER]

    def test_to_dict_is_json_friendly(self):
        doc = filled_draft().to_dict()
        assert doc["form_data"]["visual"]["front_view"] == ["photo-front"]
        assert doc["current_step"] == "payment"


class TestNavigation:
    def test_next_blocked_until_step_valid(self):
        workflow = BookingWorkflow()
        assert workflow.next() is False
        workflow.update_step(BookingStep.CUSTOMER, VALID_FORM[BookingStep.CUSTOMER])
        assert workflow.next() is True
        assert workflow.get_current_step() is BookingStep.VEHICLE

    def test_previous_from_first_step_is_noop(self):
        workflow = BookingWorkflow()
        assert workflow.previous() is False
        assert workflow.get_current_step() is BookingStep.CUSTOMER

    def test_previous_is_always_allowed(self):
        workflow = BookingWorkflow(filled_draft(at_step=BookingStep.TOWING))
        workflow.update_step(BookingStep.TOWING, {"operability": None})
        assert workflow.previous() is True
        assert workflow.get_current_step() is BookingStep.DELIVERY

    def test_cannot_advance_past_last_step(self):
        workflow = BookingWorkflow(filled_draft())
        assert workflow.next() is False

    def test_walk_all_steps(self):
        workflow = BookingWorkflow()
        for step in STEP_ORDER:
            assert workflow.get_current_step() is step
            workflow.update_step(step, VALID_FORM[step])
            workflow.next()
        assert workflow.get_current_step() is BookingStep.PAYMENT
        assert workflow.progress() == pytest.approx(100.0)

    def test_go_to_only_backwards(self):
        workflow = BookingWorkflow(filled_draft(at_step=BookingStep.INSURANCE))
        assert workflow.go_to(BookingStep.PAYMENT) is False
        assert workflow.go_to(BookingStep.VEHICLE) is True
        assert workflow.get_current_step() is BookingStep.VEHICLE

    def test_step_data_and_validity(self):
        workflow = BookingWorkflow(filled_draft())
        assert workflow.get_step_data(BookingStep.VEHICLE).make == "Toyota"
        assert workflow.is_step_valid(BookingStep.VEHICLE)

    def test_cancel_resets(self):
        workflow = BookingWorkflow(filled_draft())
        workflow.cancel()
        assert workflow.get_current_step() is BookingStep.CUSTOMER
        assert not workflow.is_step_valid(BookingStep.CUSTOMER)


class TestShipmentRequest:
    def test_built_from_draft(self):
        draft = filled_draft()
        request = build_shipment_request(draft, "client-1", 85057)
        assert request.title == "2019 Toyota Camry"
        assert request.idempotency_key == draft.submission_key
        assert request.route.pickup.latitude == pytest.approx(37.7793)
        assert request.route.delivery.latitude is None
        assert "VIN: 4T1B11HK5KU123456" in request.description
        assert "Operability: running" in request.description
        assert "Instructions: Call on arrival" in request.delivery_notes
        assert request.estimated_price_cents == 85057
        assert not request.is_fragile
