"""Domain entity tests."""

import asyncio

import pytest

from letter_stream.domain.entities import (
    GenerationRequest,
    StreamFrame,
    StreamRequest,
    StreamSession,
    TemplateRecord,
)
from letter_stream.domain.exceptions import (
    EmptyResultError,
    InvalidSessionStateError,
    PersistenceFailureError,
    TemplateInvalidError,
    TransportError,
)
from letter_stream.domain.value_objects import SessionState
from tests._helpers.fakes import template_payload


class TestSessionState:
    def test_forward_transitions(self):
        assert SessionState.IDLE.can_transition_to(SessionState.STARTING)
        assert SessionState.STARTING.can_transition_to(SessionState.STREAMING)
        assert SessionState.STREAMING.can_transition_to(SessionState.PERSISTING)
        assert SessionState.PERSISTING.can_transition_to(SessionState.DONE)

    def test_terminal_states_are_final(self):
        for state in (SessionState.DONE, SessionState.CANCELLED):
            for target in SessionState:
                assert not state.can_transition_to(target)

    def test_failed_may_only_retry_persist(self):
        allowed = [s for s in SessionState if SessionState.FAILED.can_transition_to(s)]
        assert allowed == [SessionState.PERSISTING]

    def test_no_backwards_transitions(self):
        assert not SessionState.STREAMING.can_transition_to(SessionState.STARTING)
        assert not SessionState.PERSISTING.can_transition_to(SessionState.STREAMING)

    def test_terminal_flags(self):
        assert SessionState.DONE.is_terminal()
        assert SessionState.FAILED.is_terminal()
        assert SessionState.CANCELLED.is_terminal()
        assert SessionState.STREAMING.is_active()
        assert SessionState.PERSISTING.can_be_cancelled()
        assert not SessionState.DONE.can_be_cancelled()


class TestTemplateRecord:
    def test_backend_field_names(self):
        record = TemplateRecord.from_payload("consultation", template_payload())

        assert record.id == "consultation"
        assert record.instruction_body == "Notes:\n{{transcription}}"
        assert record.role_text == "You are a medical letter generator."
        assert record.max_tokens == 1800
        assert record.is_active is True

    def test_prompt_file_field_names(self):
        payload = {
            "id": "soap",
            "name": "SOAP Note",
            "systemRole": "role",
            "userPrompt": "body",
            "temperature": 1,
            "maxTokens": 1000,
            "version": 2,
            "isActive": True,
        }
        record = TemplateRecord.from_payload("soap", payload)

        assert record.instruction_body == "body"
        assert record.role_text == "role"
        assert record.temperature == 1.0
        assert record.version == "2"

    def test_record_is_immutable(self):
        record = TemplateRecord.from_payload("consultation", template_payload())
        with pytest.raises(Exception):
            record.name = "changed"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"maxTokens": "1800"},
            {"temperature": "hot"},
            {"temperature": True},
            {"isActive": "yes"},
            {"instructionBody": None},
        ],
    )
    def test_mistyped_fields_are_rejected(self, overrides):
        with pytest.raises(TemplateInvalidError) as exc_info:
            TemplateRecord.from_payload("consultation", template_payload(**overrides))
        assert exc_info.value.code == "TEMPLATE_INVALID"

    def test_missing_field_is_rejected(self):
        payload = template_payload()
        del payload["roleText"]
        with pytest.raises(TemplateInvalidError, match="roleText"):
            TemplateRecord.from_payload("consultation", payload)

    def test_inactive_template_is_rejected(self):
        with pytest.raises(TemplateInvalidError, match="not active"):
            TemplateRecord.from_payload(
                "consultation", template_payload(isActive=False)
            )

    def test_non_object_payload_is_rejected(self):
        with pytest.raises(TemplateInvalidError):
            TemplateRecord.from_payload("consultation", ["not", "an", "object"])


class TestGenerationRequest:
    def test_variables_are_copied(self):
        variables = {"transcription": "original"}
        request = GenerationRequest("t1", "consultation", variables)
        variables["transcription"] = "changed"

        assert request.variables["transcription"] == "original"
        with pytest.raises(TypeError):
            request.variables["transcription"] = "x"

    def test_with_variables_keeps_target_and_metadata(self):
        request = GenerationRequest(
            "t1", "consultation", {"a": "1"}, metadata={"patientId": "p1"}
        )
        fresh = request.with_variables({"a": "2"})

        assert fresh is not request
        assert fresh.target_id == "t1"
        assert fresh.template_id == "consultation"
        assert fresh.variables["a"] == "2"
        assert fresh.metadata["patientId"] == "p1"


class TestStreamRequest:
    def test_payload_uses_backend_names(self):
        request = StreamRequest(
            prompt="p",
            role_text="r",
            letter_type="referral",
            model="gpt-4o-mini",
            temperature=0.7,
            max_tokens=1800,
            target_id="t1",
        )
        assert request.to_payload() == {
            "prompt": "p",
            "systemRole": "r",
            "letterType": "referral",
            "model": "gpt-4o-mini",
            "temperature": 0.7,
            "maxTokens": 1800,
            "targetId": "t1",
        }


class TestStreamFrame:
    def test_content_frame(self):
        frame = StreamFrame.model_validate({"success": True, "content": "<p>"})
        assert frame.is_complete is False
        assert frame.content == "<p>"

    def test_completion_frame(self):
        frame = StreamFrame.model_validate({"success": True, "isComplete": True})
        assert frame.is_complete is True

    def test_unknown_fields_are_ignored(self):
        frame = StreamFrame.model_validate(
            {"success": False, "error": "quota", "requestId": "abc"}
        )
        assert frame.error == "quota"

    def test_missing_success_means_failure(self):
        frame = StreamFrame.model_validate({"content": "<p>"})
        assert frame.success is False


class TestStreamSession:
    def _session(self) -> StreamSession:
        return StreamSession("t1", GenerationRequest("t1", "consultation"))

    def test_invalid_transition_raises(self):
        session = self._session()
        with pytest.raises(InvalidSessionStateError):
            session.transition_to(SessionState.DONE)
        assert session.state is SessionState.IDLE

    def test_fail_discards_text_by_default(self):
        session = self._session()
        session.transition_to(SessionState.STARTING)
        session.accumulated_text = "partial"
        session.fail(TransportError("reset"))

        assert session.state is SessionState.FAILED
        assert session.accumulated_text == ""
        assert not session.can_retry_persist()

    def test_persistence_failure_can_be_retried(self):
        session = self._session()
        for state in (
            SessionState.STARTING,
            SessionState.STREAMING,
            SessionState.PERSISTING,
        ):
            session.transition_to(state)
        session.accumulated_text = "<p>Letter</p>"
        session.fail(PersistenceFailureError("t1", "HTTP 500"), keep_text=True)

        assert session.can_retry_persist()

    def test_cancel_without_owner(self):
        assert self._session().cancel() is False

    def test_cancel_delegates_to_owner(self):
        calls = []
        session = StreamSession(
            "t1",
            GenerationRequest("t1", "consultation"),
            _cancel_hook=lambda s: calls.append(s) or True,
        )
        assert session.cancel() is True
        assert calls == [session]

    def test_session_ids_are_unique(self):
        assert self._session().session_id != self._session().session_id

    @pytest.mark.asyncio
    async def test_wait_returns_terminal_state(self):
        session = self._session()
        session.transition_to(SessionState.STARTING)

        waiter = asyncio.create_task(session.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        session.transition_to(SessionState.CANCELLED)
        assert await waiter is SessionState.CANCELLED


class TestErrors:
    def test_empty_result_messages(self):
        assert EmptyResultError(0).message == "No content generated"
        assert "too short" in EmptyResultError(3, 10).message

    def test_error_codes(self):
        assert TransportError("x", status_code=502).status_code == 502
        assert PersistenceFailureError("t1", "boom").code == "PERSISTENCE_FAILURE"
