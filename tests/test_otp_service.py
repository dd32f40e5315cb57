import logging

import pytest

from sanatan_store.application.otp_service import OTPService, hash_phone_number
from sanatan_store.core.errors import (
    ChallengeNotFound,
    DeliveryFailed,
    Expired,
    InvalidCode,
    InvalidInput,
    RateLimited,
    ServiceUnavailable,
)
from sanatan_store.domain.otp import derived_email, generate_code
from sanatan_store.infrastructure.repositories.user_repository import SqlUserRepository

from conftest import FIXED_CODE, PHONE, FakeSmsSender

WRONG_CODE = "654321"


def test_generated_codes_are_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_request_sends_code_by_sms(otp_service, sms):
    otp_service.request_otp(PHONE)

    assert len(sms.sent) == 1
    to, body = sms.sent[0]
    assert to == PHONE
    assert sms.last_code == FIXED_CODE
    assert "5 minutes" in body


@pytest.mark.parametrize(
    "phone", ["", "9876543210", "+911234567890", "+91987654321", "+9198765432100", "+919८७६५४३२१०"]
)
def test_request_rejects_invalid_phone(otp_service, sms, phone):
    with pytest.raises(InvalidInput):
        otp_service.request_otp(phone)
    assert sms.sent == []


def test_fourth_request_in_window_is_rate_limited(otp_service, sms, clock):
    for _ in range(3):
        otp_service.request_otp(PHONE)
        clock.advance(60)

    with pytest.raises(RateLimited) as exc:
        otp_service.request_otp(PHONE)

    # window opened at the first send, 3 minutes ago
    assert exc.value.retry_after_minutes == 7
    assert len(sms.sent) == 3


def test_send_window_resets_after_ten_minutes(otp_service, sms, clock):
    for _ in range(3):
        otp_service.request_otp(PHONE)

    clock.advance(599)
    with pytest.raises(RateLimited):
        otp_service.request_otp(PHONE)

    clock.advance(1)
    otp_service.request_otp(PHONE)
    assert len(sms.sent) == 4


def test_send_limit_is_per_phone(otp_service, sms):
    for _ in range(3):
        otp_service.request_otp(PHONE)
    otp_service.request_otp("+919123456780")
    assert len(sms.sent) == 4


def test_verify_creates_identity_then_signs_in_existing(otp_service, tokens, users):
    otp_service.request_otp(PHONE)
    first = otp_service.verify_otp(PHONE, FIXED_CODE, "Ramesh Sharma")

    assert first.is_new_user is True
    assert tokens.user_id_from_header(f"Bearer {first.session_token}") == first.user_id
    user = users.get_user(first.user_id)
    assert user.phone == PHONE
    assert user.email == derived_email(PHONE)
    assert user.display_name == "Ramesh Sharma"
    assert user.phone_confirmed and user.email_confirmed

    otp_service.request_otp(PHONE)
    second = otp_service.verify_otp(PHONE, FIXED_CODE)
    assert second.is_new_user is False
    assert second.user_id == first.user_id


def test_verify_result_shape(otp_service):
    otp_service.request_otp(PHONE)
    body = otp_service.verify_otp(PHONE, FIXED_CODE).to_dict()
    assert body["success"] is True
    assert set(body) == {"success", "userId", "isNewUser", "sessionToken"}


def test_code_is_single_use(otp_service):
    otp_service.request_otp(PHONE)
    otp_service.verify_otp(PHONE, FIXED_CODE)

    with pytest.raises(ChallengeNotFound):
        otp_service.verify_otp(PHONE, FIXED_CODE)


def test_verify_without_request(otp_service):
    with pytest.raises(ChallengeNotFound):
        otp_service.verify_otp(PHONE, FIXED_CODE)


def test_code_valid_until_ttl_then_expires(otp_service, clock):
    otp_service.request_otp(PHONE)
    clock.advance(300)
    otp_service.verify_otp(PHONE, FIXED_CODE)

    otp_service.request_otp(PHONE)
    clock.advance(301)
    with pytest.raises(Expired):
        otp_service.verify_otp(PHONE, FIXED_CODE)
    # the expired challenge is gone
    with pytest.raises(ChallengeNotFound):
        otp_service.verify_otp(PHONE, FIXED_CODE)


@pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "१२३४५६"])
def test_verify_rejects_malformed_code(otp_service, code):
    otp_service.request_otp(PHONE)
    with pytest.raises(InvalidInput):
        otp_service.verify_otp(PHONE, code)


def test_wrong_codes_report_remaining_attempts_then_lock(otp_service, clock):
    otp_service.request_otp(PHONE)

    remaining = []
    for _ in range(4):
        with pytest.raises(InvalidCode) as exc:
            otp_service.verify_otp(PHONE, WRONG_CODE)
        remaining.append(exc.value.attempts_remaining)
    assert remaining == [4, 3, 2, 1]

    with pytest.raises(RateLimited) as exc:
        otp_service.verify_otp(PHONE, WRONG_CODE)
    assert exc.value.retry_after_minutes == 15

    # the right code does not help while locked, and neither does a new one
    with pytest.raises(RateLimited):
        otp_service.verify_otp(PHONE, FIXED_CODE)
    with pytest.raises(RateLimited):
        otp_service.request_otp(PHONE)


def test_lock_lifts_after_fifteen_minutes(otp_service, clock):
    otp_service.request_otp(PHONE)
    for _ in range(4):
        with pytest.raises(InvalidCode):
            otp_service.verify_otp(PHONE, WRONG_CODE)
    with pytest.raises(RateLimited):
        otp_service.verify_otp(PHONE, WRONG_CODE)

    clock.advance(900)
    otp_service.request_otp(PHONE)
    result = otp_service.verify_otp(PHONE, FIXED_CODE)
    assert result.user_id


def test_resend_does_not_reset_failed_attempts(otp_service):
    otp_service.request_otp(PHONE)
    for _ in range(3):
        with pytest.raises(InvalidCode):
            otp_service.verify_otp(PHONE, WRONG_CODE)

    otp_service.request_otp(PHONE)
    with pytest.raises(InvalidCode) as exc:
        otp_service.verify_otp(PHONE, WRONG_CODE)
    assert exc.value.attempts_remaining == 1
    with pytest.raises(RateLimited):
        otp_service.verify_otp(PHONE, WRONG_CODE)


def test_success_resets_counters(otp_service, store):
    otp_service.request_otp(PHONE)
    otp_service.request_otp(PHONE)
    with pytest.raises(InvalidCode):
        otp_service.verify_otp(PHONE, WRONG_CODE)
    otp_service.verify_otp(PHONE, FIXED_CODE)

    state = store.load(PHONE)
    assert state.challenge is None
    assert state.rate_limit.send_attempts == 0
    assert state.rate_limit.verify_attempts == 0
    assert state.rate_limit.locked_until is None


def test_request_without_sms_provider(store, users, tokens, clock):
    service = OTPService(store, users, None, tokens, clock=clock)
    with pytest.raises(ServiceUnavailable):
        service.request_otp(PHONE)
    assert store.load(PHONE).challenge is None


def test_delivery_failure_still_counts_the_send(store, users, tokens, clock):
    service = OTPService(store, users, FakeSmsSender(fail=True), tokens, clock=clock)
    with pytest.raises(DeliveryFailed):
        service.request_otp(PHONE)
    assert store.load(PHONE).rate_limit.send_attempts == 1


class RacingUserRepository(SqlUserRepository):
    """A parallel verify for the same phone creates the identity between our lookup and insert."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.raced = False

    def create_user(self, phone, email, display_name):
        if not self.raced:
            self.raced = True
            super().create_user(phone, email, "parallel request")
        return super().create_user(phone, email, display_name)


def test_concurrent_identity_creation_signs_in_existing(store, session_factory, sms, tokens, clock):
    users = RacingUserRepository(session_factory)
    service = OTPService(store, users, sms, tokens, clock=clock, code_generator=lambda: FIXED_CODE)

    service.request_otp(PHONE)
    result = service.verify_otp(PHONE, FIXED_CODE)

    assert result.is_new_user is False
    assert result.user_id == users.find_by_phone_or_email(PHONE, derived_email(PHONE)).id


def test_existing_identity_found_without_plus_prefix(otp_service, users):
    existing = users.create_user("919876543210", "ramesh@example.com", "Ramesh")

    otp_service.request_otp(PHONE)
    result = otp_service.verify_otp(PHONE, FIXED_CODE)

    assert result.user_id == existing.id
    assert result.is_new_user is False


def test_audit_log_hashes_phone_and_never_logs_code(otp_service, caplog):
    caplog.set_level(logging.INFO)
    otp_service.request_otp(PHONE)
    otp_service.verify_otp(PHONE, FIXED_CODE)

    assert hash_phone_number(PHONE) in caplog.text
    assert PHONE not in caplog.text
    assert f"code is: {FIXED_CODE}" not in caplog.text
