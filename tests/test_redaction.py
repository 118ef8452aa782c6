import logging

from services.redaction import mask_phone, redact_dict, redact_text


def test_redact_text_masks_phone_email_and_tokens():
    text = "User amani@gigsec.co.ke phone +254712345678 token Bearer abcdef"
    redacted = redact_text(text)
    assert "amani@gigsec.co.ke" not in redacted
    assert "+254712345678" not in redacted
    assert redacted == "[REDACTED]"


def test_redact_text_masks_local_mpesa_number():
    redacted = redact_text("send to 0712345678 now")
    assert "0712345678" not in redacted
    assert "0712****78" in redacted


def test_redact_dict_masks_sensitive_keys():
    payload = {
        "email": "amani@gigsec.co.ke",
        "account_number": "+254712345678",
        "access_token": "abc",
        "otp": "123456",
        "Authorization": "Bearer sk_test_123",
        "amount": 18000,
    }
    redacted = redact_dict(payload)
    assert redacted["email"] == "a***@gigsec.co.ke"
    assert redacted["account_number"] == "+254****78"
    assert redacted["access_token"] == "[REDACTED]"
    assert redacted["otp"] == "[REDACTED]"
    assert redacted["Authorization"] == "[REDACTED]"
    assert redacted["amount"] == 18000


def test_mask_phone_short_values_untouched():
    assert mask_phone("12345") == "12345"


def test_log_line_uses_redaction_helper(caplog):
    logger = logging.getLogger("redaction-test")
    caplog.set_level(logging.INFO)
    msg = redact_text("email amani@gigsec.co.ke phone 0712345678")
    logger.info("payload=%s", msg)
    assert "amani@gigsec.co.ke" not in caplog.text
    assert "0712345678" not in caplog.text
