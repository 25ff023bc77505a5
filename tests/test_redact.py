from voice_gateway.utils.redact import partial_redact, redact_pii, redact_string


def test_redacts_phone_numbers():
    assert redact_string("caller +1 415-555-0123 connected") == "caller [PHONE_REDACTED] connected"
    assert redact_string("call me at (415) 555-0123") == "call me at [PHONE_REDACTED]"


def test_leaves_call_ids_alone():
    assert redact_string("Call call_1718000000000_12: active") == "Call call_1718000000000_12: active"


def test_redacts_email_card_and_ssn():
    text = "jane.doe@example.com paid with 4111 1111 1111 1111, ssn 123-45-6789"
    assert redact_string(text) == "[EMAIL_REDACTED] paid with [CC_REDACTED], ssn [SSN_REDACTED]"


def test_shortens_twilio_sids():
    sid = "CA" + "0123456789abcdef" * 2
    assert redact_string(f"callSid={sid}") == f"callSid=CA01...cdef"


def test_non_strings_pass_through():
    assert redact_string("") == ""
    assert redact_string(None) is None


def test_redact_pii_nested():
    data = {
        "caller": "+14155550123",
        "apiKey": "sk-123",
        "notes": ["email bob@example.com", ("ok", 3)],
        "spa": "downtown",
    }
    assert redact_pii(data) == {
        "caller": "[REDACTED]",
        "apiKey": "[REDACTED]",
        "notes": ["email [EMAIL_REDACTED]", ("ok", 3)],
        "spa": "downtown",
    }


def test_partial_redact():
    assert partial_redact("sk-abcdefghijkl") == "sk-a*******ijkl"
    assert partial_redact("short") == "[REDACTED]"
    assert partial_redact(None) is None
