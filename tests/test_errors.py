"""
Tests for the error taxonomy and Sentry event filtering.
"""

import pytest

from career_tracker.core.errors import DEFAULT_MESSAGES, ERROR_STATUS, AppError, ErrorKind
from career_tracker.integrations.sentry import filter_event


class TestErrorTable:
    def test_every_kind_has_a_status(self):
        assert set(ERROR_STATUS) == set(ErrorKind)

    @pytest.mark.parametrize(
        "kind,status",
        [
            (ErrorKind.INVALID_CREDENTIALS, 401),
            (ErrorKind.ACCOUNT_DEACTIVATED, 403),
            (ErrorKind.EMAIL_NOT_VERIFIED, 403),
            (ErrorKind.AI_QUOTA_EXCEEDED, 403),
            (ErrorKind.SESSION_REUSE_DETECTED, 401),
            (ErrorKind.OAUTH_STATE_MISMATCH, 400),
            (ErrorKind.DUPLICATE_EMAIL, 409),
            (ErrorKind.PRO_REQUEST_COOLDOWN, 409),
        ],
    )
    def test_statuses(self, kind, status):
        assert AppError(kind).status_code == status

    def test_code_is_enum_value(self):
        assert AppError(ErrorKind.AI_QUOTA_EXCEEDED).code == "AI_QUOTA_EXCEEDED"

    def test_default_and_custom_messages(self):
        assert AppError(ErrorKind.EMAIL_NOT_VERIFIED).message == DEFAULT_MESSAGES[ErrorKind.EMAIL_NOT_VERIFIED]
        assert AppError(ErrorKind.OAUTH_MISSING_CODE).message == "Oauth missing code"
        assert AppError(ErrorKind.NOT_FOUND, "User not found").message == "User not found"

    def test_status_override_keeps_code(self):
        error = AppError(ErrorKind.TOKEN_INVALID, status_override=400)
        assert error.status_code == 400
        assert error.code == "TOKEN_INVALID"

    def test_response_body(self):
        assert AppError(ErrorKind.RATE_LIMITED).to_response() == {
            "message": "Too many requests",
            "code": "RATE_LIMITED",
        }
        body = AppError(ErrorKind.AI_QUOTA_EXCEEDED, detail={"used": 5, "cap": 5}).to_response()
        assert body["detail"] == {"used": 5, "cap": 5}


class TestSentryFilter:
    def _hint(self, error):
        return {"exc_info": (type(error), error, None)}

    def test_client_errors_dropped(self):
        assert filter_event({}, self._hint(AppError(ErrorKind.UNAUTHORIZED))) is None

    def test_server_errors_kept(self):
        event = {"message": "boom"}
        assert filter_event(event, self._hint(RuntimeError("boom"))) is event
        assert filter_event(event, self._hint(AppError(ErrorKind.OAUTH_NOT_CONFIGURED))) is event

    def test_credentials_scrubbed(self):
        event = {
            "request": {
                "headers": {
                    "Authorization": "Bearer abc",
                    "Cookie": "career_tracker_refresh=xyz",
                    "X-Admin-Api-Key": "secret",
                    "User-Agent": "pytest",
                }
            }
        }
        headers = filter_event(event, {})["request"]["headers"]

        assert headers["Authorization"] == "[Filtered]"
        assert headers["Cookie"] == "[Filtered]"
        assert headers["X-Admin-Api-Key"] == "[Filtered]"
        assert headers["User-Agent"] == "pytest"
