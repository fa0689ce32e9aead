"""Unit tests for auth/codes.py -- one-time code generation and checks.

Covers:
- Generated codes are 6-digit strings in [100000, 999999]
- Fingerprints are deterministic per secret and differ across secrets
- matches() tolerates malformed stored values
- Expiry is strict: exactly at the window is still valid
- check() ordering: ABSENT, then EXPIRED, then MATCH / MISMATCH
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.codes import CodeCheck, CodePurpose, OneTimeCodes
from core.config import Settings

_T0 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def codes(settings: Settings) -> OneTimeCodes:
    return OneTimeCodes(settings)


class TestGeneration:
    def test_codes_are_six_digits_in_range(self, codes: OneTimeCodes) -> None:
        for _ in range(200):
            code = codes.generate()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999

    def test_codes_vary(self, codes: OneTimeCodes) -> None:
        assert len({codes.generate() for _ in range(50)}) > 1


class TestFingerprint:
    def test_deterministic(self, codes: OneTimeCodes) -> None:
        assert codes.fingerprint("123456") == codes.fingerprint("123456")

    def test_is_hex_sha256(self, codes: OneTimeCodes) -> None:
        digest = codes.fingerprint("123456")
        assert len(digest) == 64
        int(digest, 16)

    def test_not_the_code_itself(self, codes: OneTimeCodes) -> None:
        assert "123456" not in codes.fingerprint("123456")

    def test_depends_on_secret(self, codes: OneTimeCodes, settings: Settings) -> None:
        other = OneTimeCodes(Settings(token_secret=settings.token_secret, code_secret="q" * 40))
        assert codes.fingerprint("123456") != other.fingerprint("123456")


class TestMatches:
    def test_correct_code(self, codes: OneTimeCodes) -> None:
        assert codes.matches("123456", codes.fingerprint("123456"))

    def test_wrong_code(self, codes: OneTimeCodes) -> None:
        assert not codes.matches("654321", codes.fingerprint("123456"))

    @pytest.mark.parametrize("stored", ["", "zz", "abc", "00ff"])
    def test_malformed_stored_value(self, codes: OneTimeCodes, stored: str) -> None:
        assert codes.matches("123456", stored) is False


class TestExpiry:
    def test_exactly_at_window_is_valid(self) -> None:
        assert not OneTimeCodes.is_expired(_T0, CodePurpose.VERIFICATION, _T0 + timedelta(minutes=10))

    def test_past_window_is_expired(self) -> None:
        assert OneTimeCodes.is_expired(_T0, CodePurpose.VERIFICATION, _T0 + timedelta(minutes=10, seconds=1))

    def test_reset_window_is_two_minutes(self) -> None:
        assert CodePurpose.PASSWORD_RESET.window == timedelta(minutes=2)
        assert OneTimeCodes.is_expired(_T0, CodePurpose.PASSWORD_RESET, _T0 + timedelta(minutes=3))
        assert not OneTimeCodes.is_expired(_T0, CodePurpose.PASSWORD_RESET, _T0 + timedelta(minutes=1))


class TestCheck:
    def test_match(self, codes: OneTimeCodes) -> None:
        stored = codes.fingerprint("123456")
        result = codes.check("123456", stored, _T0, CodePurpose.VERIFICATION, _T0 + timedelta(minutes=1))
        assert result is CodeCheck.MATCH

    def test_mismatch(self, codes: OneTimeCodes) -> None:
        stored = codes.fingerprint("123456")
        result = codes.check("111111", stored, _T0, CodePurpose.VERIFICATION, _T0 + timedelta(minutes=1))
        assert result is CodeCheck.MISMATCH

    def test_correct_but_expired_reports_expired(self, codes: OneTimeCodes) -> None:
        stored = codes.fingerprint("123456")
        result = codes.check("123456", stored, _T0, CodePurpose.VERIFICATION, _T0 + timedelta(minutes=11))
        assert result is CodeCheck.EXPIRED

    def test_absent_when_no_hash(self, codes: OneTimeCodes) -> None:
        assert codes.check("123456", None, _T0, CodePurpose.VERIFICATION, _T0) is CodeCheck.ABSENT

    def test_absent_when_no_timestamp(self, codes: OneTimeCodes) -> None:
        stored = codes.fingerprint("123456")
        assert codes.check("123456", stored, None, CodePurpose.VERIFICATION, _T0) is CodeCheck.ABSENT
