"""
Property-based tests for token and CSRF comparisons.

Property: any single-character mutation of a signed token, or of a
session CSRF token, is rejected.
"""

import string

from hypothesis import given, settings, strategies as st

from service_mentorly.app.security.csrf import verify_csrf_token
from service_mentorly.app.security.tokens import TokenStatus, TokenVerifier

from conftest import TEST_SECRET, make_token

BASE64URL = string.ascii_letters + string.digits + "-_"

TOKEN = make_token({"sub": "mentor-7", "role": "mentor"}, expires_in=None)
HEADER_AND_PAYLOAD_END = TOKEN.rindex(".")

verifier = TokenVerifier(TEST_SECRET)


def _replace(value: str, index: int, char: str) -> str:
    return value[:index] + char + value[index + 1:]


@settings(max_examples=100)
@given(data=st.data())
def test_mutated_token_is_never_valid(data):
    # The last signature character carries padding bits, so it is skipped.
    index = data.draw(
        st.integers(min_value=0, max_value=len(TOKEN) - 2).filter(lambda i: TOKEN[i] != "."),
        label="index",
    )
    char = data.draw(st.sampled_from(BASE64URL).filter(lambda c: c != TOKEN[index]), label="char")

    result = verifier.inspect(_replace(TOKEN, index, char))

    assert result.status is not TokenStatus.VALID


@settings(max_examples=100)
@given(token=st.text(alphabet="0123456789abcdef", min_size=64, max_size=64), data=st.data())
def test_mutated_csrf_token_is_rejected(token, data):
    index = data.draw(st.integers(min_value=0, max_value=len(token) - 1), label="index")
    char = data.draw(st.sampled_from(string.printable).filter(lambda c: c != token[index]), label="char")

    assert verify_csrf_token(token, token) is True
    assert verify_csrf_token(token, _replace(token, index, char)) is False


@settings(max_examples=50)
@given(token=st.text(alphabet="0123456789abcdef", min_size=64, max_size=64))
def test_truncated_csrf_token_is_rejected(token):
    assert verify_csrf_token(token, token[:-1]) is False
    assert verify_csrf_token(token, token + "0") is False
