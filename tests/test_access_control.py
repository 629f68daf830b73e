"""
access_control.py 访问控制单元测试
"""
import pytest

from twitch_service.access_control import check_access_control, extract_mentions
from twitch_service.config import AccountConfig
from twitch_service.models import InboundMessage


def _message(text="hello", username="viewer", user_id="555", **roles) -> InboundMessage:
    return InboundMessage(username=username, message=text, channel="streamer", user_id=user_id, **roles)


def _account(**policy) -> AccountConfig:
    return AccountConfig("default", username="TestBot", token="t", client_id="c", **policy)


class TestSelfMessage:
    def test_own_message_denied(self):
        decision = check_access_control(_message(username="testbot"), _account(), "TestBot")
        assert decision.allowed is False

    def test_own_message_denied_even_in_allowlist(self):
        account = _account(allow_from=["555"])
        decision = check_access_control(_message(username="TESTBOT", user_id="555"), account, "testbot")
        assert decision.allowed is False


class TestAllowlist:
    def test_allowlist_bypasses_role_check(self):
        account = _account(allow_from=["123"], allowed_roles=["moderator"])
        decision = check_access_control(_message(user_id="123"), account, "testbot")
        assert decision.allowed is True
        assert decision.match_source == "allowlist"

    def test_allowlist_bypasses_mention(self):
        account = _account(allow_from=["123"], require_mention=True)
        assert check_access_control(_message(user_id="123"), account, "testbot").allowed

    def test_not_in_allowlist_without_roles_denied(self):
        account = _account(allow_from=["123"])
        decision = check_access_control(_message(user_id="999"), account, "testbot")
        assert decision.allowed is False
        assert "allowFrom" in decision.reason

    def test_missing_user_id_never_matches(self):
        account = _account(allow_from=["123"])
        assert not check_access_control(_message(user_id=None), account, "testbot").allowed


class TestRoles:
    def test_missing_role_denied(self):
        account = _account(allow_from=["123"], allowed_roles=["moderator"])
        decision = check_access_control(_message(user_id="999"), account, "testbot")
        assert decision.allowed is False
        assert "moderator" in decision.reason

    @pytest.mark.parametrize("role,flag", [
        ("moderator", "is_mod"),
        ("owner", "is_owner"),
        ("vip", "is_vip"),
        ("subscriber", "is_sub"),
    ])
    def test_matching_role_allowed(self, role, flag):
        account = _account(allowed_roles=[role])
        decision = check_access_control(_message(**{flag: True}), account, "testbot")
        assert decision.allowed is True
        assert decision.match_source == "role"

    def test_all_role_allows_everyone(self):
        account = _account(allowed_roles=["all"])
        assert check_access_control(_message(), account, "testbot").allowed

    def test_role_match_still_requires_mention(self):
        account = _account(allowed_roles=["vip"], require_mention=True)
        assert not check_access_control(_message(is_vip=True), account, "testbot").allowed
        assert check_access_control(_message("@testbot hi", is_vip=True), account, "testbot").allowed


class TestOpenPolicy:
    def test_open_by_default(self):
        decision = check_access_control(_message(), _account(), "testbot")
        assert decision.allowed is True
        assert decision.match_source == "open"

    def test_require_mention_without_mention(self):
        decision = check_access_control(_message("hello there"), _account(require_mention=True), "testbot")
        assert decision.allowed is False
        assert "requireMention" in decision.reason

    def test_require_mention_with_mention(self):
        account = _account(require_mention=True)
        assert check_access_control(_message("hey @TestBot what's up"), account, "testbot").allowed

    def test_mention_must_be_whole_word(self):
        account = _account(require_mention=True)
        assert not check_access_control(_message("@testbot2 hi"), account, "testbot").allowed

    def test_extract_mentions(self):
        assert extract_mentions("@Foo and @bar_1, email@x") == {"foo", "bar_1", "x"}
