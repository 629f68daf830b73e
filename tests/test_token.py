"""
token.py Token 解析单元测试
"""
from twitch_service.token import (
    TOKEN_ENV_VAR,
    TokenResolution,
    has_oauth_prefix,
    normalize_token,
    resolve_twitch_token,
)


def _cfg(base: dict | None = None, accounts: dict | None = None) -> dict:
    section = dict(base or {})
    if accounts is not None:
        section["accounts"] = accounts
    return {"channels": {"twitch": section}}


class TestNormalizeToken:
    """测试 normalize_token"""

    def test_strip_prefix_once(self):
        assert normalize_token("oauth:abc") == "abc"

    def test_only_leading_prefix_removed(self):
        """内部重复出现的 oauth: 不受影响"""
        assert normalize_token("oauth:oauth:abc") == "oauth:abc"
        assert normalize_token("abcoauth:def") == "abcoauth:def"

    def test_idempotent_on_normalized_token(self):
        token = normalize_token("  oauth:xyz  ")
        assert token == "xyz"
        assert normalize_token(token) == token

    def test_prefix_is_case_sensitive(self):
        assert normalize_token("OAUTH:abc") == "OAUTH:abc"

    def test_trim_before_prefix_check(self):
        assert normalize_token("   oauth:abc\n") == "abc"

    def test_empty(self):
        assert normalize_token(None) == ""
        assert normalize_token("   ") == ""

    def test_has_oauth_prefix(self):
        assert has_oauth_prefix(" oauth:abc")
        assert not has_oauth_prefix("abc")
        assert not has_oauth_prefix(None)


class TestResolveTwitchToken:
    """测试 resolve_twitch_token 的优先级"""

    def test_account_level_wins(self):
        cfg = _cfg(
            base={"accessToken": "base-token"},
            accounts={"default": {"accessToken": "oauth:account-token"}},
        )
        result = resolve_twitch_token(cfg, "default", env={TOKEN_ENV_VAR: "env-token"})
        assert result == TokenResolution(token="account-token", source="config")

    def test_token_alias_field(self):
        cfg = _cfg(accounts={"main": {"token": "alias-token"}})
        assert resolve_twitch_token(cfg, "main", env={}).token == "alias-token"

    def test_base_level_fallback(self):
        cfg = _cfg(base={"accessToken": "base-token"}, accounts={"main": {"username": "bot"}})
        result = resolve_twitch_token(cfg, "main", env={})
        assert result.token == "base-token"
        assert result.source == "config"

    def test_env_fallback_for_default_account(self):
        cfg = _cfg(accounts={"default": {"username": "bot"}})
        result = resolve_twitch_token(cfg, "default", env={TOKEN_ENV_VAR: "oauth:env-token"})
        assert result == TokenResolution(token="env-token", source="env")

    def test_account_id_defaults_to_default(self):
        result = resolve_twitch_token({}, None, env={TOKEN_ENV_VAR: "env-token"})
        assert result.source == "env"

    def test_env_not_used_for_other_accounts(self):
        cfg = _cfg(accounts={"second": {"username": "bot2"}})
        result = resolve_twitch_token(cfg, "second", env={TOKEN_ENV_VAR: "env-token"})
        assert result == TokenResolution(token=None, source="none")

    def test_blank_config_value_falls_through(self):
        cfg = _cfg(accounts={"default": {"accessToken": "   "}})
        result = resolve_twitch_token(cfg, "default", env={TOKEN_ENV_VAR: "env-token"})
        assert result.source == "env"

    def test_nothing_found(self):
        assert resolve_twitch_token({}, "default", env={}) == TokenResolution(token=None, source="none")
