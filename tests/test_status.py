"""
status.py 状态诊断单元测试
"""
import pytest

from twitch_service.config import get_account_config
from twitch_service.status import (
    LONG_UPTIME_DAYS,
    StatusSnapshot,
    StatusStore,
    build_account_snapshot,
    build_channel_summary,
    collect_status_issues,
)

DAY_MS = 24 * 60 * 60 * 1000
NOW = 1_700_000_000_000


def _cfg(**account_fields) -> dict:
    account = {"username": "bot", "accessToken": "tok", "clientId": "cid"}
    account.update(account_fields)
    return {"channels": {"twitch": {"accounts": {"default": account}}}}


def _running(**fields) -> StatusSnapshot:
    data = dict(account_id="default", configured=True, running=True, last_start_at=NOW - 1000)
    data.update(fields)
    return StatusSnapshot(**data)


def _kinds(issues):
    return [(issue.kind, issue.message) for issue in issues]


class TestCollectStatusIssues:
    """测试 collect_status_issues"""

    def test_healthy_account_has_no_issues(self):
        assert collect_status_issues([_running()], lambda: _cfg(), now=NOW) == []

    def test_not_configured_short_circuits(self):
        snapshot = StatusSnapshot(account_id="default", configured=False, last_error="boom")
        issues = collect_status_issues([snapshot], lambda: _cfg(accessToken="oauth:x"), now=NOW)
        assert len(issues) == 1
        assert issues[0].kind == "config"
        assert issues[0].account_id == "default"
        assert issues[0].channel == "twitch"

    def test_disabled_short_circuits(self):
        snapshot = _running(enabled=False, last_error="boom")
        issues = collect_status_issues([snapshot], lambda: _cfg(), now=NOW)
        assert len(issues) == 1
        assert issues[0].kind == "config"

    def test_oauth_prefix_is_informational(self):
        issues = collect_status_issues([_running()], lambda: _cfg(accessToken="oauth:tok"), now=NOW)
        assert len(issues) == 1
        assert "oauth:" in issues[0].message

    def test_oauth_prefix_checked_on_account_token(self):
        cfg = _cfg(accessToken=None, token="plain")
        cfg["channels"]["twitch"]["accessToken"] = "oauth:base"
        assert collect_status_issues([_running()], lambda: cfg, now=NOW) == []

    def test_client_secret_without_refresh_token(self):
        issues = collect_status_issues([_running()], lambda: _cfg(clientSecret="s"), now=NOW)
        assert [i.kind for i in issues] == ["config"]
        assert "refreshToken" in issues[0].message

    def test_client_secret_with_refresh_token_ok(self):
        cfg = _cfg(clientSecret="s", refreshToken="r")
        assert collect_status_issues([_running()], lambda: cfg, now=NOW) == []

    def test_empty_allow_from(self):
        issues = collect_status_issues([_running()], lambda: _cfg(allowFrom=[]), now=NOW)
        assert "allowFrom" in issues[0].message

    def test_all_roles_with_allow_from(self):
        issues = collect_status_issues([_running()], lambda: _cfg(allowedRoles=["all"], allowFrom=["1"]), now=NOW)
        assert [i.kind for i in issues] == ["intent"]

    def test_config_checks_skipped_without_get_cfg(self):
        assert collect_status_issues([_running()], now=NOW) == []

    def test_last_error(self):
        issues = collect_status_issues([_running(last_error="auth failed")], now=NOW)
        assert _kinds(issues) == [("runtime", "最近一次错误: auth failed")]

    def test_never_connected(self):
        snapshot = StatusSnapshot(account_id="default", configured=True)
        issues = collect_status_issues([snapshot], now=NOW)
        assert [i.kind for i in issues] == ["runtime"]

    def test_inbound_activity_counts_as_connected(self):
        snapshot = StatusSnapshot(account_id="default", configured=True, last_inbound_at=NOW)
        assert collect_status_issues([snapshot], now=NOW) == []

    @pytest.mark.parametrize("days,expected", [(LONG_UPTIME_DAYS - 1, 0), (LONG_UPTIME_DAYS + 1, 1)])
    def test_long_uptime(self, days, expected):
        snapshot = _running(last_start_at=NOW - days * DAY_MS)
        issues = collect_status_issues([snapshot], now=NOW)
        assert len(issues) == expected
        if expected:
            assert str(days) in issues[0].message

    def test_config_errors_are_ignored(self):
        def broken():
            raise RuntimeError("config unavailable")

        assert collect_status_issues([_running()], broken, now=NOW) == []

    def test_multiple_accounts(self):
        snapshots = [
            StatusSnapshot(account_id="a", configured=False),
            StatusSnapshot(account_id="b", configured=False),
        ]
        issues = collect_status_issues(snapshots, now=NOW)
        assert [i.account_id for i in issues] == ["a", "b"]


class TestStatusStore:
    def test_patch_overwrites_fields(self):
        store = StatusStore()
        store.patch("default", running=True, last_start_at=1)
        store.patch("default", running=False)

        snapshot = store.get("default")
        assert snapshot.running is False
        assert snapshot.last_start_at == 1
        assert [s.account_id for s in store.snapshots()] == ["default"]

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            StatusStore().patch("default", bogus=1)


class TestSnapshots:
    def test_build_account_snapshot(self):
        account = get_account_config(_cfg())
        runtime = StatusSnapshot(account_id="default", running=True, last_start_at=5, last_error="x")
        snapshot = build_account_snapshot("default", account, runtime=runtime, probe={"ok": True})

        assert snapshot.configured is True
        assert snapshot.enabled is True
        assert snapshot.running is True
        assert snapshot.probe == {"ok": True}

        summary = build_channel_summary(snapshot)
        assert summary == {
            "configured": True,
            "running": True,
            "lastStartAt": 5,
            "lastStopAt": None,
            "lastError": "x",
            "probe": {"ok": True},
            "lastProbeAt": None,
        }

    def test_snapshot_for_missing_account(self):
        snapshot = build_account_snapshot("ghost", None)
        assert snapshot.configured is False
        assert snapshot.enabled is False
        assert snapshot.to_dict()["accountId"] == "ghost"
