"""
Tests for ChangeRecord rendering.
"""

from envsync.models.change import ChangeRecord, HookResult


class TestDescribe:

    def test_deploy(self):
        record = ChangeRecord(action="deploy", ref="feature/x", from_hash="0000000", to_hash="abc")
        assert record.describe() == "deploy feature/x 0000000..abc"
        assert str(record) == record.describe()

    def test_update_with_link_and_hook(self):
        record = ChangeRecord(
            action="update", ref="prod", from_hash="a", to_hash="b",
            linked=True, hook=HookResult(command="make", ok=True, returncode=0),
        )
        assert record.describe() == "update prod a..b, linked environment.conf, after checkout ok"

    def test_removed(self):
        record = ChangeRecord.removed("old", "gone from repository", ref="old", from_hash="h")
        assert record.describe() == "removed old (gone from repository)"
        assert record.ok

    def test_delete(self):
        record = ChangeRecord(action="delete", ref="prod", from_hash="abcd1234", to_hash="0000")
        assert record.describe() == "deleted prod (was abcd1234)"

    def test_failed(self):
        record = ChangeRecord.failed("boom", ref="prod", from_hash="a", to_hash="b")
        assert record.describe() == "failed prod a..b: boom"
        assert not record.ok

    def test_audit_drops_empty_fields(self):
        audit = ChangeRecord(action="in_sync", ref="prod", to_hash="h").to_audit()
        assert "reason" not in audit
        assert audit["action"] == "in_sync"
        assert "ts_iso" in audit
