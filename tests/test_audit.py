"""Tests for the governance log."""

import json

from adaptgov.governance import ChangeSource, GovernanceLog
from adaptgov.parameters import MaxTasksDelta, SessionBufferDelta, StrictnessDelta

USER = "user-1"


class TestGovernanceLog:
    """Tests for GovernanceLog."""

    def test_integrity_of_untouched_log(self):
        log = GovernanceLog()
        log.log_adaptation(USER, [MaxTasksDelta(5, 6)], "User needs more flexibility")
        log.log_adaptation(USER, [StrictnessDelta(0.6, 0.5)], "User needs more flexibility")

        intact, message = log.verify_integrity()

        assert intact is True
        assert message == "Integrity verified"

    def test_entries_are_chained(self):
        log = GovernanceLog()
        first = log.log_adaptation(USER, [MaxTasksDelta(5, 6)], "first")
        second = log.log_adaptation(USER, [MaxTasksDelta(6, 7)], "second")

        assert first.prev_hash == "genesis"
        assert second.prev_hash != first.prev_hash

    def test_tampering_is_detected(self):
        log = GovernanceLog()
        log.log_adaptation(USER, [MaxTasksDelta(5, 6)], "first")
        entry = log.log_adaptation(USER, [MaxTasksDelta(6, 7)], "second")

        entry.reason = "nothing to see here"

        intact, message = log.verify_integrity()
        assert intact is False
        assert entry.id in message

    def test_integrity_survives_eviction(self):
        log = GovernanceLog(max_entries=3)
        for i in range(5):
            log.log_adaptation(USER, [SessionBufferDelta(10.0 + i, 11.0 + i)], f"change {i}")

        assert len(log.get_logs()) == 3
        assert log.verify_integrity()[0] is True

    def test_user_logs(self):
        log = GovernanceLog()
        log.log_adaptation(USER, [MaxTasksDelta(5, 6)], "mine")
        log.log_adaptation("someone-else", [MaxTasksDelta(5, 4)], "theirs")

        assert [e.reason for e in log.get_user_logs(USER)] == ["mine"]

    def test_preferences_are_ceilings(self):
        log = GovernanceLog()
        assert log.validate_against_user_preferences(USER, [MaxTasksDelta(5, 7)]) is True

        log.set_user_preferences(USER, {"max_tasks": 6, "coach_enabled": True})

        assert log.validate_against_user_preferences(USER, [MaxTasksDelta(5, 6)]) is True
        assert log.validate_against_user_preferences(USER, [MaxTasksDelta(6, 7)]) is False
        assert log.get_user_preferences(USER).preferences["max_tasks"] == 6

    def test_transparency(self):
        log = GovernanceLog()
        clear = log.log_adaptation(USER, [MaxTasksDelta(5, 6)], "User needs more flexibility")
        opaque = log.log_adaptation(USER, [MaxTasksDelta(6, 7)], "")

        assert GovernanceLog.ensure_transparency(clear) is True
        assert GovernanceLog.ensure_transparency(opaque) is False

    def test_self_check(self):
        log = GovernanceLog()
        log.log_adaptation(USER, [MaxTasksDelta(5, 6)], "User needs more flexibility", ChangeSource.ADAPTATION)
        assert log.self_check()["passed"] is True

        opaque = log.log_adaptation(USER, [MaxTasksDelta(6, 7)], "")
        report = log.self_check()

        assert report["passed"] is False
        assert report["entries"] == 2
        assert report["opaque_entries"] == [opaque.id]

    def test_export_json(self):
        log = GovernanceLog()
        entry = log.log_adaptation(USER, [MaxTasksDelta(5, 6)], "first", ChangeSource.RESET)

        exported = json.loads(log.export_json())

        assert exported[0]["id"] == entry.id
        assert exported[0]["source"] == "RESET"
        assert exported[0]["hash"] == entry.hash
