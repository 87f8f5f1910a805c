"""
Tests for storage.py and models.py
"""

import json

from models import GroupPolicy, MemberState, RelayMapping
from storage import Storage

from conftest import CHAT_ID, USER_ID


class TestGroups:

    def test_find_or_create_uses_defaults(self, storage):
        group = storage.groups.find_or_create(CHAT_ID, "Test Group")
        assert group.anti_link_enabled is True
        assert group.service_delete_enabled is False
        assert group.locks["photos"] is False
        assert group.original_title == "Test Group"

    def test_find_or_create_is_idempotent(self, storage):
        storage.groups.find_or_create(CHAT_ID, "First")
        assert storage.groups.find_or_create(CHAT_ID, "Second").title == "First"

    def test_upsert_merges_patch(self, storage):
        storage.groups.find_or_create(CHAT_ID, "Test Group")
        updated = storage.groups.upsert(CHAT_ID, {"anti_spam_enabled": False})
        assert updated.anti_spam_enabled is False
        assert updated.title == "Test Group"

    def test_upsert_creates_missing(self, storage):
        created = storage.groups.upsert(-5, {"captcha_enabled": False})
        assert created == GroupPolicy(chat_id=-5, captcha_enabled=False)

    def test_reads_are_copies(self, storage):
        group = storage.groups.find_or_create(CHAT_ID)
        group.bad_words.append("leak")
        group.locks["photos"] = True
        fresh = storage.groups.find(CHAT_ID)
        assert fresh.bad_words == []
        assert fresh.locks["photos"] is False

    def test_all_chat_ids(self, storage):
        storage.groups.find_or_create(-1)
        storage.groups.find_or_create(-2)
        assert storage.groups.all_chat_ids() == [-1, -2]

    def test_unknown_keys_are_ignored(self, storage):
        storage.groups.collection.put("-9", {"chat_id": -9, "legacy_field": 1})
        assert storage.groups.find(-9) == GroupPolicy(chat_id=-9)


class TestMembers:

    def test_find_or_default_does_not_persist(self, storage):
        state = storage.members.find_or_default(CHAT_ID, USER_ID)
        assert state == MemberState(chat_id=CHAT_ID, user_id=USER_ID)
        assert storage.members.find(CHAT_ID, USER_ID) is None

    def test_upsert_keeps_other_fields(self, storage):
        storage.members.upsert(CHAT_ID, USER_ID, {"warnings": 2})
        state = storage.members.upsert(CHAT_ID, USER_ID, {"username": "alice"})
        assert (state.warnings, state.username) == (2, "alice")

    def test_find_by_username_is_case_insensitive(self, storage):
        storage.members.upsert(CHAT_ID, USER_ID, {"username": "Alice"})
        assert storage.members.find_by_username(CHAT_ID, "@alice").user_id == USER_ID
        assert storage.members.find_by_username(-1, "alice") is None

    def test_unchanged_upsert_skips_write(self, storage, monkeypatch):
        storage.members.upsert(CHAT_ID, USER_ID, {"username": "alice"})
        saves = []
        monkeypatch.setattr(storage.members.collection, "_save", lambda: saves.append(1))

        storage.members.upsert(CHAT_ID, USER_ID, {"username": "alice"})
        assert saves == []

        storage.members.upsert(CHAT_ID, USER_ID, {"username": "alicia"})
        assert saves == [1]


class TestRelayAndFilters:

    def test_relay_settings_default(self, storage):
        settings = storage.relay_settings.get()
        assert (settings.enabled, settings.mode, settings.channel_id) == (False, "private", None)

    def test_relay_map(self, storage):
        storage.relay_map.record(RelayMapping(1, 2, CHAT_ID, 3))
        assert storage.relay_map.find(1, 2).original_message_id == 3
        assert storage.relay_map.find(1, 99) is None

    def test_filters_sorted_and_counted(self, storage):
        storage.filters.save(CHAT_ID, "Zeta", "z")
        storage.filters.save(CHAT_ID, "alpha", "a")
        storage.filters.save(-7, "other", "o")
        assert [r.trigger for r in storage.filters.in_chat(CHAT_ID)] == ["alpha", "zeta"]
        assert storage.filters.count_in([CHAT_ID]) == 2


class TestRelayMap:

    def test_appends_one_line_per_record(self, tmp_path):
        storage = Storage(tmp_path)
        storage.relay_map.record(RelayMapping(1, 2, CHAT_ID, 3))
        storage.relay_map.record(RelayMapping(1, 4, CHAT_ID, 5))

        lines = (tmp_path / "relay_map.jsonl").read_text().splitlines()
        assert [json.loads(line)["relay_message_id"] for line in lines] == [2, 4]

    def test_index_survives_restart(self, tmp_path):
        Storage(tmp_path).relay_map.record(RelayMapping(1, 2, CHAT_ID, 3))
        assert Storage(tmp_path).relay_map.find(1, 2) == RelayMapping(1, 2, CHAT_ID, 3)

    def test_torn_last_line_is_skipped(self, tmp_path):
        Storage(tmp_path).relay_map.record(RelayMapping(1, 2, CHAT_ID, 3))
        with open(tmp_path / "relay_map.jsonl", "a") as f:
            f.write('{"relay_chat_id": 1, "relay_mess')

        reopened = Storage(tmp_path)
        assert len(reopened.relay_map) == 1
        reopened.relay_map.record(RelayMapping(1, 6, CHAT_ID, 7))

        again = Storage(tmp_path)
        assert again.relay_map.find(1, 2).original_message_id == 3
        assert again.relay_map.find(1, 6).original_message_id == 7


class TestPersistence:

    def test_survives_restart(self, tmp_path):
        first = Storage(tmp_path)
        first.groups.upsert(CHAT_ID, {"bad_words": ["spam"]})
        first.relay_settings.update(enabled=True)

        second = Storage(tmp_path)
        assert second.groups.find(CHAT_ID).bad_words == ["spam"]
        assert second.relay_settings.get().enabled is True

    def test_files_are_plain_json(self, tmp_path):
        storage = Storage(tmp_path)
        storage.members.upsert(CHAT_ID, USER_ID, {"warnings": 1})
        data = json.loads((tmp_path / "members.json").read_text())
        assert data[f"{CHAT_ID}:{USER_ID}"]["warnings"] == 1
