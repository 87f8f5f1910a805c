"""
JSON document storage for Group Guard Bot

One JSON file per collection under DATA_DIR. Every change rewrites the
file; an upsert that changes nothing skips the write. Reads are served
from memory after the first load. The relay map grows with every mirrored
copy, so it is kept as append-only JSON lines instead.

A load, modify and save never awaits, so one repository call cannot
interleave with another update on the event loop.
"""
import copy
import json
import logging
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from models import FilterRule, GroupPolicy, MemberState, RelayMapping, RelaySettings

log = logging.getLogger(__name__)


class JsonCollection:
    """Documents keyed by string, stored in a single JSON file"""

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self._docs: Optional[dict] = None

    def _load(self) -> dict:
        if self._docs is None:
            if self.filepath.exists():
                with open(self.filepath, "r") as f:
                    self._docs = json.load(f)
            else:
                self._docs = {}
        return self._docs

    def _save(self):
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.filepath.with_suffix(self.filepath.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(self._docs, f, indent=2, ensure_ascii=False)
        tmp.replace(self.filepath)

    def get(self, key: str) -> Optional[dict]:
        doc = self._load().get(key)
        return copy.deepcopy(doc) if doc is not None else None

    def put(self, key: str, doc: dict):
        self._load()[key] = doc
        self._save()

    def upsert(self, key: str, patch: dict, defaults: Callable[[], dict]) -> dict:
        """Merge `patch` into the document at `key`, creating it if needed."""
        docs = self._load()
        doc = docs.get(key)
        if doc is not None and all(k in doc and doc[k] == v for k, v in patch.items()):
            return copy.deepcopy(doc)
        if doc is None:
            doc = defaults()
        doc.update(patch)
        docs[key] = doc
        self._save()
        return copy.deepcopy(doc)

    def delete(self, key: str) -> bool:
        docs = self._load()
        if key not in docs:
            return False
        del docs[key]
        self._save()
        return True

    def values(self) -> Iterator[dict]:
        for doc in list(self._load().values()):
            yield copy.deepcopy(doc)

    def __len__(self) -> int:
        return len(self._load())


class GroupRepository:
    def __init__(self, collection: JsonCollection):
        self.collection = collection

    def find(self, chat_id: int) -> Optional[GroupPolicy]:
        doc = self.collection.get(str(chat_id))
        return GroupPolicy.from_dict(doc) if doc else None

    def find_or_create(self, chat_id: int, title: str = "") -> GroupPolicy:
        """Lazily create the policy the first time a group is seen"""
        group = self.find(chat_id)
        if group is None:
            group = GroupPolicy(chat_id=chat_id, title=title, original_title=title)
            self.save(group)
            log.info("Tracking new group %s (%s)", chat_id, title)
        return group

    def upsert(self, chat_id: int, patch: dict) -> GroupPolicy:
        doc = self.collection.upsert(
            str(chat_id), patch, lambda: GroupPolicy(chat_id=chat_id).to_dict()
        )
        return GroupPolicy.from_dict(doc)

    def save(self, group: GroupPolicy):
        self.collection.put(str(group.chat_id), group.to_dict())

    def all_chat_ids(self) -> List[int]:
        return [doc["chat_id"] for doc in self.collection.values()]

    def all(self) -> List[GroupPolicy]:
        return [GroupPolicy.from_dict(doc) for doc in self.collection.values()]


class MemberRepository:
    def __init__(self, collection: JsonCollection):
        self.collection = collection

    @staticmethod
    def _key(chat_id: int, user_id: int) -> str:
        return f"{chat_id}:{user_id}"

    def find(self, chat_id: int, user_id: int) -> Optional[MemberState]:
        doc = self.collection.get(self._key(chat_id, user_id))
        return MemberState.from_dict(doc) if doc else None

    def find_or_default(self, chat_id: int, user_id: int) -> MemberState:
        return self.find(chat_id, user_id) or MemberState(chat_id=chat_id, user_id=user_id)

    def upsert(self, chat_id: int, user_id: int, patch: dict) -> MemberState:
        doc = self.collection.upsert(
            self._key(chat_id, user_id),
            patch,
            lambda: MemberState(chat_id=chat_id, user_id=user_id).to_dict(),
        )
        return MemberState.from_dict(doc)

    def find_by_username(self, chat_id: int, username: str) -> Optional[MemberState]:
        wanted = username.lower().lstrip("@")
        for doc in self.collection.values():
            if doc["chat_id"] == chat_id and doc.get("username", "").lower() == wanted:
                return MemberState.from_dict(doc)
        return None

    def in_chat(self, chat_id: int) -> List[MemberState]:
        return [MemberState.from_dict(d) for d in self.collection.values() if d["chat_id"] == chat_id]

    def count_in(self, chat_ids) -> int:
        wanted = set(chat_ids)
        return sum(1 for d in self.collection.values() if d["chat_id"] in wanted)


class RelayMapRepository:
    """Append-only JSON lines, indexed in memory by relay chat and message"""

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self._index: Optional[dict] = None
        self._torn_tail = False

    @staticmethod
    def _key(relay_chat_id: int, relay_message_id: int) -> str:
        return f"{relay_chat_id}:{relay_message_id}"

    def _load(self) -> dict:
        if self._index is None:
            self._index = {}
            if self.filepath.exists():
                with open(self.filepath, "r") as f:
                    for raw in f:
                        self._torn_tail = not raw.endswith("\n")
                        line = raw.strip()
                        if not line:
                            continue
                        try:
                            doc = json.loads(line)
                        except json.JSONDecodeError:
                            # A crash mid-append leaves a partial last line
                            log.warning("Skipping unreadable relay map line in %s", self.filepath)
                            continue
                        self._index[self._key(doc["relay_chat_id"], doc["relay_message_id"])] = doc
        return self._index

    def record(self, mapping: RelayMapping):
        index = self._load()
        doc = mapping.to_dict()
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(self.filepath, "a") as f:
            if self._torn_tail:
                f.write("\n")
                self._torn_tail = False
            f.write(json.dumps(doc, ensure_ascii=False) + "\n")
        index[self._key(mapping.relay_chat_id, mapping.relay_message_id)] = doc

    def find(self, relay_chat_id: int, relay_message_id: int) -> Optional[RelayMapping]:
        doc = self._load().get(self._key(relay_chat_id, relay_message_id))
        return RelayMapping.from_dict(doc) if doc else None

    def __len__(self) -> int:
        return len(self._load())


class RelaySettingsRepository:
    KEY = "global"

    def __init__(self, collection: JsonCollection):
        self.collection = collection

    def get(self) -> RelaySettings:
        doc = self.collection.get(self.KEY)
        if doc is None:
            settings = RelaySettings()
            self.collection.put(self.KEY, settings.to_dict())
            return settings
        return RelaySettings.from_dict(doc)

    def update(self, **patch) -> RelaySettings:
        doc = self.collection.upsert(self.KEY, patch, lambda: RelaySettings().to_dict())
        return RelaySettings.from_dict(doc)


class FilterRepository:
    def __init__(self, collection: JsonCollection):
        self.collection = collection

    @staticmethod
    def _key(chat_id: int, trigger: str) -> str:
        return f"{chat_id}:{trigger}"

    def find(self, chat_id: int, trigger: str) -> Optional[FilterRule]:
        doc = self.collection.get(self._key(chat_id, trigger.lower()))
        return FilterRule.from_dict(doc) if doc else None

    def save(self, chat_id: int, trigger: str, response: str) -> FilterRule:
        rule = FilterRule(chat_id=chat_id, trigger=trigger.lower(), response=response)
        self.collection.put(self._key(chat_id, rule.trigger), rule.to_dict())
        return rule

    def delete(self, chat_id: int, trigger: str) -> bool:
        return self.collection.delete(self._key(chat_id, trigger.lower()))

    def in_chat(self, chat_id: int) -> List[FilterRule]:
        rules = [FilterRule.from_dict(d) for d in self.collection.values() if d["chat_id"] == chat_id]
        return sorted(rules, key=lambda r: r.trigger)

    def count_in(self, chat_ids) -> int:
        wanted = set(chat_ids)
        return sum(1 for d in self.collection.values() if d["chat_id"] in wanted)


class Storage:
    """All collections under one data directory"""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        # Fail fast: an unwritable data dir is a startup error
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.groups = GroupRepository(JsonCollection(self.data_dir / "groups.json"))
        self.members = MemberRepository(JsonCollection(self.data_dir / "members.json"))
        self.relay_map = RelayMapRepository(self.data_dir / "relay_map.jsonl")
        self.relay_settings = RelaySettingsRepository(
            JsonCollection(self.data_dir / "relay_settings.json")
        )
        self.filters = FilterRepository(JsonCollection(self.data_dir / "filters.json"))
        self.modlog_file = self.data_dir / "modlog.jsonl"
