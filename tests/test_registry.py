from __future__ import annotations

from tanda_relay.registry import InstanceRegistry, SqliteInstanceRegistry, open_registry


def test_register_includes_creator_and_is_idempotent():
    reg = InstanceRegistry()
    reg.register("00000001", "GA", ["GB", "GA"], created_at=10)
    entry = reg.register("00000001", "GA", ["GB"], created_at=10)
    assert entry.participants == ["GA", "GB"]
    assert len(reg) == 1
    assert "00000001" in reg


def test_add_participant_to_unknown_id_creates_bare_entry():
    reg = InstanceRegistry()
    entry = reg.add_participant("00000009", "GC")
    assert entry.creator == ""
    assert entry.participants == ["GC"]
    reg.add_participant("00000009", "GC")
    assert reg.get("00000009").participants == ["GC"]


def test_list_filters_and_orders_by_creation():
    reg = InstanceRegistry()
    reg.register("b", "GA", created_at=2)
    reg.register("a", "GB", ["GA"], created_at=1)
    reg.register("c", "GC", created_at=3)
    assert reg.list_known_ids() == ["a", "b", "c"]
    assert reg.list_known_ids(creator="GA") == ["b"]
    assert reg.list_known_ids(participant="GA") == ["a", "b"]
    assert reg.list_known_ids(creator="GB", participant="GC") == []
    assert InstanceRegistry().list_known_ids() == []


def test_open_registry_without_path_is_memory_only():
    assert type(open_registry(None)) is InstanceRegistry


def test_sqlite_registry_survives_reopen(tmp_path):
    path = tmp_path / "state" / "registry.db"
    reg = SqliteInstanceRegistry(path)
    assert reg.durable
    reg.register("00000001", "GA", created_at=5)
    reg.add_participant("00000001", "GB")
    reg.close()

    again = open_registry(path)
    assert isinstance(again, SqliteInstanceRegistry)
    assert again.get("00000001").to_dict() == {
        "instance_id": "00000001",
        "creator": "GA",
        "created_at": 5,
        "participants": ["GA", "GB"],
    }
    again.close()


def test_unusable_path_degrades_to_memory(tmp_path):
    # a directory cannot be opened as a database file
    reg = SqliteInstanceRegistry(tmp_path)
    assert not reg.durable
    reg.register("00000001", "GA")
    assert reg.list_known_ids() == ["00000001"]
    reg.close()
