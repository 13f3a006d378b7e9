import copy
import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from models.bookmark import Collection, Group, Item
from services import hierarchy_service, transfer_service
from services.bookmark_errors import DanglingReferenceError, MalformedInputError, StoreFailureError


def _seed(db_session: Session, owner_id: uuid.UUID) -> None:
    reading = hierarchy_service.create_collection(db_session, user_id=owner_id, name="Reading", color="#112233")
    work = hierarchy_service.create_collection(db_session, user_id=owner_id, name="Work")
    later = hierarchy_service.create_group(db_session, collection_id=reading.id, user_id=owner_id, name="Later")
    papers = hierarchy_service.create_group(db_session, collection_id=reading.id, user_id=owner_id, name="Papers")
    tickets = hierarchy_service.create_group(db_session, collection_id=work.id, user_id=owner_id, name="Tickets")
    hierarchy_service.create_item(db_session, group_id=later.id, user_id=owner_id, url="https://a.test/1")
    hierarchy_service.create_item(
        db_session,
        group_id=later.id,
        user_id=owner_id,
        url="https://a.test/2",
        title="Second",
        description="notes",
        favicon="https://a.test/favicon.ico",
    )
    hierarchy_service.create_item(db_session, group_id=papers.id, user_id=owner_id, url="https://arxiv.test/abs/1")
    hierarchy_service.create_item(db_session, group_id=tickets.id, user_id=owner_id, url="https://issues.test/42")


def _shape(document: dict) -> dict:
    """Document with ids replaced by their parent-relative shape, for structural comparison."""
    collection_names = {entry["id"]: entry["name"] for entry in document["collections"]}
    group_keys = {
        entry["id"]: (collection_names[entry["collection_id"]], entry["name"]) for entry in document["groups"]
    }
    return {
        "collections": [(entry["name"], entry["color"], entry["position"]) for entry in document["collections"]],
        "groups": [
            (collection_names[entry["collection_id"]], entry["name"], entry["color"], entry["position"])
            for entry in document["groups"]
        ],
        "items": [
            (
                group_keys[entry["group_id"]],
                entry["title"],
                entry["url"],
                entry["description"],
                entry["favicon"],
                entry["position"],
            )
            for entry in document["items"]
        ],
    }


def test_export_lists_everything_in_parent_order(db_session: Session, owner_id: uuid.UUID) -> None:
    _seed(db_session, owner_id)

    document = transfer_service.export_hierarchy(db_session, user_id=owner_id)

    assert set(document) == {"collections", "groups", "items"}
    assert [entry["name"] for entry in document["collections"]] == ["Reading", "Work"]
    assert [entry["name"] for entry in document["groups"]] == ["Later", "Papers", "Tickets"]
    assert [entry["url"] for entry in document["items"]] == [
        "https://a.test/1",
        "https://a.test/2",
        "https://arxiv.test/abs/1",
        "https://issues.test/42",
    ]
    assert all(isinstance(entry["id"], str) for entry in document["items"])


def test_export_is_scoped_to_owner(db_session: Session, owner_id: uuid.UUID, other_user_id: uuid.UUID) -> None:
    _seed(db_session, owner_id)
    document = transfer_service.export_hierarchy(db_session, user_id=other_user_id)
    assert document == {"collections": [], "groups": [], "items": []}


def test_export_import_export_preserves_structure(db_session: Session, owner_id: uuid.UUID) -> None:
    _seed(db_session, owner_id)
    before = transfer_service.export_hierarchy(db_session, user_id=owner_id)

    counts = transfer_service.import_hierarchy(db_session, user_id=owner_id, document=copy.deepcopy(before))
    after = transfer_service.export_hierarchy(db_session, user_id=owner_id)

    assert counts.as_dict() == {"collections": 2, "groups": 3, "items": 4}
    assert _shape(after) == _shape(before)
    old_ids = {entry["id"] for entry in before["collections"]}
    assert not old_ids & {entry["id"] for entry in after["collections"]}


def test_import_replaces_existing_data(db_session: Session, owner_id: uuid.UUID) -> None:
    _seed(db_session, owner_id)
    document = {
        "collections": [{"id": "c1", "name": "Fresh", "position": 0}],
        "groups": [{"id": "g1", "collection_id": "c1", "name": "Only", "position": 0}],
        "items": [{"group_id": "g1", "url": "https://fresh.test"}],
    }

    transfer_service.import_hierarchy(db_session, user_id=owner_id, document=document)

    assert [row.name for row in db_session.query(Collection).all()] == ["Fresh"]
    assert [row.name for row in db_session.query(Group).all()] == ["Only"]
    items = db_session.query(Item).all()
    assert [(row.url, row.title) for row in items] == [("https://fresh.test", "fresh.test")]


def test_import_accepts_legacy_board_naming(db_session: Session, owner_id: uuid.UUID) -> None:
    document = {
        "boards": [{"id": 1, "name": "Board", "color": "#000000", "position": 0}],
        "folders": [{"id": 7, "board_id": 1, "name": "Folder", "position": 0}],
        "links": [{"id": 9, "folder_id": 7, "title": "Link", "url": "https://legacy.test", "position": 0}],
    }

    counts = transfer_service.import_hierarchy(db_session, user_id=owner_id, document=document)

    assert counts.as_dict() == {"collections": 1, "groups": 1, "items": 1}
    exported = transfer_service.export_hierarchy(db_session, user_id=owner_id)
    assert exported["items"][0]["title"] == "Link"
    assert exported["groups"][0]["collection_id"] == exported["collections"][0]["id"]


def test_import_renumbers_positions_densely(db_session: Session, owner_id: uuid.UUID) -> None:
    document = {
        "collections": [
            {"id": "b", "name": "Second", "position": 9},
            {"id": "a", "name": "First", "position": 3},
            {"id": "c", "name": "Unpositioned"},
        ],
        "groups": [],
        "items": [],
    }

    transfer_service.import_hierarchy(db_session, user_id=owner_id, document=document)

    listed = hierarchy_service.list_collections(db_session, user_id=owner_id)
    assert [(record.name, record.position) for record in listed] == [
        ("First", 0),
        ("Second", 1),
        ("Unpositioned", 2),
    ]


def test_dangling_reference_leaves_previous_data(db_session: Session, owner_id: uuid.UUID) -> None:
    _seed(db_session, owner_id)
    before = transfer_service.export_hierarchy(db_session, user_id=owner_id)
    document = {
        "collections": [{"id": "c1", "name": "New"}],
        "groups": [{"id": "g1", "collection_id": "c1", "name": "Group"}],
        "items": [{"group_id": "missing", "url": "https://orphan.test"}],
    }

    with pytest.raises(DanglingReferenceError):
        transfer_service.import_hierarchy(db_session, user_id=owner_id, document=document)

    assert transfer_service.export_hierarchy(db_session, user_id=owner_id) == before


def test_group_with_unknown_collection_is_dangling(db_session: Session, owner_id: uuid.UUID) -> None:
    document = {
        "collections": [],
        "groups": [{"id": "g1", "collection_id": "nowhere", "name": "Lost"}],
        "items": [],
    }
    with pytest.raises(DanglingReferenceError):
        transfer_service.import_hierarchy(db_session, user_id=owner_id, document=document)


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"collections": [], "groups": []},
        {"collections": "not-an-array", "groups": [], "items": []},
        {"collections": [], "groups": [], "items": [], "extra": []},
        {"collections": {}, "groups": [], "items": []},
        {"collections": ["not-an-object"], "groups": [], "items": []},
        {"collections": [{"id": "c1"}], "groups": [], "items": []},
        {"collections": [], "groups": [], "items": [{"group_id": "g1", "url": ""}]},
        {
            "collections": [{"id": "c1", "name": "A"}, {"id": "c1", "name": "B"}],
            "groups": [],
            "items": [],
        },
    ],
)
def test_malformed_documents_change_nothing(db_session: Session, owner_id: uuid.UUID, document) -> None:
    _seed(db_session, owner_id)
    before = transfer_service.export_hierarchy(db_session, user_id=owner_id)

    with pytest.raises(MalformedInputError):
        transfer_service.import_hierarchy(db_session, user_id=owner_id, document=document)

    assert transfer_service.export_hierarchy(db_session, user_id=owner_id) == before


def test_import_does_not_touch_other_users(db_session: Session, owner_id: uuid.UUID, other_user_id: uuid.UUID) -> None:
    _seed(db_session, other_user_id)
    transfer_service.import_hierarchy(
        db_session,
        user_id=owner_id,
        document={"collections": [], "groups": [], "items": []},
    )
    assert len(hierarchy_service.list_collections(db_session, user_id=other_user_id)) == 2


def test_import_clips_long_titles(db_session: Session, owner_id: uuid.UUID) -> None:
    document = {
        "collections": [{"id": "c1", "name": "Long"}],
        "groups": [{"id": "g1", "collection_id": "c1", "name": "Titles"}],
        "items": [{"group_id": "g1", "url": "https://long.test", "title": "t" * 600}],
    }

    transfer_service.import_hierarchy(db_session, user_id=owner_id, document=document)

    (item,) = db_session.query(Item).all()
    assert item.title == "t" * hierarchy_service.MAX_TITLE_LENGTH


def test_store_error_during_insert_keeps_previous_data(
    db_session: Session, owner_id: uuid.UUID, monkeypatch: pytest.MonkeyPatch
) -> None:
    _seed(db_session, owner_id)
    before = transfer_service.export_hierarchy(db_session, user_id=owner_id)

    def broken_insert(*args, **kwargs):
        raise OperationalError("INSERT INTO items", {}, Exception("deadlock detected"))

    monkeypatch.setattr(transfer_service, "_insert_items", broken_insert)
    with pytest.raises(StoreFailureError):
        transfer_service.import_hierarchy(db_session, user_id=owner_id, document=copy.deepcopy(before))

    assert transfer_service.export_hierarchy(db_session, user_id=owner_id) == before
