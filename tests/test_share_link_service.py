import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from models.share_link import ShareLink
from services import hierarchy_service, share_link_service
from services.bookmark_errors import (
    ExpiredError,
    MalformedInputError,
    NotFoundError,
    StoreFailureError,
    UnauthenticatedError,
    UnauthorizedError,
)


def _seed(db_session: Session, owner_id: uuid.UUID):
    collection = hierarchy_service.create_collection(db_session, user_id=owner_id, name="Shared Board")
    group = hierarchy_service.create_group(db_session, collection_id=collection.id, user_id=owner_id, name="Links")
    item = hierarchy_service.create_item(db_session, group_id=group.id, user_id=owner_id, url="https://shared.test")
    return collection, group, item


def test_issue_and_resolve_collection(db_session: Session, owner_id: uuid.UUID) -> None:
    collection, group, item = _seed(db_session, owner_id)

    grant = share_link_service.issue_share_token(
        db_session, resource_type="collection", resource_id=collection.id, issuer_id=owner_id
    )
    assert grant.url == f"https://links.example.test/shared/collection/{grant.token}"
    assert len(grant.token) >= 32
    assert grant.expires_at is None

    subtree = share_link_service.resolve_share_token(db_session, resource_type="collection", token=grant.token)
    assert subtree.kind == "collection"
    assert subtree.resource.id == collection.id
    assert [record.id for record in subtree.groups] == [group.id]
    assert [record.id for record in subtree.items] == [item.id]


def test_resolve_does_not_need_ownership(db_session: Session, owner_id: uuid.UUID) -> None:
    _, group, _ = _seed(db_session, owner_id)
    grant = share_link_service.issue_share_token(
        db_session, resource_type="folder", resource_id=group.id, issuer_id=owner_id
    )
    assert grant.resource_type == "group"

    subtree = share_link_service.resolve_share_token(db_session, resource_type="group", token=grant.token)
    assert subtree.resource.name == "Links"
    assert len(subtree.items) == 1


def test_issue_and_resolve_item(db_session: Session, owner_id: uuid.UUID) -> None:
    _, _, item = _seed(db_session, owner_id)
    grant = share_link_service.issue_share_token(db_session, resource_type="item", resource_id=item.id, issuer_id=owner_id)

    subtree = share_link_service.resolve_share_token(db_session, resource_type="item", token=grant.token)
    assert subtree.resource.id == item.id
    assert subtree.groups == [] and subtree.items == []
    with pytest.raises(NotFoundError):
        share_link_service.resolve_share_token(db_session, resource_type="item", token="wrong-token")


def test_resolve_counts_views(db_session: Session, owner_id: uuid.UUID) -> None:
    _, _, item = _seed(db_session, owner_id)
    grant = share_link_service.issue_share_token(db_session, resource_type="item", resource_id=item.id, issuer_id=owner_id)

    share_link_service.resolve_share_token(db_session, resource_type="item", token=grant.token)
    share_link_service.resolve_share_token(db_session, resource_type="item", token=grant.token)

    row = db_session.query(ShareLink).filter(ShareLink.token == grant.token).one()
    db_session.refresh(row)
    assert row.view_count == 2


def test_issue_requires_ownership(db_session: Session, owner_id: uuid.UUID, other_user_id: uuid.UUID) -> None:
    collection, _, _ = _seed(db_session, owner_id)
    with pytest.raises(UnauthorizedError):
        share_link_service.issue_share_token(
            db_session, resource_type="collection", resource_id=collection.id, issuer_id=other_user_id
        )
    with pytest.raises(UnauthenticatedError):
        share_link_service.issue_share_token(
            db_session, resource_type="collection", resource_id=collection.id, issuer_id=None
        )


def test_issue_rejects_unknown_resource(db_session: Session, owner_id: uuid.UUID) -> None:
    with pytest.raises(NotFoundError):
        share_link_service.issue_share_token(
            db_session, resource_type="item", resource_id=uuid.uuid4(), issuer_id=owner_id
        )
    with pytest.raises(MalformedInputError):
        share_link_service.issue_share_token(
            db_session, resource_type="workspace", resource_id=uuid.uuid4(), issuer_id=owner_id
        )


def test_issue_validates_expiry_window(db_session: Session, owner_id: uuid.UUID) -> None:
    collection, _, _ = _seed(db_session, owner_id)
    with pytest.raises(MalformedInputError):
        share_link_service.issue_share_token(
            db_session,
            resource_type="collection",
            resource_id=collection.id,
            issuer_id=owner_id,
            expires_in_days=0,
        )
    grant = share_link_service.issue_share_token(
        db_session,
        resource_type="collection",
        resource_id=collection.id,
        issuer_id=owner_id,
        expires_in_days=7,
    )
    assert grant.expires_at is not None
    assert grant.expires_at > datetime.now(timezone.utc) + timedelta(days=6)


def test_wrong_token_or_type_is_not_found(db_session: Session, owner_id: uuid.UUID) -> None:
    collection, _, _ = _seed(db_session, owner_id)
    grant = share_link_service.issue_share_token(
        db_session, resource_type="collection", resource_id=collection.id, issuer_id=owner_id
    )
    with pytest.raises(NotFoundError):
        share_link_service.resolve_share_token(db_session, resource_type="collection", token="not-a-real-token")
    with pytest.raises(NotFoundError):
        share_link_service.resolve_share_token(db_session, resource_type="item", token=grant.token)
    with pytest.raises(NotFoundError):
        share_link_service.resolve_share_token(db_session, resource_type="collection", token="")


def test_expired_token_is_rejected(db_session: Session, owner_id: uuid.UUID) -> None:
    collection, _, _ = _seed(db_session, owner_id)
    grant = share_link_service.issue_share_token(
        db_session,
        resource_type="collection",
        resource_id=collection.id,
        issuer_id=owner_id,
        expires_in_days=1,
    )
    row = db_session.query(ShareLink).filter(ShareLink.token == grant.token).one()
    row.expires_at = datetime.now(timezone.utc) - timedelta(minutes=5)
    db_session.commit()

    with pytest.raises(ExpiredError):
        share_link_service.resolve_share_token(db_session, resource_type="collection", token=grant.token)


def test_token_for_deleted_target_is_not_found(db_session: Session, owner_id: uuid.UUID) -> None:
    collection, _, _ = _seed(db_session, owner_id)
    grant = share_link_service.issue_share_token(
        db_session, resource_type="collection", resource_id=collection.id, issuer_id=owner_id
    )
    hierarchy_service.delete_collection(db_session, collection_id=collection.id, user_id=owner_id)

    assert db_session.query(ShareLink).filter(ShareLink.token == grant.token).count() == 1
    with pytest.raises(NotFoundError):
        share_link_service.resolve_share_token(db_session, resource_type="collection", token=grant.token)


def test_list_and_revoke(db_session: Session, owner_id: uuid.UUID, other_user_id: uuid.UUID) -> None:
    collection, _, _ = _seed(db_session, owner_id)
    first = share_link_service.issue_share_token(
        db_session, resource_type="collection", resource_id=collection.id, issuer_id=owner_id
    )
    second = share_link_service.issue_share_token(
        db_session, resource_type="collection", resource_id=collection.id, issuer_id=owner_id
    )
    assert first.token != second.token

    listed = share_link_service.list_share_links(
        db_session, resource_type="collection", resource_id=collection.id, user_id=owner_id
    )
    assert {record.token for record in listed} == {first.token, second.token}

    with pytest.raises(NotFoundError):
        share_link_service.revoke_share_link(db_session, token=first.token, user_id=other_user_id)
    share_link_service.revoke_share_link(db_session, token=first.token, user_id=owner_id)
    with pytest.raises(NotFoundError):
        share_link_service.resolve_share_token(db_session, resource_type="collection", token=first.token)


def test_build_share_url_honours_base_override() -> None:
    assert (
        share_link_service.build_share_url("group", "abc", base_url="https://example.org/")
        == "https://example.org/shared/group/abc"
    )


@pytest.mark.parametrize("expires_in_days", ["soon", object(), True])
def test_issue_rejects_non_integer_expiry(db_session: Session, owner_id: uuid.UUID, expires_in_days) -> None:
    collection, _, _ = _seed(db_session, owner_id)
    with pytest.raises(MalformedInputError):
        share_link_service.issue_share_token(
            db_session,
            resource_type="collection",
            resource_id=collection.id,
            issuer_id=owner_id,
            expires_in_days=expires_in_days,
        )


def test_read_errors_become_store_failure(
    db_session: Session, owner_id: uuid.UUID, monkeypatch: pytest.MonkeyPatch
) -> None:
    collection, _, _ = _seed(db_session, owner_id)
    grant = share_link_service.issue_share_token(
        db_session, resource_type="collection", resource_id=collection.id, issuer_id=owner_id
    )

    def broken_read(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("server closed the connection"))

    monkeypatch.setattr(db_session, "get", broken_read)
    with pytest.raises(StoreFailureError):
        share_link_service.resolve_share_token(db_session, resource_type="collection", token=grant.token)

    monkeypatch.setattr(db_session, "query", broken_read)
    with pytest.raises(StoreFailureError):
        share_link_service.list_share_links(
            db_session, resource_type="collection", resource_id=collection.id, user_id=owner_id
        )
    with pytest.raises(StoreFailureError):
        share_link_service.revoke_share_link(db_session, token=grant.token, user_id=owner_id)
