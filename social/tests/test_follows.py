import pytest
from django.db import DatabaseError

from social.exceptions import Conflict, InvalidInput, NotFound
from social.models import Follow, Notification, User
from social.services import follows


def reload(*users):
    for user in users:
        user.refresh_from_db()


def assert_consistent(follower_id, followed_id):
    follower = User.objects.get(pk=follower_id)
    followed = User.objects.get(pk=followed_id)
    edge = Follow.objects.filter(follower=follower, followed=followed).exists()
    assert edge == (followed_id in follower.following_ids) == (follower_id in followed.follower_ids)
    return edge


@pytest.mark.django_db
def test_follow_writes_edge_and_both_mirrors(alice, bob):
    follows.follow("alice", "bob")

    assert assert_consistent("alice", "bob") is True
    assert assert_consistent("bob", "alice") is False
    note = Notification.objects.get(user_id="bob")
    assert note.type == "follow"
    assert note.message == "Alice started following you"
    assert note.data == {"followerId": "alice"}


@pytest.mark.django_db
def test_follow_errors(alice, bob):
    follows.follow("alice", "bob")
    with pytest.raises(Conflict):
        follows.follow("alice", "bob")
    with pytest.raises(InvalidInput):
        follows.follow("alice", "alice")
    with pytest.raises(NotFound):
        follows.follow("alice", "nobody")

    reload(alice)
    assert alice.following_ids == ["bob"]
    assert Follow.objects.count() == 1


@pytest.mark.django_db
def test_unfollow_removes_all_three_records(alice, bob, carol):
    follows.follow("alice", "bob")
    follows.follow("alice", "carol")
    follows.unfollow("alice", "bob")

    assert assert_consistent("alice", "bob") is False
    assert assert_consistent("alice", "carol") is True
    reload(alice)
    assert alice.following_ids == ["carol"]

    with pytest.raises(Conflict):
        follows.unfollow("alice", "bob")


@pytest.mark.django_db
def test_follower_lists_page_through_edges(make_user, alice):
    fans = [make_user(f"fan{i}") for i in range(3)]
    for fan in fans:
        follows.follow(fan.pk, "alice")

    first = follows.list_followers("alice", page_size=2)
    second = follows.list_followers("alice", page_size=2, cursor=first.last_id)

    names = [edge.follower.pk for edge in first.items + second.items]
    assert names == ["fan2", "fan1", "fan0"]
    assert first.has_more is True and second.has_more is False

    following = follows.list_following("fan0", page_size=20)
    assert [edge.followed.pk for edge in following.items] == ["alice"]

    with pytest.raises(NotFound):
        follows.list_followers("nobody", page_size=20)


@pytest.mark.django_db
def test_failed_mirror_write_rolls_back_the_follow(alice, bob, monkeypatch):
    real_save = User.save

    def save(self, *args, **kwargs):
        if kwargs.get("update_fields") == ["follower_ids"]:
            raise DatabaseError("mirror write failed")
        return real_save(self, *args, **kwargs)

    monkeypatch.setattr(User, "save", save)
    with pytest.raises(DatabaseError):
        follows.follow("alice", "bob")
    monkeypatch.undo()

    reload(alice, bob)
    assert not Follow.objects.exists()
    assert alice.following_ids == []
    assert bob.follower_ids == []
    assert Notification.objects.count() == 0
