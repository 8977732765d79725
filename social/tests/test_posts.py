import pytest

from social.exceptions import Conflict, Forbidden, InvalidInput, NotFound
from social.models import Comment, Notification, Post, Upload, User
from social.services import follows, posts
from social.storage import BlobStore

IMG = "https://cdn.example.com/p/1.jpg"


@pytest.mark.django_db
def test_create_post_extracts_hashtags_and_tracks_id(alice):
    post = posts.create_post("alice", [IMG], caption="Sunset at the #Beach #travel")

    alice.refresh_from_db()
    assert post.hashtags == ["beach", "travel"]
    assert post.is_video is False
    assert alice.post_ids == [str(post.pk)]
    assert post.to_dict()["username"] == "alice"


@pytest.mark.django_db
def test_create_post_needs_media(alice):
    with pytest.raises(InvalidInput):
        posts.create_post("alice", [], caption="text only")
    with pytest.raises(InvalidInput):
        posts.create_post("alice", ["   "])


@pytest.mark.django_db
def test_video_flag_inferred_from_urls(alice):
    post = posts.create_post("alice", ["https://cdn.example.com/v/clip.mp4"])
    assert post.is_video is True


@pytest.mark.django_db
def test_like_and_unlike(alice, bob):
    post = posts.create_post("alice", [IMG])

    posts.like_post("bob", post.pk)
    with pytest.raises(Conflict):
        posts.like_post("bob", post.pk)
    assert list(post.likes.values_list("pk", flat=True)) == ["bob"]

    note = Notification.objects.get(user_id="alice")
    assert (note.type, note.message, note.data) == ("like", "Bob liked your post", {"postId": str(post.pk)})

    posts.unlike_post("bob", post.pk)
    with pytest.raises(Conflict):
        posts.unlike_post("bob", post.pk)
    assert post.likes.count() == 0


@pytest.mark.django_db
def test_liking_own_post_does_not_notify(alice):
    post = posts.create_post("alice", [IMG])
    posts.like_post("alice", post.pk)
    assert Notification.objects.count() == 0


@pytest.mark.django_db
def test_unknown_post(alice):
    with pytest.raises(NotFound):
        posts.like_post("alice", "12345")
    with pytest.raises(NotFound):
        posts.get_post("not-a-number")


@pytest.mark.django_db
def test_comment_increments_counter_and_notifies(alice, bob):
    post = posts.create_post("alice", [IMG])
    text = "What a fantastic shot, where was this taken?"

    comment = posts.add_comment("bob", post.pk, text)

    post.refresh_from_db()
    assert post.comment_count == 1
    note = Notification.objects.get(user_id="alice", type="comment")
    assert note.message == 'Bob commented on your post: "What a fantastic shot, where w..."'
    assert note.data["commentId"] == str(comment.pk)

    with pytest.raises(InvalidInput):
        posts.add_comment("bob", post.pk, "  ")


@pytest.mark.django_db
def test_get_post_includes_five_latest_comments(alice, bob):
    post = posts.create_post("alice", [IMG])
    for n in range(7):
        posts.add_comment("bob", post.pk, f"c{n}")

    loaded, comments = posts.get_post(post.pk)

    assert loaded.comment_count == 7
    assert [c.text for c in comments] == ["c6", "c5", "c4", "c3", "c2"]

    page = posts.list_comments(post.pk, page_size=5, cursor=str(comments[-1].pk))
    assert [c.text for c in page.items] == ["c1", "c0"]


@pytest.mark.django_db
def test_feed_is_own_and_followed_posts_newest_first(alice, bob, carol):
    follows.follow("alice", "bob")
    mine = posts.create_post("alice", [IMG], caption="mine")
    followed = posts.create_post("bob", [IMG], caption="bob's")
    posts.create_post("carol", [IMG], caption="stranger")

    feed = posts.home_feed("alice")

    assert [p.pk for p in feed.items] == [followed.pk, mine.pk]
    assert feed.has_more is False


@pytest.mark.django_db
def test_user_posts_pagination(alice):
    created = [posts.create_post("alice", [IMG], caption=str(n)) for n in range(4)]

    first = posts.list_user_posts("alice", page_size=3)
    rest = posts.list_user_posts("alice", page_size=3, cursor=first.last_id)

    assert [p.pk for p in first.items + rest.items] == [p.pk for p in reversed(created)]
    with pytest.raises(NotFound):
        posts.list_user_posts("nobody", page_size=3)


@pytest.mark.django_db
def test_delete_post_owner_only_and_cleans_up(alice, bob):
    store = BlobStore()
    url = store.upload(b"\x89PNG fake bytes", "image/png", "alice", "photo.png")
    post = posts.create_post("alice", [url, "https://elsewhere.example.com/x.jpg"])
    posts.add_comment("bob", post.pk, "nice")

    with pytest.raises(Forbidden):
        posts.delete_post("bob", post.pk)

    posts.delete_post("alice", post.pk, blob_store=store)

    assert not Post.objects.exists()
    assert not Comment.objects.exists()
    assert not Upload.objects.filter(url=url).exists()
    assert User.objects.get(pk="alice").post_ids == []
