import pytest
from django.core.files.storage import storages

from social import utils
from social.exceptions import DependencyFailure, InvalidInput
from social.models import Upload
from social.storage import BlobStore


@pytest.mark.django_db
def test_upload_routes_by_content_type(alice):
    store = BlobStore()

    image_url = store.upload(b"png", "image/png", "alice", "Photo.PNG")
    video_url = store.upload(b"mp4", "video/mp4", "alice", "clip.mp4")

    image = Upload.objects.get(url=image_url)
    video = Upload.objects.get(url=video_url)
    assert (image.storage_alias, video.storage_alias) == ("default", "videos")
    assert image.name.startswith("uploads/images/alice_") and image.name.endswith(".png")
    assert video.name.startswith("uploads/videos/alice_")
    assert storages["videos"].exists(video.name)


@pytest.mark.django_db
def test_upload_rejects_bad_input(alice):
    store = BlobStore(max_bytes=4)
    with pytest.raises(InvalidInput):
        store.upload(b"text", "text/plain", "alice")
    with pytest.raises(InvalidInput):
        store.upload(b"", "image/png", "alice")
    with pytest.raises(InvalidInput):
        store.upload(b"too large", "image/png", "alice")
    assert not Upload.objects.exists()


@pytest.mark.django_db
def test_storage_failure_is_dependency_failure(alice, monkeypatch):
    def refuse(name, content, max_length=None):
        raise OSError("disk full")

    monkeypatch.setattr(storages["default"], "save", refuse)
    with pytest.raises(DependencyFailure):
        BlobStore().upload(b"png", "image/png", "alice", "a.png")


@pytest.mark.django_db
def test_delete_many_isolates_failures(alice, monkeypatch):
    store = BlobStore()
    urls = [store.upload(b"png", "image/png", "alice", f"{n}.png") for n in range(3)]
    real_delete = store.delete

    def flaky(url):
        if url == urls[1]:
            raise OSError("timeout")
        return real_delete(url)

    monkeypatch.setattr(store, "delete", flaky)

    assert store.delete_many(urls + ["https://elsewhere.example.com/x.jpg", ""]) == 2
    assert list(Upload.objects.values_list("url", flat=True)) == [urls[1]]


def test_text_helpers():
    assert utils.extract_hashtags("Hello #World and #py_thon!") == ["world", "py_thon"]
    assert utils.is_video_file("https://cdn.example.com/v/clip.MP4?sig=1")
    assert utils.is_image_file("photo.jpeg")
    assert utils.file_extension("https://cdn.example.com/noext") == ""
    assert utils.clean_text(None) == "" and utils.clean_text("  hi ") == "hi"
    assert utils.truncate("x" * 31) == "x" * 30 + "..."
