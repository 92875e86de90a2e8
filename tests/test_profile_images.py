import pytest

from arena.config import Config
from arena.services.profile_images import LocalBlobStore, ProfileImageService
from arena.utils.exceptions import ValidationError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


async def test_upload_stores_blob_and_sets_avatar(profile_images, profiles, tmp_path):
    await profiles.get_user_profile("alice")

    url = await profile_images.upload_profile_image("alice", "me.png", "image/png", PNG_BYTES)

    assert url.startswith("https://cdn.example.test/arena/profileImages/alice_")
    assert url.endswith(".png")
    stored = list((tmp_path / "blobs" / "profileImages").iterdir())
    assert len(stored) == 1
    assert stored[0].read_bytes() == PNG_BYTES

    profile = await profiles.get_user_profile("alice")
    assert profile.avatar_url == url


async def test_non_image_rejected_before_storage(profile_images, tmp_path):
    with pytest.raises(ValidationError) as excinfo:
        await profile_images.upload_profile_image("alice", "notes.txt", "text/plain", b"hello")

    assert excinfo.value.user_message == "Please upload an image file."
    assert not (tmp_path / "blobs").exists()


async def test_oversized_image_rejected(profile_images):
    data = b"\x00" * (Config.PROFILE_IMAGE_MAX_BYTES + 1)

    with pytest.raises(ValidationError):
        await profile_images.upload_profile_image("alice", "big.jpg", "image/jpeg", data)


def test_blob_path_layout():
    assert ProfileImageService.blob_path("alice", "me.JPG", 1700000000000) == "profileImages/alice_1700000000000.JPG"


async def test_local_store_rejects_escaping_paths(tmp_path):
    store = LocalBlobStore(str(tmp_path), "/blobs")

    with pytest.raises(ValidationError):
        await store.upload("../outside.png", b"x")
