from datetime import datetime

import pytest

from members.avatar import avatar_object_path, set_avatar
from members.errors import InvalidInput, Unauthorized


class FakeBlobStore:
    def __init__(self):
        self.objects = {}

    def upload(self, bucket, path, data):
        self.objects[(bucket, path)] = data

    def public_url(self, bucket, path):
        return f"https://blobs.example/{bucket}/{path}"


def test_object_path_is_timestamped():
    path = avatar_object_path("p3", "me.PNG", now=datetime(2024, 6, 1, 12, 0, 0))
    assert path.startswith("p3/")
    assert path.endswith(".png")


def test_object_path_rejects_non_images():
    with pytest.raises(InvalidInput):
        avatar_object_path("p3", "resume.pdf")


def test_member_sets_own_avatar(ctx, member):
    blobs = FakeBlobStore()
    updated = set_avatar(ctx, member("p3"), "p3", blobs, "me.jpg", b"\xff\xd8")
    assert updated.avatar_url.startswith("https://blobs.example/avatars/p3/")
    assert len(blobs.objects) == 1


def test_avatar_for_someone_else_needs_admin(ctx, member):
    with pytest.raises(Unauthorized):
        set_avatar(ctx, member("p2"), "p3", FakeBlobStore(), "me.jpg", b"x")
