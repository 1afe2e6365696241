from __future__ import annotations

import asyncio

import pytest

from unugha_core.storage import AVATAR_BUCKET, MAX_IMAGE_BYTES, FileUpload, storage_url, validate_image


def test_storage_url_resolution() -> None:
    base = "https://demo.supabase.co"
    assert storage_url(None, base_url=base) is None
    assert storage_url("", base_url=base) is None
    assert storage_url("https://cdn.example/banner.png", base_url=base) == "https://cdn.example/banner.png"
    assert (
        storage_url("user-1/banner.png", base_url=base)
        == "https://demo.supabase.co/storage/v1/object/public/banners/user-1/banner.png"
    )
    assert (
        storage_url("user-1-a.jpg", AVATAR_BUCKET, base_url=base + "/")
        == "https://demo.supabase.co/storage/v1/object/public/avatars/user-1-a.jpg"
    )


def test_storage_url_defaults_to_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
    assert storage_url("a.png") == "https://env.supabase.co/storage/v1/object/public/banners/a.png"


def test_file_upload_extension() -> None:
    assert FileUpload("Poster.PNG", b"x", "image/png").extension == "png"
    assert FileUpload("noext", b"x").extension == "bin"


def test_validate_image_rejects_bad_files() -> None:
    validate_image(FileUpload("ok.jpg", b"\xff\xd8", "image/jpeg"))

    with pytest.raises(ValueError, match="PNG or JPEG"):
        validate_image(FileUpload("doc.pdf", b"%PDF", "application/pdf"))
    with pytest.raises(ValueError, match="too large"):
        validate_image(FileUpload("big.png", b"0" * (MAX_IMAGE_BYTES + 1), "image/png"))
    with pytest.raises(ValueError, match="empty"):
        validate_image(FileUpload("empty.png", b"", "image/png"))


def test_upload_and_remove_objects(fake, client) -> None:
    upload = FileUpload("banner.png", b"\x89PNG", "image/png")

    async def scenario() -> None:
        path = await client.storage.upload("banners", "user-1/banner.png", upload)
        assert path == "user-1/banner.png"
        assert fake.objects["banners/user-1/banner.png"] == b"\x89PNG"

        await client.storage.remove("banners", [path])
        assert fake.objects == {}

    asyncio.run(scenario())

    (post,) = fake.calls("POST", "/storage/v1/object/banners/user-1/banner.png")
    assert post.headers["content-type"] == "image/png"
    assert post.headers["x-upsert"] == "false"
    assert client.storage.public_url("user-1/banner.png") == (
        "https://demo.supabase.co/storage/v1/object/public/banners/user-1/banner.png"
    )
