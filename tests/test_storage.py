import io

import pytest

from familytree.core.errors import InvalidInputError, NotFoundError, TooLargeError
from familytree.storage import ImageStore, sanitize_basename

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def frozen_images(settings):
    return ImageStore(
        images_dir=settings.IMAGES_DIR,
        max_bytes=settings.MAX_UPLOAD_BYTES,
        clock_ms=lambda: 1700000000000,
    )


def test_sanitize_basename():
    assert sanitize_basename("My Photo (1).JPG") == ("My-Photo--1-", ".JPG")
    assert sanitize_basename("C:\\Users\\me\\grandma.png") == ("grandma", ".png")
    assert sanitize_basename("ünïcode.webp") == ("-n-code", ".webp")


def test_upload_stores_file_under_tree_folder(frozen_images):
    stored = frozen_images.upload("T1", io.BytesIO(PNG_BYTES), "My Photo.png", "image/png")

    assert stored.filename == "My-Photo-1700000000000.png"
    assert stored.url == "/images/T1/My-Photo-1700000000000.png"
    assert stored.original_name == "My Photo.png"
    assert stored.size == len(PNG_BYTES)
    assert (frozen_images.images_dir / "T1" / stored.filename).read_bytes() == PNG_BYTES


def test_same_name_same_millisecond_never_overwrites(frozen_images):
    first = frozen_images.upload("T1", io.BytesIO(b"first"), "a.png", "image/png")
    second = frozen_images.upload("T1", io.BytesIO(b"second"), "a.png", "image/png")

    assert first.filename != second.filename
    assert (frozen_images.images_dir / "T1" / first.filename).read_bytes() == b"first"
    assert (frozen_images.images_dir / "T1" / second.filename).read_bytes() == b"second"


def test_different_timestamps_give_different_names(settings):
    ticks = iter([1000, 2000])
    store = ImageStore(images_dir=settings.IMAGES_DIR, clock_ms=lambda: next(ticks))

    a = store.upload("T1", io.BytesIO(b"1"), "a.png", "image/png")
    b = store.upload("T1", io.BytesIO(b"2"), "a.png", "image/png")

    assert (a.filename, b.filename) == ("a-1000.png", "a-2000.png")


@pytest.mark.parametrize("mime", [None, "", "text/plain", "application/pdf"])
def test_upload_rejects_non_images(image_store, mime):
    with pytest.raises(InvalidInputError):
        image_store.upload("T1", io.BytesIO(b"x"), "a.png", mime)


def test_upload_rejects_oversized_files(settings):
    store = ImageStore(images_dir=settings.IMAGES_DIR, max_bytes=10)

    with pytest.raises(TooLargeError):
        store.upload("T1", io.BytesIO(b"x" * 11), "big.png", "image/png")

    assert not (store.images_dir / "T1").exists() or not any((store.images_dir / "T1").iterdir())


def test_list_images_filters_extensions(frozen_images):
    assert frozen_images.list_images("T1") == []

    frozen_images.upload("T1", io.BytesIO(b"1"), "a.PNG", "image/png")
    frozen_images.upload("T1", io.BytesIO(b"2"), "b.webp", "image/webp")
    (frozen_images.images_dir / "T1" / "notes.txt").write_text("nope")

    images = frozen_images.list_images("T1")

    assert sorted(i.filename for i in images) == ["a-1700000000000.PNG", "b-1700000000000.webp"]
    assert all(i.url.startswith("/images/T1/") for i in images)


@pytest.mark.parametrize("filename", ["../x.png", "a/b.png", "a\\b.png", ".."])
def test_delete_rejects_path_traversal(image_store, filename):
    with pytest.raises(InvalidInputError):
        image_store.delete("T1", filename)


def test_delete_missing_image(image_store):
    with pytest.raises(NotFoundError):
        image_store.delete("T1", "ghost.png")


def test_delete_removes_file(frozen_images):
    stored = frozen_images.upload("T1", io.BytesIO(b"1"), "a.png", "image/png")

    frozen_images.delete("T1", stored.filename)

    assert frozen_images.list_images("T1") == []
