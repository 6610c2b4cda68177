from decimal import Decimal

import pytest

from gallery.core.exceptions import DatabaseError, NotFoundError, StorageError, ValidationError
from gallery.modules.product_images.service import ProductImageService
from gallery.modules.products.schemas import CreateProductDto
from gallery.modules.products.service import ProductService
from tests.conftest import make_payload


def dto(title="Blue Vase", **kwargs):
    kwargs.setdefault("price", Decimal("49.90"))
    return CreateProductDto(title=title, **kwargs)


async def test_create_with_images_makes_first_one_main(db, storage):
    product = await ProductService.create(
        db, dto(), [make_payload("front.png"), make_payload("back.png")], storage
    )

    loaded = await ProductService.find_one(db, product.id)

    assert [(img.index, img.is_main) for img in loaded.images] == [(0, True), (1, False)]
    assert len(storage.blobs) == 2


async def test_create_with_invalid_image_stores_nothing(db, storage):
    bad = make_payload()
    bad.content_type = "text/plain"

    with pytest.raises(ValidationError):
        await ProductService.create(db, dto(), [bad], storage)

    assert await ProductService.find_all(db) == []
    assert storage.blobs == {}


async def test_create_normalises_tags(db):
    product = await ProductService.create(db, dto(tags=[" Ceramic ", "BLUE", " "]))

    assert product.tags == ["ceramic", "blue"]


async def test_duplicate_titles_get_unique_slugs(db):
    first = await ProductService.create(db, dto("Blue Vase"))
    second = await ProductService.create(db, dto("Blue Vase"))
    third = await ProductService.create(db, dto("Blue  vase!"))

    assert [first.slug, second.slug, third.slug] == ["blue-vase", "blue-vase-1", "blue-vase-2"]


async def test_find_one_missing_is_not_found(db):
    with pytest.raises(NotFoundError):
        await ProductService.find_one(db, 123)


async def test_find_all_filters_by_category_and_search(db):
    await ProductService.create(db, dto("Blue Vase", category="Ceramics"))
    await ProductService.create(db, dto("Oak Frame", category="Frames", description="hand carved"))
    await ProductService.create(db, dto("Tea Bowl", category="ceramics"))

    ceramics = await ProductService.find_all(db, category="ceramics")
    carved = await ProductService.find_all(db, search="carved")
    everything = await ProductService.find_all(db, category="all")

    assert sorted(p.title for p in ceramics) == ["Blue Vase", "Tea Bowl"]
    assert [p.title for p in carved] == ["Oak Frame"]
    assert len(everything) == 3


async def test_list_response_carries_main_image_only(db, storage):
    product = await ProductService.create(
        db, dto(), [make_payload("a.png"), make_payload("b.png")], storage
    )
    (listed,) = await ProductService.find_all(db)

    response = ProductService.to_response(listed, storage)

    assert response.id == product.id
    assert response.main_image is not None
    assert response.main_image.index == 0
    assert "X-Amz-Signature" in response.main_image.image_url


async def test_remove_deletes_records_and_blobs(db, storage, session_factory):
    product = await ProductService.create(
        db, dto(), [make_payload("a.png"), make_payload("b.png")], storage
    )
    product_id = product.id

    keys = await ProductService.remove(db, product_id, storage)

    assert len(keys) == 2
    assert storage.blobs == {}
    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await ProductService.find_one(session, product_id)
        with pytest.raises(NotFoundError):
            await ProductImageService.list_images(session, product_id)


async def test_remove_with_failing_blob_delete_keeps_product(db, storage, session_factory):
    product = await ProductService.create(db, dto(), [make_payload()], storage)
    product_id = product.id
    storage.fail_delete = True

    with pytest.raises(StorageError):
        await ProductService.remove(db, product_id, storage)

    async with session_factory() as session:
        images = await ProductImageService.list_images(session, product_id)
    assert len(images) == 1
    assert len(storage.blobs) == 1


async def test_remove_missing_product_is_not_found(db, storage):
    with pytest.raises(NotFoundError):
        await ProductService.remove(db, 77, storage)


async def test_remove_failing_midway_drops_records_of_deleted_blobs(db, storage, session_factory):
    product = await ProductService.create(
        db, dto(), [make_payload(f"{n}.png") for n in "abc"], storage
    )
    product_id = product.id
    async with session_factory() as session:
        first, second, third = await ProductImageService.list_images(session, product_id)
    storage.fail_delete_after = 1

    with pytest.raises(StorageError):
        await ProductService.remove(db, product_id, storage)

    async with session_factory() as session:
        images = await ProductImageService.list_images(session, product_id)
    assert [(img.id, img.index, img.is_main) for img in images] == [
        (second.id, 0, True),
        (third.id, 1, False),
    ]
    assert all(img.image_key in storage.blobs for img in images)
    assert first.image_key not in storage.blobs


async def test_create_retries_when_slug_is_taken_concurrently(db, monkeypatch):
    first = await ProductService.create(db, dto("Blue Vase"))
    first_slug = first.slug
    pick_slug = ProductService._generate_unique_slug
    stale = ["blue-vase"]

    async def stale_then_fresh(session, title):
        if stale:
            return stale.pop()
        return await pick_slug(session, title)

    monkeypatch.setattr(ProductService, "_generate_unique_slug", staticmethod(stale_then_fresh))

    second = await ProductService.create(db, dto("Blue Vase"))

    assert first_slug == "blue-vase"
    assert second.slug == "blue-vase-1"


async def test_create_gives_up_when_slug_keeps_colliding(db, monkeypatch):
    await ProductService.create(db, dto("Blue Vase"))

    async def always_taken(session, title):
        return "blue-vase"

    monkeypatch.setattr(ProductService, "_generate_unique_slug", staticmethod(always_taken))

    with pytest.raises(DatabaseError):
        await ProductService.create(db, dto("Blue Vase"))
