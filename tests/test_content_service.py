import pytest

from core.exceptions import Conflict, NotFound, ValidationError
from models.lesson import Lesson
from models.module import Module
from services.content_service import ContentService


@pytest.fixture
def content(db, storage):
    return ContentService(db, storage)


async def test_create_lesson_validates_correct_index(content, lesson_payload):
    lesson_payload["questions"][0]["correct_index"] = 4
    with pytest.raises(ValidationError) as exc:
        await content.create_lesson(lesson_payload)
    assert exc.value.errors


@pytest.mark.parametrize("field,value", [
    ("title", "   "),
    ("xp_reward", 0),
    ("xp_reward", -5),
])
async def test_create_lesson_rejects_bad_fields(content, lesson_payload, field, value):
    lesson_payload[field] = value
    with pytest.raises(ValidationError):
        await content.create_lesson(lesson_payload)


async def test_create_lesson_requires_two_options(content, lesson_payload):
    lesson_payload["questions"][0]["options"] = ["only one"]
    lesson_payload["questions"][0]["correct_index"] = 0
    with pytest.raises(ValidationError):
        await content.create_lesson(lesson_payload)


async def test_create_lesson_unknown_module(content, lesson_payload):
    existing = await content.create_lesson(lesson_payload)
    lesson_payload["module_key"] = "nope"
    with pytest.raises(ValidationError):
        await content.create_lesson(lesson_payload)
    assert existing.title == "Introduction to Polymers"


async def test_create_and_list_lessons(content, lesson_payload):
    second = dict(lesson_payload, title="Second", order=0)
    await content.create_lesson(lesson_payload, owner_id="teacher-1")
    await content.create_lesson(second)
    lessons = await content.list_lessons()
    assert [lesson.title for lesson in lessons] == ["Second", "Introduction to Polymers"]
    assert await content.count_lessons() == 2


async def test_get_lesson_missing(content):
    with pytest.raises(NotFound):
        await content.get_lesson("missing")


async def test_create_module_slugifies_code(content):
    module = await content.create_module({"code": "CHEM-101 Lab", "title": "Lab", "color_theme": "teal"})
    assert module.module_key == "chem101lab"
    assert module.icon_key == "atom"
    assert module.order == 1


async def test_create_module_reserved_and_duplicate(content):
    with pytest.raises(Conflict):
        await content.create_module({"code": "QXU5031", "title": "Clash"})
    await content.create_module({"code": "X1", "title": "One"})
    with pytest.raises(Conflict):
        await content.create_module({"code": "x-1", "title": "Two"})


async def test_create_module_invalid_key(content):
    with pytest.raises(ValidationError):
        await content.create_module({"code": "!!!", "title": "Symbols"})


async def test_create_module_key_falls_back_to_code(content):
    module = await content.create_module({"code": "M9", "module_key": "!!!", "title": "Nine"})
    assert module.module_key == "m9"


async def test_update_module(content):
    await content.create_module({"code": "X1", "title": "One"})
    module = await content.update_module("x1", {"title": "Renamed", "order": 7})
    assert module.title == "Renamed"
    assert module.order == 7


async def test_delete_module_in_use_conflicts(content, db, lesson_payload):
    module = await content.create_module({"code": "M1", "title": "Module"})
    lesson = await content.create_lesson(dict(lesson_payload, module_key="m1"))

    with pytest.raises(Conflict):
        await content.delete_module("m1")

    assert (await content.get_module("m1")).title == "Module"
    assert (await content.get_lesson(lesson.id)).module_key == "m1"
    # Objects loaded before the refused delete stay usable
    assert module.title == "Module"
    assert lesson.module_key == "m1"


async def test_delete_unused_module(content):
    await content.create_module({"code": "M2", "title": "Module"})
    await content.delete_module("m2")
    with pytest.raises(NotFound):
        await content.get_module("m2")


async def test_delete_default_module_conflicts(content):
    await content.initialize_defaults()
    with pytest.raises(Conflict):
        await content.delete_module("qxu6033")


async def test_initialize_defaults_is_idempotent(content, db):
    assert await content.initialize_defaults() is True
    assert await content.initialize_defaults() is False
    lessons = await content.list_lessons()
    assert [lesson.xp_reward for lesson in lessons] == [50, 75, 75]
    assert all(lesson.is_default for lesson in lessons)
    modules = await content.list_modules()
    assert [m.module_key for m in modules] == ["qxu5031", "qxu6033"]


async def test_update_lesson_releases_unused_blobs(content, storage, lesson_payload):
    kept = storage.put_blob(b"kept")
    dropped = storage.put_blob(b"dropped")
    lesson_payload["questions"][0]["image_blob_ref"] = kept
    lesson_payload["questions"][1]["image_blob_ref"] = dropped
    lesson = await content.create_lesson(lesson_payload)

    lesson_payload["questions"][1].pop("image_blob_ref")
    updated = await content.update_lesson(lesson.id, lesson_payload)

    assert updated.questions_json[1]["image_blob_ref"] is None
    assert storage.get_url(kept) == f"http://test/uploads/{kept}"
    assert storage.get_url(dropped) is None


async def test_blob_shared_with_other_lesson_is_kept(content, storage, lesson_payload):
    shared = storage.put_blob(b"shared")
    lesson_payload["questions"][0]["image_blob_ref"] = shared
    first = await content.create_lesson(lesson_payload)
    await content.create_lesson(dict(lesson_payload, title="Copy"))

    await content.delete_lesson(first.id)
    assert storage.get_url(shared) is not None


async def test_unknown_blob_ref_rejected(content, lesson_payload):
    lesson_payload["questions"][0]["image_blob_ref"] = "0" * 32
    with pytest.raises(ValidationError):
        await content.create_lesson(lesson_payload)


async def test_to_lesson_out_resolves_images(content, storage, lesson_payload):
    ref = storage.put_blob(b"png")
    lesson_payload["questions"][0]["image_blob_ref"] = ref
    lesson_payload["questions"][1]["image_url"] = "https://cdn.example.org/a.png"
    out = content.to_lesson_out(await content.create_lesson(lesson_payload))
    assert out.questions[0].resolved_image_url == f"http://test/uploads/{ref}"
    assert out.questions[1].resolved_image_url == "https://cdn.example.org/a.png"
    assert out.questions[2].resolved_image_url is None


def test_storage_rejects_bad_refs(storage):
    with pytest.raises(ValidationError):
        storage.delete_blob("../etc/passwd")
    with pytest.raises(ValidationError):
        storage.put_blob(b"")
    assert storage.get_url("not-a-ref") is None
