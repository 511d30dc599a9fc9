"""Tests for the relational + object store backend.

The relational store runs on SQLite through aiosqlite; the object store is
either a fake with scripted failures or moto's S3.
"""

from datetime import datetime, timezone

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws
from sqlalchemy import text

from slowpost.exceptions import AssetUploadError, StorageError
from slowpost.schemas.letter_schemas import Letter
from slowpost.services.storage import MediaUpload, build_storage
from slowpost.services.storage.cloud_store import CloudStorage, letter_from_row, missing_column
from slowpost.services.storage.object_store import ObjectStore

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _client_error(code="500"):
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, "PutObject")


class FakeObjectStore:
    """Fails the first ``failures[key_prefix]`` puts for each folder."""

    def __init__(self, failures=None, always_fail_folders=()):
        self.failures = dict(failures or {})
        self.always_fail_folders = set(always_fail_folders)
        self.objects = {}
        self.put_attempts = []
        self.deleted = []

    async def put(self, key, data, content_type):
        folder = key.split("/", 1)[0]
        self.put_attempts.append(key)
        if folder in self.always_fail_folders:
            raise _client_error()
        if self.failures.get(folder, 0) > 0:
            self.failures[folder] -= 1
            raise _client_error()
        self.objects[key] = data
        return f"https://cdn.example.com/{key}"

    async def delete(self, key):
        self.deleted.append(key)
        self.objects.pop(key, None)
        return True

    async def check_bucket(self):
        return True


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _letter(letter_id="c-1", **overrides):
    values = dict(
        id=letter_id,
        sender_name="A",
        recipient_name="B",
        letter_content="hello",
        delay_minutes=60,
        delay_days=0,
        schedule_time=NOW,
        created_at=NOW,
        image_urls=["https://cdn.example.com/images/1.png"],
        stickers=["star"],
        holiday_theme="birthday",
        ambience_music=True,
        edit_password_hash="aa$bb",
    )
    values.update(overrides)
    return Letter(**values)


@pytest.fixture
def cloud_settings(make_settings, tmp_path):
    return make_settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'letters.db'}",
        s3_bucket="letters-bucket",
    )


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
async def cloud(cloud_settings, sleep):
    storage = CloudStorage(cloud_settings, object_store=FakeObjectStore(), sleep=sleep)
    yield storage
    await storage.close()


async def _create_table(storage, columns):
    async with storage.engine.begin() as conn:
        await conn.execute(text(f"CREATE TABLE letters ({', '.join(columns)})"))


def test_build_storage_selects_cloud_when_fully_configured(cloud_settings):
    assert isinstance(build_storage(cloud_settings), CloudStorage)


@pytest.mark.parametrize("message,column", [
    ("(1054, \"Unknown column 'stickers' in 'field list'\")", "stickers"),
    ("table letters has no column named holiday_theme", "holiday_theme"),
    ("no such column: delay_days", "delay_days"),
    ('column "video_urls" of relation "letters" does not exist', "video_urls"),
    ("Could not find the 'stamp_data' column of 'letters' in the schema cache", "stamp_data"),
    ("UNIQUE constraint failed: letters.id", None),
])
def test_missing_column_detection(message, column):
    assert missing_column(Exception(message)) == column


def test_row_mapping_defaults_absent_columns():
    letter = letter_from_row({
        "id": "r-1",
        "sender_name": "A",
        "recipient_name": "B",
        "letter_content": "hi",
        "delay_minutes": 5,
        "schedule_time": "2026-01-01 12:00:00.000000",
        "created_at": "2026-01-01 12:00:00.000000",
        "ambience_music": 0,
    })
    assert letter.image_urls == []
    assert letter.audio_url is None
    assert letter.paper_theme == "classic"
    assert letter.ambience_music is False
    assert letter.schedule_time == NOW


async def test_create_and_read_round_trip(cloud):
    await cloud.prepare()
    original = _letter()
    await cloud.create(original)

    found = await cloud.get_by_id("c-1")
    assert found == original
    assert await cloud.get_by_id("missing") is None

    await cloud.create(_letter("c-0", created_at=datetime(2025, 12, 31, tzinfo=timezone.utc)))
    assert [letter.id for letter in await cloud.get_all()] == ["c-0", "c-1"]


async def test_insert_drops_columns_missing_from_remote_table(cloud):
    await _create_table(cloud, [
        "id VARCHAR(36) PRIMARY KEY",
        "sender_name VARCHAR(100)",
        "sender_country VARCHAR(100)",
        "recipient_name VARCHAR(100)",
        "recipient_email VARCHAR(255)",
        "letter_content TEXT",
        "delay_minutes INTEGER",
        "delay_days INTEGER",
        "schedule_time DATETIME",
        "created_at DATETIME",
        "image_urls JSON",
        "video_urls JSON",
        "audio_url TEXT",
        "stamp_data TEXT",
        "paper_theme VARCHAR(20)",
        "edit_password_hash VARCHAR(255)",
    ])

    await cloud.create(_letter())

    found = await cloud.get_by_id("c-1")
    assert found.letter_content == "hello"
    assert found.image_urls == ["https://cdn.example.com/images/1.png"]
    assert found.edit_password_hash == "aa$bb"
    # columns the table lacks read back as defaults
    assert found.stickers == []
    assert found.holiday_theme == "none"
    assert found.ambience_music is False
    assert found.stamp_template == "classic"


async def test_insert_drops_columns_that_have_model_defaults(cloud):
    await _create_table(cloud, [
        "id VARCHAR(36) PRIMARY KEY",
        "sender_name VARCHAR(100)",
        "sender_country VARCHAR(100)",
        "recipient_name VARCHAR(100)",
        "recipient_email VARCHAR(255)",
        "letter_content TEXT",
        "delay_minutes INTEGER",
        "schedule_time DATETIME",
        "created_at DATETIME",
        "image_urls JSON",
        "video_urls JSON",
        "audio_url TEXT",
        "stamp_data TEXT",
        "stickers JSON",
        "edit_password_hash VARCHAR(255)",
    ])

    await cloud.create(_letter(delay_minutes=2000, delay_days=1, paper_theme="warm"))

    found = await cloud.get_by_id("c-1")
    assert found.delay_minutes == 2000
    assert found.delay_days == 1
    assert found.paper_theme == "classic"
    assert found.stickers == ["star"]


@pytest.mark.parametrize("absent", ["edit_password_hash", "schedule_time", "created_at", "delay_minutes"])
async def test_insert_never_drops_columns_a_letter_depends_on(cloud, absent, caplog):
    columns = [
        f"{c.name} {c.type.compile(dialect=cloud.engine.dialect)}"
        for c in cloud.table.columns
        if c.name != absent
    ]
    await _create_table(cloud, columns)

    with pytest.raises(StorageError, match=absent):
        await cloud.create(_letter())
    assert "retrying without it" not in caplog.text
    async with cloud.engine.connect() as conn:
        count = (await conn.execute(text("SELECT COUNT(*) FROM letters"))).scalar()
    assert count == 0


async def test_insert_gives_up_after_bounded_attempts(cloud):
    await _create_table(cloud, [
        "id VARCHAR(36) PRIMARY KEY",
        "sender_name VARCHAR(100)",
        "recipient_name VARCHAR(100)",
        "letter_content TEXT",
        "delay_minutes INTEGER",
        "schedule_time DATETIME",
        "created_at DATETIME",
        "edit_password_hash VARCHAR(255)",
    ])

    # twelve columns are missing: eleven retries drop eleven, the twelfth attempt still fails
    with pytest.raises(StorageError):
        await cloud.create(_letter())
    assert await cloud.get_all() == []


async def test_unrelated_insert_error_is_not_retried(cloud):
    await cloud.prepare()
    await cloud.create(_letter())
    with pytest.raises(StorageError):
        await cloud.create(_letter(letter_content="duplicate id"))
    assert (await cloud.get_by_id("c-1")).letter_content == "hello"


async def test_update_pending(cloud):
    await cloud.prepare()
    await cloud.create(_letter())

    updated = await cloud.update_pending("c-1", "edited", 2000)
    assert updated.letter_content == "edited"
    assert updated.delay_minutes == 2000
    assert updated.delay_days == 1
    assert updated.image_urls == ["https://cdn.example.com/images/1.png"]
    assert await cloud.update_pending("missing", "x", 1) is None


async def test_update_pending_tolerates_missing_delay_days_column(cloud):
    await _create_table(cloud, [
        "id VARCHAR(36) PRIMARY KEY",
        "sender_name VARCHAR(100)",
        "recipient_name VARCHAR(100)",
        "letter_content TEXT",
        "delay_minutes INTEGER",
        "schedule_time DATETIME",
        "created_at DATETIME",
    ])
    async with cloud.engine.begin() as conn:
        await conn.execute(text(
            "INSERT INTO letters VALUES ('c-1', 'A', 'B', 'old', 30, "
            "'2026-01-01 12:00:00.000000', '2026-01-01 12:00:00.000000')"
        ))

    updated = await cloud.update_pending("c-1", "new", 45)
    assert updated.letter_content == "new"
    assert updated.delay_minutes == 45


async def test_reads_fail_with_storage_error_when_table_is_missing(cloud):
    with pytest.raises(StorageError):
        await cloud.get_all()


class TestAssetUploads:
    async def test_uploads_into_type_folders(self, cloud):
        assets = await cloud.store_assets(
            [MediaUpload("images", "a.png", "image/png", data=b"1"),
             MediaUpload("images", "b.png", "image/png", data=b"2")],
            [MediaUpload("videos", "c.mp4", "video/mp4", data=b"3")],
            MediaUpload("audio", "d.mp3", "audio/mpeg", data=b"4"),
        )
        assert [url.split("/")[3] for url in assets.image_urls] == ["images", "images"]
        assert assets.image_urls[0].endswith("-a.png")
        assert assets.image_urls[1].endswith("-b.png")
        assert assets.video_urls[0].startswith("https://cdn.example.com/videos/")
        assert assets.audio_url.startswith("https://cdn.example.com/audio/")
        assert len(assets.keys) == 4

    async def test_retries_with_linear_backoff(self, cloud_settings, sleep):
        object_store = FakeObjectStore(failures={"images": 2})
        storage = CloudStorage(cloud_settings, object_store=object_store, sleep=sleep)

        assets = await storage.store_assets([MediaUpload("images", "a.png", "image/png", data=b"1")], [], None)

        assert len(assets.image_urls) == 1
        assert len(object_store.put_attempts) == 3
        assert sleep.delays == [0.6, 1.2]
        await storage.close()

    async def test_exhausted_retries_abort_and_clean_up(self, cloud_settings, sleep):
        object_store = FakeObjectStore(always_fail_folders={"videos"})
        storage = CloudStorage(cloud_settings, object_store=object_store, sleep=sleep)

        with pytest.raises(AssetUploadError):
            await storage.store_assets(
                [MediaUpload("images", "a.png", "image/png", data=b"1")],
                [MediaUpload("videos", "c.mp4", "video/mp4", data=b"3")],
                None,
            )

        video_attempts = [key for key in object_store.put_attempts if key.startswith("videos/")]
        assert len(video_attempts) == 3
        assert sleep.delays == [0.6, 1.2]
        # the image that did upload is removed again
        assert len(object_store.deleted) == 1
        assert object_store.deleted[0].startswith("images/")
        assert object_store.objects == {}
        await storage.close()


class TestS3ObjectStore:
    async def test_put_delete_and_check_bucket(self, cloud_settings):
        with mock_aws():
            client = boto3.client("s3", region_name="us-east-1")
            client.create_bucket(Bucket="letters-bucket")
            store = ObjectStore(cloud_settings, client=client)

            url = await store.put("images/1-a.png", b"png", "image/png")
            assert url == "https://letters-bucket.s3.us-east-1.amazonaws.com/images/1-a.png"
            obj = client.get_object(Bucket="letters-bucket", Key="images/1-a.png")
            assert obj["Body"].read() == b"png"
            assert obj["ContentType"] == "image/png"

            assert await store.check_bucket() is True
            assert await store.delete("images/1-a.png") is True
            listing = client.list_objects_v2(Bucket="letters-bucket")
            assert listing.get("KeyCount", 0) == 0

    async def test_bucket_check_fails_for_missing_bucket(self, make_settings):
        with mock_aws():
            client = boto3.client("s3", region_name="us-east-1")
            store = ObjectStore(make_settings(s3_bucket="nope"), client=client)
            assert await store.check_bucket() is False

    def test_public_url_variants(self, make_settings):
        store = ObjectStore(make_settings(s3_bucket="b", s3_public_base_url="https://cdn.example.com/"))
        assert store.public_url("images/x.png") == "https://cdn.example.com/images/x.png"
        store = ObjectStore(make_settings(s3_bucket="b", s3_endpoint_url="http://minio:9000"))
        assert store.public_url("audio/x.mp3") == "http://minio:9000/b/audio/x.mp3"


async def test_health_checks_both_stores(cloud):
    await cloud.prepare()
    report = await cloud.health()
    assert report["configured"]["databaseUrl"] is True
    assert report["configured"]["s3Bucket"] is True
    assert report["live"] == {"database": True, "objectStore": True}
