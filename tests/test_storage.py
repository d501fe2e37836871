import io
from concurrent.futures import ThreadPoolExecutor

import pytest
from botocore.exceptions import ClientError

from form_filler.errors import StoredFileNotFoundError
from form_filler.storage import FileStore


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.objects[(Bucket, Key)] = Body

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}


@pytest.fixture
def store(tmp_path):
    return FileStore(tmp_path / "uploads")


def test_save_upload_generates_unique_names(store):
    first = store.save_upload("csv", "data.CSV", b"a,b\n1,2\n")
    second = store.save_upload("csv", "data.CSV", b"a,b\n1,2\n")

    assert first.filename != second.filename
    assert first.filename.startswith("csv-")
    assert first.filename.endswith(".csv")
    assert first.original_name == "data.CSV"
    assert first.size == 8
    assert store.read(first.path) == b"a,b\n1,2\n"


def test_resolve_accepts_bare_name_and_absolute_path(store):
    stored = store.save_upload("pdf", "form.pdf", b"%PDF")

    assert store.resolve(stored.filename) == store.root / stored.filename
    assert store.resolve(stored.path) == store.root / stored.filename


def test_resolve_rejects_paths_outside_root(store, tmp_path):
    outside = tmp_path / "secret.pdf"
    outside.write_bytes(b"%PDF")

    with pytest.raises(StoredFileNotFoundError):
        store.resolve(str(outside))
    with pytest.raises(StoredFileNotFoundError):
        store.resolve(str(store.root / ".." / "secret.pdf"))


def test_resolve_rejects_missing_file(store):
    with pytest.raises(StoredFileNotFoundError, match="File not found"):
        store.resolve("pdf-0-missing.pdf")


def test_output_round_trip_from_cache_and_disk(tmp_path):
    store = FileStore(tmp_path)
    stored = store.save_output(b"%PDF-filled")

    assert stored.filename.startswith("filled-")
    assert stored.filename.endswith(".pdf")
    assert store.load_output(stored.filename) == b"%PDF-filled"

    fresh = FileStore(tmp_path)
    assert fresh.load_output(stored.filename) == b"%PDF-filled"


def test_load_output_rejects_names_with_separators(tmp_path):
    store = FileStore(tmp_path / "uploads")
    (tmp_path / "outside.pdf").write_bytes(b"%PDF")

    assert store.load_output("../outside.pdf") is None
    assert store.load_output("") is None
    assert store.load_output("filled-0-unknown.pdf") is None


def test_outputs_are_mirrored_to_s3(tmp_path):
    s3 = FakeS3()
    store = FileStore(tmp_path / "a", s3_bucket="bucket", s3_prefix="out/", s3_client=s3)
    stored = store.save_output(b"%PDF-mirrored")

    assert s3.objects[("bucket", f"out/{stored.filename}")] == b"%PDF-mirrored"

    other = FileStore(tmp_path / "b", s3_bucket="bucket", s3_prefix="out/", s3_client=s3)
    assert other.load_output(stored.filename) == b"%PDF-mirrored"
    assert other.load_output("filled-0-unknown.pdf") is None


def test_concurrent_outputs_share_the_cache(tmp_path):
    store = FileStore(tmp_path, cache_size=8)

    def save_and_load(i):
        content = f"%PDF-{i}".encode()
        stored = store.save_output(content)
        return store.load_output(stored.filename) == content

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(save_and_load, range(64)))

    assert all(results)
