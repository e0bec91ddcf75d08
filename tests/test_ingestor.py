from typing import AsyncIterator

import pytest
from starlette.requests import ClientDisconnect

from imageboard.dependencies.storage import LocalFileStore, MediaKind
from imageboard.exceptions import IngestionError, PayloadTooLarge
from imageboard.services.ingest import MultipartIngestor, parse_parent_id


def _stream(body: bytes, chunk_size: int = 7) -> AsyncIterator[bytes]:
    async def gen():
        for i in range(0, len(body), chunk_size):
            yield body[i : i + chunk_size]

    return gen()


class TestParseParentId:
    def test_values(self):
        assert parse_parent_id("12") == 12
        assert parse_parent_id(" 3 ") == 3
        assert parse_parent_id("0") == 0
        assert parse_parent_id("-4") == 0
        assert parse_parent_id("abc") == 0
        assert parse_parent_id("") == 0


class TestMultipartIngestor:
    async def test_text_fields(self, file_store: LocalFileStore, encode_multipart):
        body, content_type = encode_multipart(
            {"title": "Hello", "message": "첫 글입니다", "parent_id": "7"}
        )

        submission = await MultipartIngestor(file_store).ingest(content_type, _stream(body), len(body))

        assert submission.title == "Hello"
        assert submission.message == "첫 글입니다"
        assert submission.parent_id == 7
        assert submission.file is None

    async def test_file_is_streamed_to_store(self, file_store: LocalFileStore, upload_dir, encode_multipart):
        content = bytes(range(256)) * 40
        body, content_type = encode_multipart(
            {"title": "t", "message": "m"},
            {"file": ("cat.png", content)},
        )

        submission = await MultipartIngestor(file_store).ingest(content_type, _stream(body, 100))

        assert submission.file is not None
        assert submission.file.kind is MediaKind.image
        assert submission.file.size == len(content)
        assert (upload_dir / submission.file.key).read_bytes() == content

    async def test_unknown_fields_are_drained(self, file_store: LocalFileStore, encode_multipart):
        body, content_type = encode_multipart(
            {"title": "t", "extra": "x" * 1000, "message": "m"},
            {"other": ("cat.png", b"data")},
        )

        submission = await MultipartIngestor(file_store).ingest(content_type, _stream(body))

        assert submission.title == "t"
        assert submission.message == "m"
        assert submission.file is None

    async def test_invalid_parent_id(self, file_store: LocalFileStore, encode_multipart):
        body, content_type = encode_multipart({"title": "t", "message": "m", "parent_id": "x1"})

        submission = await MultipartIngestor(file_store).ingest(content_type, _stream(body))

        assert submission.parent_id == 0

    async def test_rejected_extension(self, file_store: LocalFileStore, upload_dir, encode_multipart):
        body, content_type = encode_multipart(
            {"title": "t", "message": "m"},
            {"file": ("setup.exe", b"MZ" * 100)},
        )

        submission = await MultipartIngestor(file_store).ingest(content_type, _stream(body))

        assert submission.file is None
        assert submission.message == "m"
        assert list(upload_dir.iterdir()) == []

    async def test_empty_filename(self, file_store: LocalFileStore, upload_dir, encode_multipart):
        body, content_type = encode_multipart(
            {"title": "t", "message": "m"},
            {"file": ("", b"")},
        )

        submission = await MultipartIngestor(file_store).ingest(content_type, _stream(body))

        assert submission.file is None
        assert list(upload_dir.iterdir()) == []

    async def test_only_first_file_is_stored(self, file_store: LocalFileStore, upload_dir):
        boundary = "xyz"
        body = (
            b"--xyz\r\n"
            b'Content-Disposition: form-data; name="file"; filename="a.png"\r\n\r\n'
            b"first\r\n"
            b"--xyz\r\n"
            b'Content-Disposition: form-data; name="file"; filename="b.png"\r\n\r\n'
            b"second\r\n"
            b"--xyz\r\n"
            b'Content-Disposition: form-data; name="title"\r\n\r\n'
            b"t\r\n"
            b"--xyz--\r\n"
        )

        submission = await MultipartIngestor(file_store).ingest(
            f"multipart/form-data; boundary={boundary}", _stream(body)
        )

        assert submission.file.key.endswith("-a.png")
        assert submission.title == "t"
        assert [p.name for p in upload_dir.iterdir()] == [submission.file.key]

    async def test_declared_oversize_is_rejected_before_reading(
        self, file_store: LocalFileStore, upload_dir, encode_multipart
    ):
        body, content_type = encode_multipart(
            {"title": "t", "message": "m"},
            {"file": ("cat.png", b"x" * 2048)},
        )
        read = []

        async def stream():
            read.append(True)
            yield body

        with pytest.raises(PayloadTooLarge):
            await MultipartIngestor(file_store, max_size=1024).ingest(content_type, stream(), len(body))

        assert read == []
        assert list(upload_dir.iterdir()) == []

    async def test_streamed_oversize(self, file_store: LocalFileStore, upload_dir, encode_multipart):
        body, content_type = encode_multipart(
            {"title": "t", "message": "m"},
            {"file": ("cat.png", b"x" * 4096)},
        )

        with pytest.raises(PayloadTooLarge):
            await MultipartIngestor(file_store, max_size=1024).ingest(content_type, _stream(body, 256))

        assert list(upload_dir.iterdir()) == []

    async def test_not_multipart(self, file_store: LocalFileStore):
        with pytest.raises(IngestionError):
            await MultipartIngestor(file_store).ingest(
                "application/x-www-form-urlencoded", _stream(b"title=t&message=m")
            )

    async def test_missing_boundary(self, file_store: LocalFileStore):
        with pytest.raises(IngestionError):
            await MultipartIngestor(file_store).ingest("multipart/form-data", _stream(b""))

    async def test_truncated_body(self, file_store: LocalFileStore, encode_multipart):
        body, content_type = encode_multipart({"title": "t", "message": "m"})

        with pytest.raises(IngestionError):
            await MultipartIngestor(file_store).ingest(content_type, _stream(body[:-20]))

    async def test_client_disconnect(self, file_store: LocalFileStore, encode_multipart):
        body, content_type = encode_multipart(
            {"title": "t", "message": "m"},
            {"file": ("cat.png", b"x" * 500)},
        )

        async def stream():
            yield body[:100]
            raise ClientDisconnect()

        with pytest.raises(IngestionError):
            await MultipartIngestor(file_store).ingest(content_type, stream())
