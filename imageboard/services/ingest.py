import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, AsyncIterable, AsyncIterator, Optional

import python_multipart
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header
from starlette.requests import ClientDisconnect

from imageboard.dependencies.storage import FileStore, StoredFile
from imageboard.exceptions import IngestionError, PayloadTooLarge

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE = 20 * 1024 * 1024

FILE_FIELD = "file"
TEXT_FIELDS = frozenset({"title", "message", "parent_id"})


@dataclass
class ParsedSubmission:
    title: str = ""
    message: str = ""
    parent_id: int = 0
    file: Optional[StoredFile] = None


def parse_parent_id(value: str) -> int:
    """정수로 해석할 수 없거나 음수면 0(원글)으로 취급합니다."""
    try:
        parent_id = int(value.strip())
    except ValueError:
        return 0
    return parent_id if parent_id > 0 else 0


class _Event(Enum):
    PART_START = auto()
    PART_DATA = auto()
    PART_END = auto()


class _MultipartReader:
    """
    python-multipart의 push parser를 감싸서 요청 본문을
    (PART_START, (name, filename)) / (PART_DATA, bytes) / (PART_END, None) 이벤트로 바꿉니다.
    """

    def __init__(self, boundary: bytes, max_size: int) -> None:
        self.max_size = max_size
        self._messages: list[tuple[_Event, Any]] = []
        self._header_field = b""
        self._header_value = b""
        self._disposition: dict[bytes, bytes] = {}
        self._finished = False
        self._parser = python_multipart.MultipartParser(
            boundary,
            {
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_end": self._on_end,
            },
        )

    def _on_part_begin(self) -> None:
        self._disposition = {}

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._messages.append((_Event.PART_DATA, data[start:end]))

    def _on_part_end(self) -> None:
        self._messages.append((_Event.PART_END, None))

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        if self._header_field.lower() == b"content-disposition":
            _, self._disposition = parse_options_header(self._header_value)
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        name = self._disposition.get(b"name", b"").decode("utf-8", errors="replace")
        filename = self._disposition.get(b"filename")
        if filename is not None:
            filename = filename.decode("utf-8", errors="replace")
        self._messages.append((_Event.PART_START, (name, filename)))

    def _on_end(self) -> None:
        self._finished = True

    def _drain(self) -> list[tuple[_Event, Any]]:
        messages, self._messages = self._messages, []
        return messages

    async def events(self, stream: AsyncIterable[bytes]) -> AsyncIterator[tuple[_Event, Any]]:
        received = 0
        try:
            async for chunk in stream:
                received += len(chunk)
                if received > self.max_size:
                    raise PayloadTooLarge(self.max_size)
                self._parser.write(chunk)
                for message in self._drain():
                    yield message
            self._parser.finalize()
        except MultipartParseError as e:
            raise IngestionError("malformed multipart body") from e
        except (ClientDisconnect, OSError) as e:
            raise IngestionError("upload stream interrupted") from e

        for message in self._drain():
            yield message
        if not self._finished:
            raise IngestionError("multipart body ended before the closing boundary")


class MultipartIngestor:
    """
    multipart/form-data 요청을 한 part씩 스트리밍으로 읽습니다.
    title/message/parent_id는 텍스트로, file은 FileStore로 바로 흘려보내며
    본문 전체를 메모리에 올리지 않습니다.
    """

    def __init__(self, file_store: FileStore, max_size: int = MAX_UPLOAD_SIZE) -> None:
        self.file_store = file_store
        self.max_size = max_size

    async def ingest(
        self,
        content_type: Optional[str],
        stream: AsyncIterable[bytes],
        content_length: Optional[int] = None,
    ) -> ParsedSubmission:
        # Content-Length로 초과가 확인되면 첨부파일을 한 바이트도 쓰기 전에 거절
        if content_length is not None and content_length > self.max_size:
            raise PayloadTooLarge(self.max_size)

        reader = _MultipartReader(self._boundary(content_type), self.max_size)
        events = reader.events(stream)
        submission = ParsedSubmission()

        async for event, value in events:
            if event is not _Event.PART_START:
                continue
            name, filename = value
            part = self._part_data(events)

            if name == FILE_FIELD and filename and submission.file is None:
                submission.file = await self.file_store.put(filename, part)
            elif name in TEXT_FIELDS:
                raw = b"".join([chunk async for chunk in part])
                self._set_text_field(submission, name, raw.decode("utf-8", errors="replace"))

            # 거절된 첨부파일이나 알 수 없는 필드도 끝까지 읽어야 다음 part로 넘어감
            async for _ in part:
                pass

        return submission

    @staticmethod
    def _boundary(content_type: Optional[str]) -> bytes:
        mime, params = parse_options_header(content_type or "")
        boundary = params.get(b"boundary")
        if mime.lower() != b"multipart/form-data" or not boundary:
            raise IngestionError(f"expected multipart/form-data, got {content_type!r}")
        return boundary

    @staticmethod
    async def _part_data(events: AsyncIterator[tuple[_Event, Any]]) -> AsyncIterator[bytes]:
        async for event, value in events:
            if event is _Event.PART_END:
                return
            yield value

    @staticmethod
    def _set_text_field(submission: ParsedSubmission, name: str, value: str) -> None:
        if name == "title":
            submission.title = value
        elif name == "message":
            submission.message = value
        elif name == "parent_id":
            submission.parent_id = parse_parent_id(value)
