import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum, auto
from pathlib import Path
from typing import AsyncIterable, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from starlette.concurrency import run_in_threadpool
from werkzeug.utils import secure_filename

from imageboard.config.config import S3Config, Settings
from imageboard.exceptions import StorageError

logger = logging.getLogger(__name__)


class MediaKind(StrEnum):
    image = auto()
    video = auto()


EXTENSION_KINDS: dict[str, MediaKind] = {
    "jpg": MediaKind.image,
    "jpeg": MediaKind.image,
    "png": MediaKind.image,
    "gif": MediaKind.image,
    "webp": MediaKind.image,
    "mp4": MediaKind.video,
    "mp3": MediaKind.video,
    "webm": MediaKind.video,
}

MIME_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "mp3": "audio/mpeg",
    "webm": "video/webm",
}


# 파일 시스템의 파일명 한도(NAME_MAX)와 post.file_path 컬럼 길이
MAX_KEY_LENGTH = 255


def file_extension(filename: str) -> str:
    """마지막 '.' 뒤의 문자열. '.'이 없으면 빈 문자열"""
    return filename.rsplit(".", 1)[1] if "." in filename else ""


def classify(filename: str) -> Optional[MediaKind]:
    """확장자는 대소문자를 구분하지 않습니다. 허용되지 않는 확장자면 None"""
    return EXTENSION_KINDS.get(file_extension(filename).lower())


def storage_name(original_filename: str) -> str:
    """
    경로 구분자/제어문자를 제거한 원본 파일명 앞에 uuid4를 붙여
    같은 이름의 파일이 동시에 올라와도 덮어쓰지 않는 저장 이름을 만듭니다.
    """
    extension = file_extension(original_filename).lower()
    sanitized = secure_filename(original_filename)
    if not sanitized.lower().endswith(f".{extension}"):
        # 비ASCII 파일명은 secure_filename 후 확장자만 남거나 비어버림
        sanitized = f"upload.{extension}"

    prefix = f"{uuid.uuid4().hex}-"
    limit = MAX_KEY_LENGTH - len(prefix)
    if len(sanitized) > limit:
        # secure_filename 결과는 ASCII라서 글자 수 = byte 수
        suffix = sanitized[-(len(extension) + 1) :]
        sanitized = sanitized[: limit - len(suffix)] + suffix
    return prefix + sanitized


@dataclass(frozen=True)
class StoredFile:
    key: str
    kind: MediaKind
    size: int


class FileStore(ABC):
    """
    검증된 첨부파일을 저장소에 기록합니다.
    허용되지 않는 확장자는 에러가 아니라 None("저장하지 않음")을 반환하며 한 바이트도 쓰지 않습니다.
    """

    async def put(
        self, original_filename: str, content: AsyncIterable[bytes]
    ) -> Optional[StoredFile]:
        kind = classify(original_filename)
        if kind is None:
            logger.info("허용되지 않는 첨부파일 무시: %s", original_filename)
            return None

        key = storage_name(original_filename)
        size = await self._write(key, content)
        logger.info("첨부파일 저장 완료: key=%s size=%d", key, size)
        return StoredFile(key=key, kind=kind, size=size)

    @abstractmethod
    def url_for(self, key: str) -> str:
        """화면에 노출할 첨부파일 URL"""

    def media_kind(self, key: str) -> Optional[MediaKind]:
        return classify(key)

    @abstractmethod
    async def _write(self, key: str, content: AsyncIterable[bytes]) -> int:
        """content를 key로 기록하고 기록한 byte 수를 반환합니다."""

    async def startup(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass


class LocalFileStore(FileStore):
    """
    로컬 디렉터리에 저장. 블로킹 파일 I/O는 chunk 단위로 threadpool에서 실행하여
    다른 요청을 막지 않습니다.
    """

    def __init__(self, directory: str | Path, public_prefix: str = "/static") -> None:
        self.directory = Path(directory)
        self.public_prefix = public_prefix.rstrip("/")

    async def startup(self) -> None:
        await run_in_threadpool(self.directory.mkdir, parents=True, exist_ok=True)
        logger.info("로컬 첨부파일 저장소 준비 완료: %s", self.directory)

    def url_for(self, key: str) -> str:
        return f"{self.public_prefix}/{key}"

    async def _write(self, key: str, content: AsyncIterable[bytes]) -> int:
        path = self.directory / key
        try:
            fp = await run_in_threadpool(open, path, "wb")
        except OSError as e:
            raise StorageError(f"failed to create {path}") from e

        size = 0
        try:
            async for chunk in content:
                try:
                    await run_in_threadpool(fp.write, chunk)
                except OSError as e:
                    raise StorageError(f"failed to write {path}") from e
                size += len(chunk)
        except Exception:
            # 용량 초과/연결 끊김/쓰기 실패로 중단된 파일은 남기지 않음
            await run_in_threadpool(fp.close)
            await self._remove(path)
            raise
        await run_in_threadpool(fp.close)
        return size

    @staticmethod
    async def _remove(path: Path) -> None:
        try:
            await run_in_threadpool(path.unlink, missing_ok=True)
        except OSError as e:
            logger.warning("중단된 첨부파일 삭제 실패: %s (%s)", path, e)


class S3FileStore(FileStore):
    """
    S3(MinIO) 저장소. 5MiB 단위 multipart upload로 스트리밍하며,
    파일 전체가 한 part보다 작으면 put_object 한 번으로 끝냅니다.
    """

    PART_SIZE = 5 * 1024 * 1024

    def __init__(self, config: S3Config, session: Optional[aioboto3.Session] = None) -> None:
        self.config = config
        # aioboto3 Session은 thread-safe하며 재사용 가능합니다.
        # S3 client는 업로드마다 async context manager로 생성합니다.
        self._session = session or aioboto3.Session(
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region,
        )

    def _client(self):
        return self._session.client("s3", endpoint_url=self.config.endpoint_url)

    async def startup(self) -> None:
        """서버 시작 시 S3 연결 확인 및 버킷 초기화를 수행합니다."""
        async with self._client() as s3:
            try:
                await s3.create_bucket(Bucket=self.config.bucket_name)
                logger.info("S3 버킷 생성 완료: %s", self.config.bucket_name)
            except ClientError as e:
                if e.response["Error"]["Code"] not in (
                    "BucketAlreadyExists",
                    "BucketAlreadyOwnedByYou",
                ):
                    raise
            logger.info("S3 연결 완료: bucket=%s", self.config.bucket_name)

    def url_for(self, key: str) -> str:
        return f"{self.config.public_url.rstrip('/')}/{key}"

    async def _write(self, key: str, content: AsyncIterable[bytes]) -> int:
        bucket = self.config.bucket_name
        content_type = MIME_TYPES.get(file_extension(key).lower(), "application/octet-stream")
        buffer = bytearray()
        parts: list[dict] = []
        upload_id: Optional[str] = None
        size = 0

        async with self._client() as s3:
            try:
                async for chunk in content:
                    buffer += chunk
                    size += len(chunk)
                    if len(buffer) < self.PART_SIZE:
                        continue
                    if upload_id is None:
                        created = await s3.create_multipart_upload(
                            Bucket=bucket, Key=key, ContentType=content_type
                        )
                        upload_id = created["UploadId"]
                    parts.append(await self._upload_part(s3, key, upload_id, len(parts) + 1, buffer))
                    buffer.clear()

                if upload_id is None:
                    await s3.put_object(
                        Bucket=bucket, Key=key, Body=bytes(buffer), ContentType=content_type
                    )
                else:
                    if buffer:
                        parts.append(
                            await self._upload_part(s3, key, upload_id, len(parts) + 1, buffer)
                        )
                    await s3.complete_multipart_upload(
                        Bucket=bucket,
                        Key=key,
                        UploadId=upload_id,
                        MultipartUpload={"Parts": parts},
                    )
            except (BotoCoreError, ClientError) as e:
                await self._abort(s3, key, upload_id)
                raise StorageError(f"failed to upload {key}") from e
            except Exception:
                await self._abort(s3, key, upload_id)
                raise
        return size

    async def _upload_part(self, s3, key: str, upload_id: str, number: int, data: bytearray) -> dict:
        response = await s3.upload_part(
            Bucket=self.config.bucket_name,
            Key=key,
            UploadId=upload_id,
            PartNumber=number,
            Body=bytes(data),
        )
        return {"ETag": response["ETag"], "PartNumber": number}

    async def _abort(self, s3, key: str, upload_id: Optional[str]) -> None:
        if upload_id is None:
            return
        try:
            await s3.abort_multipart_upload(
                Bucket=self.config.bucket_name, Key=key, UploadId=upload_id
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning("multipart upload 취소 실패: key=%s (%s)", key, e)


def build_file_store(settings: Settings) -> FileStore:
    if settings.storage.backend == "s3":
        return S3FileStore(settings.s3)
    return LocalFileStore(settings.storage.directory, settings.storage.public_prefix)


def get_file_store(request: Request) -> FileStore:
    """
    `file_store: FileStore = Depends(get_file_store)`로 사용
    """
    return request.app.state.file_store
