import os
from typing import AsyncGenerator, Optional

import httpx
import pytest
from asgi_lifespan import LifespanManager
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from imageboard.dependencies.mysql import Database
from imageboard.dependencies.storage import LocalFileStore

BOUNDARY = "imageboard-test-boundary"


def _encode_multipart(
    fields: dict[str, str],
    files: Optional[dict[str, tuple[str, bytes]]] = None,
) -> tuple[bytes, str]:
    """(본문, Content-Type 헤더)를 반환합니다. fields 다음에 files 순서로 part를 만듭니다."""
    body = b""
    for name, value in fields.items():
        body += (
            f"--{BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
        ).encode() + value.encode() + b"\r\n"
    for name, (filename, content) in (files or {}).items():
        body += (
            f"--{BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            "Content-Type: application/octet-stream\r\n\r\n"
        ).encode() + content + b"\r\n"
    body += f"--{BOUNDARY}--\r\n".encode()
    return body, f"multipart/form-data; boundary={BOUNDARY}"


@pytest.fixture
def encode_multipart():
    return _encode_multipart


@pytest.fixture
def database_url(tmp_path) -> str:
    """
    기본은 tmp_path의 SQLite 파일을 사용합니다.
    실제 MySQL로 돌리려면 TEST_DATABASE_URL=mysql+asyncmy://... 를 지정하세요.
    """
    return os.getenv("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'board.db'}")


async def _delete_posts(database: Database) -> None:
    async with database.sessionmaker() as session:
        await session.execute(text("DELETE FROM post"))
        await session.commit()


@pytest.fixture
async def database(database_url: str) -> AsyncGenerator[Database, None]:
    database = Database(database_url)
    await database.startup()
    yield database
    await _delete_posts(database)
    await database.shutdown()


@pytest.fixture
async def session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.sessionmaker() as session:
        yield session


@pytest.fixture
async def file_store(tmp_path) -> LocalFileStore:
    store = LocalFileStore(tmp_path / "static")
    await store.startup()
    return store


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "static"


@pytest.fixture
async def api_client(
    database_url: str, upload_dir, monkeypatch
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    lifespan까지 실행한 테스트 클라이언트.
    DB와 첨부파일 디렉터리를 테스트별 임시 경로로 바꿔서 띄웁니다.
    """
    from imageboard.config.config import settings
    from imageboard.main import app

    monkeypatch.setattr(settings.mysql, "url", database_url)
    monkeypatch.setattr(settings.mysql, "echo", False)
    monkeypatch.setattr(settings.storage, "backend", "local")
    monkeypatch.setattr(settings.storage, "directory", str(upload_dir))
    # /static mount는 import 시점의 상대 경로("static")를 보므로 cwd를 tmp_path로 옮김
    monkeypatch.chdir(upload_dir.parent)

    async with (
        LifespanManager(app),
        httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
        ) as async_client,
    ):
        yield async_client
        await _delete_posts(app.state.database)


@pytest.fixture
async def api_session(api_client: httpx.AsyncClient) -> AsyncGenerator[AsyncSession, None]:
    """api_client와 같은 DB를 보는 세션 (응답 외에 DB 상태를 직접 확인할 때 사용)"""
    from imageboard.main import app

    async with app.state.database.sessionmaker() as session:
        yield session
