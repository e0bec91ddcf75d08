import logging
import sys
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from imageboard.config.config import MySQLConfig

logger = logging.getLogger(__name__)

Base = declarative_base()


def _validate_schema(sync_conn) -> list[str]:
    """
    모델 메타데이터와 실제 DB 스키마를 비교하여 불일치 항목을 반환합니다.
    """
    errors = []
    inspector = sa_inspect(sync_conn)
    existing_tables = inspector.get_table_names()

    for table_name, table in Base.metadata.tables.items():
        if table_name not in existing_tables:
            continue

        db_columns = {col["name"]: col for col in inspector.get_columns(table_name)}
        model_columns = {col.name: col for col in table.columns}

        for col_name in model_columns:
            if col_name not in db_columns:
                errors.append(
                    f"[{table_name}] 컬럼 '{col_name}'이 모델에는 있지만 "
                    f"DB에는 없습니다."
                )

        for col_name in db_columns:
            if col_name not in model_columns:
                errors.append(
                    f"[{table_name}] 컬럼 '{col_name}'이 DB에는 있지만 "
                    f"모델에는 없습니다."
                )

    return errors


class Database:
    """
    프로세스 단위로 한 번 생성되는 connection pool.
    lifespan에서 만들어 app.state.database에 보관하고, 요청마다 get_session으로 세션을 빌려줍니다.
    """

    def __init__(self, url: str, **engine_options) -> None:
        self.engine: AsyncEngine = create_async_engine(url, **engine_options)
        self.sessionmaker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @classmethod
    def from_config(cls, config: MySQLConfig) -> "Database":
        if config.url and not config.url.startswith("mysql"):
            return cls(config.dsn, echo=config.echo)
        return cls(
            config.dsn,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            echo=config.echo,
            pool_pre_ping=True,
            pool_timeout=config.pool_timeout,
        )

    async def startup(self) -> None:
        """서버 시작 시 스키마 검증 및 테이블 초기화를 수행합니다."""
        # Base.metadata에 post 테이블을 등록
        import imageboard.models.post  # noqa: F401

        async with self.engine.begin() as conn:
            errors = await conn.run_sync(_validate_schema)
            if errors:
                logger.error("DB 스키마와 모델 정의가 일치하지 않습니다:")
                for error in errors:
                    logger.error("  - %s", error)
                logger.error("서버를 종료합니다. DB 스키마를 확인해주세요.")
                sys.exit(1)

            await conn.run_sync(Base.metadata.create_all)
            logger.info("DB 테이블 초기화 완료")

    async def shutdown(self) -> None:
        """서버 종료 시 connection pool을 반환합니다."""
        await self.engine.dispose()


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    `session: AsyncSession = Depends(get_session)`로 사용
    생성된 connection pool 중 하나를 할당 받아 사용
    """
    database: Database = request.app.state.database
    async with database.sessionmaker() as session:
        yield session
