from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class MySQLConfig(BaseModel):
    host: str = "localhost"
    user: str = "imageboard"
    passwd: str = "imageboard"
    port: int = 3306
    db: str = "imageboard"
    echo: bool = True
    pool_size: int = 10
    max_overflow: int = 0
    pool_timeout: int = 600
    # 지정하면 host/user/... 대신 이 URL로 접속합니다 (ex - sqlite+aiosqlite:///board.db)
    url: Optional[str] = None

    @property
    def dsn(self) -> str:
        if self.url:
            return self.url
        return "mysql+asyncmy://{user}:{passwd}@{host}:{port}/{db}?charset=utf8mb4".format(
            user=self.user,
            passwd=self.passwd,
            host=self.host,
            port=self.port,
            db=self.db,
        )


class StorageConfig(BaseModel):
    backend: Literal["local", "s3"] = "local"
    directory: str = "static"
    public_prefix: str = "/static"


class S3Config(BaseModel):
    endpoint_url: str = "http://localhost:9000"
    access_key: str = "minioadmin"
    secret_key: str = "minioadmin"
    bucket_name: str = "imageboard"
    region: str = "us-east-1"
    public_url: str = "http://localhost:9000/imageboard"


class BoardConfig(BaseModel):
    default_board: str = "b"
    page_size: int = 30
    max_upload_size: int = 20 * 1024 * 1024
    title_max_length: int = 30
    message_max_length: int = 50_000
    preview_length: int = 2_700
    public_id_length: int = 5


class Settings(BaseSettings):
    """
    기본 Configuration
    """

    mysql: MySQLConfig = MySQLConfig()
    storage: StorageConfig = StorageConfig()
    s3: S3Config = S3Config()
    board: BoardConfig = BoardConfig()
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file="imageboard/config/.env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache
def get_settings():
    return Settings()


settings: Settings = get_settings()
