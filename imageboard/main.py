import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from imageboard.config.config import settings
from imageboard.dependencies.mysql import Database
from imageboard.dependencies.storage import build_file_store
from imageboard.exception_handler import board_exception_handler, custom_exception_handler
from imageboard.exceptions import BoardError
from imageboard.routers import board as board_router

# logger 전역 설정
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # DB connection pool과 첨부파일 저장소는 프로세스당 하나씩 만들어 app.state로 공유
    database = Database.from_config(settings.mysql)
    await database.startup()
    file_store = build_file_store(settings)
    await file_store.startup()

    _app.state.database = database
    _app.state.file_store = file_store
    logger.info("게시판 서버 시작: default_board=%s", settings.board.default_board)

    yield

    await file_store.shutdown()
    await database.shutdown()


app = FastAPI(lifespan=lifespan)
app.add_exception_handler(StarletteHTTPException, custom_exception_handler)
app.add_exception_handler(BoardError, board_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.storage.backend == "local":
    # 업로드된 첨부파일은 정적 파일로 바로 서빙
    app.mount(
        settings.storage.public_prefix,
        StaticFiles(directory=settings.storage.directory, check_dir=False),
        name="static",
    )


@app.get(
    "/health",
    tags=["Health Check"],
    summary="Health Check용 API",
)
async def health_check() -> str:
    return "ok"


app.include_router(board_router.router)
