import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from imageboard.boards import DEFAULT_ROUTES, BoardRoutes, resolve_board
from imageboard.config.config import settings
from imageboard.dependencies.mysql import get_session
from imageboard.dependencies.storage import FileStore, get_file_store
from imageboard.rendering import render_feed, render_thread
from imageboard.services.ingest import MultipartIngestor
from imageboard.services.thread import ThreadService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Board"])


def get_thread_service(
    session: AsyncSession = Depends(get_session),
    file_store: FileStore = Depends(get_file_store),
) -> ThreadService:
    return ThreadService(session, file_store, settings.board)


def _parse_page(page: Optional[str]) -> int:
    """숫자가 아니거나 1보다 작으면 첫 페이지"""
    if page is None:
        return 1
    try:
        return max(int(page), 1)
    except ValueError:
        return 1


def _content_length(request: Request) -> Optional[int]:
    try:
        return int(request.headers["content-length"])
    except (KeyError, ValueError):
        return None


async def _create_post(
    request: Request, board_name: str, service: ThreadService, file_store: FileStore
) -> int:
    """본문을 스트리밍으로 읽어 게시글을 만들고 parent_id를 반환합니다."""
    # 존재할 수 없는 게시판이면 본문을 읽기 전에 거절
    board = resolve_board(board_name)

    ingestor = MultipartIngestor(file_store, settings.board.max_upload_size)
    submission = await ingestor.ingest(
        request.headers.get("content-type"),
        request.stream(),
        _content_length(request),
    )
    await service.create_post(
        board,
        submission.parent_id,
        submission.title,
        submission.message,
        submission.file,
    )
    return submission.parent_id


@router.get("/", response_class=HTMLResponse, summary="기본 게시판 목록")
async def default_board_index(
    page: Optional[str] = Query(default=None),
    service: ThreadService = Depends(get_thread_service),
) -> str:
    view = await service.render_feed(
        settings.board.default_board, _parse_page(page), DEFAULT_ROUTES
    )
    return render_feed(view)


@router.post("/upload", summary="기본 게시판 글쓰기")
async def default_board_upload(
    request: Request,
    service: ThreadService = Depends(get_thread_service),
    file_store: FileStore = Depends(get_file_store),
) -> RedirectResponse:
    parent_id = await _create_post(request, settings.board.default_board, service, file_store)
    location = DEFAULT_ROUTES.feed if parent_id == 0 else DEFAULT_ROUTES.thread(parent_id)
    return RedirectResponse(location, status_code=303)


@router.get("/post/{post_id}", response_class=HTMLResponse, summary="기본 게시판 스레드")
async def default_board_thread(
    post_id: int,
    service: ThreadService = Depends(get_thread_service),
) -> str:
    view = await service.render_thread(settings.board.default_board, post_id, DEFAULT_ROUTES)
    return render_thread(view)


@router.get("/{board_name}", response_class=HTMLResponse, summary="게시판 목록")
async def board_index(
    board_name: str,
    page: Optional[str] = Query(default=None),
    service: ThreadService = Depends(get_thread_service),
) -> str:
    view = await service.render_feed(board_name, _parse_page(page))
    return render_feed(view)


@router.post("/{board_name}", summary="게시판 글쓰기")
async def board_upload(
    board_name: str,
    request: Request,
    service: ThreadService = Depends(get_thread_service),
    file_store: FileStore = Depends(get_file_store),
) -> RedirectResponse:
    parent_id = await _create_post(request, board_name, service, file_store)
    board = resolve_board(board_name)
    routes = BoardRoutes.for_board(board)
    location = routes.feed if parent_id == 0 else routes.thread(parent_id)
    return RedirectResponse(location, status_code=303)


@router.get("/{board_name}/post/{post_id}", response_class=HTMLResponse, summary="게시판 스레드")
async def board_thread(
    board_name: str,
    post_id: int,
    service: ThreadService = Depends(get_thread_service),
) -> str:
    view = await service.render_thread(board_name, post_id)
    return render_thread(view)
