import logging

from fastapi import Request
from starlette.exceptions import HTTPException
from starlette.responses import PlainTextResponse

from imageboard.exceptions import (
    BoardError,
    IngestionError,
    NamespaceNotFound,
    PayloadTooLarge,
    PostValidationError,
)

logger = logging.getLogger(__name__)


def custom_exception_handler(_request: Request, exc: HTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code)


def board_exception_handler(request: Request, exc: BoardError):
    """
    검증 실패는 사유를 담은 400, 저장소 실패는 내용을 숨긴 500으로 응답합니다.
    재시도는 하지 않습니다.
    """
    if isinstance(exc, PostValidationError):
        return PlainTextResponse(str(exc), status_code=400)
    if isinstance(exc, PayloadTooLarge):
        return PlainTextResponse("Payload too large.", status_code=413)
    if isinstance(exc, IngestionError):
        logger.warning("업로드 본문 처리 실패: %s %s (%s)", request.method, request.url.path, exc)
        return PlainTextResponse("Malformed upload.", status_code=400)
    if isinstance(exc, NamespaceNotFound):
        return PlainTextResponse("Board not found.", status_code=404)

    logger.error("요청 처리 실패: %s %s", request.method, request.url.path, exc_info=exc)
    return PlainTextResponse("Internal Server Error", status_code=500)
