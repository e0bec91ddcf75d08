import re
from dataclasses import dataclass

from imageboard.exceptions import NamespaceNotFound

# post.board 컬럼 길이와 동일
MAX_BOARD_NAME_LENGTH = 64

_DISALLOWED = re.compile(r"[^A-Za-z0-9_]")


def sanitize_board_name(raw_name: str) -> str:
    """
    영문/숫자/언더스코어를 제외한 모든 문자를 제거합니다.
    "../../etc" -> "etc", "my_board-1" -> "my_board1"
    """
    return _DISALLOWED.sub("", raw_name)


def resolve_board(raw_name: str) -> str:
    """
    클라이언트가 보낸 게시판 이름을 저장소에서 사용할 namespace로 변환합니다.
    정제 결과가 비어 있거나 너무 길면 해당 게시판은 존재할 수 없으므로 NamespaceNotFound.
    """
    board = sanitize_board_name(raw_name)
    if not board or len(board) > MAX_BOARD_NAME_LENGTH:
        raise NamespaceNotFound(raw_name)
    return board


@dataclass(frozen=True)
class BoardRoutes:
    """
    한 게시판의 목록/글쓰기/스레드 URL.
    기본 게시판은 "/", "/upload", "/post/{id}"로, 나머지는 "/{board}" 아래로 노출됩니다.
    """

    feed: str
    upload: str
    thread_prefix: str

    @classmethod
    def for_board(cls, board: str) -> "BoardRoutes":
        return cls(feed=f"/{board}", upload=f"/{board}", thread_prefix=f"/{board}/post")

    def thread(self, post_id: int) -> str:
        return f"{self.thread_prefix}/{post_id}"

    def page(self, page: int) -> str:
        return f"{self.feed}?page={page}"


DEFAULT_ROUTES = BoardRoutes(feed="/", upload="/upload", thread_prefix="/post")
