import logging
import secrets
import string
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from imageboard.boards import BoardRoutes, sanitize_board_name
from imageboard.config.config import BoardConfig
from imageboard.dependencies.storage import FileStore, MediaKind, StoredFile
from imageboard.exceptions import FieldTooLong, MissingField, NamespaceNotFound
from imageboard.models.post import Post
from imageboard.repositories.post import PostRepository
from imageboard.services.color import color_of

logger = logging.getLogger(__name__)

_PUBLIC_ID_ALPHABET = string.ascii_letters + string.digits


def generate_public_id(length: int = 5) -> str:
    return "".join(secrets.choice(_PUBLIC_ID_ALPHABET) for _ in range(length))


class Attachment(BaseModel):
    url: str
    kind: MediaKind


class FeedEntry(BaseModel):
    id: int
    public_id: str
    title: str
    message: str
    truncated: bool
    color: str
    reply_count: int
    attachment: Optional[Attachment]


class FeedView(BaseModel):
    board: str
    routes: BoardRoutes
    page: int
    total_pages: int
    posts: list[FeedEntry]

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


class ThreadEntry(BaseModel):
    id: int
    public_id: str
    label: str
    title: str
    message: str
    color: str
    attachment: Optional[Attachment]


class ThreadView(BaseModel):
    board: str
    routes: BoardRoutes
    post_id: int
    posts: list[ThreadEntry]


class ThreadService:
    """
    게시글 작성(원글/답글)과 목록/스레드 화면용 view model 생성을 담당합니다.
    요청마다 세션과 함께 생성합니다.
    """

    def __init__(self, session: AsyncSession, file_store: FileStore, config: BoardConfig) -> None:
        self.session = session
        self.file_store = file_store
        self.config = config

    def _posts(self, board_name: str) -> PostRepository:
        return PostRepository.for_board(self.session, board_name)

    async def create_post(
        self,
        board_name: str,
        parent_id: int,
        title: str,
        message: str,
        file: Optional[StoredFile] = None,
    ) -> int:
        """
        첨부파일은 이미 저장된 상태로 들어오며, 검증에 실패해도 지우지 않습니다.
        """
        posts = self._posts(board_name)

        title = title.strip()
        message = message.strip()
        if not title or not message:
            raise MissingField()
        if len(title) > self.config.title_max_length or len(message) > self.config.message_max_length:
            raise FieldTooLong()

        post_id = await posts.insert(
            public_id=generate_public_id(self.config.public_id_length),
            parent_id=parent_id,
            title=title,
            message=message,
            file_path=file.key if file else None,
        )
        if parent_id != 0:
            await posts.touch_thread(parent_id)
        return post_id

    async def render_feed(
        self, board_name: str, page: int = 1, routes: Optional[BoardRoutes] = None
    ) -> FeedView:
        """routes를 생략하면 "/{board}" 아래의 URL을 사용합니다."""
        page = max(page, 1)
        try:
            posts = self._posts(board_name)
        except NamespaceNotFound:
            logger.info("존재하지 않는 게시판 조회: %r", board_name)
            board = sanitize_board_name(board_name)
            return FeedView(
                board=board,
                routes=routes or BoardRoutes.for_board(board),
                page=page,
                total_pages=0,
                posts=[],
            )

        routes = routes or BoardRoutes.for_board(posts.board)
        rows, total_pages = await posts.list_feed_page(page, self.config.page_size)
        entries = []
        for post in rows:
            message, truncated = self._preview(routes, post)
            entries.append(
                FeedEntry(
                    id=post.id,
                    public_id=post.public_id,
                    title=post.title,
                    message=message,
                    truncated=truncated,
                    color=color_of(post.public_id),
                    reply_count=await posts.count_replies(post.id),
                    attachment=self._attachment(post),
                )
            )
        return FeedView(
            board=posts.board, routes=routes, page=page, total_pages=total_pages, posts=entries
        )

    async def render_thread(
        self, board_name: str, post_id: int, routes: Optional[BoardRoutes] = None
    ) -> ThreadView:
        try:
            posts = self._posts(board_name)
        except NamespaceNotFound:
            logger.info("존재하지 않는 게시판 조회: %r", board_name)
            board = sanitize_board_name(board_name)
            return ThreadView(
                board=board,
                routes=routes or BoardRoutes.for_board(board),
                post_id=post_id,
                posts=[],
            )

        entries = []
        for index, post in enumerate(await posts.get_thread(post_id)):
            entries.append(
                ThreadEntry(
                    id=post.id,
                    public_id=post.public_id,
                    label="Original Post" if index == 0 else f"Reply {index}",
                    title=post.title,
                    message=post.message,
                    color=color_of(post.public_id),
                    attachment=self._attachment(post),
                )
            )
        return ThreadView(
            board=posts.board,
            routes=routes or BoardRoutes.for_board(posts.board),
            post_id=post_id,
            posts=entries,
        )

    def _preview(self, routes: BoardRoutes, post: Post) -> tuple[str, bool]:
        limit = self.config.preview_length
        if len(post.message) <= limit:
            return post.message, False
        link = (
            f'<a href="{routes.thread(post.id)}" class="view-full-post">'
            "Click here to open full post</a>"
        )
        return f"{post.message[:limit]}... {link}", True

    def _attachment(self, post: Post) -> Optional[Attachment]:
        if not post.file_path:
            return None
        kind = self.file_store.media_kind(post.file_path)
        if kind is None:
            return None
        return Attachment(url=self.file_store.url_for(post.file_path), kind=kind)
