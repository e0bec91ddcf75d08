import logging
import math
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from imageboard.boards import resolve_board
from imageboard.exceptions import RepositoryError
from imageboard.models.mixin import utcnow
from imageboard.models.post import Post

logger = logging.getLogger(__name__)


class PostRepository:
    """
    하나의 게시판(namespace)에 묶인 post 테이블 접근 객체.
    게시판 이름은 생성 시점에 정제되며 쿼리에는 항상 bind parameter로만 들어갑니다.
    """

    def __init__(self, session: AsyncSession, board: str) -> None:
        self.session = session
        self.board = board

    @classmethod
    def for_board(cls, session: AsyncSession, raw_board_name: str) -> "PostRepository":
        return cls(session, resolve_board(raw_board_name))

    async def insert(
        self,
        *,
        public_id: str,
        parent_id: int,
        title: str,
        message: str,
        file_path: Optional[str] = None,
    ) -> int:
        now = utcnow()
        post = Post(
            board=self.board,
            public_id=public_id,
            parent_id=parent_id,
            title=title,
            message=message,
            file_path=file_path,
            created_at=now,
            last_activity_at=now,
        )
        try:
            self.session.add(post)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RepositoryError("failed to insert post") from e

        logger.info("게시글 등록: board=%s id=%d parent_id=%d", self.board, post.id, parent_id)
        return post.id

    async def touch_thread(self, post_id: int) -> None:
        """
        `id = post_id OR parent_id = post_id`인 모든 행의 last_activity_at을 갱신합니다.
        post_id가 답글이면 그 답글과 그 답글의 답글이 갱신되며 원글은 갱신되지 않습니다.
        """
        try:
            await self.session.execute(
                update(Post)
                .where(
                    Post.board == self.board,
                    or_(Post.id == post_id, Post.parent_id == post_id),
                )
                .values(last_activity_at=utcnow())
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RepositoryError("failed to touch thread") from e

    async def get_thread(self, post_id: int) -> list[Post]:
        try:
            result = await self.session.scalars(
                select(Post)
                .where(
                    Post.board == self.board,
                    or_(Post.id == post_id, Post.parent_id == post_id),
                )
                .order_by(Post.id.asc())
            )
        except SQLAlchemyError as e:
            raise RepositoryError("failed to load thread") from e
        return list(result.all())

    async def count_replies(self, post_id: int) -> int:
        return await self._count(Post.parent_id == post_id)

    async def count_roots(self) -> int:
        return await self._count(Post.parent_id == 0)

    async def list_feed_page(self, page: int, page_size: int = 30) -> tuple[list[Post], int]:
        """
        원글만 last_activity_at 내림차순으로 페이지 단위 조회합니다.
        (해당 페이지의 게시글 목록, 전체 페이지 수)를 반환합니다.
        """
        total_pages = math.ceil(await self.count_roots() / page_size)
        page = max(page, 1)
        if page > total_pages:
            # 마지막 페이지 이후는 조회 없이 빈 목록 (OFFSET이 BIGINT를 넘는 값도 여기서 걸러짐)
            return [], total_pages
        offset = (page - 1) * page_size
        try:
            result = await self.session.scalars(
                select(Post)
                .where(Post.board == self.board, Post.parent_id == 0)
                .order_by(Post.last_activity_at.desc(), Post.id.desc())
                .offset(offset)
                .limit(page_size)
            )
        except SQLAlchemyError as e:
            raise RepositoryError("failed to load feed page") from e
        return list(result.all()), total_pages

    async def _count(self, *criteria) -> int:
        try:
            count = await self.session.scalar(
                select(func.count()).select_from(Post).where(Post.board == self.board, *criteria)
            )
        except SQLAlchemyError as e:
            raise RepositoryError("failed to count posts") from e
        return count or 0
