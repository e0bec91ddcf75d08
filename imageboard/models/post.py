from sqlalchemy import Column, Index, String, Text
from sqlalchemy.dialects.mysql import MEDIUMTEXT

from imageboard.dependencies.mysql import Base
from imageboard.models.mixin import ThreadMixin


class Post(Base, ThreadMixin):
    __tablename__ = "post"

    board = Column(String(64), nullable=False, comment="정제된 게시판 이름")
    public_id = Column(String(16), nullable=False, comment="화면에 노출되는 짧은 랜덤 id")
    title = Column(String(30), nullable=False, comment="글 제목")
    message = Column(
        Text().with_variant(MEDIUMTEXT, "mysql"),
        nullable=False,
        comment="글 내용. 최대 50,000자 (utf8mb4 기준 TEXT 64KB를 넘을 수 있음)",
    )
    file_path = Column(String(255), nullable=True, comment="첨부파일 저장 key")

    __table_args__ = (
        Index("ix_post_board_parent_activity", "board", "parent_id", "last_activity_at"),
        Index("ix_post_board_parent", "board", "parent_id"),
    )

    @property
    def is_root(self) -> bool:
        return self.parent_id == 0
