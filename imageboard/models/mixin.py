from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.dialects.mysql import DATETIME

# MySQL DATETIME은 기본이 초 단위라서 같은 초에 발생한 답글의 순서를 구분할 수 없음
PreciseDateTime = DateTime().with_variant(DATETIME(fsp=6), "mysql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ThreadMixin:
    """
    스레드를 구성하는 모든 게시글의 공통 컬럼을 정의
    """

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    parent_id = Column(
        Integer,
        nullable=False,
        default=0,
        comment="부모 게시글 id (0: 스레드를 시작하는 원글)",
    )
    created_at = Column(PreciseDateTime, nullable=False, default=utcnow)
    last_activity_at = Column(
        PreciseDateTime,
        nullable=False,
        default=utcnow,
        comment="본인 또는 답글에 새 답글이 달린 마지막 시각",
    )
