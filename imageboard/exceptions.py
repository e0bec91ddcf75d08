class BoardError(Exception):
    """게시판 엔진에서 발생하는 모든 예외의 기반 클래스"""


class PostValidationError(BoardError):
    """게시글 입력값 검증 실패. 400 응답으로 변환됩니다."""


class MissingField(PostValidationError):
    def __init__(self, message: str = "Title and message are mandatory."):
        super().__init__(message)


class FieldTooLong(PostValidationError):
    def __init__(self, message: str = "Title or message is too long."):
        super().__init__(message)


class PayloadTooLarge(BoardError):
    def __init__(self, limit: int):
        super().__init__(f"Payload exceeds {limit} bytes")
        self.limit = limit


class IngestionError(BoardError):
    """multipart 본문을 끝까지 읽지 못한 경우 (형식 오류, 연결 끊김 등)"""


class StorageError(BoardError):
    """첨부파일 저장소 I/O 실패"""


class RepositoryError(BoardError):
    """관계형 저장소(DB) 실패"""


class NamespaceNotFound(BoardError):
    def __init__(self, raw_name: str):
        super().__init__(f"Board not found: {raw_name!r}")
        self.raw_name = raw_name
