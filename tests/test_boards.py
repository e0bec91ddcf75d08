import pytest

from imageboard.boards import DEFAULT_ROUTES, BoardRoutes, resolve_board, sanitize_board_name
from imageboard.exceptions import NamespaceNotFound


class TestSanitizeBoardName:
    def test_examples(self):
        assert sanitize_board_name("../../etc") == "etc"
        assert sanitize_board_name("my_board-1") == "my_board1"

    def test_non_ascii_is_removed(self):
        assert sanitize_board_name("게시판b") == "b"
        assert sanitize_board_name("ｂ") == ""

    def test_resolve(self):
        assert resolve_board("my_board") == "my_board"
        assert resolve_board("x" * 64) == "x" * 64

        with pytest.raises(NamespaceNotFound):
            resolve_board("-/.")
        with pytest.raises(NamespaceNotFound):
            resolve_board("x" * 65)


class TestBoardRoutes:
    def test_named_board(self):
        routes = BoardRoutes.for_board("tech")
        assert routes.feed == "/tech"
        assert routes.upload == "/tech"
        assert routes.thread(3) == "/tech/post/3"
        assert routes.page(2) == "/tech?page=2"

    def test_default_board(self):
        assert DEFAULT_ROUTES.feed == "/"
        assert DEFAULT_ROUTES.upload == "/upload"
        assert DEFAULT_ROUTES.thread(3) == "/post/3"
        assert DEFAULT_ROUTES.page(2) == "/?page=2"
