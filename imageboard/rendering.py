"""
HTML 조각 생성과 템플릿 치환.

템플릿은 {{KEY}} 자리에 조각 문자열을 그대로 넣을 뿐 escape하지 않습니다.
제목/본문도 escape 없이 들어가므로 XSS 위험이 있으며, 이 계약을 바꾸려면
템플릿 쪽과 함께 바꿔야 합니다.
"""

from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from imageboard.dependencies.storage import MediaKind
from imageboard.services.thread import Attachment, FeedView, ThreadView

TEMPLATE_DIR = Path(__file__).parent / "templates"


@lru_cache
def _load_template(name: str) -> str:
    return (TEMPLATE_DIR / name).read_text(encoding="utf-8")


def render_template(name: str, context: Mapping[str, str]) -> str:
    rendered = _load_template(name)
    for key, value in context.items():
        rendered = rendered.replace(f"{{{{{key}}}}}", value)
    return rendered


def _attachment_html(attachment: Optional[Attachment]) -> str:
    if attachment is None:
        return ""
    if attachment.kind is MediaKind.image:
        return f'<img src="{attachment.url}"><br>'
    return f'<video controls><source src="{attachment.url}"></video><br>'


def feed_context(view: FeedView) -> dict[str, str]:
    posts_html = []
    for post in view.posts:
        posts_html.append(
            '<div class="post">'
            f'<div class="post-id-box" style="background-color: {post.color}">{post.public_id}</div>'
            f'<div class="post-title title-green">{post.title}</div>'
            f"{_attachment_html(post.attachment)}"
            f'<div class="post-message">{post.message}</div>'
            f'<a class="reply-button" href="{view.routes.thread(post.id)}">Reply ({post.reply_count})</a>'
            "</div>"
        )

    pagination = []
    if view.has_previous:
        pagination.append(f'<a href="{view.routes.page(view.page - 1)}">Previous</a>')
    if view.has_next:
        pagination.append(f'<a href="{view.routes.page(view.page + 1)}">Next</a>')

    return {
        "POSTS": "".join(posts_html),
        "PAGINATION": "".join(pagination),
        "BOARD_NAME": view.routes.feed,
        "UPLOAD_URL": view.routes.upload,
    }


def thread_context(view: ThreadView) -> dict[str, str]:
    posts_html = []
    for post in view.posts:
        posts_html.append(
            f'<div class="post" style="border-color: {post.color}">'
            f'<div class="post-id">{post.label}</div>'
            f'<div class="post-title">{post.title}</div>'
            f"{_attachment_html(post.attachment)}"
            f'<div class="post-message">{post.message}</div>'
            "</div>"
        )

    return {
        "PARENT_ID": str(view.post_id),
        "POSTS": "".join(posts_html),
        "BOARD_NAME": view.routes.feed,
        "UPLOAD_URL": view.routes.upload,
    }


def render_feed(view: FeedView) -> str:
    return render_template("index.html", feed_context(view))


def render_thread(view: ThreadView) -> str:
    return render_template("view_post.html", thread_context(view))
