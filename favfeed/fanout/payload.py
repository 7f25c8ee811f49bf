"""
Notification payload for "an author you favorited published a post".

``build_payload`` is pure: it only reads attributes off the post, its author
and the recipient, so the worker can call it per follower without I/O.
The payload carries enough for a human-readable message (``to_text``) and a
machine-readable record of what was sent (``to_record``).
"""
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from favfeed.models import Post, User

DEFAULT_EXCERPT_LENGTH = 280


class NotificationPayload(BaseModel):
    post_id: int
    post_title: str
    post_excerpt: str
    post_url: str
    author_id: int
    author_name: str
    recipient_id: int
    recipient_name: str

    @property
    def subject(self) -> str:
        return f"{self.author_name} has created a new post"

    @property
    def greeting(self) -> str:
        return f"Hello {self.recipient_name}!"

    def to_text(self) -> str:
        return "\n\n".join(
            [
                self.greeting,
                f"{self.author_name} has just created a new post that you "
                "might be interested in.",
                f"**{self.post_title}**",
                self.post_excerpt,
                f"View Post: {self.post_url}",
                "Thank you for using our application!",
            ]
        )

    def to_record(self) -> dict:
        return {
            "post_id": self.post_id,
            "post_title": self.post_title,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "recipient_id": self.recipient_id,
        }


def excerpt(body: str, length: int = DEFAULT_EXCERPT_LENGTH) -> str:
    body = (body or "").strip()
    if len(body) <= length:
        return body
    return body[: length - 1].rstrip() + "…"


def build_payload(
    post: "Post",
    author: "User",
    recipient: "User",
    excerpt_length: int = DEFAULT_EXCERPT_LENGTH,
) -> NotificationPayload:
    """Build the notification sent to ``recipient`` about ``post`` by ``author``."""
    return NotificationPayload(
        post_id=post.id,
        post_title=post.title,
        post_excerpt=excerpt(post.body, excerpt_length),
        post_url=f"/posts/{post.id}",
        author_id=author.id,
        author_name=author.name,
        recipient_id=recipient.id,
        recipient_name=recipient.name,
    )
