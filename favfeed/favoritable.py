"""
Favorite targets as a tagged variant.

A favorite edge points either at a post or at a user (an "author").
Rows store the discriminator in ``favoritable_type`` and the id in
``favoritable_id``; code works with ``PostTarget`` / ``UserTarget`` values.
Only ``UserTarget`` edges make someone a follower of an author.
"""
import enum
from dataclasses import dataclass
from typing import Union


class FavoritableType(str, enum.Enum):
    POST = "post"
    USER = "user"


@dataclass(frozen=True)
class PostTarget:
    post_id: int

    @property
    def kind(self) -> FavoritableType:
        return FavoritableType.POST

    @property
    def target_id(self) -> int:
        return self.post_id


@dataclass(frozen=True)
class UserTarget:
    user_id: int

    @property
    def kind(self) -> FavoritableType:
        return FavoritableType.USER

    @property
    def target_id(self) -> int:
        return self.user_id


FavoriteTarget = Union[PostTarget, UserTarget]


def target_from_columns(kind: FavoritableType, target_id: int) -> FavoriteTarget:
    """Rebuild a target from the (favoritable_type, favoritable_id) columns."""
    kind = FavoritableType(kind)
    if kind is FavoritableType.POST:
        return PostTarget(post_id=target_id)
    return UserTarget(user_id=target_id)
