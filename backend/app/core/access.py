"""Role and ownership preconditions. Authentication itself happens upstream."""
from __future__ import annotations

from backend.app.core.errors import PermissionDeniedError
from backend.app.models.character import Character
from backend.app.models.identity import Caller


def require_admin(caller: Caller, action: str) -> None:
    if not caller.is_admin:
        raise PermissionDeniedError(
            f"Only campaign admins can {action}",
            user_id=caller.user_id,
        )


def require_owner(caller: Caller, character: Character) -> None:
    """Players may act only for characters they own; admins are not exempt."""
    if character.user_id != caller.user_id:
        raise PermissionDeniedError(
            "You do not own this character",
            user_id=caller.user_id,
            character_id=character.id,
        )
