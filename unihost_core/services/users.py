# =============================================================================
# unihost_core/services/users.py
# User CRUD
# =============================================================================

from __future__ import annotations
import uuid
from typing import Any, Dict, Optional

from unihost_core.data import TABLE_USERS
from unihost_core.errors import error_boundary
from unihost_core.models import User
from unihost_core.services.base_service import BaseService


class UserService(BaseService):

    @error_boundary(default_return=None)
    async def create_user(
        self,
        username: str,
        email: str,
        is_host: bool = False,
        avatar_url: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Optional[User]:
        record = {
            "id": user_id or str(uuid.uuid4()),
            "username": username,
            "email": email,
            "is_host": is_host,
        }
        if avatar_url:
            record["avatar_url"] = avatar_url

        row = await self.gateway.insert(TABLE_USERS, record)
        self.logger.info(f"Created {'host' if is_host else 'guest'} user {username}")
        return self.decode(User, row)

    @error_boundary(default_return=None)
    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        row = await self.gateway.select_one(TABLE_USERS, filters={"id": user_id})
        return self.decode(User, row)

    @error_boundary(default_return=None)
    async def find_by_username(self, username: str, is_host: Optional[bool] = None) -> Optional[User]:
        filters: Dict[str, Any] = {"username": username}
        if is_host is not None:
            filters["is_host"] = is_host
        row = await self.gateway.select_one(TABLE_USERS, filters=filters)
        return self.decode(User, row)

    @error_boundary(default_return=False)
    async def update_user(self, user_id: str, **fields: Any) -> bool:
        return await self.gateway.update(TABLE_USERS, {"id": user_id}, fields)

    async def ensure_user(
        self,
        user_id: str,
        username: str,
        email: str,
        is_host: bool = False,
    ) -> Optional[User]:
        """Get-or-create a user with a fixed id (used for the demo host)."""
        user = await self.get_user_by_id(user_id)
        if user is not None:
            return user

        self.logger.info(f"User {user_id} not found, creating {username}")
        return await self.create_user(username, email, is_host=is_host, user_id=user_id)
