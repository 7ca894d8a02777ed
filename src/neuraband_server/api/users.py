"""User registration endpoints."""

from typing import Any

from litestar import Router, get, post
from litestar.exceptions import HTTPException
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED, HTTP_409_CONFLICT
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from neuraband_server.core.auth import api_key_guard
from neuraband_server.models.user import User
from neuraband_server.services.store import SQLAlchemyStore


class UserCreate(BaseModel):
    """Request body for registering a user."""

    email: str | None = Field(default=None, max_length=255)
    display_name: str | None = Field(default=None, max_length=255)


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
    }


@post("/users", status_code=HTTP_201_CREATED)
async def create_user(data: UserCreate, store: SQLAlchemyStore) -> dict[str, Any]:
    """Register a user. The returned id scopes every other endpoint."""
    try:
        user = await store.create_user(email=data.email, display_name=data.display_name)
    except IntegrityError as e:
        raise HTTPException(status_code=HTTP_409_CONFLICT, detail="Email already registered") from e
    return user_to_dict(user)


@get("/users/{user_id:str}", status_code=HTTP_200_OK)
async def get_user(current_user: str, store: SQLAlchemyStore) -> dict[str, Any]:
    """Get one user."""
    user = await store.get_user(current_user)
    return user_to_dict(user)


users_router = Router(
    path="/",
    guards=[api_key_guard],
    route_handlers=[create_user, get_user],
)
