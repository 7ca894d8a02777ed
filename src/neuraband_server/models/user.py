"""User model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from neuraband_server.models.base import ID_LENGTH, Base, TimestampMixin, new_id


class User(Base, TimestampMixin):
    """Dashboard user.

    Identity and credentials live with the hosting auth provider; this row
    only anchors devices, sessions and biosignals to a user id.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        primary_key=True,
        default=new_id,
    )

    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255))

    def __repr__(self) -> str:
        """String representation."""
        return f"<User(id={self.id}, email={self.email})>"
