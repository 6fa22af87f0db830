from sqlalchemy import Column, String, Uuid

from marketplace_chat.database import Base


class UserModel(Base):
    """Read-only view of the users table owned by the account service.

    Only used to resolve participant display names.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True)
    username = Column(String(255), nullable=False)
