from enum import Enum

from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    CUSTOMER = "customer"
    PROVIDER = "provider"


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str | None = None
    role: str = Field(default=UserRole.CUSTOMER.value, max_length=20)


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str

    @property
    def is_provider(self) -> bool:
        return self.role == UserRole.PROVIDER


class UserCreate(SQLModel):
    email: str
    password: str
    full_name: str | None = None
    role: UserRole = UserRole.CUSTOMER


class UserPublic(SQLModel):
    id: int
    email: str
    full_name: str | None = None
    role: str
