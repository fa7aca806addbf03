# auth_api/app/schemas/user.py
from pydantic import BaseModel
from typing import Optional


class User(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    is_verified: bool

    class Config:
        from_attributes = True
