from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    """User context passed through authentication dependencies"""

    user_id: int
    auth_user_id: str
    email: str

    class Config:
        from_attributes = True
