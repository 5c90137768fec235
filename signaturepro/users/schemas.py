# signaturepro/users/schemas.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr


class UserResponse(BaseModel):
    """Schema for user response."""
    id: str
    email_address: EmailStr
    name: Optional[str] = None
    is_active: bool
    created_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
