from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    persisted: bool = True

    @property
    def display_name(self) -> str:
        if self.full_name and self.full_name.strip():
            return self.full_name.strip()
        local_part = (self.email or "").split("@", 1)[0]
        if local_part:
            return local_part
        return "Trader"


class AdminRole(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: str  # admin | super_admin
    created_at: Optional[datetime] = None
