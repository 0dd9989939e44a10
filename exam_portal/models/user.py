"""User / principal models"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional
from datetime import datetime, timezone

Role = Literal["student", "professor", "admin"]


class User(BaseModel):
    model_config = ConfigDict(extra="ignore")
    user_id: str
    email: str
    name: str
    role: str = "student"  # student, professor, admin (legacy: user)
    courses: List[str] = []
    created_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))
