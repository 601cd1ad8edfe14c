from __future__ import annotations

from pydantic import BaseModel

from app.models.enums import FirmRole
from app.schemas.auth import FirmOut, UserOut


class MeResponse(BaseModel):
    user: UserOut
    firm: FirmOut
    role: FirmRole
    full_access: bool
