from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class CapacityOut(BaseModel):
    available_disk_gb: float
    gb_per_premium_user: float
    max_premium_users: int
    current_premium_users: int
    available_premium_slots: int
    can_upgrade: bool


class PremiumStatusOut(BaseModel):
    is_premium: bool
    account_type: str
    capacity: CapacityOut
    message: Optional[str] = None


class DashboardOut(BaseModel):
    display_name: Optional[str] = None
    is_premium: bool
    account_type: str
    latest_file_name: Optional[str] = None
    latest_file_uploaded_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    server_time_utc: datetime
