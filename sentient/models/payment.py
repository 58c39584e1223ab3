"""Payment records and the labels derived from them."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PaymentMethod(str, Enum):
    PAYPAL = "paypal"
    USDT = "usdt"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    user_id: Optional[str]
    payment_method: PaymentMethod
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_proof_url: Optional[str] = None
    paypal_payment_id: Optional[str] = None
    transaction_hash: Optional[str] = None
    notes: Optional[str] = None
    discord_invite_sent: bool = False
    admin_verified: bool = False
    created_at: datetime
    updated_at: datetime

    @property
    def grants_access(self) -> bool:
        return self.status == PaymentStatus.COMPLETED and self.admin_verified

    @property
    def dashboard_label(self) -> str:
        if self.grants_access:
            return "Active"
        if self.status == PaymentStatus.PENDING or self.status == PaymentStatus.COMPLETED:
            return "Pending Verification"
        if self.status == PaymentStatus.FAILED:
            return "Failed"
        return "Cancelled"

    @property
    def admin_label(self) -> str:
        if self.grants_access:
            return "Verified"
        if self.status == PaymentStatus.PENDING or self.status == PaymentStatus.COMPLETED:
            return "Pending"
        if self.status == PaymentStatus.FAILED:
            return "Rejected"
        return "Cancelled"


class PaymentView(PaymentRecord):
    """Payment as returned over the API, with its display label."""

    label: str

    @classmethod
    def for_dashboard(cls, record: PaymentRecord) -> "PaymentView":
        return cls(**record.model_dump(), label=record.dashboard_label)


class AdminPaymentView(PaymentRecord):
    """Payment joined with the owning profile's display fields."""

    user_email: Optional[str] = None
    user_full_name: Optional[str] = None
    label: str = ""


class ProofUpload(BaseModel):
    """A proof-of-payment file received from the client."""

    filename: str
    content_type: Optional[str] = None
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)
