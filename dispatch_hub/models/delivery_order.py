from datetime import datetime

from sqlalchemy import Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from dispatch_hub.core.ids import gen_id
from dispatch_hub.models.base import AuditMixin, Base, JSONType


class DeliveryOrder(AuditMixin, Base):
    """
    One dispatch lineage for an (order, carrier) pair.
    The first send is attempt 0; each resend appends to resend_history.
    """
    __tablename__ = "delivery_orders"
    __table_args__ = (
        UniqueConstraint("order_id", "company_id", name="uq_delivery_order_company"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("dlo"))

    # Order lives in the order service; we only keep its id
    order_id: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    # Weak reference: lookup only, the company may be deactivated later
    company_id: Mapped[str] = mapped_column(String, ForeignKey("delivery_companies.id"), nullable=False)

    tracking_number: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")

    # Carrier vocabulary, stored opaquely
    external_status: Mapped[str | None] = mapped_column(String(120), nullable=True)
    external_order_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    delivery_fee: Mapped[float | None] = mapped_column(Float, nullable=True)

    resend_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_resend_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resend_history: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    request_payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)  # mapped payload (no secrets)
    last_response: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)   # redacted carrier response

    last_error_code: Mapped[str | None] = mapped_column(String(80), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
