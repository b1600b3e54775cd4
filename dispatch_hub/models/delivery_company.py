from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dispatch_hub.core.ids import gen_id
from dispatch_hub.models.base import AuditMixin, Base, JSONType


class DeliveryCompany(AuditMixin, Base):
    __tablename__ = "delivery_companies"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("dco"))

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(60), nullable=True)

    api_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    api_format: Mapped[str] = mapped_column(String(20), nullable=False)  # rest/jsonrpc/soap/graphql

    # Soft-deactivated instead of deleted while delivery orders reference it
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Pricing, per-target value policies and adapter options
    settings: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    # Ordered FieldMapping rules (embedded, not addressable on their own)
    field_mappings: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    custom_fields: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    # Encrypted JSON blob {api_key, login, password, database} (never returned by API)
    credentials_ciphertext: Mapped[str | None] = mapped_column(Text, nullable=True)
