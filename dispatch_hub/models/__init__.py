from dispatch_hub.models.base import Base  # noqa: F401

from dispatch_hub.models.delivery_company import DeliveryCompany  # noqa: F401
from dispatch_hub.models.delivery_order import DeliveryOrder  # noqa: F401
