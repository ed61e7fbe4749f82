# Models module
from app.models.serviceability import Pincode, ServiceableArea
from app.models.vendor import Vendor, VendorShippingConfig
from app.models.product import Product

__all__ = [
    "Pincode",
    "ServiceableArea",
    "Vendor",
    "VendorShippingConfig",
    "Product",
]
