from .tenancy import Organization, Buyer
from .catalog import Category, Product
from .pricing import WholesalePrice, VolumeDiscount
from .credit import CreditTerm, CreditLedgerEntry
from .orders import PurchaseOrder, PurchaseOrderLine
from .documents import DocumentSequence

__all__ = [
    'Organization', 'Buyer',
    'Category', 'Product',
    'WholesalePrice', 'VolumeDiscount',
    'CreditTerm', 'CreditLedgerEntry',
    'PurchaseOrder', 'PurchaseOrderLine',
    'DocumentSequence',
]
