# schemas/__init__.py
from .base_schema import AppBaseModel
from .notification import NotificationOut, MarkAllRead
from .purchase import PurchaseOut, PurchasePreferenceCreate, PurchasePreferenceOut
from .reel import ReelCreate, ReelOut
from .shop import QuotaOut, ShopCreate, ShopOut, ShopUpdate
from .stream import StreamCreate, StreamOut, StreamUpdate

__all__ = [
    'AppBaseModel',
    'NotificationOut',
    'MarkAllRead',
    'PurchaseOut',
    'PurchasePreferenceCreate',
    'PurchasePreferenceOut',
    'ReelCreate',
    'ReelOut',
    'QuotaOut',
    'ShopCreate',
    'ShopOut',
    'ShopUpdate',
    'StreamCreate',
    'StreamOut',
    'StreamUpdate',
]
