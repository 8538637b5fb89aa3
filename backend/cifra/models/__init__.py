from .auth import Seller, SessionToken
from .catalog import Product
from .promotions import PromoCode
from .orders import Order, Sale, DownloadToken
from .notifications import NotificationOutbox
from .payouts import Payout

__all__ = [
    'Seller', 'SessionToken',
    'Product',
    'PromoCode',
    'Order', 'Sale', 'DownloadToken',
    'NotificationOutbox',
    'Payout',
]
