"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from easyserve.models.users import User, UserRole
from easyserve.models.categories import Category
from easyserve.models.providers import Provider
from easyserve.models.service_requests import ServiceRequest, RequestType, RequestStatus
from easyserve.models.bids import Bid, BidStatus
from easyserve.models.bookings import Booking, BookingMessage, BookingStatus
from easyserve.models.wallets import Wallet, WalletTransaction, TransactionType, TransactionStatus

__all__ = [
    "User",
    "UserRole",
    "Category",
    "Provider",
    "ServiceRequest",
    "RequestType",
    "RequestStatus",
    "Bid",
    "BidStatus",
    "Booking",
    "BookingMessage",
    "BookingStatus",
    "Wallet",
    "WalletTransaction",
    "TransactionType",
    "TransactionStatus",
]
