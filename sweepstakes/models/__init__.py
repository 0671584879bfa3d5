# sweepstakes/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from sweepstakes.models.product import Product  # noqa: F401
from sweepstakes.models.serial import SerialClaim, SerialEntry  # noqa: F401

from sweepstakes.models.purchase import Purchase  # noqa: F401
from sweepstakes.models.seller import Seller, SellerSale  # noqa: F401

from sweepstakes.models.coupon import Coupon  # noqa: F401
from sweepstakes.models.coupon_event import CouponEvent  # noqa: F401

from sweepstakes.models.draw import DrawResult, DrawWinner, WinnerDisqualification  # noqa: F401
from sweepstakes.models.notification import NotificationLog  # noqa: F401
