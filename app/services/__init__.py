"""Services package: expose all concrete services from one import."""
from .address_service import AddressService
from .payment_service import PaymentMethodService
from .email_change_service import EmailChangeService, EmailChangeState
from .cart_service import CartService, CART_QTY_KEY
from .profile_service import ProfileService
from .postal_codes import format_postal_code, register_postal_code_formatter

__all__ = [
    'AddressService',
    'PaymentMethodService',
    'EmailChangeService',
    'EmailChangeState',
    'CartService',
    'CART_QTY_KEY',
    'ProfileService',
    'format_postal_code',
    'register_postal_code_formatter',
]
