"""Repository package: expose all concrete repositories from one import."""
from .member_repository import MemberRepository
from .address_repository import AddressRepository
from .reference_repository import ReferenceDataRepository
from .unit_of_work import UnitOfWork
from .constraint_errors import classify_integrity_error

__all__ = [
    'MemberRepository',
    'AddressRepository',
    'ReferenceDataRepository',
    'UnitOfWork',
    'classify_integrity_error',
]
