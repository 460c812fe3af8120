"""Payment repositories package."""

from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.repositories.interfaces import IPaymentInfoProvider

__all__ = ["IPaymentInfoProvider", "PaymentDjangoRepository"]
