# storefront/services/gateways/__init__.py
from storefront.domain.state_machine import PaymentMethod
from storefront.services.gateways.base import GatewayEvent, InitiationResult, PaymentGateway
from storefront.services.gateways.moyasar import MoyasarGateway
from storefront.services.gateways.paymob import PaymobGateway
from storefront.services.gateways.stripe_gateway import StripeGateway


def build_gateways() -> dict[str, PaymentGateway]:
    """Tablica dyspozycji: metoda platnosci -> bramka. Przelew nie ma bramki."""
    return {
        PaymentMethod.MOYASAR.value: MoyasarGateway(),
        PaymentMethod.PAYMOB.value: PaymobGateway(),
        PaymentMethod.STRIPE.value: StripeGateway(),
    }


__all__ = [
    "GatewayEvent",
    "InitiationResult",
    "PaymentGateway",
    "MoyasarGateway",
    "PaymobGateway",
    "StripeGateway",
    "build_gateways",
]
