"""
Shipping zone tests.

Verifies:
- A municipality zone wins over the province default
- free_shipping zones charge nothing; inactive zones are ignored
- Unserved or missing provinces are rejected
- Only admins manage zones, one zone per location
"""

import pytest

from papu.errors import AuthorizationError, NotFoundError, ValidationError
from papu.services import shipping_service


@pytest.fixture(scope='function')
def playa(db_session, admin_caller, shipping_zone):
    return shipping_service.create_zone(
        admin_caller,
        {"province_name": "La Habana", "municipality_name": "Playa", "shipping_cost_cents": 800, "delivery_days": 2},
    )


class TestCalculateShipping:

    def test_province_default(self, db_session, shipping_zone):
        quote = shipping_service.calculate_shipping("La Habana", "Centro Habana")
        assert quote.zone_id == shipping_zone.id
        assert quote.cost_cents == 500
        assert quote.municipality_name is None

    def test_municipality_overrides_default(self, db_session, playa):
        quote = shipping_service.calculate_shipping("  la habana ", "PLAYA")
        assert (quote.zone_id, quote.cost_cents, quote.delivery_days) == (playa.id, 800, 2)

    def test_free_shipping_charges_nothing(self, db_session, admin_caller, shipping_zone):
        shipping_service.update_zone(admin_caller, shipping_zone.id, {"free_shipping": True})
        quote = shipping_service.calculate_shipping("La Habana")
        assert quote.free_shipping is True
        assert quote.cost_cents == 0

    def test_inactive_municipality_falls_back(self, db_session, admin_caller, shipping_zone, playa):
        shipping_service.set_zone_active(admin_caller, playa.id, False)
        assert shipping_service.calculate_shipping("La Habana", "Playa").zone_id == shipping_zone.id

    def test_inactive_province_is_unserved(self, db_session, admin_caller, shipping_zone):
        shipping_service.set_zone_active(admin_caller, shipping_zone.id, False)
        with pytest.raises(ValidationError):
            shipping_service.calculate_shipping("La Habana")

    @pytest.mark.parametrize("province", ["Pinar del Rio", None, "   "])
    def test_unserved_or_missing_province(self, db_session, shipping_zone, province):
        with pytest.raises(ValidationError):
            shipping_service.calculate_shipping(province)


class TestZoneAdmin:

    def test_customer_cannot_create(self, db_session, customer_caller):
        with pytest.raises(AuthorizationError):
            shipping_service.create_zone(customer_caller, {"province_name": "Matanzas", "shipping_cost_cents": 700})

    def test_duplicate_location_rejected(self, db_session, admin_caller, shipping_zone):
        with pytest.raises(ValidationError):
            shipping_service.create_zone(admin_caller, {"province_name": "la habana", "shipping_cost_cents": 100})

    def test_rename_onto_existing_location_rejected(self, db_session, admin_caller, shipping_zone, playa):
        with pytest.raises(ValidationError):
            shipping_service.update_zone(admin_caller, playa.id, {"municipality_name": None})

    @pytest.mark.parametrize("cost", [-1, 2.5, "500", True])
    def test_invalid_cost_rejected(self, db_session, admin_caller, cost):
        with pytest.raises(ValidationError):
            shipping_service.create_zone(admin_caller, {"province_name": "Matanzas", "shipping_cost_cents": cost})

    def test_list_hides_inactive(self, db_session, admin_caller, shipping_zone, playa):
        shipping_service.set_zone_active(admin_caller, playa.id, False)
        assert [z.id for z in shipping_service.list_zones()] == [shipping_zone.id]
        assert len(shipping_service.list_zones(include_inactive=True)) == 2

    def test_unknown_zone(self, db_session, admin_caller):
        with pytest.raises(NotFoundError):
            shipping_service.set_zone_active(admin_caller, 999, False)
