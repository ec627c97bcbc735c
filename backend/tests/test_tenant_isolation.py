# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

Records created under one (company_id, pos_id) scope are invisible to, and
immutable from, every other scope.
"""

import pytest

from possync.errors import EntityNotFoundError, SessionInvalidError
from possync.extensions import db
from possync.models import LocalSetting, Product
from possync.services.inventory_service import adjust_stock
from possync.services.lifecycle_service import create_entity, update_entity, delete_entity
from possync.services.query_service import list_entities, get_entity
from possync.services.tenant_service import (
    SessionProvider,
    TenantScope,
    company_id_for,
    pos_id_for,
    require_scope_arg,
    get_session_provider,
)
from possync.validation import ValidationError


class TestSessionProvider:
    def test_login_derives_slug_ids(self, app):
        active = get_session_provider().login("  Boutique   Soa ", "Caisse 1")

        assert active.company_id == "comp_boutique_soa"
        assert active.pos_id == "pos_caisse_1"
        assert active.company_name == "Boutique   Soa"

    def test_session_persists_across_providers(self, app):
        SessionProvider().login("Boutique Soa", "Caisse 1")

        restored = SessionProvider().current()
        assert restored is not None
        assert restored.scope == TenantScope("comp_boutique_soa", "pos_caisse_1")
        assert db.session.get(LocalSetting, "session") is not None

    def test_logout_clears_scope(self, app, scope_a):
        provider = get_session_provider()
        provider.logout()

        assert provider.current() is None
        with pytest.raises(SessionInvalidError):
            provider.ensure_scope()

    @pytest.mark.parametrize("company,pos", [("", "Caisse 1"), ("Boutique", "   ")])
    def test_blank_names_rejected(self, app, company, pos):
        with pytest.raises(ValidationError):
            get_session_provider().login(company, pos)

    def test_slug_helpers(self):
        assert company_id_for("Epicerie Be") == "comp_epicerie_be"
        assert pos_id_for("Caisse\t2") == "pos_caisse_2"

    @pytest.mark.parametrize("scope", [None, TenantScope("", "pos_x"), ("comp_x", "pos_x")])
    def test_invalid_scope_arguments(self, scope):
        with pytest.raises(SessionInvalidError):
            require_scope_arg(scope)


class TestIsolation:
    def test_queries_never_cross_scopes(self, app, scope_a, scope_b, make_product):
        pid_a = make_product(scope_a, name="Coffee A")
        pid_b = make_product(scope_b, name="Coffee B")

        assert [p["id"] for p in list_entities(scope_a, "products")] == [pid_a]
        assert [p["id"] for p in list_entities(scope_b, "products")] == [pid_b]

    def test_same_company_other_till_is_isolated(self, app, scope_a, make_product):
        other_till = TenantScope(scope_a.company_id, pos_id_for("Caisse 9"))
        make_product(scope_a)

        assert list_entities(other_till, "products") == []

    def test_foreign_ids_look_missing(self, app, scope_a, scope_b, make_product):
        pid_b = make_product(scope_b)

        with pytest.raises(EntityNotFoundError):
            get_entity(scope_a, "products", pid_b)
        with pytest.raises(EntityNotFoundError):
            update_entity(scope_a, "products", pid_b, {"price": 1})
        with pytest.raises(EntityNotFoundError):
            delete_entity(scope_a, "products", pid_b)
        with pytest.raises(EntityNotFoundError):
            adjust_stock(scope_a, pid_b, 5)

        product = db.session.get(Product, pid_b)
        assert product.price == 500
        assert product.stock == 10
        assert product.deleted is False

    def test_writes_are_stamped_with_the_given_scope(self, app, scope_a, scope_b):
        eid = create_entity(scope_b, "expenses", {"description": "Rent", "amount": 100, "category": "rent"})

        assert get_entity(scope_b, "expenses", eid)["company_id"] == "comp_epicerie_be"
        assert list_entities(scope_a, "expenses") == []
