"""Session token lifecycle and request payload validation."""

from datetime import timedelta
from decimal import Decimal

import pytest

from petshop.errors import ValidationError
from petshop.extensions import db
from petshop.models import Product, SessionToken
from petshop.routes.products import PRODUCT_POLICY
from petshop.services import session_service
from petshop.time_utils import utcnow
from petshop.validation import enforce_rules_product, enforce_rules_transaction, validate_payload


def _stored(token):
    return db.session.query(SessionToken).filter_by(token_hash=session_service.hash_token(token)).one()


def test_token_is_stored_hashed(admin_user):
    session, token = session_service.create_session(admin_user.id, user_agent="pytest")

    assert len(token) == 64
    assert session.token_hash == session_service.hash_token(token)
    assert session.token_hash != token
    assert session_service.validate_session(token).id == admin_user.id


def test_unknown_token_is_rejected(admin_user):
    assert session_service.validate_session("not-a-token") is None
    assert session_service.validate_session("") is None


def test_idle_session_is_revoked(admin_user):
    _, token = session_service.create_session(admin_user.id)
    row = _stored(token)
    row.last_used_at = utcnow() - timedelta(hours=3)
    db.session.commit()

    assert session_service.validate_session(token) is None
    assert _stored(token).is_revoked is True
    assert _stored(token).revoked_reason == "Idle timeout"


def test_expired_session_is_refused(admin_user):
    _, token = session_service.create_session(admin_user.id)
    row = _stored(token)
    row.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    assert session_service.validate_session(token) is None


def test_deactivated_user_loses_session(admin_user):
    _, token = session_service.create_session(admin_user.id)
    admin_user.is_active = False
    db.session.commit()

    assert session_service.validate_session(token) is None
    assert _stored(token).revoked_reason == "User account deactivated"


def test_revoke_all_user_sessions(admin_user):
    _, first = session_service.create_session(admin_user.id)
    _, second = session_service.create_session(admin_user.id)

    assert session_service.revoke_all_user_sessions(admin_user.id) == 2
    assert session_service.validate_session(first) is None
    assert session_service.validate_session(second) is None
    assert session_service.revoke_session(first) is False


def test_payload_is_coerced_to_column_types():
    patch = validate_payload(
        model=Product,
        payload={
            "name": "  Cat litter 4kg ",
            "category_id": "7",
            "price_cents": 3990,
            "min_stock": "2.5",
            "barcode": "",
            "sold_by_weight": False,
        },
        policy=PRODUCT_POLICY,
        partial=False,
    )

    assert patch["name"] == "Cat litter 4kg"
    assert patch["category_id"] == 7
    assert patch["min_stock"] == Decimal("2.500")
    assert patch["barcode"] is None
    assert patch["sold_by_weight"] is False


@pytest.mark.parametrize("payload, message", [
    ({"name": "Bone"}, "Missing required fields"),
    ({"name": "Bone", "category_id": 1, "price_cents": 10, "stock_quantity": 5}, "Field not allowed"),
    ({"name": "Bone", "category_id": 1, "price_cents": 10.5}, "price_cents must be an integer"),
    ({"name": "Bone", "category_id": 1, "price_cents": True}, "price_cents must be an integer"),
    ({"name": "Bone", "category_id": 1, "price_cents": "1e3"}, "price_cents must be an integer"),
    ({"name": None, "category_id": 1, "price_cents": 10}, "name cannot be null"),
    ({"name": "   ", "category_id": 1, "price_cents": 10}, "name cannot be blank"),
    ({"name": "x" * 300, "category_id": 1, "price_cents": 10}, "exceeds max length"),
    ({"name": "Bone", "category_id": 1, "price_cents": 10, "sold_by_weight": "yes"}, "must be true or false"),
])
def test_invalid_payloads(payload, message):
    with pytest.raises(ValidationError) as exc:
        validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    assert message in exc.value.message


def test_partial_update_skips_required_fields():
    patch = validate_payload(model=Product, payload={"price_cents": 100}, policy=PRODUCT_POLICY, partial=True)
    assert patch == {"price_cents": 100}


def test_product_price_rules():
    with pytest.raises(ValidationError):
        enforce_rules_product({"price_cents": -1})
    with pytest.raises(ValidationError):
        enforce_rules_product({"cost_cents": 1_000_000_000})
    enforce_rules_product({"price_cents": 0, "cost_cents": None})


def test_transaction_rules_clean_tags():
    patch = {"amount_cents": 500, "tags": [" ração ", "", "banho"]}
    enforce_rules_transaction(patch)
    assert patch["tags"] == ["ração", "banho"]

    with pytest.raises(ValidationError):
        enforce_rules_transaction({"amount_cents": 0})
    with pytest.raises(ValidationError):
        enforce_rules_transaction({"tags": "ração"})
