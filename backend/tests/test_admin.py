"""Admin user management and platform settings."""

from market.models import SystemSetting, User
from market.services import settings_service
from market.services.settings_service import BUYER_SERVICE_FEE, SERVICE_FEE_PERCENTAGE

from conftest import login


def test_admin_routes_require_admin(client, db_session, buyer):
    headers = login(client, buyer)

    response = client.get('/api/admin/users', headers=headers)
    assert response.status_code == 403
    assert response.json["error"] == "Forbidden"
    assert client.put('/api/admin/settings', json={"key": "a", "value": "1"}, headers=headers).status_code == 403
    assert client.get('/api/admin/settings').status_code == 401


def test_list_users_with_search_and_sort(client, db_session, admin, buyer, seller, manager):
    headers = login(client, admin)

    everyone = client.get('/api/admin/users?sortBy=email&sortDirection=asc', headers=headers)
    assert everyone.status_code == 200
    assert everyone.json["total"] == 4
    assert [u["email"] for u in everyone.json["users"]] == [
        "admin@market.test", "buyer@market.test", "manager@market.test", "seller@market.test",
    ]

    sellers = client.get('/api/admin/users?searchValue=seller&searchField=email&searchOperator=starts_with',
                         headers=headers)
    assert [u["id"] for u in sellers.json["users"]] == [seller.id]

    paged = client.get('/api/admin/users?limit=1&offset=1&sortBy=name&sortDirection=asc', headers=headers)
    assert paged.json["total"] == 4
    assert paged.json["offset"] == 1
    assert [u["name"] for u in paged.json["users"]] == ["Budi Buyer"]

    bad = client.get('/api/admin/users?searchField=password', headers=headers)
    assert bad.status_code == 400


def test_set_role(client, db_session, admin, buyer):
    headers = login(client, admin)

    response = client.patch(f'/api/admin/users/{buyer.id}/role', json={"role": "tourism-manager"}, headers=headers)
    assert response.status_code == 200
    assert response.json["user"]["role"] == "tourism-manager"
    db_session.expire_all()
    assert db_session.get(User, buyer.id).role == "tourism-manager"

    assert client.patch(f'/api/admin/users/{buyer.id}/role', json={"role": "root"},
                        headers=headers).status_code == 400
    assert client.patch('/api/admin/users/999999/role', json={"role": "user"}, headers=headers).status_code == 404


def test_settings_defaults_are_created(client, db_session, admin):
    headers = login(client, admin)

    response = client.get('/api/admin/settings', headers=headers)

    assert response.status_code == 200
    values = {s["key"]: s["value"] for s in response.json["settings"]}
    assert values == {BUYER_SERVICE_FEE: "2000", SERVICE_FEE_PERCENTAGE: "5"}

    single = client.get(f'/api/admin/settings?key={SERVICE_FEE_PERCENTAGE}', headers=headers)
    assert [s["key"] for s in single.json["settings"]] == [SERVICE_FEE_PERCENTAGE]


def test_update_settings_validates_fee_keys(client, db_session, admin):
    headers = login(client, admin)

    ok = client.put('/api/admin/settings', json={"key": BUYER_SERVICE_FEE, "value": "2500"}, headers=headers)
    assert ok.status_code == 200
    assert ok.json["setting"]["value"] == "2500"
    assert ok.json["setting"]["description"]

    assert client.put('/api/admin/settings', json={"key": SERVICE_FEE_PERCENTAGE, "value": "101"},
                      headers=headers).status_code == 400
    assert client.put('/api/admin/settings', json={"key": BUYER_SERVICE_FEE, "value": "-1"},
                      headers=headers).status_code == 400
    assert client.put('/api/admin/settings', json={"key": SERVICE_FEE_PERCENTAGE, "value": "lots"},
                      headers=headers).status_code == 400
    assert client.put('/api/admin/settings', json={"value": "1"}, headers=headers).status_code == 400

    custom = client.put('/api/admin/settings', json={"key": "support_email", "value": "help@market.test"},
                        headers=headers)
    assert custom.status_code == 200


def test_public_buyer_service_fee(client, db_session):
    assert client.get('/api/buyer-service-fee').json == {"buyerServiceFee": "2000.00"}

    settings_service.upsert_setting(BUYER_SERVICE_FEE, "1750.25")
    assert client.get('/api/buyer-service-fee').json == {"buyerServiceFee": "1750.25"}


def test_fee_settings_fall_back_on_bad_stored_values(db_session):
    db_session.add(SystemSetting(key=SERVICE_FEE_PERCENTAGE, value="not-a-number"))
    db_session.add(SystemSetting(key=BUYER_SERVICE_FEE, value="3000"))
    db_session.commit()

    fees = settings_service.get_fee_settings()

    assert str(fees.service_fee_percentage) == "5"
    assert fees.buyer_service_fee_cents == 300_000


def test_fee_percentage_is_clamped(db_session):
    db_session.add(SystemSetting(key=SERVICE_FEE_PERCENTAGE, value="250"))
    db_session.commit()

    assert str(settings_service.get_fee_settings().service_fee_percentage) == "100"


def test_get_setting_reads_stored_values_only(db_session):
    assert settings_service.get_setting("support_email") is None

    settings_service.upsert_setting("support_email", "help@market.test", "Where buyers write to")

    assert settings_service.get_setting("support_email") == "help@market.test"
