import pytest
import requests

from storefront.api import ApiError, StorefrontApi, error_message

from conftest import ProxyResponse as Response, ProxySession as Session


def test_error_message_prefers_upstream_detail():
    body = {"error": "Failed to add package", "details": {"detail": "Package is already in your basket"}}
    assert error_message(body, "default") == "Package is already in your basket"
    assert error_message({"error": "Invalid basket identifier"}, "default") == "Invalid basket identifier"
    assert error_message("oops", "default") == "default"


def test_create_basket_posts_to_proxy():
    session = Session(Response(200, {"data": {"ident": "abc123def456", "complete": False}}))
    api = StorefrontApi("http://backend.test/", session=session)
    basket = api.create_basket("http://shop.test/checkout/complete", "http://shop.test/products")
    assert basket.ident == "abc123def456"
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("POST", "http://backend.test/api/tebex/baskets")
    assert kwargs["json"]["complete_auto_redirect"] is False
    assert "custom" not in kwargs["json"]


def test_auth_links_pass_return_url():
    session = Session(Response(200, [{"name": "FiveM", "url": "https://ident.tebex.io/x"}]))
    links = StorefrontApi("http://backend.test", session=session).get_basket_auth_links(
        "abc123def456", "http://shop.test/checkout/auth-complete")
    assert links[0].url == "https://ident.tebex.io/x"
    assert session.requests[0][2]["params"] == {"returnUrl": "http://shop.test/checkout/auth-complete"}


def test_failed_call_raises_api_error():
    body = {"error": "Failed to add package", "details": {"detail": "You must link your Discord account"}}
    session = Session(Response(422, body))
    with pytest.raises(ApiError) as exc:
        StorefrontApi("http://backend.test", session=session).add_package_to_basket(
            "abc123def456", {"package_id": 1, "quantity": 1})
    assert str(exc.value) == "You must link your Discord account"
    assert exc.value.status_code == 422


def test_transport_failure_uses_default_message():
    session = Session(requests.ConnectionError("down"))
    with pytest.raises(ApiError, match="Failed to get basket"):
        StorefrontApi("http://backend.test", session=session).get_basket("abc123def456")


def test_review_name_is_quoted():
    session = Session(Response(200, {"success": True, "data": {"reviews": []}}))
    StorefrontApi("http://backend.test", session=session).get_reviews("Police Pack / EUP")
    assert session.requests[0][1] == "http://backend.test/api/reviews/product/Police%20Pack%20%2F%20EUP"


def test_answer_without_data_is_api_error():
    session = Session(Response(200, {"ident": "abc123def456"}))
    with pytest.raises(ApiError, match="Failed to create basket"):
        StorefrontApi("http://backend.test", session=session).create_basket("http://a", "http://b")


def test_empty_basket_answer_is_api_error():
    session = Session(Response(200))
    with pytest.raises(ApiError, match="Failed to get basket"):
        StorefrontApi("http://backend.test", session=session).get_basket("abc123def456")


def test_recent_payments():
    payments = [{"id": 1, "player": {"name": "Gamer"}, "amount": "10.00"}]
    session = Session(Response(200, payments), Response(200, {"error": "nope"}))
    api = StorefrontApi("http://backend.test", session=session)
    assert api.get_recent_payments(6) == payments
    assert session.requests[0][1] == "http://backend.test/api/tebex/payments/recent"
    assert session.requests[0][2]["params"] == {"limit": 6}
    assert api.get_recent_payments() == []


def test_packages_listing():
    session = Session(Response(200, {"data": [{"id": 3, "name": "City Map", "total_price": 15}]}))
    packages = StorefrontApi("http://backend.test", session=session).get_packages()
    assert [(p.id, p.total_price) for p in packages] == [(3, 15.0)]
