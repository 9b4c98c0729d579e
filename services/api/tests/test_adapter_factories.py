import pytest
from services.api.app.services.auth_context import AuthContext
from services.api.app.services.checkout_factory import build_reconciler
from services.api.app.services.shipping_factory import get_shipping_rate_service
from services.api.app.services.storefront_factory import get_storefront_backend


def test_get_storefront_backend_defaults_to_mock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FOODHUB_STOREFRONT_ADAPTER", raising=False)
    backend = get_storefront_backend(AuthContext())
    assert backend.name == "MOCK"


def test_get_storefront_backend_http_uses_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FOODHUB_STOREFRONT_ADAPTER", " HTTP ")
    monkeypatch.setenv("FOODHUB_API_BASE_URL", "https://shop.example.test/api/")
    backend = get_storefront_backend(AuthContext(token="t"))
    assert backend.name == "HTTP"
    assert backend._cfg.base_url == "https://shop.example.test/api"  # type: ignore[attr-defined]


def test_get_storefront_backend_rejects_unknown(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FOODHUB_STOREFRONT_ADAPTER", "nope")
    with pytest.raises(ValueError, match="Unknown FOODHUB_STOREFRONT_ADAPTER"):
        get_storefront_backend(AuthContext())


@pytest.mark.parametrize(("mode", "name"), [("mock", "MOCK"), ("demo", "MOCK"), ("ghn", "HTTP")])
def test_get_shipping_rate_service_modes(
    monkeypatch: pytest.MonkeyPatch, mode: str, name: str
) -> None:
    monkeypatch.setenv("FOODHUB_SHIPPING_ADAPTER", mode)
    assert get_shipping_rate_service(AuthContext()).name == name


def test_get_shipping_rate_service_rejects_unknown(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FOODHUB_SHIPPING_ADAPTER", "pigeon")
    with pytest.raises(ValueError, match="Unknown FOODHUB_SHIPPING_ADAPTER"):
        get_shipping_rate_service(AuthContext())


def test_build_reconciler_reads_shipping_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FOODHUB_STOREFRONT_ADAPTER", raising=False)
    monkeypatch.delenv("FOODHUB_SHIPPING_ADAPTER", raising=False)
    monkeypatch.setenv("FOODHUB_SHIPPING_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("FOODHUB_SHIPPING_ATTEMPTS", "3")

    reconciler = build_reconciler(AuthContext(), [101])

    assert reconciler.dish_ids == [101]
    assert reconciler.storefront_name == "MOCK"
    assert reconciler._shipping_timeout == 2.5
    assert reconciler._shipping_attempts == 3


def test_auth_context_parses_bearer_header() -> None:
    auth = AuthContext.from_authorization_header("Bearer abc123")
    assert auth.is_authenticated
    assert auth.headers() == {"Authorization": "Bearer abc123"}

    assert not AuthContext.from_authorization_header("Basic Zm9vOmJhcg==").is_authenticated
    assert not AuthContext.from_authorization_header(None).is_authenticated

    auth.clear()
    assert auth.headers() == {}
