from services.api.app.services.auth_context import AuthContext
from services.api.app.services.reconciler import CheckoutReconciler
from services.api.app.services.shipping_mock import MockShippingRateService
from services.api.app.services.store import InMemoryStore, SessionRecord
from services.api.app.services.storefront_mock import MockStorefrontBackend


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _record(session_id: str) -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        auth=AuthContext(),
        reconciler=CheckoutReconciler(MockStorefrontBackend(), MockShippingRateService()),
    )


def test_idle_sessions_are_evicted() -> None:
    clock = _Clock()
    store = InMemoryStore(max_idle_seconds=60, clock=clock)
    idle = _record("idle")
    store.save_session(idle)
    store.save_session(_record("busy"))

    clock.now += 45
    assert store.get_session("busy") is not None

    clock.now += 30
    assert store.get_session("idle") is None
    assert store.get_session("busy") is not None
    assert len(store) == 1
    assert idle.reconciler.status.value == "ABANDONED"


def test_discard_is_idempotent() -> None:
    store = InMemoryStore()
    store.save_session(_record("s1"))

    store.discard_session("s1")
    store.discard_session("s1")

    assert store.get_session("s1") is None
    assert len(store) == 0
