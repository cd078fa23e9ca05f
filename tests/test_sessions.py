import threading
from datetime import datetime, timedelta

from bookstore.sessions import CUSTOMER, SessionIdentity, SessionStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now


def test_issue_and_lookup():
    clock = FakeClock()
    store = SessionStore(ttl=timedelta(days=30), clock=clock)
    identity = SessionIdentity(kind=CUSTOMER, id=7)

    token = store.issue(identity)

    assert store.lookup_session(token) == (identity, clock.now + timedelta(days=30))


def test_tokens_are_unique():
    store = SessionStore()
    identity = SessionIdentity(kind=CUSTOMER, id=7)

    assert store.issue(identity) != store.issue(identity)


def test_expired_token_is_evicted():
    clock = FakeClock()
    store = SessionStore(ttl=timedelta(minutes=5), clock=clock)
    token = store.issue(SessionIdentity(kind=CUSTOMER, id=7))

    clock.now += timedelta(minutes=6)

    assert store.lookup_session(token) is None
    assert len(store) == 0


def test_revoke():
    store = SessionStore()
    token = store.issue(SessionIdentity(kind=CUSTOMER, id=7))

    store.revoke(token)
    store.revoke(token)

    assert store.lookup_session(token) is None


def test_unknown_token():
    assert SessionStore().lookup_session("not-a-token") is None


def test_len_waits_for_the_lock():
    store = SessionStore()
    store.issue(SessionIdentity(kind=CUSTOMER, id=7))
    sizes = []
    reader = threading.Thread(target=lambda: sizes.append(len(store)))

    with store._lock:
        reader.start()
        reader.join(timeout=0.1)
        assert reader.is_alive()

    reader.join()
    assert sizes == [1]


def test_revoke_identity_drops_only_that_identitys_tokens():
    store = SessionStore()
    ada = SessionIdentity(kind=CUSTOMER, id=7)
    grace = SessionIdentity(kind=CUSTOMER, id=8)
    first, second = store.issue(ada), store.issue(ada)
    kept = store.issue(grace)

    assert store.revoke_identity(ada) == 2

    assert store.lookup_session(first) is None
    assert store.lookup_session(second) is None
    assert store.lookup_session(kept)[0] == grace
