from conftest import FakeClock

from sessions import SessionStore, WorkflowKind, owner_key


def make_store():
    clock = FakeClock()
    return SessionStore(clock), clock


def test_start_and_get():
    store, _ = make_store()
    session = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en', chat_id=1)
    assert store.get(owner_key(1), WorkflowKind.PRODUCT_CREATE) is session
    assert session.step == 'name'
    assert session.draft == {}
    assert session.user_id == 1
    assert session.entity_id is None


def test_one_session_per_owner_and_workflow():
    store, _ = make_store()
    store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    store.start(owner_key(1), WorkflowKind.HELP_REQUEST, 'message', 'en')
    store.start(owner_key(2), WorkflowKind.PRODUCT_CREATE, 'name', 'fa')
    assert len(store) == 3


def test_restart_replaces_running_session():
    store, _ = make_store()
    first = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    store.update(first, 'name', 'Lotion')
    store.advance(first, 'price')

    second = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    assert len(store) == 1
    assert store.get(owner_key(1), WorkflowKind.PRODUCT_CREATE) is second
    assert second.step == 'name'
    assert second.draft == {}


def test_owners_do_not_share_drafts():
    store, _ = make_store()
    a = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    b = store.start(owner_key(2), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    store.update(a, 'name', 'Lotion')
    store.advance(a, 'price')
    assert b.draft == {}
    assert b.step == 'name'


def test_entity_scoped_sessions_are_independent():
    store, _ = make_store()
    a = store.start(owner_key(1, 10), WorkflowKind.PRODUCT_UPDATE, 'name', 'en')
    b = store.start(owner_key(1, 11), WorkflowKind.PRODUCT_UPDATE, 'name', 'en')
    store.update(a, 'name', 'A')
    assert b.draft == {}
    assert a.entity_id == 10
    assert store.get(owner_key(1, 11), WorkflowKind.PRODUCT_UPDATE) is b


def test_update_and_advance_touch_the_session():
    store, clock = make_store()
    session = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    clock.advance(5)
    store.update(session, 'name', 'Lotion')
    assert session.last_touched_at == clock.now
    clock.advance(5)
    store.advance(session, 'price')
    assert session.last_touched_at == clock.now
    assert session.created_at == 1000.0


def test_clear_is_idempotent():
    store, _ = make_store()
    store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    store.clear(owner_key(1), WorkflowKind.PRODUCT_CREATE)
    store.clear(owner_key(1), WorkflowKind.PRODUCT_CREATE)
    assert store.get(owner_key(1), WorkflowKind.PRODUCT_CREATE) is None
    assert len(store) == 0


def test_discard_keeps_a_newer_session():
    store, _ = make_store()
    old = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    new = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    store.discard(old)
    assert store.get(owner_key(1), WorkflowKind.PRODUCT_CREATE) is new
    store.discard(new)
    assert len(store) == 0


def test_active_for_user_prefers_most_recently_touched():
    store, clock = make_store()
    help_session = store.start(owner_key(1), WorkflowKind.HELP_REQUEST, 'message', 'en')
    clock.advance(1)
    create = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    assert store.active_for_user(1) is create
    clock.advance(1)
    store.update(help_session, 'message', 'hi')
    assert store.active_for_user(1) is help_session
    assert store.active_for_user(2) is None


def test_active_for_user_entity_scoped_wins_ties():
    store, _ = make_store()
    store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    update = store.start(owner_key(1, 7), WorkflowKind.PRODUCT_UPDATE, 'name', 'en')
    assert store.active_for_user(1) is update


def test_clear_user_only_touches_that_user():
    store, _ = make_store()
    store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    store.start(owner_key(1, 3), WorkflowKind.PRODUCT_UPDATE, 'name', 'en')
    store.start(owner_key(2), WorkflowKind.HELP_REQUEST, 'message', 'en')
    assert store.clear_user(1) == 2
    assert store.for_user(1) == []
    assert len(store.for_user(2)) == 1


def test_sweep_drops_idle_sessions():
    store, clock = make_store()
    idle = store.start(owner_key(1), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    clock.advance(600)
    fresh = store.start(owner_key(2), WorkflowKind.PRODUCT_CREATE, 'name', 'en')
    clock.advance(1300)

    assert store.sweep(1800) == 1
    assert store.get(idle.owner, idle.workflow) is None
    assert store.get(fresh.owner, fresh.workflow) is fresh
