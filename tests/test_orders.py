import re
import sqlite3

import pytest
from telegram.error import NetworkError

import bot
import config
import db
import orders
import wizards
from conftest import ADMIN_ID, PHOTO_BYTES, last_sent, sent_texts
from i18n import t
from sessions import WorkflowKind, owner_key

U2 = 3003


@pytest.fixture
def shop():
    """U2 has 1 × 30000 and 1 × 60000 in the cart (total 90000)."""
    cid = db.add_category('Skincare')
    cream = db.create_product('Cream', 30000, '', None, None, cid, 5)
    serum = db.create_product('Serum', 60000, '', None, None, cid, 2)
    db.upsert_user(U2, 'u2', 'User Two')
    db.set_user_language(U2, 'en')
    db.update_user_field(U2, 'address', 'Tehran')
    db.add_to_cart(U2, cream, 1)
    db.add_to_cart(U2, serum, 1)
    return {'cream': cream, 'serum': serum}


async def place_order(context):
    await wizards.start_order_placement(context, U2, U2, 'en')
    session = wizards.get_sessions(context).get(owner_key(U2), WorkflowKind.ORDER_PLACEMENT)
    assert session is not None and session.step == 'review'
    await wizards.handle_callback(context, session, 'confirm')
    return db.list_user_orders(U2)


async def test_order_placement_and_receipt_end_to_end(context, make_update, photo, shop):
    assert db.cart_total(db.get_cart(U2)) == 90000

    placed = await place_order(context)
    assert len(placed) == 1
    order = db.get_order(placed[0]['id'])
    assert order['total_amount'] == 90000
    assert order['status'] == db.ORDER_STATUS_PENDING
    assert re.fullmatch(rf"TRK\d+{order['id']}", order['tracking_number'])
    assert db.get_cart(U2) == []
    assert db.get_product(shop['cream'])['stock'] == 4
    assert db.get_product(shop['serum'])['stock'] == 1
    assert [i['product_name'] for i in db.get_order_items(order['id'])] == ['Cream', 'Serum']

    registry = wizards.get_pending(context)
    action = registry.find_by_owner(U2)
    assert action.order_id == order['id']
    assert len(wizards.get_sessions(context)) == 0
    texts = [c.kwargs['text'] for c in context.bot.send_message.call_args_list if c.kwargs['chat_id'] == U2]
    assert order['tracking_number'] in texts[-1]
    assert any(c.kwargs['chat_id'] == ADMIN_ID for c in context.bot.send_message.call_args_list)

    accepted = await orders.accept_receipt(make_update(U2, photo=[photo()]), context, action)
    assert accepted is True
    order = db.get_order(order['id'])
    assert order['receipt_image'] == PHOTO_BYTES
    assert order['status'] == db.ORDER_STATUS_PAID
    assert registry.find_by_owner(U2) is None
    context.bot.send_photo.assert_awaited_once()
    assert context.bot.send_photo.call_args.kwargs['chat_id'] == ADMIN_ID
    assert context.bot.send_photo.call_args.kwargs['photo'] == PHOTO_BYTES


async def test_second_photo_is_an_ordinary_message(context, make_update, photo, shop):
    await place_order(context)
    action = wizards.get_pending(context).find_by_owner(U2)
    assert await orders.accept_receipt(make_update(U2, photo=[photo()]), context, action)
    assert await orders.accept_receipt(make_update(U2, photo=[photo()]), context, action) is False

    second = make_update(U2, photo=[photo('again')])
    await bot.photo_router(second, context)
    second.message.reply_text.assert_awaited_once()
    assert second.message.reply_text.call_args.args[0] == t('en', 'unexpected_photo')
    assert context.bot.get_file.await_count == 1


async def test_failed_receipt_can_be_sent_again(context, make_update, photo, shop):
    placed = await place_order(context)
    registry = wizards.get_pending(context)
    context.bot.get_file.side_effect = NetworkError('connection reset')

    ok = await orders.accept_receipt(make_update(U2, photo=[photo()]), context, registry.find_by_owner(U2))
    assert ok is False
    assert registry.find_by_owner(U2).order_id == placed[0]['id']
    assert db.get_order(placed[0]['id'])['receipt_image'] is None
    assert last_sent(context.bot)['text'] == t('en', 'receipt_failed')


async def test_oversized_receipt_can_be_sent_again(context, make_update, photo, shop):
    placed = await place_order(context)
    registry = wizards.get_pending(context)
    too_big = (config.MAX_IMAGE_MB + 1) * 1024 * 1024

    ok = await orders.accept_receipt(make_update(U2, photo=[photo('huge', too_big)]), context,
                                     registry.find_by_owner(U2))
    assert ok is False
    context.bot.get_file.assert_not_awaited()
    assert registry.find_by_owner(U2).order_id == placed[0]['id']
    assert db.get_order(placed[0]['id'])['status'] == db.ORDER_STATUS_PENDING
    assert last_sent(context.bot)['text'] == t('en', 'receipt_too_large', max_mb=config.MAX_IMAGE_MB)

    assert await orders.accept_receipt(make_update(U2, photo=[photo()]), context, registry.find_by_owner(U2))
    assert db.get_order(placed[0]['id'])['receipt_image'] == PHOTO_BYTES


async def test_unsent_instructions_do_not_fail_a_placed_order(context, shop):
    await wizards.start_order_placement(context, U2, U2, 'en')
    session = wizards.get_sessions(context).get(owner_key(U2), WorkflowKind.ORDER_PLACEMENT)
    context.bot.send_message.side_effect = NetworkError('timeout')

    await wizards.handle_callback(context, session, 'confirm')

    placed = db.list_user_orders(U2)
    assert len(placed) == 1
    assert wizards.get_pending(context).find_by_owner(U2).order_id == placed[0]['id']
    assert t('en', 'error_order_create') not in sent_texts(context.bot)
    assert len(wizards.get_sessions(context)) == 0


async def test_out_of_stock_at_commit_changes_nothing(context, shop):
    db.update_product(shop['serum'], stock=0)

    placed = await place_order(context)
    assert placed == []
    assert last_sent(context.bot)['text'] == t('en', 'error_out_of_stock', name='Serum')
    assert db.get_product(shop['cream'])['stock'] == 5
    assert len(db.get_cart(U2)) == 2
    assert wizards.get_pending(context).find_by_owner(U2) is None


def test_create_order_rolls_back_on_failure(shop, monkeypatch):
    def broken(cur, order_id, lines):
        raise sqlite3.OperationalError('disk I/O error')

    monkeypatch.setattr(db, '_insert_order_items', broken)
    with pytest.raises(sqlite3.OperationalError):
        db.create_order(U2)

    assert db.get_product(shop['cream'])['stock'] == 5
    assert db.get_product(shop['serum'])['stock'] == 2
    assert len(db.get_cart(U2)) == 2
    assert db.list_user_orders(U2) == []


async def test_empty_cart_does_not_start_a_session(context):
    db.upsert_user(U2, 'u2', 'User Two')
    assert await wizards.start_order_placement(context, U2, U2, 'en') is None
    assert len(wizards.get_sessions(context)) == 0
    assert last_sent(context.bot)['text'] == t('en', 'cart_empty')


async def test_review_requires_the_confirm_button(context, make_update, shop):
    await wizards.start_order_placement(context, U2, U2, 'en')
    session = wizards.get_sessions(context).active_for_user(U2)
    await wizards.handle_message(make_update(U2, text='yes'), context, session)
    assert last_sent(context.bot)['text'] == t('en', 'error_use_buttons')
    assert db.list_user_orders(U2) == []


async def test_payment_decisions_notify_the_buyer(context, shop):
    order_id = (await place_order(context))[0]['id']

    reply = await orders.decide_payment(context, order_id, 'approve', 'en')
    assert reply == t('en', 'admin_payment_approve', order_id=order_id)
    assert db.get_order(order_id)['status'] == db.ORDER_STATUS_PAYMENT_VALIDATED
    assert last_sent(context.bot)['chat_id'] == U2

    await orders.set_delivery_status(context, order_id, db.ORDER_STATUS_SHIPPED, 'en')
    assert db.get_order(order_id)['status'] == db.ORDER_STATUS_SHIPPED

    await orders.decide_payment(context, order_id, 'reject', 'en')
    assert db.get_order(order_id)['status'] == db.ORDER_STATUS_PAYMENT_INVALIDATED


async def test_decision_on_missing_order(context):
    assert await orders.decide_payment(context, 404, 'approve', 'en') == t('en', 'error_order_not_found')


def test_tracking_number_format():
    assert wizards.make_tracking_number(7, now=1700000000.5) == 'TRK17000000005007'
