#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Shop Telegram Bot (bot.py)
Features:
- Localized button menu (fa / en)
- Catalog by category, product cards with stored photos, cart
- Order placement with review, bank-transfer instructions and receipt photo
- Admin panel: categories, products, users, promocodes (step-by-step wizards), orders, deliveries, payments, stats
- Help requests forwarded to the shop admin
Requires: python-telegram-bot v20+ (with the job-queue extra for idle sweeps)
"""

import logging

from telegram import Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    ContextTypes,
    filters,
)

import config
import db
import formatting
import i18n
import keyboards
import orders
import wizards
from i18n import t
from sessions import PendingActionRegistry, SessionStore, WorkflowKind, owner_key

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logging.getLogger('httpx').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def user_lang(tg_id: int) -> str:
    return i18n.normalize_language(db.get_user_language(tg_id))


def _int_parts(data: str, count: int):
    """'prefix:1:2' -> (1, 2); None when the ids are not integers."""
    parts = data.split(':')[1:count + 1]
    try:
        return tuple(int(p) for p in parts)
    except ValueError:
        return None


# --- Storefront views (shared by menu buttons and callbacks) ---
async def show_categories(context: ContextTypes.DEFAULT_TYPE, chat_id: int, lang: str) -> None:
    categories = db.list_categories()
    if not categories:
        await context.bot.send_message(chat_id=chat_id, text=t(lang, 'no_categories'))
        return
    await context.bot.send_message(chat_id=chat_id, text=t(lang, 'choose_category'),
                                   reply_markup=keyboards.catalog_keyboard(categories))


async def show_cart(context: ContextTypes.DEFAULT_TYPE, chat_id: int, tg_id: int, lang: str) -> None:
    items = db.get_cart(tg_id)
    if not items:
        await context.bot.send_message(chat_id=chat_id, text=t(lang, 'cart_empty'))
        return
    await context.bot.send_message(chat_id=chat_id, text=formatting.cart_text(items, lang),
                                   reply_markup=keyboards.cart_keyboard(lang))


async def show_profile(context: ContextTypes.DEFAULT_TYPE, chat_id: int, tg_id: int, lang: str) -> None:
    user = db.get_user(tg_id)
    if user is None:
        await context.bot.send_message(chat_id=chat_id, text=t(lang, 'error_user_not_found'))
        return
    await context.bot.send_message(chat_id=chat_id, text=formatting.profile_text(user, lang),
                                   reply_markup=keyboards.profile_keyboard(lang))


async def show_my_orders(context: ContextTypes.DEFAULT_TYPE, chat_id: int, tg_id: int, lang: str,
                         page: int = 1) -> None:
    rows = db.list_user_orders(tg_id, page, config.ORDERS_PAGE_SIZE + 1)
    has_next = len(rows) > config.ORDERS_PAGE_SIZE
    await context.bot.send_message(
        chat_id=chat_id, text=formatting.order_list(rows[:config.ORDERS_PAGE_SIZE], lang),
        reply_markup=keyboards.pagination_keyboard('myorders', page, has_next, lang))


async def show_admin_orders(context: ContextTypes.DEFAULT_TYPE, chat_id: int, lang: str, page: int = 1) -> None:
    rows = db.list_orders(page, config.ORDERS_PAGE_SIZE + 1)
    has_next = len(rows) > config.ORDERS_PAGE_SIZE
    await context.bot.send_message(
        chat_id=chat_id, text=formatting.order_list(rows[:config.ORDERS_PAGE_SIZE], lang),
        reply_markup=keyboards.pagination_keyboard('aorders', page, has_next, lang))


async def show_admin_deliveries(context: ContextTypes.DEFAULT_TYPE, chat_id: int, lang: str, page: int = 1) -> None:
    rows = db.list_deliveries(page, config.ORDERS_PAGE_SIZE + 1)
    has_next = len(rows) > config.ORDERS_PAGE_SIZE
    text = formatting.order_list(rows[:config.ORDERS_PAGE_SIZE], lang) if rows else t(lang, 'no_deliveries')
    await context.bot.send_message(chat_id=chat_id, text=text,
                                   reply_markup=keyboards.pagination_keyboard('adeliv', page, has_next, lang))


# --- Commands ---
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if user is None or update.message is None:
        return
    row = db.upsert_user(user.id, user.username or '', user.full_name)
    if not row['language']:
        await update.message.reply_text(t(config.DEFAULT_LANGUAGE, 'choose_language'),
                                        reply_markup=keyboards.language_keyboard())
        return
    lang = i18n.normalize_language(row['language'])
    await update.message.reply_text(t(lang, 'welcome', name=user.first_name),
                                    reply_markup=keyboards.main_keyboard(lang, show_contact=not row['phone']))


async def admin_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if user is None or update.message is None:
        return
    lang = user_lang(user.id)
    if not db.is_admin(user.id):
        await update.message.reply_text(t(lang, 'admin_only'))
        return
    await update.message.reply_text(t(lang, 'admin_panel'), reply_markup=keyboards.admin_keyboard(lang))


async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if user is None or update.message is None:
        return
    lang = user_lang(user.id)
    cleared = wizards.cancel(context, user.id)
    key = 'cancelled' if cleared else 'nothing_to_cancel'
    await update.message.reply_text(t(lang, key), reply_markup=keyboards.main_keyboard(lang))


# --- Message routing: pending receipt, then running dialog, then menu ---
async def photo_router(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = update.message
    user = update.effective_user
    if msg is None or user is None:
        return

    action = wizards.get_pending(context).find_by_owner(user.id)
    if action is not None:
        await orders.accept_receipt(update, context, action)
        return

    session = wizards.get_sessions(context).active_for_user(user.id)
    if session is not None:
        await wizards.handle_message(update, context, session)
        return

    lang = user_lang(user.id)
    await msg.reply_text(t(lang, 'unexpected_photo'), reply_markup=keyboards.main_keyboard(lang))


async def text_router(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = update.message
    user = update.effective_user
    if msg is None or msg.text is None or user is None:
        return

    session = wizards.get_sessions(context).active_for_user(user.id)
    if session is not None:
        await wizards.handle_message(update, context, session)
        return

    lang = user_lang(user.id)
    chat_id = msg.chat_id
    key = keyboards.menu_lookup().get(msg.text.strip())
    if key == 'menu_categories':
        await show_categories(context, chat_id, lang)
    elif key == 'menu_cart':
        await show_cart(context, chat_id, user.id, lang)
    elif key == 'menu_profile':
        await show_profile(context, chat_id, user.id, lang)
    elif key == 'menu_orders':
        await show_my_orders(context, chat_id, user.id, lang)
    elif key == 'menu_about':
        await msg.reply_text(t(lang, 'about'), reply_markup=keyboards.main_keyboard(lang))
    elif key == 'menu_help':
        await wizards.start_help_request(context, user.id, chat_id, lang, username=user.username or '')
    elif key == 'menu_language':
        await msg.reply_text(t(lang, 'choose_language'), reply_markup=keyboards.language_keyboard())
    else:
        await msg.reply_text(t(lang, 'unknown_command'), reply_markup=keyboards.main_keyboard(lang))


async def contact_router(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = update.message
    user = update.effective_user
    if msg is None or msg.contact is None or user is None:
        return

    session = wizards.get_sessions(context).active_for_user(user.id)
    if session is not None:
        await wizards.handle_message(update, context, session)
        return

    lang = user_lang(user.id)
    if msg.contact.user_id != user.id:
        await msg.reply_text(t(lang, 'error_foreign_contact'), reply_markup=keyboards.main_keyboard(lang))
        return
    db.upsert_user(user.id, user.username or '', user.full_name)
    db.update_user_field(user.id, 'phone', msg.contact.phone_number)
    await msg.reply_text(t(lang, 'phone_saved'), reply_markup=keyboards.main_keyboard(lang))


async def other_router(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Stickers, documents, voice... only matter to a running dialog (which rejects them).

    A receipt sent as a file gets a hint to send it as a photo instead.
    """
    msg = update.message
    user = update.effective_user
    if msg is None or user is None:
        return
    action = wizards.get_pending(context).find_by_owner(user.id)
    if action is not None and msg.document is not None:
        await msg.reply_text(t(action.language, 'receipt_send_as_photo'))
        return
    session = wizards.get_sessions(context).active_for_user(user.id)
    if session is not None:
        await wizards.handle_message(update, context, session)


# --- Callbacks ---
async def language_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = update.callback_query
    if q is None:
        return
    await q.answer()
    lang = i18n.normalize_language((q.data or '').split(':', 1)[-1])
    user = q.from_user
    row = db.upsert_user(user.id, user.username or '', user.full_name)
    db.set_user_language(user.id, lang)
    await q.message.reply_text(t(lang, 'language_set'),
                               reply_markup=keyboards.main_keyboard(lang, show_contact=not row['phone']))


async def catalog_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = update.callback_query
    if q is None:
        return
    await q.answer()
    data = q.data or ''
    lang = user_lang(q.from_user.id)
    chat_id = q.message.chat_id

    if data == 'catalog':
        await show_categories(context, chat_id, lang)
        return

    ids = _int_parts(data, 1)
    if ids is None:
        return
    if data.startswith('cat:'):
        category = db.get_category(ids[0])
        products = db.list_products_by_category(ids[0]) if category else []
        if not products:
            await q.message.reply_text(t(lang, 'no_products'), reply_markup=keyboards.products_keyboard([], lang))
            return
        await q.message.reply_text(t(lang, 'choose_product', category=category['name']),
                                   reply_markup=keyboards.products_keyboard(products, lang))
        return

    product = db.get_product(ids[0])
    if product is None:
        await q.message.reply_text(t(lang, 'error_product_not_found'))
        return
    caption = formatting.product_caption(product, lang)
    kb = keyboards.product_card_keyboard(product['id'], lang) if product['stock'] > 0 else None
    if product['image']:
        try:
            await q.message.reply_photo(photo=product['image'], caption=caption, reply_markup=kb)
            return
        except BadRequest as e:
            logger.warning('Stored image of product #%s could not be sent: %s', product['id'], e)
    await q.message.reply_text(caption, reply_markup=kb)


async def cart_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = update.callback_query
    if q is None:
        return
    await q.answer()
    data = q.data or ''
    user = q.from_user
    lang = user_lang(user.id)

    if data == 'cart:view':
        await show_cart(context, q.message.chat_id, user.id, lang)
        return
    if data == 'cart:clear':
        db.clear_cart(user.id)
        await q.message.reply_text(t(lang, 'cart_cleared'), reply_markup=keyboards.main_keyboard(lang))
        return

    if data.startswith('addcart:'):
        ids = _int_parts(data, 1)
        product = db.get_product(ids[0]) if ids else None
        if product is None:
            await q.message.reply_text(t(lang, 'error_product_not_found'))
            return
        if product['stock'] <= 0:
            await q.message.reply_text(t(lang, 'product_out_of_stock'))
            return
        await q.message.reply_text(t(lang, 'choose_quantity', name=product['name']),
                                   reply_markup=keyboards.quantity_keyboard(product['id'], product['stock'], lang))
        return

    ids = _int_parts(data, 2)
    if ids is None:
        return
    product_id, quantity = ids
    db.upsert_user(user.id, user.username or '', user.full_name)
    try:
        db.add_to_cart(user.id, product_id, quantity)
    except db.ShopError as e:
        await q.message.reply_text(t(lang, e.message_key, **e.params))
        return
    await q.message.reply_text(t(lang, 'added_to_cart', quantity=quantity),
                               reply_markup=keyboards.added_to_cart_keyboard(lang))


async def order_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = update.callback_query
    if q is None:
        return
    await q.answer()
    action = (q.data or '').split(':', 1)[-1]
    user = q.from_user
    lang = user_lang(user.id)
    chat_id = q.message.chat_id
    store = wizards.get_sessions(context)

    if action == 'start':
        await wizards.start_order_placement(context, user.id, chat_id, lang)
        return

    session = store.get(owner_key(user.id), WorkflowKind.ORDER_PLACEMENT)
    if session is None:
        await q.message.reply_text(t(lang, 'error_session_expired'), reply_markup=keyboards.main_keyboard(lang))
        return
    if action == 'confirm':
        await wizards.handle_callback(context, session, 'confirm')
    elif action == 'edit':
        store.discard(session)
        await q.message.reply_text(t(lang, 'edit_info_hint'))
        await show_profile(context, chat_id, user.id, lang)
    elif action == 'cancel':
        store.discard(session)
        await q.message.reply_text(t(lang, 'order_cancelled'), reply_markup=keyboards.main_keyboard(lang))


async def feedback_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = update.callback_query
    if q is None:
        return
    await q.answer()
    data = q.data or ''
    user = q.from_user
    lang = user_lang(user.id)

    if data.startswith('fb:'):
        ids = _int_parts(data, 1)
        if ids:
            await q.message.reply_text(t(lang, 'choose_rating'), reply_markup=keyboards.rating_keyboard(ids[0]))
        return

    ids = _int_parts(data, 2)
    if ids is None:
        return
    product_id, rating = ids
    if db.get_product(product_id) is None:
        await q.message.reply_text(t(lang, 'error_product_not_found'))
        return
    db.add_feedback(user.id, product_id, rating, '')
    await q.message.reply_text(t(lang, 'feedback_thanks'), reply_markup=keyboards.main_keyboard(lang))


async def profile_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = update.callback_query
    if q is None:
        return
    await q.answer()
    field = (q.data or '').split(':', 1)[-1]
    user = q.from_user
    await wizards.start_profile_edit(context, user.id, q.message.chat_id, user_lang(user.id), field)


async def my_orders_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = update.callback_query
    if q is None:
        return
    await q.answer()
    ids = _int_parts(q.data or '', 1)
    if ids is None:
        return
    user = q.from_user
    await show_my_orders(context, q.message.chat_id, user.id, user_lang(user.id), page=max(ids[0], 1))


# --- Admin callbacks ---
async def _admin_query(update: Update):
    """The callback query when it comes from an admin; otherwise alert and return None."""
    q = update.callback_query
    if q is None:
        return None
    if not db.is_admin(q.from_user.id):
        await q.answer(text=t(user_lang(q.from_user.id), 'admin_only'), show_alert=True)
        return None
    await q.answer()
    return q


async def admin_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = await _admin_query(update)
    if q is None:
        return
    action = (q.data or '').split(':', 1)[-1]
    user = q.from_user
    lang = user_lang(user.id)
    chat_id = q.message.chat_id
    panel = keyboards.admin_keyboard(lang)

    if action == 'view_categories':
        await q.message.reply_text(formatting.category_list(db.list_categories(), lang), reply_markup=panel)
    elif action == 'add_category':
        await wizards.start_category_create(context, user.id, chat_id, lang)
    elif action in ('edit_category', 'delete_category'):
        categories = db.list_categories()
        if not categories:
            await q.message.reply_text(t(lang, 'no_categories'), reply_markup=panel)
            return
        prefix, key = ('editcat', 'choose_category_edit') if action == 'edit_category' else \
            ('delcat', 'choose_category_delete')
        await q.message.reply_text(t(lang, key), reply_markup=keyboards.pick_keyboard(categories, prefix))
    elif action == 'view_products':
        await q.message.reply_text(formatting.product_list(db.list_products(), lang), reply_markup=panel)
    elif action == 'add_product':
        await wizards.start_product_create(context, user.id, chat_id, lang)
    elif action in ('edit_product', 'delete_product'):
        products = db.list_products()
        if not products:
            await q.message.reply_text(t(lang, 'no_products'), reply_markup=panel)
            return
        prefix, key = ('editprod', 'choose_product_edit') if action == 'edit_product' else \
            ('delprod', 'choose_product_delete')
        await q.message.reply_text(t(lang, key), reply_markup=keyboards.pick_keyboard(products, prefix))
    elif action == 'view_users':
        await q.message.reply_text(formatting.user_list(db.list_users(), lang), reply_markup=panel)
    elif action in ('edit_user', 'delete_user'):
        users = db.list_users()
        if not users:
            await q.message.reply_text(t(lang, 'no_users'), reply_markup=panel)
            return
        prefix, key = ('edituser', 'choose_user_edit') if action == 'edit_user' else \
            ('deluser', 'choose_user_delete')
        items = [{'id': u['tg_id'], 'name': u['full_name'] or u['tg_id']} for u in users]
        await q.message.reply_text(t(lang, key), reply_markup=keyboards.pick_keyboard(items, prefix))
    elif action == 'view_orders':
        await show_admin_orders(context, chat_id, lang)
    elif action == 'view_deliveries':
        await show_admin_deliveries(context, chat_id, lang)
    elif action == 'edit_delivery':
        deliveries = db.list_deliveries()
        if not deliveries:
            await q.message.reply_text(t(lang, 'no_deliveries'), reply_markup=panel)
            return
        items = [{'id': o['id'], 'name': f"#{o['id']} {t(lang, 'status_' + o['status'])}"} for o in deliveries]
        await q.message.reply_text(t(lang, 'choose_delivery_edit'),
                                   reply_markup=keyboards.pick_keyboard(items, 'editdeliv'))
    elif action == 'view_feedback':
        await q.message.reply_text(formatting.feedback_list(db.list_feedback(), lang), reply_markup=panel)
    elif action == 'delete_feedback':
        feedbacks = db.list_feedback()
        if not feedbacks:
            await q.message.reply_text(t(lang, 'no_feedback'), reply_markup=panel)
            return
        items = [{'id': f['id'], 'name': f"#{f['id']} ⭐ {f['rating']} {f['product_name'] or '-'}"} for f in feedbacks]
        await q.message.reply_text(t(lang, 'choose_feedback_delete'),
                                   reply_markup=keyboards.pick_keyboard(items, 'delfb'))
    elif action == 'create_promocode':
        await wizards.start_promocode_create(context, user.id, chat_id, lang)
    elif action == 'view_promocodes':
        await q.message.reply_text(formatting.promocode_list(db.list_promocodes(), lang), reply_markup=panel)
    elif action == 'stats':
        await q.message.reply_text(formatting.stats_text(db.get_stats(), lang), reply_markup=panel)


async def admin_pick_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = await _admin_query(update)
    if q is None:
        return
    data = q.data or ''
    ids = _int_parts(data, 1)
    if ids is None:
        return
    user = q.from_user
    lang = user_lang(user.id)
    panel = keyboards.admin_keyboard(lang)

    if data.startswith('delcat:'):
        key = 'category_deleted' if db.delete_category(ids[0]) else 'error_category_not_found'
        await q.message.reply_text(t(lang, key), reply_markup=panel)
    elif data.startswith('delprod:'):
        key = 'product_deleted' if db.delete_product(ids[0]) else 'error_product_not_found'
        await q.message.reply_text(t(lang, key), reply_markup=panel)
    elif data.startswith('editprod:'):
        await wizards.start_product_update(context, user.id, q.message.chat_id, lang, ids[0])
    elif data.startswith('editcat:'):
        await wizards.start_category_update(context, user.id, q.message.chat_id, lang, ids[0])
    elif data.startswith('edituser:'):
        await wizards.start_user_edit(context, user.id, q.message.chat_id, lang, ids[0])
    elif data.startswith('deluser:'):
        if ids[0] == user.id:
            await q.message.reply_text(t(lang, 'error_delete_self'), reply_markup=panel)
            return
        key = 'user_deleted' if db.delete_user(ids[0]) else 'error_not_found'
        await q.message.reply_text(t(lang, key), reply_markup=panel)
    elif data.startswith('delfb:'):
        key = 'feedback_deleted' if db.delete_feedback(ids[0]) else 'error_not_found'
        await q.message.reply_text(t(lang, key), reply_markup=panel)
    elif data.startswith('editdeliv:'):
        order = db.get_order(ids[0])
        if order is None:
            await q.message.reply_text(t(lang, 'error_order_not_found'), reply_markup=panel)
            return
        await q.message.reply_text(
            t(lang, 'choose_delivery_status', order_id=order['id'], status=t(lang, 'status_' + order['status'])),
            reply_markup=keyboards.order_status_keyboard(order['id']))
    elif data.startswith('aorders:'):
        await show_admin_orders(context, q.message.chat_id, lang, page=max(ids[0], 1))
    elif data.startswith('adeliv:'):
        await show_admin_deliveries(context, q.message.chat_id, lang, page=max(ids[0], 1))


async def wizard_category_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = await _admin_query(update)
    if q is None:
        return
    data = q.data or ''
    user = q.from_user
    lang = user_lang(user.id)
    store = wizards.get_sessions(context)

    if data.startswith('wizcat:'):
        ids = _int_parts(data, 1)
        session = store.get(owner_key(user.id), WorkflowKind.PRODUCT_CREATE)
        value = ids[0] if ids else None
    else:
        ids = _int_parts(data, 2)
        session = store.get(owner_key(user.id, ids[0]), WorkflowKind.PRODUCT_UPDATE) if ids else None
        value = ids[1] if ids else None
    if session is None or value is None:
        await q.message.reply_text(t(lang, 'error_session_expired'), reply_markup=keyboards.admin_keyboard(lang))
        return
    if not await wizards.handle_callback(context, session, str(value)):
        await q.message.reply_text(t(lang, 'error_not_now'))


async def payment_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = await _admin_query(update)
    if q is None:
        return
    parts = (q.data or '').split(':')
    if len(parts) != 3 or parts[1] not in orders.PAYMENT_DECISIONS or not parts[2].isdigit():
        return
    decision, order_id = parts[1], int(parts[2])
    lang = user_lang(q.from_user.id)
    text = await orders.decide_payment(context, order_id, decision, lang)
    try:
        await q.edit_message_reply_markup(reply_markup=None)
    except BadRequest:
        pass
    markup = keyboards.order_status_keyboard(order_id) if decision == 'approve' else None
    await q.message.reply_text(text, reply_markup=markup)


async def order_status_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    q = await _admin_query(update)
    if q is None:
        return
    parts = (q.data or '').split(':')
    if len(parts) != 3 or not parts[1].isdigit() or parts[2] not in orders.DELIVERY_STATUSES:
        return
    text = await orders.set_delivery_status(context, int(parts[1]), parts[2], user_lang(q.from_user.id))
    await q.message.reply_text(text)


# --- Housekeeping ---
async def sweep_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    wizards.get_sessions(context).sweep(config.SESSION_IDLE_MINUTES * 60)
    wizards.get_pending(context).sweep(config.PENDING_IDLE_HOURS * 3600)


# Global error handler
async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error(msg="Exception while handling an update:", exc_info=context.error)
    if not config.ADMIN_IDS:
        return
    try:
        await context.bot.send_message(chat_id=config.ADMIN_IDS[0], text=f'Error: {context.error}')
    except TelegramError as e:
        logger.warning('Could not report the error to admin %s: %s', config.ADMIN_IDS[0], e)


def build_app():
    if not config.TG_BOT_TOKEN:
        logger.error('TG_BOT_TOKEN is not set; put it in the environment or a .env file')
        raise RuntimeError('TG_BOT_TOKEN is not set')
    i18n.load_translations()
    db.init_db()
    app = ApplicationBuilder().token(config.TG_BOT_TOKEN).build()
    app.bot_data['sessions'] = SessionStore()
    app.bot_data['pending'] = PendingActionRegistry()

    # commands
    app.add_handler(CommandHandler('start', start))
    app.add_handler(CommandHandler('admin', admin_menu))
    app.add_handler(CommandHandler('cancel', cancel_command))

    # messages: first matching handler wins
    app.add_handler(MessageHandler(filters.PHOTO & ~filters.COMMAND, photo_router))
    app.add_handler(MessageHandler(filters.CONTACT, contact_router))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, text_router))
    app.add_handler(MessageHandler(~filters.COMMAND & ~filters.StatusUpdate.ALL, other_router))

    # storefront callbacks
    app.add_handler(CallbackQueryHandler(language_callback, pattern=r'^lang:'))
    app.add_handler(CallbackQueryHandler(catalog_callback, pattern=r'^(catalog$|cat:|prod:)'))
    app.add_handler(CallbackQueryHandler(cart_callback, pattern=r'^(addcart:|addqty:|cart:)'))
    app.add_handler(CallbackQueryHandler(order_callback, pattern=r'^order:'))
    app.add_handler(CallbackQueryHandler(feedback_callback, pattern=r'^(fb:|rate:)'))
    app.add_handler(CallbackQueryHandler(profile_callback, pattern=r'^profile:'))
    app.add_handler(CallbackQueryHandler(my_orders_callback, pattern=r'^myorders:'))

    # admin callbacks
    app.add_handler(CallbackQueryHandler(admin_callback, pattern=r'^admin:'))
    app.add_handler(CallbackQueryHandler(
        admin_pick_callback,
        pattern=r'^(delcat:|editcat:|delprod:|editprod:|edituser:|deluser:|delfb:|editdeliv:|aorders:|adeliv:)'))
    app.add_handler(CallbackQueryHandler(wizard_category_callback, pattern=r'^(wizcat:|updcat:)'))
    app.add_handler(CallbackQueryHandler(payment_callback, pattern=r'^pay:'))
    app.add_handler(CallbackQueryHandler(order_status_callback, pattern=r'^ostatus:'))

    if app.job_queue:
        app.job_queue.run_repeating(sweep_job, interval=config.SWEEP_INTERVAL_SECONDS,
                                    first=config.SWEEP_INTERVAL_SECONDS, name='sweep_sessions')
    else:
        logger.warning('JobQueue unavailable (install python-telegram-bot[job-queue]); idle sessions are not swept')

    app.add_error_handler(error_handler)
    return app


if __name__ == "__main__":
    application = build_app()
    if config.WEBHOOK_URL:
        application.run_webhook(listen='0.0.0.0', port=config.PORT, url_path=config.TG_BOT_TOKEN,
                                webhook_url=f'{config.WEBHOOK_URL.rstrip("/")}/{config.TG_BOT_TOKEN}')
    else:
        application.run_polling()
