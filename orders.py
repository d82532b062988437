"""Payment receipts and what admins do with them."""

import logging

import config
import db
import formatting
import keyboards
import messaging
from i18n import t
from sessions import PendingAction
from wizards import IMAGE_MIME, get_pending

logger = logging.getLogger(__name__)

PAYMENT_DECISIONS = {
    'approve': (db.ORDER_STATUS_PAYMENT_VALIDATED, 'payment_approved'),
    'reject': (db.ORDER_STATUS_PAYMENT_INVALIDATED, 'payment_rejected'),
}

DELIVERY_STATUSES = {
    db.ORDER_STATUS_SHIPPED: 'order_shipped',
    db.ORDER_STATUS_DELIVERED: 'order_delivered',
}


async def accept_receipt(update, context, action: PendingAction) -> bool:
    """Store the photo in `update` as the receipt for `action`'s order.

    The action is claimed before anything is awaited, so a second photo
    arriving meanwhile finds nothing to resolve. On failure it is put back
    and the buyer can send the receipt again.
    """
    registry = get_pending(context)
    if registry.resolve(action.order_id) is None:
        return False
    lang = action.language
    chat_id = update.effective_chat.id if update.effective_chat else action.chat_id

    try:
        data = await messaging.download_photo(context.bot, update.message.photo[-1])
        db.attach_receipt(action.order_id, data, IMAGE_MIME)
        db.update_order_status(action.order_id, db.ORDER_STATUS_PAID)
    except messaging.ImageTooLarge as e:
        logger.info('Receipt for order #%s rejected: %s', action.order_id, e)
        registry.register(action.order_id, action.owner, lang, action.chat_id)
        await messaging.safe_send(context.bot, chat_id, t(lang, 'receipt_too_large', max_mb=config.MAX_IMAGE_MB))
        return False
    except Exception:
        logger.exception('Failed to store receipt for order #%s', action.order_id)
        registry.register(action.order_id, action.owner, lang, action.chat_id)
        await messaging.safe_send(context.bot, chat_id, t(lang, 'receipt_failed'))
        return False

    order = db.get_order(action.order_id)
    logger.info('Receipt stored for order #%s (%d bytes)', order['id'], len(data))
    await messaging.safe_send(context.bot, chat_id, t(lang, 'receipt_received', tracking=order['tracking_number']),
                              reply_markup=keyboards.main_keyboard(lang))
    await messaging.notify_admins(context.bot, formatting.admin_receipt_caption(order, config.DEFAULT_LANGUAGE),
                                  photo=data, reply_markup=keyboards.payment_review_keyboard(order['id']))
    return True


async def decide_payment(context, order_id: int, decision: str, admin_lang: str) -> str:
    """Approve or reject a receipt. Returns the text to show the admin."""
    status, buyer_key = PAYMENT_DECISIONS[decision]
    order = db.get_order(order_id)
    if order is None:
        return t(admin_lang, 'error_order_not_found')
    db.update_order_status(order_id, status)
    logger.info('Payment for order #%s set to %s', order_id, status)

    buyer_lang = order['user_language'] or config.DEFAULT_LANGUAGE
    await messaging.safe_send(context.bot, order['user_tg_id'],
                              t(buyer_lang, buyer_key, order_id=order_id, tracking=order['tracking_number'] or '-'))
    return t(admin_lang, 'admin_payment_' + decision, order_id=order_id)


async def set_delivery_status(context, order_id: int, status: str, admin_lang: str) -> str:
    if status not in DELIVERY_STATUSES:
        raise ValueError(f'Not a delivery status: {status!r}')
    order = db.get_order(order_id)
    if order is None:
        return t(admin_lang, 'error_order_not_found')
    db.update_order_status(order_id, status)
    logger.info('Order #%s marked %s', order_id, status)

    buyer_lang = order['user_language'] or config.DEFAULT_LANGUAGE
    await messaging.safe_send(context.bot, order['user_tg_id'],
                              t(buyer_lang, DELIVERY_STATUSES[status], order_id=order_id,
                                tracking=order['tracking_number'] or '-'))
    return t(admin_lang, 'admin_order_status_set', order_id=order_id, status=t(admin_lang, 'status_' + status))
