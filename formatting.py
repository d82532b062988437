"""Message bodies built from db rows."""

from typing import List

import config
from i18n import format_amount, t

SEPARATOR = '━━━━━━━━━━━━━━━'


def product_caption(product: dict, lang: str) -> str:
    if product['stock'] <= 0:
        return t(lang, 'product_out_of_stock')
    return '\n'.join([
        product['name'] or t(lang, 'not_specified'),
        product['description'] or t(lang, 'no_description'),
        f"💸 {t(lang, 'price')}: {format_amount(product['price'], lang)}",
        f"📦 {t(lang, 'in_stock')}: {product['stock']}",
    ])


def category_list(categories: List[dict], lang: str) -> str:
    if not categories:
        return t(lang, 'no_categories')
    return '\n'.join(f"📋 {c['id']}: {c['name']} - {c['description'] or t(lang, 'no_description')}"
                     for c in categories)


def product_list(products: List[dict], lang: str) -> str:
    if not products:
        return t(lang, 'no_products')
    return '\n'.join(
        f"📋 {p['id']}: {p['name']}, 💸 {format_amount(p['price'], lang)}, "
        f"📌 {p['category_name'] or 'N/A'}, 📦 {p['stock']}"
        for p in products)


def cart_text(items: List[dict], lang: str) -> str:
    lines = [t(lang, 'cart_header')]
    for item in items:
        lines.append(f"{item['name']} - {item['quantity']} × {format_amount(item['price'], lang)}"
                     f" = {format_amount(item['price'] * item['quantity'], lang)}")
    total = sum(item['price'] * item['quantity'] for item in items)
    lines.append('')
    lines.append(f"💰 {t(lang, 'total')}: {format_amount(total, lang)}")
    return '\n'.join(lines)


def order_review(user: dict, items: List[dict], total: float, lang: str) -> str:
    missing = t(lang, 'not_specified')
    items_text = '\n'.join(f"{i['name']} - {i['quantity']} - {format_amount(i['price'] * i['quantity'], lang)}"
                           for i in items)
    return t(lang, 'order_review',
             name=user.get('full_name') or missing,
             phone=user.get('phone') or missing,
             address=user.get('address') or missing,
             items=items_text,
             total=format_amount(total, lang))


def payment_instructions(order: dict, lang: str) -> str:
    bank = config.BANK_ACCOUNT
    return t(lang, 'payment_instructions',
             tracking=order['tracking_number'],
             amount=format_amount(order['total_amount'], lang),
             bank=bank['bank_name'],
             holder=bank['account_holder'],
             account=bank['account_number'],
             iban=bank['iban'],
             sep=SEPARATOR)


def order_items_text(items: List[dict]) -> str:
    return ', '.join(f"{i['product_name']} × {i['quantity']}" for i in items) or 'N/A'


def admin_order_created(order: dict, items: List[dict], lang: str) -> str:
    return t(lang, 'admin_order_created',
             order_id=order['id'],
             user=order.get('full_name') or order['user_tg_id'],
             items=order_items_text(items),
             total=format_amount(order['total_amount'], lang),
             status=order['status'],
             sep=SEPARATOR)


def admin_receipt_caption(order: dict, lang: str) -> str:
    return t(lang, 'admin_receipt_caption',
             order_id=order['id'],
             user=order.get('full_name') or order['user_tg_id'],
             total=format_amount(order['total_amount'], lang),
             tracking=order['tracking_number'] or '-')


def order_list(orders: List[dict], lang: str) -> str:
    if not orders:
        return t(lang, 'no_orders')
    blocks = []
    for o in orders:
        lines = [
            f"📋 {t(lang, 'order')} #{o['id']}",
            f"💸 {t(lang, 'total')}: {format_amount(o['total_amount'], lang)}",
            f"📊 {t(lang, 'status')}: {t(lang, 'status_' + o['status'])}",
            f"🔍 {t(lang, 'tracking')}: {o['tracking_number'] or '-'}",
        ]
        if 'user_tg_id' in o:
            lines.insert(1, f"👤 {o.get('full_name') or o['user_tg_id']}")
        lines.append(SEPARATOR)
        blocks.append('\n'.join(lines))
    return '\n'.join(blocks)


def feedback_list(feedbacks: List[dict], lang: str) -> str:
    if not feedbacks:
        return t(lang, 'no_feedback')
    return '\n'.join(f"📋 {f['id']}: {f['product_name'] or '-'} ⭐ {f['rating']} {f['comment'] or ''}".rstrip()
                     for f in feedbacks)


def user_list(users: List[dict], lang: str) -> str:
    if not users:
        return t(lang, 'no_users')
    missing = t(lang, 'not_specified')
    return '\n'.join(
        f"👤 {u['tg_id']}: {u['full_name'] or missing} (@{u['username'] or '-'}), "
        f"📞 {u['phone'] or missing}, 🏠 {u['address'] or missing}"
        for u in users)


def promocode_list(promocodes: List[dict], lang: str) -> str:
    if not promocodes:
        return t(lang, 'no_promocodes')
    return '\n'.join(
        f"🎟 {p['code']}: {p['discount_percent']:g}% - {t(lang, 'valid_till')} {p['valid_till']}"
        for p in promocodes)


def profile_text(user: dict, lang: str) -> str:
    missing = t(lang, 'not_specified')
    return t(lang, 'profile',
             name=user.get('full_name') or missing,
             phone=user.get('phone') or missing,
             email=user.get('email') or missing,
             address=user.get('address') or missing,
             tg_id=user['tg_id'])


def stats_text(stats: dict, lang: str) -> str:
    no_data = t(lang, 'no_data')
    monthly = '\n'.join(f'📆 {month}: {format_amount(amount, lang)}'
                        for month, amount in stats['monthly'].items()) or no_data
    yearly = '\n'.join(f'📆 {year}: {format_amount(amount, lang)}'
                       for year, amount in stats['yearly'].items()) or no_data
    by_status = stats['by_status']
    return '\n'.join([
        t(lang, 'stats_title'),
        SEPARATOR,
        f"{t(lang, 'stats_total_orders')}: {stats['total_orders']}",
        f"{t(lang, 'stats_total_amount')}: {format_amount(stats['total_amount'], lang)}",
        f"{t(lang, 'status_pending')}: {by_status.get('pending', 0)}",
        f"{t(lang, 'status_payment_validated')}: {by_status.get('payment_validated', 0)}",
        f"{t(lang, 'status_shipped')}: {by_status.get('shipped', 0)}",
        f"{t(lang, 'status_delivered')}: {by_status.get('delivered', 0)}",
        f"{t(lang, 'status_cancelled')}: {by_status.get('cancelled', 0)}",
        f"{t(lang, 'stats_sold_products')}: {stats['sold_products']}",
        f"{t(lang, 'stats_cart_items')}: {stats['cart_items']}",
        SEPARATOR,
        t(lang, 'stats_monthly'),
        monthly,
        SEPARATOR,
        t(lang, 'stats_yearly'),
        yearly,
    ])
