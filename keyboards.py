from typing import Dict, List, Optional

from telegram import (
    ForceReply,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
)

import config
from i18n import format_amount, t

# reply-keyboard buttons, in display order
MAIN_MENU_ROWS = [
    ['menu_categories', 'menu_cart'],
    ['menu_profile', 'menu_orders'],
    ['menu_about', 'menu_help'],
    ['menu_language'],
]

PROFILE_FIELDS = ('full_name', 'phone', 'email', 'address')


def main_keyboard(lang: str, show_contact: bool = False) -> ReplyKeyboardMarkup:
    rows = [[KeyboardButton(t(lang, key)) for key in row] for row in MAIN_MENU_ROWS]
    if show_contact:
        rows.insert(0, [KeyboardButton(t(lang, 'menu_send_phone'), request_contact=True)])
    return ReplyKeyboardMarkup(rows, resize_keyboard=True)


def menu_lookup() -> Dict[str, str]:
    """Button text (any language) -> menu key."""
    lookup = {}
    for lang in config.LANGUAGES:
        for row in MAIN_MENU_ROWS:
            for key in row:
                lookup[t(lang, key)] = key
    return lookup


def force_reply() -> ForceReply:
    return ForceReply()


def language_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton('🇮🇷 فارسی', callback_data='lang:fa'),
        InlineKeyboardButton('🇬🇧 English', callback_data='lang:en'),
    ]])


def admin_keyboard(lang: str) -> InlineKeyboardMarkup:
    def b(key: str, action: str) -> InlineKeyboardButton:
        return InlineKeyboardButton(t(lang, key), callback_data=f'admin:{action}')

    return InlineKeyboardMarkup([
        [b('admin_view_categories', 'view_categories'), b('admin_add_category', 'add_category')],
        [b('admin_edit_category', 'edit_category'), b('admin_delete_category', 'delete_category')],
        [b('admin_view_products', 'view_products'), b('admin_add_product', 'add_product')],
        [b('admin_edit_product', 'edit_product'), b('admin_delete_product', 'delete_product')],
        [b('admin_view_users', 'view_users'), b('admin_edit_user', 'edit_user'),
         b('admin_delete_user', 'delete_user')],
        [b('admin_view_orders', 'view_orders'), b('admin_view_deliveries', 'view_deliveries'),
         b('admin_edit_delivery', 'edit_delivery')],
        [b('admin_view_feedback', 'view_feedback'), b('admin_delete_feedback', 'delete_feedback')],
        [b('admin_create_promocode', 'create_promocode'), b('admin_view_promocodes', 'view_promocodes')],
        [b('admin_stats', 'stats')],
    ])


def wizard_category_keyboard(categories: List[dict], lang: str, product_id: Optional[int] = None,
                             current_id: Optional[int] = None) -> InlineKeyboardMarkup:
    """Category picker used inside product wizards; the current category is ticked."""
    rows = []
    for cat in categories:
        label = cat['name'] + (' ✓' if cat['id'] == current_id else '')
        if product_id is None:
            data = f"wizcat:{cat['id']}"
        else:
            data = f"updcat:{product_id}:{cat['id']}"
        rows.append([InlineKeyboardButton(label, callback_data=data)])
    return InlineKeyboardMarkup(rows)


def pick_keyboard(items: List[dict], prefix: str, label_key: str = 'name') -> InlineKeyboardMarkup:
    """One button per item, e.g. a product picker for edit/delete."""
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(str(item[label_key]), callback_data=f"{prefix}:{item['id']}")] for item in items
    ])


def catalog_keyboard(categories: List[dict]) -> InlineKeyboardMarkup:
    return pick_keyboard(categories, 'cat')


def products_keyboard(products: List[dict], lang: str) -> InlineKeyboardMarkup:
    rows = [[InlineKeyboardButton(f"{p['name']} - {format_amount(p['price'], lang)}", callback_data=f"prod:{p['id']}")]
            for p in products]
    rows.append([InlineKeyboardButton(t(lang, 'back_to_categories'), callback_data='catalog')])
    return InlineKeyboardMarkup(rows)


def product_card_keyboard(product_id: int, lang: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(t(lang, 'add_to_cart'), callback_data=f'addcart:{product_id}')],
        [InlineKeyboardButton(t(lang, 'leave_feedback'), callback_data=f'fb:{product_id}')],
    ])


def quantity_keyboard(product_id: int, stock: int, lang: str) -> InlineKeyboardMarkup:
    max_qty = min(stock, config.MAX_QTY_BUTTONS)
    rows = []
    for start in range(1, max_qty + 1, 5):
        rows.append([InlineKeyboardButton(str(q), callback_data=f'addqty:{product_id}:{q}')
                     for q in range(start, min(start + 5, max_qty + 1))])
    rows.append([InlineKeyboardButton(t(lang, 'cancel'), callback_data='catalog')])
    return InlineKeyboardMarkup(rows)


def rating_keyboard(product_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton(f'⭐ {n}', callback_data=f'rate:{product_id}:{n}')
                                  for n in range(1, 6)]])


def cart_keyboard(lang: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(t(lang, 'place_order'), callback_data='order:start')],
        [InlineKeyboardButton(t(lang, 'clear_cart'), callback_data='cart:clear')],
    ])


def added_to_cart_keyboard(lang: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton(t(lang, 'view_cart'), callback_data='cart:view'),
        InlineKeyboardButton(t(lang, 'continue_shopping'), callback_data='catalog'),
    ]])


def order_review_keyboard(lang: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(t(lang, 'order_confirm'), callback_data='order:confirm')],
        [InlineKeyboardButton(t(lang, 'order_edit_info'), callback_data='order:edit')],
        [InlineKeyboardButton(t(lang, 'order_cancel'), callback_data='order:cancel')],
    ])


def profile_keyboard(lang: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(t(lang, f'edit_{field}'), callback_data=f'profile:{field}')] for field in PROFILE_FIELDS
    ])


def payment_review_keyboard(order_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton('✅ Approve', callback_data=f'pay:approve:{order_id}'),
        InlineKeyboardButton('❌ Reject', callback_data=f'pay:reject:{order_id}'),
    ]])


def order_status_keyboard(order_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton('🚚 Shipped', callback_data=f'ostatus:{order_id}:shipped'),
        InlineKeyboardButton('📦 Delivered', callback_data=f'ostatus:{order_id}:delivered'),
    ]])


def pagination_keyboard(prefix: str, page: int, has_next: bool, lang: str) -> Optional[InlineKeyboardMarkup]:
    row = []
    if page > 1:
        row.append(InlineKeyboardButton(t(lang, 'prev_page'), callback_data=f'{prefix}:{page - 1}'))
    if has_next:
        row.append(InlineKeyboardButton(t(lang, 'next_page'), callback_data=f'{prefix}:{page + 1}'))
    return InlineKeyboardMarkup([row]) if row else None
