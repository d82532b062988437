"""sqlite persistence for the shop: users, catalog, carts, orders, feedback, promocodes."""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

import config

logger = logging.getLogger(__name__)

ORDER_STATUS_PENDING = 'pending'
ORDER_STATUS_PAID = 'paid'
ORDER_STATUS_PAYMENT_VALIDATED = 'payment_validated'
ORDER_STATUS_PAYMENT_INVALIDATED = 'payment_invalidated'
ORDER_STATUS_SHIPPED = 'shipped'
ORDER_STATUS_DELIVERED = 'delivered'
ORDER_STATUS_CANCELLED = 'cancelled'

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PAYMENT_VALIDATED,
    ORDER_STATUS_PAYMENT_INVALIDATED,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

# orders in these statuses count as revenue
PAID_STATUSES = (ORDER_STATUS_PAYMENT_VALIDATED, ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED)

USER_EDITABLE_FIELDS = ('full_name', 'phone', 'email', 'address')


class ShopError(Exception):
    """Base class for precondition failures reported to the user."""

    message_key = 'error_generic'
    params: dict = {}


class NotFoundError(ShopError):
    message_key = 'error_not_found'


class EmptyCartError(ShopError):
    message_key = 'cart_empty'


class OutOfStockError(ShopError):
    message_key = 'error_out_of_stock'

    def __init__(self, product_name: str):
        super().__init__(f'Insufficient stock for product {product_name}')
        self.product_name = product_name
        self.params = {'name': product_name}


class DuplicateError(ShopError):
    message_key = 'error_category_exists'


class PromocodeExistsError(DuplicateError):
    message_key = 'error_promocode_exists'


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(config.DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute('PRAGMA foreign_keys = ON')
    return conn


def init_db() -> None:
    """Create tables. Product images and payment receipts are stored as BLOBs."""
    conn = _connect()
    cur = conn.cursor()
    cur.execute('''
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tg_id INTEGER UNIQUE NOT NULL,
        username TEXT,
        full_name TEXT,
        phone TEXT,
        email TEXT,
        address TEXT,
        language TEXT,
        is_admin INTEGER DEFAULT 0,
        registered_at TEXT
    )
    ''')

    cur.execute('''
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        description TEXT
    )
    ''')

    cur.execute('''
    CREATE TABLE IF NOT EXISTS products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        price REAL NOT NULL,
        image BLOB,
        image_mime TEXT,
        stock INTEGER NOT NULL DEFAULT 0,
        category_id INTEGER REFERENCES categories (id) ON DELETE CASCADE,
        is_active INTEGER DEFAULT 1,
        created_at TEXT
    )
    ''')

    cur.execute('''
    CREATE TABLE IF NOT EXISTS cart_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_tg_id INTEGER NOT NULL,
        product_id INTEGER NOT NULL REFERENCES products (id) ON DELETE CASCADE,
        quantity INTEGER NOT NULL,
        UNIQUE (user_tg_id, product_id)
    )
    ''')

    cur.execute('''
    CREATE TABLE IF NOT EXISTS orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_tg_id INTEGER NOT NULL,
        total_amount REAL NOT NULL DEFAULT 0,
        status TEXT NOT NULL,
        tracking_number TEXT,
        receipt_image BLOB,
        receipt_mime TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    ''')

    cur.execute('''
    CREATE TABLE IF NOT EXISTS order_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
        product_id INTEGER,
        product_name TEXT,
        quantity INTEGER NOT NULL,
        price REAL NOT NULL
    )
    ''')

    cur.execute('''
    CREATE TABLE IF NOT EXISTS feedback (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_tg_id INTEGER NOT NULL,
        product_id INTEGER REFERENCES products (id) ON DELETE CASCADE,
        rating INTEGER NOT NULL,
        comment TEXT,
        created_at TEXT
    )
    ''')

    cur.execute('''
    CREATE TABLE IF NOT EXISTS promocodes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        code TEXT UNIQUE NOT NULL,
        discount_percent REAL NOT NULL,
        valid_till TEXT NOT NULL,
        is_active INTEGER DEFAULT 1,
        created_at TEXT
    )
    ''')

    conn.commit()
    conn.close()


def db_execute(query: str, params: tuple = (), fetch: bool = False):
    conn = _connect()
    try:
        cur = conn.cursor()
        cur.execute(query, params)
        if fetch:
            return [dict(row) for row in cur.fetchall()]
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def _one(query: str, params: tuple = ()) -> Optional[dict]:
    rows = db_execute(query, params, fetch=True)
    return rows[0] if rows else None


# --- users ---
def upsert_user(tg_id: int, username: str = '', full_name: str = '') -> dict:
    db_execute('''
        INSERT INTO users (tg_id, username, full_name, registered_at) VALUES (?, ?, ?, ?)
        ON CONFLICT(tg_id) DO UPDATE SET
            username = excluded.username,
            full_name = COALESCE(users.full_name, excluded.full_name)
    ''', (tg_id, username or '', full_name or '', now_iso()))
    return get_user(tg_id)


def get_user(tg_id: int) -> Optional[dict]:
    return _one('SELECT * FROM users WHERE tg_id=?', (tg_id,))


def get_user_language(tg_id: int) -> Optional[str]:
    row = _one('SELECT language FROM users WHERE tg_id=?', (tg_id,))
    return row['language'] if row else None


def set_user_language(tg_id: int, lang_code: str) -> None:
    db_execute('UPDATE users SET language=? WHERE tg_id=?', (lang_code, tg_id))


def update_user_field(tg_id: int, field: str, value: str) -> None:
    if field not in USER_EDITABLE_FIELDS:
        raise ValueError(f'Field {field!r} is not editable')
    if get_user(tg_id) is None:
        raise NotFoundError(f'User {tg_id} not found')
    db_execute(f'UPDATE users SET {field}=? WHERE tg_id=?', (value, tg_id))


def update_user(tg_id: int, full_name: str, phone: str, address: str) -> None:
    """Admin edit of a user's contact details."""
    if get_user(tg_id) is None:
        raise NotFoundError(f'User {tg_id} not found')
    db_execute('UPDATE users SET full_name=?, phone=?, address=? WHERE tg_id=?', (full_name, phone, address, tg_id))


def list_users() -> List[dict]:
    return db_execute('SELECT tg_id, username, full_name, phone, address FROM users ORDER BY id', fetch=True)


def delete_user(tg_id: int) -> bool:
    """Remove the user and their cart; their orders stay for the books."""
    if get_user(tg_id) is None:
        return False
    db_execute('DELETE FROM cart_items WHERE user_tg_id=?', (tg_id,))
    db_execute('DELETE FROM users WHERE tg_id=?', (tg_id,))
    return True


def get_admin_ids() -> List[int]:
    rows = db_execute('SELECT tg_id FROM users WHERE is_admin=1', fetch=True)
    ids = list(config.ADMIN_IDS)
    for row in rows:
        if row['tg_id'] not in ids:
            ids.append(row['tg_id'])
    return ids


def is_admin(tg_id: int) -> bool:
    if tg_id in config.ADMIN_IDS:
        return True
    row = _one('SELECT is_admin FROM users WHERE tg_id=?', (tg_id,))
    return bool(row and row['is_admin'])


# --- categories ---
def add_category(name: str, description: str = '') -> int:
    try:
        return db_execute('INSERT INTO categories (name, description) VALUES (?, ?)', (name, description))
    except sqlite3.IntegrityError:
        raise DuplicateError(f'Category {name!r} already exists')


def list_categories() -> List[dict]:
    return db_execute('SELECT id, name, description FROM categories ORDER BY id', fetch=True)


def get_category(category_id: int) -> Optional[dict]:
    return _one('SELECT id, name, description FROM categories WHERE id=?', (category_id,))


def update_category(category_id: int, name: str, description: str) -> None:
    if get_category(category_id) is None:
        raise NotFoundError(f'Category {category_id} not found')
    try:
        db_execute('UPDATE categories SET name=?, description=? WHERE id=?', (name, description, category_id))
    except sqlite3.IntegrityError:
        raise DuplicateError(f'Category {name!r} already exists')


def delete_category(category_id: int) -> bool:
    if get_category(category_id) is None:
        return False
    db_execute('DELETE FROM categories WHERE id=?', (category_id,))
    return True


# --- products ---
def create_product(name: str, price: float, description: str, image: Optional[bytes], image_mime: Optional[str],
                   category_id: int, stock: int) -> int:
    if get_category(category_id) is None:
        raise NotFoundError(f'Category {category_id} not found')
    return db_execute(
        'INSERT INTO products (name, description, price, image, image_mime, stock, category_id, created_at) '
        'VALUES (?, ?, ?, ?, ?, ?, ?, ?)',
        (name, description, price, image, image_mime, stock, category_id, now_iso()))


def update_product(product_id: int, **fields) -> None:
    allowed = ('name', 'description', 'price', 'image', 'image_mime', 'stock', 'category_id', 'is_active')
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f'Unknown product fields: {sorted(unknown)}')
    if get_product(product_id) is None:
        raise NotFoundError(f'Product {product_id} not found')
    if not fields:
        return
    columns = ', '.join(f'{name}=?' for name in fields)
    db_execute(f'UPDATE products SET {columns} WHERE id=?', tuple(fields.values()) + (product_id,))


def get_product(product_id: int) -> Optional[dict]:
    return _one(
        'SELECT p.*, c.name AS category_name FROM products p LEFT JOIN categories c ON p.category_id=c.id '
        'WHERE p.id=?', (product_id,))


def list_products() -> List[dict]:
    return db_execute(
        'SELECT p.id, p.name, p.price, p.stock, p.category_id, c.name AS category_name '
        'FROM products p LEFT JOIN categories c ON p.category_id=c.id ORDER BY p.id', fetch=True)


def list_products_by_category(category_id: int) -> List[dict]:
    return db_execute(
        'SELECT id, name, price, stock FROM products WHERE category_id=? AND is_active=1 ORDER BY id',
        (category_id,), fetch=True)


def delete_product(product_id: int) -> bool:
    if get_product(product_id) is None:
        return False
    db_execute('DELETE FROM products WHERE id=?', (product_id,))
    return True


# --- cart ---
def add_to_cart(tg_id: int, product_id: int, quantity: int) -> None:
    product = get_product(product_id)
    if product is None:
        raise NotFoundError(f'Product {product_id} not found')
    existing = _one('SELECT quantity FROM cart_items WHERE user_tg_id=? AND product_id=?', (tg_id, product_id))
    in_cart = existing['quantity'] if existing else 0
    if quantity <= 0 or in_cart + quantity > product['stock']:
        raise OutOfStockError(product['name'])
    db_execute('''
        INSERT INTO cart_items (user_tg_id, product_id, quantity) VALUES (?, ?, ?)
        ON CONFLICT(user_tg_id, product_id) DO UPDATE SET quantity = cart_items.quantity + excluded.quantity
    ''', (tg_id, product_id, quantity))


def get_cart(tg_id: int) -> List[dict]:
    return db_execute(
        'SELECT ci.product_id, ci.quantity, p.name, p.price, p.stock FROM cart_items ci '
        'JOIN products p ON ci.product_id=p.id WHERE ci.user_tg_id=? ORDER BY ci.id', (tg_id,), fetch=True)


def cart_total(items: List[dict]) -> float:
    return sum(item['price'] * item['quantity'] for item in items)


def clear_cart(tg_id: int) -> None:
    db_execute('DELETE FROM cart_items WHERE user_tg_id=?', (tg_id,))


# --- orders ---
def _reserve_stock(cur: sqlite3.Cursor, lines: List[sqlite3.Row]) -> float:
    total = 0.0
    for line in lines:
        cur.execute('UPDATE products SET stock = stock - ? WHERE id=? AND stock >= ?',
                    (line['quantity'], line['product_id'], line['quantity']))
        if cur.rowcount == 0:
            raise OutOfStockError(line['name'])
        total += line['price'] * line['quantity']
    return total


def _insert_order(cur: sqlite3.Cursor, tg_id: int, total: float) -> int:
    created = now_iso()
    cur.execute('INSERT INTO orders (user_tg_id, total_amount, status, created_at, updated_at) VALUES (?, ?, ?, ?, ?)',
                (tg_id, total, ORDER_STATUS_PENDING, created, created))
    return cur.lastrowid


def _insert_order_items(cur: sqlite3.Cursor, order_id: int, lines: List[sqlite3.Row]) -> None:
    cur.executemany(
        'INSERT INTO order_items (order_id, product_id, product_name, quantity, price) VALUES (?, ?, ?, ?, ?)',
        [(order_id, line['product_id'], line['name'], line['quantity'], line['price']) for line in lines])


def create_order(tg_id: int) -> dict:
    """Turn the user's cart into an order.

    Stock decrement, order row, line items and cart clearing run in one
    transaction: if any of them fails nothing is applied.
    """
    conn = _connect()
    try:
        cur = conn.cursor()
        lines = cur.execute(
            'SELECT ci.product_id, ci.quantity, p.name, p.price FROM cart_items ci '
            'JOIN products p ON ci.product_id=p.id WHERE ci.user_tg_id=? ORDER BY ci.id', (tg_id,)).fetchall()
        if not lines:
            raise EmptyCartError(f'Cart is empty for {tg_id}')
        total = _reserve_stock(cur, lines)
        order_id = _insert_order(cur, tg_id, total)
        _insert_order_items(cur, order_id, lines)
        cur.execute('DELETE FROM cart_items WHERE user_tg_id=?', (tg_id,))
        conn.commit()
    except Exception:
        conn.rollback()
        logger.warning('Order creation for %s rolled back', tg_id)
        raise
    finally:
        conn.close()
    logger.info('Order #%s created for %s, total %s', order_id, tg_id, total)
    return get_order(order_id)


def get_order(order_id: int) -> Optional[dict]:
    return _one(
        'SELECT o.*, u.full_name, u.language AS user_language FROM orders o '
        'LEFT JOIN users u ON o.user_tg_id=u.tg_id WHERE o.id=?', (order_id,))


def get_order_items(order_id: int) -> List[dict]:
    return db_execute('SELECT product_id, product_name, quantity, price FROM order_items WHERE order_id=? ORDER BY id',
                      (order_id,), fetch=True)


def _update_order(order_id: int, **fields) -> None:
    if get_order(order_id) is None:
        raise NotFoundError(f'Order {order_id} not found')
    fields['updated_at'] = now_iso()
    columns = ', '.join(f'{name}=?' for name in fields)
    db_execute(f'UPDATE orders SET {columns} WHERE id=?', tuple(fields.values()) + (order_id,))


def set_tracking_number(order_id: int, tracking_number: str) -> None:
    _update_order(order_id, tracking_number=tracking_number)


def attach_receipt(order_id: int, image: bytes, mime: str = 'image/jpeg') -> None:
    _update_order(order_id, receipt_image=image, receipt_mime=mime)


def update_order_status(order_id: int, status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValueError(f'Unknown order status {status!r}')
    _update_order(order_id, status=status)


def list_orders(page: int = 1, limit: int = config.ORDERS_PAGE_SIZE) -> List[dict]:
    return db_execute(
        'SELECT o.id, o.user_tg_id, o.total_amount, o.status, o.tracking_number, o.created_at, u.full_name '
        'FROM orders o LEFT JOIN users u ON o.user_tg_id=u.tg_id ORDER BY o.id DESC LIMIT ? OFFSET ?',
        (limit, (page - 1) * limit), fetch=True)


def list_user_orders(tg_id: int, page: int = 1, limit: int = config.ORDERS_PAGE_SIZE) -> List[dict]:
    return db_execute(
        'SELECT id, total_amount, status, tracking_number, created_at FROM orders WHERE user_tg_id=? '
        'ORDER BY id DESC LIMIT ? OFFSET ?', (tg_id, limit, (page - 1) * limit), fetch=True)


def list_deliveries(page: int = 1, limit: int = config.ORDERS_PAGE_SIZE) -> List[dict]:
    """Orders whose payment was approved, i.e. the ones being shipped or already delivered."""
    return db_execute(
        'SELECT o.id, o.user_tg_id, o.total_amount, o.status, o.tracking_number, o.created_at, u.full_name '
        'FROM orders o LEFT JOIN users u ON o.user_tg_id=u.tg_id WHERE o.status IN (?, ?, ?) '
        'ORDER BY o.id DESC LIMIT ? OFFSET ?', PAID_STATUSES + (limit, (page - 1) * limit), fetch=True)


# --- feedback ---
def add_feedback(tg_id: int, product_id: int, rating: int, comment: str = '') -> int:
    if not 1 <= rating <= 5:
        raise ValueError('Rating must be between 1 and 5')
    return db_execute('INSERT INTO feedback (user_tg_id, product_id, rating, comment, created_at) VALUES (?, ?, ?, ?, ?)',
                      (tg_id, product_id, rating, comment, now_iso()))


def list_feedback() -> List[dict]:
    return db_execute(
        'SELECT f.id, f.rating, f.comment, p.name AS product_name FROM feedback f '
        'LEFT JOIN products p ON f.product_id=p.id ORDER BY f.id DESC', fetch=True)


def delete_feedback(feedback_id: int) -> bool:
    if _one('SELECT id FROM feedback WHERE id=?', (feedback_id,)) is None:
        return False
    db_execute('DELETE FROM feedback WHERE id=?', (feedback_id,))
    return True


# --- promocodes ---
def add_promocode(code: str, discount_percent: float, valid_till: str) -> int:
    try:
        return db_execute(
            'INSERT INTO promocodes (code, discount_percent, valid_till, created_at) VALUES (?, ?, ?, ?)',
            (code, discount_percent, valid_till, now_iso()))
    except sqlite3.IntegrityError:
        raise PromocodeExistsError(f'Promocode {code!r} already exists')


def list_promocodes() -> List[dict]:
    return db_execute('SELECT id, code, discount_percent, valid_till, is_active FROM promocodes ORDER BY id DESC',
                      fetch=True)


# --- stats ---
def get_stats() -> dict:
    orders = db_execute('SELECT id, total_amount, status, created_at FROM orders', fetch=True)
    sold = db_execute(
        'SELECT oi.order_id, oi.quantity FROM order_items oi JOIN orders o ON oi.order_id=o.id '
        'WHERE o.status IN (?, ?, ?)', PAID_STATUSES, fetch=True)
    cart_rows = db_execute('SELECT COUNT(*) AS n FROM cart_items', fetch=True)

    by_status = {status: 0 for status in ORDER_STATUSES}
    monthly = {}
    yearly = {}
    total_amount = 0.0
    for order in orders:
        by_status[order['status']] = by_status.get(order['status'], 0) + 1
        if order['status'] in PAID_STATUSES:
            total_amount += order['total_amount']
            created = order['created_at'] or ''
            month, year = created[:7], created[:4]
            monthly[month] = monthly.get(month, 0) + order['total_amount']
            yearly[year] = yearly.get(year, 0) + order['total_amount']

    return {
        'total_orders': len(orders),
        'total_amount': total_amount,
        'by_status': by_status,
        'monthly': dict(sorted(monthly.items())),
        'yearly': dict(sorted(yearly.items())),
        'sold_products': sum(row['quantity'] for row in sold),
        'cart_items': cart_rows[0]['n'] if cart_rows else 0,
    }
