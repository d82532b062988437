"""Runtime configuration read from the environment (and an optional .env file)."""

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

TG_BOT_TOKEN = os.getenv('TG_BOT_TOKEN', '')
DB_PATH = os.getenv('DB_PATH', 'shop.db')
DEFAULT_LANGUAGE = os.getenv('DEFAULT_LANGUAGE', 'fa')
LANGUAGES = ('fa', 'en')

# bot-level admin ids; users flagged is_admin in the db are admins too
ADMIN_IDS: List[int] = [int(x) for x in os.getenv('ADMIN_IDS', '').split(',') if x.strip()]

# help requests are forwarded here
ADMIN_CONTACT_ID = int(os.getenv('ADMIN_CONTACT_ID', '0') or 0) or (ADMIN_IDS[0] if ADMIN_IDS else 0)
ADMIN_USERNAME = os.getenv('ADMIN_USERNAME', 'shop_support')

BANK_ACCOUNT = {
    'bank_name': os.getenv('BANK_NAME', 'Bank Melli'),
    'account_holder': os.getenv('BANK_ACCOUNT_HOLDER', 'Shop'),
    'account_number': os.getenv('BANK_ACCOUNT_NUMBER', '1234567890123456'),
    'iban': os.getenv('BANK_IBAN', 'IR1234567890123456789012'),
}

SESSION_IDLE_MINUTES = int(os.getenv('SESSION_IDLE_MINUTES', '30'))
PENDING_IDLE_HOURS = int(os.getenv('PENDING_IDLE_HOURS', '48'))
SWEEP_INTERVAL_SECONDS = int(os.getenv('SWEEP_INTERVAL_SECONDS', '60'))

MAX_IMAGE_MB = int(os.getenv('MAX_IMAGE_MB', '10'))

WEBHOOK_URL = os.getenv('WEBHOOK_URL')
PORT = int(os.getenv('PORT', '8443'))

ORDERS_PAGE_SIZE = 10
MAX_QTY_BUTTONS = 10
