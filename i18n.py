import json
import logging
import os

from config import DEFAULT_LANGUAGE, LANGUAGES

logger = logging.getLogger(__name__)

translations = {}


def load_translations() -> None:
    global translations
    translations = {}
    script_dir = os.path.dirname(os.path.abspath(__file__))
    for lang_code in LANGUAGES:
        file_path = os.path.join(script_dir, 'locales', f'{lang_code}.json')
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                translations[lang_code] = json.load(f)
            logger.info('Loaded translation file: %s', file_path)
        except FileNotFoundError:
            logger.error('Translation file for %s not found at %s', lang_code, file_path)
        except json.JSONDecodeError as e:
            logger.error('Error decoding JSON from %s: %s', file_path, e)
    if not all(translations.get(code) for code in LANGUAGES):
        logger.error('One or more translation files are missing or failed to load.')


def normalize_language(lang_code) -> str:
    return lang_code if lang_code in LANGUAGES else DEFAULT_LANGUAGE


def t(lang_code: str, key: str, **kwargs) -> str:
    """Localized string for `key`, falling back to the default language, then English, then the key."""
    if not translations:
        load_translations()
    lang_code = normalize_language(lang_code)

    text = translations.get(lang_code, {}).get(key)
    if text is None and lang_code != DEFAULT_LANGUAGE:
        text = translations.get(DEFAULT_LANGUAGE, {}).get(key)
    if text is None:
        text = translations.get('en', {}).get(key)
    if text is None:
        text = key

    if not kwargs:
        return str(text)
    try:
        return text.format(**kwargs)
    except KeyError as e:
        logger.warning("Missing placeholder %s for key '%s' (lang '%s')", e, key, lang_code)
        return text


def format_amount(amount, lang_code: str) -> str:
    """Whole amounts are shown without decimals and with thousands separators."""
    amount = float(amount or 0)
    if amount.is_integer():
        text = f'{int(amount):,}'
    else:
        text = f'{amount:,.2f}'
    return f"{text} {t(lang_code, 'currency')}"
