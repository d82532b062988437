"""Multi-step dialogs: product and category create/update, admin user edit,
promocode create, order placement, help and profile edit.

Every workflow is a fixed sequence of steps. A step renders its prompt
from the draft collected so far, parses one inbound update into a value
and stores it in the session draft; after the last step the workflow's
commit hands the finished draft to the db. Input a step cannot accept
ends the dialog: the user gets an error plus the menu and starts over.
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from telegram.error import Forbidden, TelegramError

import config
import db
import formatting
import keyboards
import messaging
from i18n import t
from sessions import PendingActionRegistry, Session, SessionStore, WorkflowKind, owner_key

logger = logging.getLogger(__name__)

INPUT_TEXT = 'text'
INPUT_PHOTO = 'photo'
INPUT_CALLBACK = 'callback'

# typed by the user to keep the current value while updating a product or category
KEEP_CURRENT = '-'

IMAGE_MIME = 'image/jpeg'

PRODUCT_FIELDS = ('name', 'price', 'description', 'image', 'image_mime', 'category_id', 'stock')


class InputRejected(Exception):
    """Raised by a step parser; carries the i18n key of the message shown to the user."""

    def __init__(self, message_key: str, **params):
        super().__init__(message_key)
        self.message_key = message_key
        self.params = params


@dataclass
class StepInput:
    text: Optional[str] = None
    photo: Optional[bytes] = None
    callback: Optional[str] = None

    @property
    def stripped(self) -> str:
        return (self.text or '').strip()


@dataclass(frozen=True)
class Step:
    name: str
    field: Optional[str]
    expects: str
    prompt: Callable[[Session], Tuple[str, Any]]
    parse: Callable[[Session, StepInput], Any]


@dataclass(frozen=True)
class Workflow:
    kind: WorkflowKind
    steps: Tuple[Step, ...]
    commit: Callable[[Any, Session], Awaitable[None]]
    admin_only: bool = False
    error_key: str = 'error_generic'

    def step(self, name: str) -> Step:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(f'{self.kind.value} has no step {name!r}')

    def next_after(self, name: str) -> Optional[Step]:
        names = [s.name for s in self.steps]
        index = names.index(name) + 1
        return self.steps[index] if index < len(self.steps) else None


def get_sessions(context) -> SessionStore:
    return context.bot_data['sessions']


def get_pending(context) -> PendingActionRegistry:
    return context.bot_data['pending']


def menu_markup(workflow: Workflow, lang: str):
    if workflow.admin_only:
        return keyboards.admin_keyboard(lang)
    return keyboards.main_keyboard(lang)


def make_tracking_number(order_id: int, now: Optional[float] = None) -> str:
    now = time.time() if now is None else now
    return f'TRK{int(now * 1000)}{order_id}'


# --- parsers ---
def _require_text(inp: StepInput, message_key: str) -> str:
    if not inp.stripped:
        raise InputRejected(message_key)
    return inp.stripped


def _parse_price(text: str) -> float:
    try:
        price = float(text.replace(',', ''))
    except ValueError:
        raise InputRejected('error_invalid_price')
    if not math.isfinite(price) or price <= 0:
        raise InputRejected('error_invalid_price')
    return price


def _parse_stock(text: str) -> int:
    try:
        stock = int(text)
    except ValueError:
        raise InputRejected('error_invalid_stock')
    if stock < 0:
        raise InputRejected('error_invalid_stock')
    return stock


def _keeps_current(inp: StepInput) -> bool:
    return inp.stripped in ('', KEEP_CURRENT)


def _parse_category(session: Session, inp: StepInput) -> int:
    if inp.callback is None:
        raise InputRejected('error_choose_category')
    try:
        category_id = int(inp.callback)
    except ValueError:
        raise InputRejected('error_choose_category')
    if db.get_category(category_id) is None:
        raise InputRejected('error_category_not_found')
    return category_id


def parse_name(session: Session, inp: StepInput) -> str:
    return _require_text(inp, 'error_invalid_name')


def parse_price(session: Session, inp: StepInput) -> float:
    return _parse_price(_require_text(inp, 'error_invalid_price'))


def parse_description(session: Session, inp: StepInput) -> str:
    return '' if _keeps_current(inp) else inp.stripped


def parse_image(session: Session, inp: StepInput) -> bytes:
    if inp.photo is not None:
        return inp.photo
    if inp.stripped:
        # links are not accepted since images are stored in the db
        raise InputRejected('error_image_url')
    raise InputRejected('error_image_required')


def parse_stock(session: Session, inp: StepInput) -> int:
    return _parse_stock(_require_text(inp, 'error_invalid_stock'))


def parse_update_name(session: Session, inp: StepInput) -> str:
    return session.draft['name'] if _keeps_current(inp) else inp.stripped


def parse_update_price(session: Session, inp: StepInput) -> float:
    return session.draft['price'] if _keeps_current(inp) else _parse_price(inp.stripped)


def parse_update_description(session: Session, inp: StepInput) -> str:
    return session.draft['description'] if _keeps_current(inp) else inp.stripped


def parse_update_image(session: Session, inp: StepInput) -> Optional[bytes]:
    if inp.photo is not None:
        return inp.photo
    if _keeps_current(inp):
        return session.draft['image']
    raise InputRejected('error_image_url')


def parse_update_stock(session: Session, inp: StepInput) -> int:
    return session.draft['stock'] if _keeps_current(inp) else _parse_stock(inp.stripped)


def _split_fields(inp: StepInput, count: int, message_key: str) -> list:
    parts = [p.strip() for p in inp.stripped.split(';')]
    if len(parts) != count or not all(parts):
        raise InputRejected(message_key)
    return parts


def parse_user_details(session: Session, inp: StepInput) -> dict:
    """'name;phone;address'"""
    full_name, phone, address = _split_fields(inp, 3, 'error_user_details')
    if sum(ch.isdigit() for ch in phone) < 5:
        raise InputRejected('error_invalid_phone')
    return {'full_name': full_name, 'phone': phone, 'address': address}


def parse_promocode(session: Session, inp: StepInput) -> dict:
    """'code;percent;yyyy-mm-dd'"""
    code, percent, valid_till = _split_fields(inp, 3, 'error_promocode_format')
    try:
        discount = float(percent.rstrip('%'))
    except ValueError:
        raise InputRejected('error_promocode_percent')
    if not 0 < discount <= 100:
        raise InputRejected('error_promocode_percent')
    try:
        expires = datetime.strptime(valid_till, '%Y-%m-%d').date()
    except ValueError:
        raise InputRejected('error_promocode_date')
    if expires < date.today():
        raise InputRejected('error_promocode_date')
    return {'code': code, 'discount_percent': discount, 'valid_till': expires.isoformat()}


def parse_order_review(session: Session, inp: StepInput) -> bool:
    if inp.callback != 'confirm':
        raise InputRejected('error_use_buttons')
    return True


def parse_help_message(session: Session, inp: StepInput) -> str:
    return _require_text(inp, 'help_empty')


def parse_profile_value(session: Session, inp: StepInput) -> str:
    value = _require_text(inp, 'error_empty_value')
    field = session.draft['field']
    if field == 'phone' and sum(ch.isdigit() for ch in value) < 5:
        raise InputRejected('error_invalid_phone')
    if field == 'email' and '@' not in value:
        raise InputRejected('error_invalid_email')
    return value


# --- prompts ---
def _ask(key: str):
    def prompt(session: Session):
        return t(session.language, key), keyboards.force_reply()
    return prompt


def _ask_current(key: str, field: str):
    def prompt(session: Session):
        current = session.draft.get(field)
        if current in (None, ''):
            current = t(session.language, 'none')
        return t(session.language, key, current=current), keyboards.force_reply()
    return prompt


def prompt_create_category(session: Session):
    markup = keyboards.wizard_category_keyboard(db.list_categories(), session.language)
    return t(session.language, 'prompt_product_category'), markup


def prompt_update_category(session: Session):
    current_id = session.draft.get('category_id')
    current = db.get_category(current_id) if current_id is not None else None
    markup = keyboards.wizard_category_keyboard(db.list_categories(), session.language,
                                                product_id=session.entity_id, current_id=current_id)
    text = t(session.language, 'prompt_update_category',
             current=current['name'] if current else t(session.language, 'none'))
    return text, markup


def prompt_user_details(session: Session):
    user = db.get_user(session.entity_id) or {}
    missing = t(session.language, 'not_specified')
    text = t(session.language, 'prompt_user_details',
             name=user.get('full_name') or missing,
             phone=user.get('phone') or missing,
             address=user.get('address') or missing)
    return text, keyboards.force_reply()


def prompt_order_review(session: Session):
    user = db.get_user(session.user_id) or {}
    items = db.get_cart(session.user_id)
    text = formatting.order_review(user, items, db.cart_total(items), session.language)
    return text, keyboards.order_review_keyboard(session.language)


def prompt_help(session: Session):
    return t(session.language, 'prompt_help', admin=config.ADMIN_USERNAME), keyboards.force_reply()


def prompt_profile_value(session: Session):
    return t(session.language, 'prompt_' + session.draft['field']), keyboards.force_reply()


# --- commits ---
async def _reply(context, session: Session, text: str, reply_markup=None) -> None:
    await context.bot.send_message(chat_id=session.chat_id, text=text, reply_markup=reply_markup)


async def commit_product_create(context, session: Session) -> None:
    d = session.draft
    product_id = db.create_product(name=d['name'], price=d['price'], description=d['description'],
                                   image=d['image'], image_mime=IMAGE_MIME, category_id=d['category_id'],
                                   stock=d['stock'])
    logger.info('Product #%s (%s) created by %s', product_id, d['name'], session.user_id)
    await _reply(context, session, t(session.language, 'product_created', name=d['name']),
                 keyboards.admin_keyboard(session.language))


async def commit_product_update(context, session: Session) -> None:
    d = session.draft
    fields = {name: d[name] for name in PRODUCT_FIELDS if name in d}
    if fields.get('image') is not None:
        fields['image_mime'] = fields.get('image_mime') or IMAGE_MIME
    db.update_product(session.entity_id, **fields)
    logger.info('Product #%s updated by %s', session.entity_id, session.user_id)
    await _reply(context, session, t(session.language, 'product_updated', name=d['name']),
                 keyboards.admin_keyboard(session.language))


async def commit_category_create(context, session: Session) -> None:
    d = session.draft
    category_id = db.add_category(d['name'], d['description'])
    logger.info('Category #%s (%s) created by %s', category_id, d['name'], session.user_id)
    await _reply(context, session, t(session.language, 'category_created', name=d['name']),
                 keyboards.admin_keyboard(session.language))


async def commit_category_update(context, session: Session) -> None:
    d = session.draft
    db.update_category(session.entity_id, d['name'], d['description'] or '')
    logger.info('Category #%s updated by %s', session.entity_id, session.user_id)
    await _reply(context, session, t(session.language, 'category_updated', name=d['name']),
                 keyboards.admin_keyboard(session.language))


async def commit_user_edit(context, session: Session) -> None:
    details = session.draft['details']
    db.update_user(session.entity_id, **details)
    logger.info('User %s edited by admin %s', session.entity_id, session.user_id)
    await _reply(context, session, t(session.language, 'user_updated'), keyboards.admin_keyboard(session.language))


async def commit_promocode_create(context, session: Session) -> None:
    promo = session.draft['promo']
    db.add_promocode(promo['code'], promo['discount_percent'], promo['valid_till'])
    logger.info('Promocode %s (%s%%) created by %s', promo['code'], promo['discount_percent'], session.user_id)
    await _reply(context, session, t(session.language, 'promocode_created', **promo),
                 keyboards.admin_keyboard(session.language))


async def commit_order(context, session: Session) -> None:
    lang = session.language
    order = db.create_order(session.user_id)
    tracking = make_tracking_number(order['id'])
    db.set_tracking_number(order['id'], tracking)
    order['tracking_number'] = tracking
    get_pending(context).register(order['id'], session.user_id, lang, session.chat_id)
    # the order exists from here on; sends are best effort
    await messaging.safe_send(context.bot, session.chat_id, formatting.payment_instructions(order, lang),
                              reply_markup=keyboards.main_keyboard(lang))
    items = db.get_order_items(order['id'])
    await messaging.notify_admins(context.bot, formatting.admin_order_created(order, items, config.DEFAULT_LANGUAGE))


async def commit_help_request(context, session: Session) -> None:
    lang = session.language
    admin = config.ADMIN_USERNAME
    text = t(config.DEFAULT_LANGUAGE, 'help_admin_message', user_id=session.user_id,
             username=session.draft.get('username') or 'N/A', message=session.draft['message'])
    try:
        await context.bot.send_message(chat_id=config.ADMIN_CONTACT_ID, text=text)
    except Forbidden:
        logger.warning('Help request from %s: admin %s has not started the bot', session.user_id,
                       config.ADMIN_CONTACT_ID)
        reply = t(lang, 'help_admin_not_started', admin=admin)
    except TelegramError as e:
        logger.error('Help request from %s could not be forwarded: %s', session.user_id, e)
        reply = t(lang, 'help_send_failed', admin=admin)
    else:
        reply = t(lang, 'help_sent', admin=admin)
    await _reply(context, session, reply, keyboards.main_keyboard(lang))


async def commit_profile_edit(context, session: Session) -> None:
    field = session.draft['field']
    db.update_user_field(session.user_id, field, session.draft['value'])
    await _reply(context, session, t(session.language, 'profile_updated'), keyboards.main_keyboard(session.language))


WORKFLOWS: Dict[WorkflowKind, Workflow] = {
    WorkflowKind.PRODUCT_CREATE: Workflow(
        kind=WorkflowKind.PRODUCT_CREATE,
        steps=(
            Step('name', 'name', INPUT_TEXT, _ask('prompt_product_name'), parse_name),
            Step('price', 'price', INPUT_TEXT, _ask('prompt_product_price'), parse_price),
            Step('description', 'description', INPUT_TEXT, _ask('prompt_product_description'), parse_description),
            Step('image', 'image', INPUT_PHOTO, _ask('prompt_product_image'), parse_image),
            Step('category', 'category_id', INPUT_CALLBACK, prompt_create_category, _parse_category),
            Step('stock', 'stock', INPUT_TEXT, _ask('prompt_product_stock'), parse_stock),
        ),
        commit=commit_product_create,
        admin_only=True,
        error_key='error_product_create',
    ),
    WorkflowKind.PRODUCT_UPDATE: Workflow(
        kind=WorkflowKind.PRODUCT_UPDATE,
        steps=(
            Step('name', 'name', INPUT_TEXT, _ask_current('prompt_update_name', 'name'), parse_update_name),
            Step('price', 'price', INPUT_TEXT, _ask_current('prompt_update_price', 'price'), parse_update_price),
            Step('description', 'description', INPUT_TEXT,
                 _ask_current('prompt_update_description', 'description'), parse_update_description),
            Step('image', 'image', INPUT_PHOTO, _ask('prompt_update_image'), parse_update_image),
            Step('category', 'category_id', INPUT_CALLBACK, prompt_update_category, _parse_category),
            Step('stock', 'stock', INPUT_TEXT, _ask_current('prompt_update_stock', 'stock'), parse_update_stock),
        ),
        commit=commit_product_update,
        admin_only=True,
        error_key='error_product_update',
    ),
    WorkflowKind.CATEGORY_CREATE: Workflow(
        kind=WorkflowKind.CATEGORY_CREATE,
        steps=(
            Step('name', 'name', INPUT_TEXT, _ask('prompt_category_name'), parse_name),
            Step('description', 'description', INPUT_TEXT, _ask('prompt_category_description'), parse_description),
        ),
        commit=commit_category_create,
        admin_only=True,
        error_key='error_category_create',
    ),
    WorkflowKind.CATEGORY_UPDATE: Workflow(
        kind=WorkflowKind.CATEGORY_UPDATE,
        steps=(
            Step('name', 'name', INPUT_TEXT, _ask_current('prompt_update_category_name', 'name'), parse_update_name),
            Step('description', 'description', INPUT_TEXT,
                 _ask_current('prompt_update_category_description', 'description'), parse_update_description),
        ),
        commit=commit_category_update,
        admin_only=True,
        error_key='error_category_update',
    ),
    WorkflowKind.USER_EDIT: Workflow(
        kind=WorkflowKind.USER_EDIT,
        steps=(
            Step('details', 'details', INPUT_TEXT, prompt_user_details, parse_user_details),
        ),
        commit=commit_user_edit,
        admin_only=True,
        error_key='error_user_update',
    ),
    WorkflowKind.PROMOCODE_CREATE: Workflow(
        kind=WorkflowKind.PROMOCODE_CREATE,
        steps=(
            Step('promo', 'promo', INPUT_TEXT, _ask('prompt_promocode'), parse_promocode),
        ),
        commit=commit_promocode_create,
        admin_only=True,
        error_key='error_promocode_create',
    ),
    WorkflowKind.ORDER_PLACEMENT: Workflow(
        kind=WorkflowKind.ORDER_PLACEMENT,
        steps=(
            Step('review', 'confirmed', INPUT_CALLBACK, prompt_order_review, parse_order_review),
        ),
        commit=commit_order,
        error_key='error_order_create',
    ),
    WorkflowKind.HELP_REQUEST: Workflow(
        kind=WorkflowKind.HELP_REQUEST,
        steps=(
            Step('message', 'message', INPUT_TEXT, prompt_help, parse_help_message),
        ),
        commit=commit_help_request,
    ),
    WorkflowKind.PROFILE_FIELD_EDIT: Workflow(
        kind=WorkflowKind.PROFILE_FIELD_EDIT,
        steps=(
            Step('value', 'value', INPUT_TEXT, prompt_profile_value, parse_profile_value),
        ),
        commit=commit_profile_edit,
    ),
}


# --- engine ---
async def send_prompt(context, session: Session, step: Step) -> None:
    text, markup = step.prompt(session)
    await context.bot.send_message(chat_id=session.chat_id, text=text, reply_markup=markup)


async def begin(context, kind: WorkflowKind, user_id: int, chat_id: int, lang: str,
                entity_id: Optional[int] = None, draft: Optional[dict] = None) -> Optional[Session]:
    """Start (or restart) a workflow and ask its first question. None when the prompt could not be sent."""
    workflow = WORKFLOWS[kind]
    store = get_sessions(context)
    session = store.start(owner_key(user_id, entity_id), kind, workflow.steps[0].name, lang, chat_id, draft)
    try:
        await send_prompt(context, session, workflow.steps[0])
    except Exception:
        logger.exception('%s for %s could not be started', kind.value, session.owner)
        store.discard(session)
        return None
    return session


async def abort(context, session: Session, error: InputRejected) -> None:
    workflow = WORKFLOWS[session.workflow]
    logger.info('%s for %s aborted at step %s: %s', session.workflow.value, session.owner, session.step,
                error.message_key)
    get_sessions(context).discard(session)
    await messaging.safe_send(context.bot, session.chat_id, t(session.language, error.message_key, **error.params),
                              reply_markup=menu_markup(workflow, session.language))


async def commit(context, session: Session) -> None:
    """Run the workflow's commit; the session ends here whatever happens."""
    workflow = WORKFLOWS[session.workflow]
    lang = session.language
    try:
        await workflow.commit(context, session)
        logger.info('%s for %s committed', session.workflow.value, session.owner)
    except db.ShopError as e:
        logger.warning('%s for %s failed a precondition: %s', session.workflow.value, session.owner, e)
        await messaging.safe_send(context.bot, session.chat_id, t(lang, e.message_key, **e.params),
                                  reply_markup=menu_markup(workflow, lang))
    except Exception:
        logger.exception('Commit of %s failed for %s', session.workflow.value, session.owner)
        await messaging.safe_send(context.bot, session.chat_id, t(lang, workflow.error_key),
                                  reply_markup=menu_markup(workflow, lang))
    finally:
        get_sessions(context).discard(session)


async def read_step_input(update, context, step: Step) -> StepInput:
    message = update.message
    if message is None:
        return StepInput()
    if message.photo:
        inp = StepInput()
        if step.expects == INPUT_PHOTO:
            try:
                inp.photo = await messaging.download_photo(context.bot, message.photo[-1])
            except messaging.ImageTooLarge:
                raise InputRejected('error_image_too_large', max_mb=config.MAX_IMAGE_MB)
            except TelegramError as e:
                logger.warning('Photo download failed: %s', e)
                raise InputRejected('error_image_download')
        return inp
    if message.contact:
        return StepInput(text=message.contact.phone_number)
    return StepInput(text=message.text)


async def _apply(context, session: Session, step: Step, inp: StepInput) -> None:
    workflow = WORKFLOWS[session.workflow]
    store = get_sessions(context)
    try:
        value = step.parse(session, inp)
    except InputRejected as e:
        await abort(context, session, e)
        return
    if step.field:
        store.update(session, step.field, value)
    nxt = workflow.next_after(step.name)
    if nxt is None:
        await commit(context, session)
        return
    store.advance(session, nxt.name)
    await send_prompt(context, session, nxt)


async def _guarded(context, session: Session, action: Awaitable[None]) -> None:
    try:
        await action
    except Exception:
        logger.exception('%s for %s failed at step %s', session.workflow.value, session.owner, session.step)
        get_sessions(context).discard(session)
        await messaging.safe_send(context.bot, session.chat_id, t(session.language, 'error_generic'))


async def handle_message(update, context, session: Session) -> None:
    """Feed a message (text, photo or anything else) to the session's current step."""
    async def run():
        step = WORKFLOWS[session.workflow].step(session.step)
        try:
            inp = await read_step_input(update, context, step)
        except InputRejected as e:
            await abort(context, session, e)
            return
        if get_sessions(context).get(session.owner, session.workflow) is not session:
            logger.info('%s for %s was replaced while reading input', session.workflow.value, session.owner)
            return
        await _apply(context, session, step, inp)

    await _guarded(context, session, run())


async def handle_callback(context, session: Session, value: str) -> bool:
    """Feed a button press to the session. Returns False when the current step does not take buttons."""
    step = WORKFLOWS[session.workflow].step(session.step)
    if step.expects != INPUT_CALLBACK:
        return False
    await _guarded(context, session, _apply(context, session, step, StepInput(callback=value)))
    return True


def cancel(context, user_id: int) -> int:
    """Drop every open dialog of this user (explicit /cancel)."""
    return get_sessions(context).clear_user(user_id)


# --- starters ---
async def start_product_create(context, user_id: int, chat_id: int, lang: str) -> Optional[Session]:
    if not db.list_categories():
        await messaging.safe_send(context.bot, chat_id, t(lang, 'error_no_categories'),
                                  reply_markup=keyboards.admin_keyboard(lang))
        return None
    return await begin(context, WorkflowKind.PRODUCT_CREATE, user_id, chat_id, lang)


async def start_product_update(context, user_id: int, chat_id: int, lang: str, product_id: int) -> Optional[Session]:
    product = db.get_product(product_id)
    if product is None:
        await messaging.safe_send(context.bot, chat_id, t(lang, 'error_product_not_found'),
                                  reply_markup=keyboards.admin_keyboard(lang))
        return None
    draft = {name: product[name] for name in PRODUCT_FIELDS}
    return await begin(context, WorkflowKind.PRODUCT_UPDATE, user_id, chat_id, lang, entity_id=product_id,
                       draft=draft)


async def start_category_create(context, user_id: int, chat_id: int, lang: str) -> Optional[Session]:
    return await begin(context, WorkflowKind.CATEGORY_CREATE, user_id, chat_id, lang)


async def start_category_update(context, user_id: int, chat_id: int, lang: str,
                                category_id: int) -> Optional[Session]:
    category = db.get_category(category_id)
    if category is None:
        await messaging.safe_send(context.bot, chat_id, t(lang, 'error_category_not_found'),
                                  reply_markup=keyboards.admin_keyboard(lang))
        return None
    draft = {'name': category['name'], 'description': category['description']}
    return await begin(context, WorkflowKind.CATEGORY_UPDATE, user_id, chat_id, lang, entity_id=category_id,
                       draft=draft)


async def start_user_edit(context, user_id: int, chat_id: int, lang: str, target_id: int) -> Optional[Session]:
    if db.get_user(target_id) is None:
        await messaging.safe_send(context.bot, chat_id, t(lang, 'error_not_found'),
                                  reply_markup=keyboards.admin_keyboard(lang))
        return None
    return await begin(context, WorkflowKind.USER_EDIT, user_id, chat_id, lang, entity_id=target_id)


async def start_promocode_create(context, user_id: int, chat_id: int, lang: str) -> Optional[Session]:
    return await begin(context, WorkflowKind.PROMOCODE_CREATE, user_id, chat_id, lang)


async def start_order_placement(context, user_id: int, chat_id: int, lang: str) -> Optional[Session]:
    if db.get_user(user_id) is None:
        await messaging.safe_send(context.bot, chat_id, t(lang, 'error_user_not_found'))
        return None
    items = db.get_cart(user_id)
    if not items:
        await messaging.safe_send(context.bot, chat_id, t(lang, 'cart_empty'),
                                  reply_markup=keyboards.main_keyboard(lang))
        return None
    return await begin(context, WorkflowKind.ORDER_PLACEMENT, user_id, chat_id, lang,
                       draft={'total': db.cart_total(items)})


async def start_help_request(context, user_id: int, chat_id: int, lang: str,
                             username: str = '') -> Optional[Session]:
    return await begin(context, WorkflowKind.HELP_REQUEST, user_id, chat_id, lang, draft={'username': username})


async def start_profile_edit(context, user_id: int, chat_id: int, lang: str, field: str) -> Optional[Session]:
    if field not in db.USER_EDITABLE_FIELDS:
        logger.warning('Unknown profile field %r requested by %s', field, user_id)
        return None
    return await begin(context, WorkflowKind.PROFILE_FIELD_EDIT, user_id, chat_id, lang, draft={'field': field})
