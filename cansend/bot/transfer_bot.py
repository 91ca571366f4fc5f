# cansend/bot/transfer_bot.py
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from pydantic import ValidationError
from telegram import (
    Update,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    LinkPreviewOptions,
)
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    CallbackQueryHandler,
    ContextTypes,
    filters,
)

from cansend.core.config import settings
from cansend.i18n import t
from cansend.lookup import InvalidQueryError, TransferCheckError, TransferLookup, lookup
from cansend.reference_cache import get_currencies, get_providers
from cansend.schemas import CurrencyOut, PSPOut, TransferDisplay, TransferQuery

logger = logging.getLogger(__name__)

# callback_data prefixes (Telegram caps callback_data at 64 bytes; ids are uuid strings)
CB_FROM = "FROM:"
CB_TO = "TO:"
CB_CURRENCY = "CUR:"
CB_NEW = "NEW"
CB_RETRY = "RETRY"

BUTTONS_PER_ROW = 2


# =========================
# Rendering (no Telegram I/O)
# =========================

def _rows(buttons: Sequence[InlineKeyboardButton], per_row: int = BUTTONS_PER_ROW) -> List[List[InlineKeyboardButton]]:
    return [list(buttons[i:i + per_row]) for i in range(0, len(buttons), per_row)]


def providers_markup(providers: Sequence[PSPOut], prefix: str, exclude_id: str | None = None) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(p.display_name, callback_data=f"{prefix}{p.id}")
        for p in providers
        if p.id != exclude_id
    ]
    return InlineKeyboardMarkup(_rows(buttons))


def currencies_markup(currencies: Sequence[CurrencyOut]) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(f"{c.code} – {c.name}", callback_data=f"{CB_CURRENCY}{c.id}")
        for c in currencies
    ]
    return InlineKeyboardMarkup(_rows(buttons))


def _fmt_number(value: float) -> str:
    return f"{value:g}"


def format_result(result: TransferDisplay, lang: str) -> str:
    lines = [t(lang, f"STATUS_{result.status.upper()}")]

    if result.from_psp and result.to_psp and result.currency:
        lines.append(t(
            lang,
            "LABEL_ROUTE",
            from_psp=result.from_psp.display_name,
            to_psp=result.to_psp.display_name,
            currency=result.currency.code,
        ))

    # details are hidden for a plain "no"
    if result.status != "no":
        details = []
        if result.estimated_fee_percentage is not None:
            details.append(t(lang, "LABEL_FEE", value=_fmt_number(result.estimated_fee_percentage)))
        if result.estimated_time_hours is not None:
            details.append(t(lang, "LABEL_TIME", value=_fmt_number(result.estimated_time_hours)))
        if result.kyc_required is not None:
            details.append(t(lang, "LABEL_KYC", value=t(lang, "YES" if result.kyc_required else "NO")))
        if result.confidence_level is not None:
            details.append(t(lang, "LABEL_CONFIDENCE", value=result.confidence_level))
        if details:
            lines.append("")
            lines.extend(details)
        if result.notes:
            lines.append("")
            lines.append(result.notes)

    if result.affiliate_url:
        lines.append("")
        lines.append(t(lang, "AFFILIATE_DISCLAIMER"))

    return "\n".join(lines)


def affiliate_link(result: TransferDisplay, public_base_url: str | None = None) -> Optional[str]:
    """Tracked redirect when possible, otherwise the raw affiliate URL."""
    if not (result.status == "yes" and result.affiliate_url):
        return None
    if public_base_url and result.route_id:
        return f"{public_base_url.rstrip('/')}/go/{result.route_id}"
    return result.affiliate_url


def result_markup(result: TransferDisplay, lang: str, public_base_url: str | None = None) -> InlineKeyboardMarkup:
    rows = [[InlineKeyboardButton(t(lang, "BTN_NEW_SEARCH"), callback_data=CB_NEW)]]
    link = affiliate_link(result, public_base_url)
    if link and result.to_psp:
        rows.append([InlineKeyboardButton(t(lang, "BTN_GET_STARTED", provider=result.to_psp.display_name), url=link)])
    return InlineKeyboardMarkup(rows)


def retry_markup(lang: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(t(lang, "BTN_RETRY"), callback_data=CB_RETRY)],
        [InlineKeyboardButton(t(lang, "BTN_NEW_SEARCH"), callback_data=CB_NEW)],
    ])


# =========================
# Bot implementation
# =========================

class TransferBot:
    def __init__(self, transfer_lookup: TransferLookup | None = None):
        self.application: Application | None = None
        self.lookup = transfer_lookup or lookup

    def _lang(self, update: Update) -> str:
        user = update.effective_user
        return (user.language_code if user else None) or settings.DEFAULT_LANGUAGE

    async def initialize(self):
        if not settings.BOT_TOKEN:
            logger.warning("BOT_TOKEN missing, bot disabled")
            return

        self.application = Application.builder().token(settings.BOT_TOKEN).build()

        # Commands
        self.application.add_handler(CommandHandler("start", self.cmd_start))
        self.application.add_handler(CommandHandler("check", self.cmd_check))
        self.application.add_handler(CommandHandler("help", self.cmd_help))

        # Selection flow
        self.application.add_handler(CallbackQueryHandler(self.cb_flow))

        # Text handler
        self.application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_text))

        # Error handler
        self.application.add_error_handler(self.on_error)

        await self.application.initialize()

        # Webhook
        if settings.WEBHOOK_URL:
            url = f"{settings.WEBHOOK_URL.rstrip('/')}/webhook/telegram"
            await self.application.bot.set_webhook(url)
            logger.info("Webhook set: %s", url)

        logger.info("TransferBot initialized")

    async def shutdown(self):
        if self.application:
            await self.application.shutdown()
            self.application = None

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.error("Unhandled bot error", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            try:
                await update.effective_message.reply_text(t(self._lang(update), "SEARCH_ERROR"))
            except Exception:
                logger.exception("Failed to send error notice")

    # --------- steps ---------

    async def _ask_from(self, chat_message, context: ContextTypes.DEFAULT_TYPE, lang: str):
        context.user_data.pop("query", None)
        providers = await asyncio.to_thread(get_providers)
        if len(providers) < 2:
            await chat_message.reply_text(t(lang, "NO_PROVIDERS"))
            return
        await chat_message.reply_text(t(lang, "CHOOSE_FROM"), reply_markup=providers_markup(providers, CB_FROM))

    async def _run_check(self, chat_message, context: ContextTypes.DEFAULT_TYPE, lang: str):
        selected = context.user_data.get("query") or {}
        try:
            query = TransferQuery(**selected)
        except (ValidationError, TypeError):
            await chat_message.reply_text(t(lang, "SESSION_EXPIRED"))
            return

        await chat_message.reply_text(t(lang, "CHECKING"))
        try:
            result = await self.lookup.check(query)
        except InvalidQueryError:
            context.user_data.pop("query", None)
            await chat_message.reply_text(t(lang, "SESSION_EXPIRED"))
            return
        except TransferCheckError:
            # selections stay in user_data so RETRY can rerun them
            await chat_message.reply_text(t(lang, "SEARCH_ERROR"), reply_markup=retry_markup(lang))
            return

        await chat_message.reply_text(
            format_result(result, lang),
            reply_markup=result_markup(result, lang, settings.PUBLIC_BASE_URL),
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )

    # --------- Commands ---------

    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        lang = self._lang(update)
        await update.message.reply_text(t(lang, "WELCOME"))
        await self._ask_from(update.message, context, lang)

    async def cmd_check(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self._ask_from(update.message, context, self._lang(update))

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(t(self._lang(update), "HELP"))

    # --------- Callback flow ---------

    async def cb_flow(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        q = update.callback_query
        await q.answer()

        data = q.data or ""
        lang = self._lang(update)
        msg = q.message
        selected = context.user_data.setdefault("query", {})

        if data == CB_NEW:
            await self._ask_from(msg, context, lang)
            return

        if data == CB_RETRY:
            await self._run_check(msg, context, lang)
            return

        if data.startswith(CB_FROM):
            selected.clear()
            selected["from_psp_id"] = data[len(CB_FROM):]
            providers = await asyncio.to_thread(get_providers)
            await msg.reply_text(
                t(lang, "CHOOSE_TO"),
                reply_markup=providers_markup(providers, CB_TO, exclude_id=selected["from_psp_id"]),
            )
            return

        if data.startswith(CB_TO):
            if "from_psp_id" not in selected:
                await msg.reply_text(t(lang, "SESSION_EXPIRED"))
                return
            selected["to_psp_id"] = data[len(CB_TO):]
            currencies = await asyncio.to_thread(get_currencies)
            await msg.reply_text(t(lang, "CHOOSE_CURRENCY"), reply_markup=currencies_markup(currencies))
            return

        if data.startswith(CB_CURRENCY):
            selected["currency_id"] = data[len(CB_CURRENCY):]
            await self._run_check(msg, context, lang)
            return

    # --------- Text ---------

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(t(self._lang(update), "UNKNOWN"))


# --------- bootstrap ---------

_bot = TransferBot()


async def initialize_bot():
    await _bot.initialize()


async def shutdown_bot():
    await _bot.shutdown()


async def process_webhook(update_dict: dict):
    if not _bot.application:
        return
    update = Update.de_json(update_dict, _bot.application.bot)
    await _bot.application.process_update(update)
