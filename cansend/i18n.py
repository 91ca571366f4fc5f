# cansend/i18n.py
from __future__ import annotations

from typing import Dict


def normalize_lang(code: str | None) -> str:
    """
    Normalize a Telegram language_code (he-IL, en-US, ...) to a short key:
    en / he
    """
    if not code:
        return "en"

    code = code.lower()

    if code.startswith("he"):
        return "he"
    if code.startswith("iw"):  # older Telegram clients
        return "he"

    return "en"


LANG_DATA: Dict[str, Dict[str, str]] = {
    "en": {
        # ----- entry -----
        "WELCOME": (
            "Can I send?\n\n"
            "Pick where the money leaves, where it should land and the currency. "
            "I'll check whether the transfer is supported, with an estimated fee and time."
        ),
        "HELP": (
            "Commands:\n"
            "/check – check a transfer\n"
            "/help – this message"
        ),
        "UNKNOWN": "Not sure what you mean. Try /check",
        "NO_PROVIDERS": "No providers are configured yet. Please try again later.",
        "SESSION_EXPIRED": "That selection expired. Start again with /check",

        # ----- flow -----
        "CHOOSE_FROM": "1/3 Send from which provider?",
        "CHOOSE_TO": "2/3 Send to which provider?",
        "CHOOSE_CURRENCY": "3/3 Which currency?",
        "CHECKING": "Checking transfer route...",

        # ----- result -----
        "STATUS_YES": "✅ Yes, transfer possible!",
        "STATUS_NO": "❌ No, transfer not supported",
        "STATUS_MAYBE": "⚠️ Maybe, limited information",
        "LABEL_ROUTE": "{from_psp} → {to_psp} ({currency})",
        "LABEL_FEE": "Estimated fee: ~{value}%",
        "LABEL_TIME": "Transfer time: ~{value} hour(s)",
        "LABEL_KYC": "KYC required: {value}",
        "LABEL_CONFIDENCE": "Confidence: {value}%",
        "YES": "Yes",
        "NO": "No",
        "AFFILIATE_DISCLAIMER": (
            "We may earn a commission if you use our referral links. "
            "This helps us keep the service free."
        ),

        # ----- buttons -----
        "BTN_NEW_SEARCH": "🔄 Check another transfer",
        "BTN_GET_STARTED": "🚀 Get started with {provider}",
        "BTN_RETRY": "🔁 Try again",

        # ----- errors -----
        "SEARCH_ERROR": "Search error: failed to check transfer route. Please try again.",
    },
    "he": {
        "WELCOME": (
            "אפשר להעביר?\n\n"
            "בחר מאיפה הכסף יוצא, לאן הוא צריך להגיע ובאיזה מטבע. "
            "אבדוק אם ההעברה נתמכת, עם הערכת עמלה וזמן."
        ),
        "HELP": (
            "פקודות:\n"
            "/check – בדיקת העברה\n"
            "/help – הודעה זו"
        ),
        "UNKNOWN": "לא הבנתי. נסה /check",
        "NO_PROVIDERS": "עדיין לא הוגדרו ספקים. נסה שוב מאוחר יותר.",
        "SESSION_EXPIRED": "הבחירה פגה. התחל מחדש עם /check",

        "CHOOSE_FROM": "1/3 לשלוח מאיזה ספק?",
        "CHOOSE_TO": "2/3 לשלוח לאיזה ספק?",
        "CHOOSE_CURRENCY": "3/3 באיזה מטבע?",
        "CHECKING": "בודק מסלול העברה...",

        "STATUS_YES": "✅ כן, ההעברה אפשרית!",
        "STATUS_NO": "❌ לא, ההעברה לא נתמכת",
        "STATUS_MAYBE": "⚠️ אולי, מידע חלקי",
        "LABEL_ROUTE": "{from_psp} ← {to_psp} ({currency})",
        "LABEL_FEE": "עמלה משוערת: ~{value}%",
        "LABEL_TIME": "זמן העברה: ~{value} שעות",
        "LABEL_KYC": "נדרש KYC: {value}",
        "LABEL_CONFIDENCE": "רמת ביטחון: {value}%",
        "YES": "כן",
        "NO": "לא",
        "AFFILIATE_DISCLAIMER": "ייתכן שנקבל עמלה אם תשתמש בקישורי ההפניה שלנו. זה עוזר לנו לשמור על השירות חינמי.",

        "BTN_NEW_SEARCH": "🔄 בדיקה נוספת",
        "BTN_GET_STARTED": "🚀 להתחיל עם {provider}",
        "BTN_RETRY": "🔁 נסה שוב",

        "SEARCH_ERROR": "שגיאה בבדיקת מסלול ההעברה. נסה שוב.",
    },
}


def t(lang: str, key: str, **kwargs) -> str:
    """
    Simple lookup:
    1. by lang
    2. fallback to en
    3. the key itself
    """
    lang = normalize_lang(lang)
    data = LANG_DATA.get(lang, {})
    if key in data:
        text = data[key]
    else:
        text = LANG_DATA["en"].get(key, key)
    return text.format(**kwargs) if kwargs else text
