from __future__ import annotations

from html import escape
from pathlib import Path
import time
import logging
import sys

import telebot
from dotenv import load_dotenv
from telebot.types import (
    BotCommand,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
)

from trackerbot import activity, bans, groups, referrals, storage, users
from trackerbot.admin_stats import (
    bot_stats,
    format_group_stats,
    format_stats,
    format_user_stats,
    group_stats_for_admin,
    user_stats_for_admin,
)
from trackerbot.config import load_settings
from trackerbot.security import REASON_BANNED, Decision, can_perform_action
from trackerbot.users import UserInfo

load_dotenv()
settings = load_settings()

LOG_PATH = Path(settings.log_path)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(LOG_PATH, encoding="utf-8"),
        logging.StreamHandler(sys.stdout),
    ],
)
log = logging.getLogger("trackerbot")

storage.set_data_dir(settings.data_dir)
activity.set_history_limit(settings.history_limit)

# One update at a time: the JSON documents are rewritten whole on every event.
bot = telebot.TeleBot(settings.bot_token, parse_mode="HTML", threaded=False)

GROUP_CHAT_TYPES = {"group", "supergroup"}
ADMIN_STATUSES = {"administrator", "creator"}

_recent_message_keys: dict[tuple[int, int], float] = {}
_bot_user: telebot.types.User | None = None


def _me() -> telebot.types.User:
    global _bot_user
    if _bot_user is None:
        _bot_user = bot.get_me()
    return _bot_user


def is_admin(user_id: int | None) -> bool:
    if user_id is None:
        return False
    return int(user_id) in settings.admin_ids


def _user_info(user: telebot.types.User) -> UserInfo:
    return UserInfo(
        user_id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
        language_code=user.language_code,
        is_bot=bool(user.is_bot),
    )


def _full_name(user: telebot.types.User) -> str:
    return " ".join(x for x in [user.first_name or "", user.last_name or ""] if x).strip() or "Unknown"


def _group_chat_id(chat: telebot.types.Chat) -> int | None:
    return chat.id if chat.type in GROUP_CHAT_TYPES else None


def _denied_text(decision: Decision) -> str:
    if decision.reason == REASON_BANNED:
        return "🚫 You are banned from using this bot."
    wait = ""
    if decision.rate_limit and decision.rate_limit.reset_at:
        wait = f" Try again in {max(int(decision.rate_limit.reset_at - time.time()), 1)} s."
    return "⏳ Too many requests." + wait


def _message_guard(message: telebot.types.Message, window_s: float = 2.0) -> bool:
    """
    Prevent duplicate handling of the same incoming message/update.
    """
    key = (message.chat.id, message.message_id)
    now = time.time()
    last = _recent_message_keys.get(key, 0.0)
    if now - last < window_s:
        return False
    _recent_message_keys[key] = now
    if len(_recent_message_keys) > 5000:
        cutoff = now - 60.0
        for k, ts in list(_recent_message_keys.items()):
            if ts < cutoff:
                _recent_message_keys.pop(k, None)
    return True


def _command_guard(message: telebot.types.Message, command: str) -> bool:
    """
    Gate + count a command. Denied commands get a short notice and are not counted.
    """
    if not _message_guard(message) or message.from_user is None:
        return False
    user_id = message.from_user.id
    decision = can_perform_action(user_id, "commands")
    if not decision.allowed:
        log.info("cmd /%s denied for user_id=%s: %s", command, user_id, decision.reason)
        try:
            bot.reply_to(message, _denied_text(decision))
        except Exception as e:
            log.warning("deny notice failed: %s", e)
        return False
    log.info("cmd /%s from user_id=%s chat_id=%s", command, user_id, message.chat.id)
    activity.track_command(user_id, command, _group_chat_id(message.chat))
    return True


def _admin_arg(message: telebot.types.Message) -> str:
    parts = (message.text or "").split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


def _resolve_user_id(raw: str) -> int | None:
    s = raw.strip()
    if not s:
        return None
    if s.lstrip("-").isdigit():
        return int(s)
    return users.find_user_id_by_username(s)


def stats_keyboard() -> InlineKeyboardMarkup:
    keyboard = InlineKeyboardMarkup()
    keyboard.row(InlineKeyboardButton(text="🔄 Refresh", callback_data="stats_refresh"))
    return keyboard


@bot.message_handler(commands=["start"])
def handle_start(message: telebot.types.Message) -> None:
    if not _command_guard(message, "start"):
        return
    if message.chat.type != "private":
        return

    code = referrals.parse_start_payload(message.text)
    if code and not referrals.track_click(code, message.from_user.id):
        log.info("unknown referral code %s from user_id=%s", code, message.from_user.id)
        code = None
    users.track_start(_user_info(message.from_user), referral_link=code)

    bot.send_message(
        message.chat.id,
        "👋 Hello! I am a group tracker bot.\n\n"
        "<b>How to use:</b>\n"
        "1. Add me to a group\n"
        "2. Make me an administrator\n"
        "3. I will track members joining and leaving the group",
    )


@bot.message_handler(commands=["help"])
def handle_help(message: telebot.types.Message) -> None:
    if not _command_guard(message, "help"):
        return
    lines = [
        "📖 <b>Commands</b>",
        "",
        "/start - get started",
        "/status - tracking status of this group",
        "/help - this message",
    ]
    if is_admin(message.from_user.id):
        lines += [
            "",
            "<b>Admin</b>",
            "/stats - bot statistics",
            "/user &lt;id|@username&gt; - user details",
            "/group [id] - group details",
            "/ban &lt;id&gt; [reason] - ban a user",
            "/unban &lt;id&gt; - unban a user",
            "/referral &lt;source&gt; - create a referral link",
        ]
    bot.send_message(message.chat.id, "\n".join(lines))


@bot.message_handler(commands=["status"])
def handle_status(message: telebot.types.Message) -> None:
    if not _command_guard(message, "status"):
        return
    if message.chat.type not in GROUP_CHAT_TYPES:
        return
    view = group_stats_for_admin(message.chat.id)
    if view is None or view.get("left_at"):
        bot.send_message(
            message.chat.id,
            "⚠️ This group is not being tracked yet.\nMake sure I am an administrator here.",
        )
        return
    bot.send_message(message.chat.id, format_group_stats(view))


@bot.message_handler(commands=["stats"])
def handle_stats(message: telebot.types.Message) -> None:
    if not _command_guard(message, "stats"):
        return
    if not is_admin(message.from_user.id):
        return
    bot.send_message(message.chat.id, format_stats(bot_stats()), reply_markup=stats_keyboard())


@bot.message_handler(commands=["user"])
def handle_user_lookup(message: telebot.types.Message) -> None:
    if not _command_guard(message, "user"):
        return
    if not is_admin(message.from_user.id):
        return
    user_id = _resolve_user_id(_admin_arg(message))
    if user_id is None:
        bot.send_message(message.chat.id, "Usage: <code>/user &lt;id|@username&gt;</code>")
        return
    view = user_stats_for_admin(user_id)
    if view is None:
        bot.send_message(message.chat.id, f"User <code>{user_id}</code> not found.")
        return
    bot.send_message(message.chat.id, format_user_stats(view))


@bot.message_handler(commands=["group"])
def handle_group_lookup(message: telebot.types.Message) -> None:
    if not _command_guard(message, "group"):
        return
    if not is_admin(message.from_user.id):
        return
    arg = _admin_arg(message)
    if arg:
        try:
            chat_id = int(arg)
        except ValueError:
            bot.send_message(message.chat.id, "Usage: <code>/group [chat_id]</code>")
            return
    else:
        chat_id = message.chat.id
    view = group_stats_for_admin(chat_id)
    if view is None:
        bot.send_message(message.chat.id, f"Group <code>{chat_id}</code> not found.")
        return
    bot.send_message(message.chat.id, format_group_stats(view))


@bot.message_handler(commands=["ban"])
def handle_ban(message: telebot.types.Message) -> None:
    if not _command_guard(message, "ban"):
        return
    if not is_admin(message.from_user.id):
        return
    parts = _admin_arg(message).split(maxsplit=1)
    user_id = _resolve_user_id(parts[0]) if parts else None
    if user_id is None:
        bot.send_message(message.chat.id, "Usage: <code>/ban &lt;id&gt; [reason]</code>")
        return
    reason = parts[1].strip() if len(parts) > 1 else None
    if not bans.ban(user_id, reason, message.from_user.id):
        bot.send_message(message.chat.id, "Could not save the ban, see logs.")
        return
    log.info("user_id=%s banned by %s (%s)", user_id, message.from_user.id, reason)
    bot.send_message(message.chat.id, f"🚫 Banned <code>{user_id}</code>" + (f": {escape(reason)}" if reason else ""))


@bot.message_handler(commands=["unban"])
def handle_unban(message: telebot.types.Message) -> None:
    if not _command_guard(message, "unban"):
        return
    if not is_admin(message.from_user.id):
        return
    user_id = _resolve_user_id(_admin_arg(message))
    if user_id is None:
        bot.send_message(message.chat.id, "Usage: <code>/unban &lt;id&gt;</code>")
        return
    if not bans.unban(user_id):
        bot.send_message(message.chat.id, f"User <code>{user_id}</code> is not banned.")
        return
    log.info("user_id=%s unbanned by %s", user_id, message.from_user.id)
    bot.send_message(message.chat.id, f"✅ Unbanned <code>{user_id}</code>")


@bot.message_handler(commands=["referral"])
def handle_referral(message: telebot.types.Message) -> None:
    if not _command_guard(message, "referral"):
        return
    if not is_admin(message.from_user.id):
        return
    source = _admin_arg(message)
    if not source:
        bot.send_message(message.chat.id, "Usage: <code>/referral &lt;source&gt;</code>")
        return
    code = referrals.create_link(source)
    if code is None:
        bot.send_message(message.chat.id, "Could not create the link, try again.")
        return
    link = referrals.deep_link(_me().username, code)
    bot.send_message(
        message.chat.id,
        f"🔗 Referral link for <b>{escape(source)}</b>:\n{escape(link)}",
        disable_web_page_preview=True,
    )


def _handle_bot_added(message: telebot.types.Message) -> None:
    chat = message.chat
    log.info("bot added to group %s (chat_id=%s)", chat.title, chat.id)
    try:
        member = bot.get_chat_member(chat.id, _me().id)
    except Exception as e:
        log.warning("admin check failed for chat_id=%s: %s", chat.id, e)
        return
    if member.status in ADMIN_STATUSES:
        groups.save_group(chat.id, chat.title, chat.type)
        bot.send_message(chat.id, "✅ Tracking this group. New and leaving members will be recorded.")
    else:
        bot.send_message(chat.id, "⚠️ Please make me an administrator to track group members.")


@bot.message_handler(content_types=["new_chat_members"])
def handle_new_members(message: telebot.types.Message) -> None:
    if not _message_guard(message) or message.chat.type not in GROUP_CHAT_TYPES:
        return
    me = _me()
    members = message.new_chat_members or []
    if any(m.id == me.id for m in members):
        _handle_bot_added(message)
    if not groups.is_tracked(message.chat.id):
        return
    for member in members:
        if member.id == me.id:
            continue
        activity.track_join(member.id, message.chat.id, message.chat.title)
        log.info(
            "member joined: chat_id=%s user_id=%s name=%s username=%s",
            message.chat.id,
            member.id,
            _full_name(member),
            member.username,
        )


@bot.message_handler(content_types=["left_chat_member"])
def handle_member_left(message: telebot.types.Message) -> None:
    if not _message_guard(message) or message.chat.type not in GROUP_CHAT_TYPES:
        return
    member = message.left_chat_member
    if member is None:
        return
    if member.id == _me().id:
        groups.mark_left(message.chat.id)
        log.info("bot left group chat_id=%s", message.chat.id)
        return
    if not groups.is_tracked(message.chat.id):
        return
    activity.track_leave(member.id, message.chat.id, message.chat.title)
    log.info("member left: chat_id=%s user_id=%s", message.chat.id, member.id)


@bot.my_chat_member_handler()
def handle_my_chat_member(update: telebot.types.ChatMemberUpdated) -> None:
    chat = update.chat
    if chat.type not in GROUP_CHAT_TYPES:
        return
    status = update.new_chat_member.status
    if status in ADMIN_STATUSES:
        groups.save_group(chat.id, chat.title, chat.type)
        log.info("bot is admin in chat_id=%s", chat.id)
    elif status in {"left", "kicked"}:
        groups.mark_left(chat.id)
        log.info("bot removed from chat_id=%s", chat.id)


@bot.message_handler(content_types=["text"])
def handle_text(message: telebot.types.Message) -> None:
    if not _message_guard(message) or message.from_user is None:
        return
    user_id = message.from_user.id
    decision = can_perform_action(user_id, "messages")
    if not decision.allowed:
        # Only private chats get a notice; groups would be flooded.
        if message.chat.type == "private":
            try:
                bot.send_message(message.chat.id, _denied_text(decision))
            except Exception as e:
                log.warning("deny notice failed: %s", e)
        return
    activity.track_message(user_id, _group_chat_id(message.chat))


@bot.callback_query_handler(func=lambda call: True)
def handle_callback(call: telebot.types.CallbackQuery) -> None:
    user_id = call.from_user.id
    decision = can_perform_action(user_id, "buttons")
    if not decision.allowed:
        try:
            bot.answer_callback_query(call.id, text=_denied_text(decision), show_alert=True)
        except Exception as e:
            log.warning("answer_callback_query failed: %s", e)
        return

    chat_id = _group_chat_id(call.message.chat) if call.message else None
    activity.track_button(user_id, call.data or "unknown", chat_id)
    try:
        bot.answer_callback_query(call.id, text="", show_alert=False)
    except Exception as e:
        log.warning("answer_callback_query failed: %s", e)

    if call.data == "stats_refresh" and call.message is not None and is_admin(user_id):
        try:
            bot.edit_message_text(
                format_stats(bot_stats()),
                call.message.chat.id,
                call.message.message_id,
                reply_markup=stats_keyboard(),
            )
        except Exception as e:
            # Telegram rejects edits that don't change the text.
            log.info("stats refresh skipped: %s", e)


if __name__ == "__main__":
    backoff_s = 2
    while True:
        try:
            try:
                bot.set_my_commands(
                    [
                        BotCommand("start", "Get started"),
                        BotCommand("status", "Tracking status of this group"),
                        BotCommand("help", "Help"),
                    ]
                )
            except Exception as e:
                # Commands are optional; polling can still work.
                log.warning("setMyCommands failed: %s", e)

            log.info("Starting polling (skip_pending=%s)", True)
            bot.infinity_polling(skip_pending=True, allowed_updates=telebot.util.update_types)
        except KeyboardInterrupt:
            raise
        except Exception as e:
            log.exception("polling crashed: %s", e)
            time.sleep(backoff_s)
            backoff_s = min(backoff_s * 2, 60)
