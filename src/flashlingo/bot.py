"""Telegram front end for practice sessions."""
import html
import logging
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import TelegramError
from telegram.ext import CallbackContext, ConversationHandler

from flashlingo.errors import ConfigurationMissingError
from flashlingo.models.base import SessionLocal
from flashlingo.models.card_models import CandidateCard, Language, Verdict, WordRecord
from flashlingo.services import review_scheduler
from flashlingo.services.pronunciation_service import PronunciationService
from flashlingo.services.session_service import SessionController, SessionState
from flashlingo.services.user_service import UserService
from flashlingo.services.word_source import word_source_factory

# Get logger for this module
logger = logging.getLogger(__name__)

# Conversation states
MAIN_MENU, PRACTICE, SETTINGS_API_KEY, WORD_BANK_SEARCH = range(4)

# Button texts
MENU = "🏠 Menu"
PRACTICE_TEXT = "💡 Practice"
WORD_BANK = "📚 Word Bank"
VIEW_STATISTICS = "📊 Stats"
SETTINGS = "⚙️ Settings"

VERDICT_BUTTONS = {
    Verdict.EASY: "✅ I Know It",
    Verdict.KNOWN: "🔁 Remind Me Later",
    Verdict.NEW: "✨ New Word",
}

MAX_MESSAGE_LENGTH = 4000
MAX_WORDS_PER_LEVEL = 20


def msg_back_to(text: str) -> str: return f"🔙 {text}"


KB_BACK_TO_MENU = [InlineKeyboardButton(msg_back_to(MENU), callback_data="back_to_menu")]


async def log_received(update: Update, context_type: str) -> None:
    """Log an incoming update."""
    txt = ""
    if update.callback_query:
        txt = f" {update.callback_query.data}"
    elif update.message and context_type != "api_key":
        txt = f" {update.message.text}"
    logger.info(f"Received @{context_type:8} from user {update.effective_user.username} ({update.effective_user.id}){txt}")


async def send_or_edit(update: Update, text: str, keyboard: List[List[InlineKeyboardButton]]) -> None:
    """Edit the message behind a button press, or reply to a text message."""
    reply_markup = InlineKeyboardMarkup(keyboard)
    try:
        if update.callback_query:
            await update.callback_query.edit_message_text(text, reply_markup=reply_markup, parse_mode="HTML")
        else:
            await update.message.reply_text(text, reply_markup=reply_markup, parse_mode="HTML")
    except TelegramError as e:
        logger.warning(f"Error sending message: {e}")


async def send_popup_message(update: Update, text: str) -> None:
    """Show an alert-style popup, or a plain reply outside button presses."""
    try:
        if update.callback_query:
            await update.callback_query.answer(text=text, show_alert=True)
        else:
            await update.message.reply_text(f"⚠️ {text}")
    except TelegramError as e:
        logger.warning(f"Error sending popup: {e}")


def get_user_id(update: Update) -> str:
    return str(update.effective_user.id)


def get_user_service(context: CallbackContext) -> UserService:
    """User service bound to the chat's long-lived database session."""
    db = context.user_data.get("db")
    if db is None:
        db = SessionLocal()
        context.user_data["db"] = db
    return UserService(db)


def get_controller(context: CallbackContext, user_id: str, restart: bool = False) -> SessionController:
    """Return the learner's session controller, opening one if needed."""
    controller = context.user_data.get("controller")
    if controller is None or restart:
        controller = get_user_service(context).open_session(user_id)
        context.user_data["controller"] = controller
    return controller


def get_speech(update: Update, context: CallbackContext) -> PronunciationService:
    """Per-chat pronunciation service sending audio into the chat."""
    speech = context.user_data.get("speech")
    if speech is None:
        chat_id = update.effective_chat.id

        async def deliver(audio: bytes, text: str) -> None:
            last_id = context.user_data.pop("last_audio_message_id", None)
            if last_id is not None:
                try:
                    await context.bot.delete_message(chat_id=chat_id, message_id=last_id)
                except TelegramError as e:
                    logger.debug(f"Could not delete audio message {last_id}: {e}")
            message = await context.bot.send_audio(chat_id=chat_id, audio=audio, filename=f"{text}.mp3", title=text)
            context.user_data["last_audio_message_id"] = message.message_id

        speech = PronunciationService(deliver)
        context.user_data["speech"] = speech
    return speech


def format_progress(controller: SessionController) -> str:
    """Text progress bar for new words in the session."""
    goal = controller.learning.new_words_per_session
    done = min(controller.new_words_this_session, goal)
    return f"{'▓' * done}{'░' * (goal - done)} New words this session: {done} / {goal}"


def format_card(card: CandidateCard, controller: SessionController) -> str:
    """Render a flashcard as HTML."""
    kind = "🔁 Review" if card.is_review else "✨ New word"
    language = controller.scope.language
    return (
        f"{kind} · {language.flag} {language.value} · {card.cefr_level.value}\n\n"
        f"<b>{html.escape(card.word)}</b>\n"
        f"<tg-spoiler>{html.escape(card.translation)}</tg-spoiler>\n\n"
        f"<i>{html.escape(card.example_sentence)}</i>\n\n"
        f"{format_progress(controller)}"
    )


def card_keyboard(card: CandidateCard) -> List[List[InlineKeyboardButton]]:
    verdicts = [Verdict.EASY, Verdict.KNOWN] if card.is_review else list(Verdict)
    return [
        [InlineKeyboardButton(VERDICT_BUTTONS[verdict], callback_data=f"verdict_{verdict.value}") for verdict in verdicts],
        [InlineKeyboardButton("🔊 Pronounce", callback_data="speak")],
        KB_BACK_TO_MENU,
    ]


def format_word_table(title: str, words: List[WordRecord]) -> str:
    lines = [f"<b>{title}</b>"]
    if not words:
        lines.append("No words in this category.")
    for index, word in enumerate(words, start=1):
        lines.append(
            f"{index}. {html.escape(word.word)} — {html.escape(word.translation)} ({word.cefr_level.value})"
        )
    return "\n".join(lines)


def truncate(text: str) -> str:
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text
    return text[:MAX_MESSAGE_LENGTH].rsplit("\n", 1)[0] + "\n…"


async def handle_start(update: Update, context: CallbackContext) -> int:
    """Start the conversation and show main menu."""
    await log_received(update, "start")

    user_id = get_user_id(update)
    controller = get_controller(context, user_id)
    language = controller.scope.language

    keyboard = [
        [InlineKeyboardButton(PRACTICE_TEXT, callback_data="practice")],
        [InlineKeyboardButton(WORD_BANK, callback_data="word_bank"),
         InlineKeyboardButton(VIEW_STATISTICS, callback_data="stats")],
        [InlineKeyboardButton(SETTINGS, callback_data="settings")],
    ]
    message = (
        f"Welcome to Flashlingo, {html.escape(update.effective_user.first_name or '')}! 👋\n\n"
        f"You are practicing {language.flag} {language.value} at level "
        f"{controller.level.value} ({controller.level.description}).\n"
        "What would you like to do?"
    )
    await send_or_edit(update, message, keyboard)
    return MAIN_MENU


async def handle_callback(update: Update, context: CallbackContext) -> int:
    """Handle callback queries from inline keyboards."""
    query = update.callback_query
    await query.answer()

    await log_received(update, "callback")

    data = query.data
    if data == "back_to_menu":
        return await handle_start(update, context)
    elif data == "practice":
        return await show_practice(update, context)
    elif data.startswith("verdict_"):
        return await handle_verdict(update, context)
    elif data == "retry":
        return await show_practice(update, context)
    elif data == "new_session":
        return await handle_new_session(update, context)
    elif data == "speak":
        return await handle_speak(update, context)
    elif data.startswith("word_bank"):
        return await show_word_bank(update, context)
    elif data == "search_words":
        return await ask_search_term(update, context)
    elif data == "stats":
        return await show_statistics(update, context)
    elif data == "settings":
        return await show_settings(update, context)
    elif data.startswith("set_language_"):
        return await handle_language_selection(update, context)
    elif data == "set_api_key":
        return await ask_api_key(update, context)
    elif data == "logout":
        return await handle_logout(update, context)

    return MAIN_MENU


async def show_practice(update: Update, context: CallbackContext) -> int:
    """Show the current card, fetching the next one if needed."""
    controller = get_controller(context, get_user_id(update))
    if controller.state is SessionState.SUMMARY:
        return await show_summary(update, context)

    if controller.current_card is None and not controller.is_loading and update.callback_query:
        await send_or_edit(update, "⏳ Preparing next card...", [KB_BACK_TO_MENU])

    card = await controller.prepare_next_card()
    if card is None:
        if controller.needs_configuration:
            await send_or_edit(
                update,
                "🔑 API Key Required\n\n"
                "Please set your Gemini API key in the settings to get new words.",
                [[InlineKeyboardButton("⚙️ Go to Settings", callback_data="settings")], KB_BACK_TO_MENU],
            )
        elif controller.last_error is not None:
            await send_or_edit(
                update,
                f"❌ Error: {html.escape(str(controller.last_error))}",
                [[InlineKeyboardButton("🔄 Retry", callback_data="retry")], KB_BACK_TO_MENU],
            )
        return PRACTICE

    await send_or_edit(update, format_card(card, controller), card_keyboard(card))
    get_speech(update, context).speak(card.word, controller.scope.language)
    return PRACTICE


async def handle_verdict(update: Update, context: CallbackContext) -> int:
    """Apply the learner's verdict and move on."""
    controller = get_controller(context, get_user_id(update))
    verdict = Verdict(update.callback_query.data.removeprefix("verdict_"))

    result = controller.handle_verdict(verdict)
    if result is None:
        if verdict is Verdict.NEW and controller.current_card is not None:
            await send_popup_message(update, "Review words can't be marked as new.")
        return await show_practice(update, context)

    if result.session_ended:
        return await show_summary(update, context)
    return await show_practice(update, context)


async def show_summary(update: Update, context: CallbackContext) -> int:
    """Show the words of the finished session."""
    controller = get_controller(context, get_user_id(update))
    summary = controller.summary
    stat = controller.stats.latest()

    message = "🎉 Session complete!\n\n"
    if stat is not None:
        message += f"Time: {stat.revision_length} · Level: {stat.end_cefr_level.value}\n\n"
    message += format_word_table("New Words Learnt", summary.new)
    message += "\n\n" + format_word_table("Words Repeated", summary.repeated)

    await send_or_edit(
        update,
        truncate(message),
        [[InlineKeyboardButton("💡 Start New Session", callback_data="new_session")], KB_BACK_TO_MENU],
    )
    return MAIN_MENU


async def handle_new_session(update: Update, context: CallbackContext) -> int:
    controller = get_controller(context, get_user_id(update))
    controller.start_new_session()
    return await show_practice(update, context)


async def handle_speak(update: Update, context: CallbackContext) -> int:
    controller = get_controller(context, get_user_id(update))
    if controller.current_card is not None:
        get_speech(update, context).speak(controller.current_card.word, controller.scope.language)
    return PRACTICE


async def show_word_bank(update: Update, context: CallbackContext, term: str = "") -> int:
    """Show the word bank grouped by SRS level."""
    controller = get_controller(context, get_user_id(update))
    groups = controller.word_bank.group_by_srs_level(term)
    now = controller.clock()

    if groups:
        sections = []
        for level, words in groups.items():
            lines = [f"<b>SRS Level {level}</b> ({len(words)})"]
            for word in words[:MAX_WORDS_PER_LEVEL]:
                lines.append(
                    f"• {html.escape(word.word)} — {html.escape(word.translation)} "
                    f"({word.cefr_level.value}, {review_scheduler.describe_next_review(word, now)})"
                )
            if len(words) > MAX_WORDS_PER_LEVEL:
                lines.append(f"… and {len(words) - MAX_WORDS_PER_LEVEL} more")
            sections.append("\n".join(lines))
        message = "\n\n".join(sections)
    elif len(controller.word_bank) == 0:
        message = "Your word bank is empty. Start a practice session to add words."
    else:
        message = "No words match your search."

    header = f"📚 Word Bank ({len(controller.word_bank)} words)"
    if term:
        header += f" · search: {html.escape(term)}"
    await send_or_edit(
        update,
        truncate(f"{header}\n\n{message}"),
        [[InlineKeyboardButton("🔍 Search", callback_data="search_words")], KB_BACK_TO_MENU],
    )
    return MAIN_MENU


async def ask_search_term(update: Update, context: CallbackContext) -> int:
    await send_or_edit(update, "🔍 Send a word or translation to search for.", [KB_BACK_TO_MENU])
    return WORD_BANK_SEARCH


async def handle_word_bank_search(update: Update, context: CallbackContext) -> int:
    await log_received(update, "search")
    return await show_word_bank(update, context, term=update.message.text)


async def show_statistics(update: Update, context: CallbackContext) -> int:
    """Show the learner's level and last session."""
    controller = get_controller(context, get_user_id(update))
    stat = controller.stats.latest()

    message = (
        "📊 Progress\n\n"
        f"Current CEFR Level: {controller.level.value} ({controller.level.description})\n"
        f"Total Words in Bank: {len(controller.word_bank)}\n"
    )
    if stat is None:
        message += "\nNo sessions completed yet. Finish a practice session to see your stats."
    else:
        message += (
            f"Next Session Starts At: {stat.end_cefr_level.value}\n\n"
            "Last Revision\n"
            f"Last Revised: {stat.last_revised:%Y-%m-%d %H:%M} UTC\n"
            f"Revision Length: {stat.revision_length}\n"
            f"Total Words Reviewed: {stat.total_words}\n"
            f"New Words Learnt: {stat.new_words}\n"
        )

    await send_or_edit(update, message, [KB_BACK_TO_MENU])
    return MAIN_MENU


async def show_settings(update: Update, context: CallbackContext) -> int:
    """Show settings menu."""
    user_id = get_user_id(update)
    user_service = get_user_service(context)
    current = get_controller(context, user_id).scope.language
    has_key = user_service.get_api_key(user_id) is not None

    keyboard = [
        [InlineKeyboardButton(f"{'• ' if language is current else ''}{language.flag} {language.value}",
                              callback_data=f"set_language_{language.value}")]
        for language in Language
    ]
    keyboard.extend([
        [InlineKeyboardButton("🔑 Set API Key", callback_data="set_api_key")],
        [InlineKeyboardButton("🚪 Logout", callback_data="logout")],
        KB_BACK_TO_MENU,
    ])
    await send_or_edit(
        update,
        "⚙️ Settings\n\n"
        f"Logged in as: {user_id}\n"
        f"Gemini API key: {'saved' if has_key else 'not set'}\n\n"
        "Choose the language to practice:",
        keyboard,
    )
    return MAIN_MENU


async def handle_language_selection(update: Update, context: CallbackContext) -> int:
    """Switch language and start a fresh session for it."""
    user_id = get_user_id(update)
    language = Language(update.callback_query.data.removeprefix("set_language_"))
    get_user_service(context).set_language(user_id, language)
    get_controller(context, user_id, restart=True)
    return await handle_start(update, context)


async def ask_api_key(update: Update, context: CallbackContext) -> int:
    await send_or_edit(
        update,
        "🔑 Send your Gemini API key.\n"
        "It is stored only for your account and is required to generate flashcards.",
        [[InlineKeyboardButton(msg_back_to(SETTINGS), callback_data="settings")]],
    )
    return SETTINGS_API_KEY


async def handle_api_key(update: Update, context: CallbackContext) -> int:
    """Verify and store an API key sent as a message."""
    await log_received(update, "api_key")
    user_id = get_user_id(update)
    api_key = update.message.text

    try:
        await update.message.delete()
    except TelegramError as e:
        logger.debug(f"Could not delete API key message: {e}")

    controller = get_controller(context, user_id)
    try:
        await get_user_service(context).save_api_key(user_id, api_key)
    except ConfigurationMissingError as e:
        controller.word_source = word_source_factory(None)
        await send_or_edit(
            update,
            f"❌ {html.escape(str(e))}",
            [[InlineKeyboardButton("🔑 Try Again", callback_data="set_api_key")], KB_BACK_TO_MENU],
        )
        return MAIN_MENU

    controller.word_source = word_source_factory(api_key.strip())
    controller.last_error = None
    await send_or_edit(
        update,
        "✅ API Key saved and verified successfully!",
        [[InlineKeyboardButton(PRACTICE_TEXT, callback_data="practice")], KB_BACK_TO_MENU],
    )
    return MAIN_MENU


async def handle_logout(update: Update, context: CallbackContext) -> int:
    """Forget the API key and the open session."""
    user_id = get_user_id(update)
    get_user_service(context).logout(user_id)
    close_user_data(context)
    await send_or_edit(update, "👋 Logged out. Send /start to begin again.", [])
    return ConversationHandler.END


def close_user_data(context: CallbackContext) -> None:
    """Drop the chat's session state and release its database session."""
    speech: Optional[PronunciationService] = context.user_data.pop("speech", None)
    if speech is not None:
        speech.cancel()
    context.user_data.pop("controller", None)
    db = context.user_data.pop("db", None)
    if db is not None:
        db.close()


async def handle_message(update: Update, context: CallbackContext) -> int:
    """Handle free text outside of prompts."""
    await log_received(update, "message")
    await update.message.reply_text("Please use the buttons, or send /start to see the menu.")
    return MAIN_MENU
