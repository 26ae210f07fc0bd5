"""Event builders and constants shared by the test modules."""

from datetime import datetime, timedelta, timezone

from secretary.core.events import CallbackClick, Chat, Sender, TextMessage

MANILA = timezone(timedelta(hours=8), "Asia/Manila")
# Wednesday 10:00 local
NOW = datetime(2026, 2, 11, 10, 0, tzinfo=MANILA)

GROUP_ID = -1001
OWNER_ID = 111
MEMBER_ID = 222
BOT_ID = 999


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_text(text, user_id=OWNER_ID, username="owner", chat_id=GROUP_ID, chat_type="supergroup",
              message_id=100, mentions=(), reply_to_text=""):
    return TextMessage(
        chat=Chat(chat_id=chat_id, chat_type=chat_type, title="Team Chat"),
        sender=Sender(user_id=user_id, username=username, first_name=username.capitalize()),
        message_id=message_id,
        text=text,
        mentions=tuple(mentions),
        reply_to_text=reply_to_text,
    )


def make_click(token, user_id=OWNER_ID, username="owner", chat_id=GROUP_ID, chat_type="supergroup",
               callback_id="cb-1"):
    return CallbackClick(
        chat=Chat(chat_id=chat_id, chat_type=chat_type),
        sender=Sender(user_id=user_id, username=username, first_name=username.capitalize(), last_name="San"),
        callback_id=callback_id,
        token=token,
    )


def texts_sent(messenger) -> list[str]:
    """Bodies passed to send_text, in order."""
    return [c.args[1] for c in messenger.send_text.call_args_list]


def button_tokens(messenger) -> list[str]:
    """Tokens of every button in the last send_with_buttons call."""
    buttons = messenger.send_with_buttons.call_args.args[2]
    return [b.token for row in buttons for b in row]
