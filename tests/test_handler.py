import pytest

from bookfinder.config import Config
from bookfinder.handler import BotHandler
from bookfinder.results import BookResult
from bookfinder.sources import AllSourcesFailed
from bookfinder.telegram import TelegramError


class FakeManager:
    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.calls = []

    def search(self, title, author=""):
        self.calls.append((title, author))
        if self.error is not None:
            raise self.error
        return self.results


class FakeBot:
    def __init__(self, fail_send=False):
        self.sent = []
        self.edited = []
        self.answered = []
        self.fail_send = fail_send

    def send_message(self, chat_id, text, parse_mode=None, reply_markup=None):
        if self.fail_send:
            raise TelegramError("down")
        self.sent.append(
            {"chat_id": chat_id, "text": text, "parse_mode": parse_mode, "reply_markup": reply_markup}
        )
        return {"message_id": len(self.sent)}

    def edit_message_text(self, chat_id, message_id, text):
        self.edited.append((chat_id, message_id, text))

    def answer_callback_query(self, callback_query_id):
        self.answered.append(callback_query_id)


def make_config():
    return Config(bot_token="token", allowed_user_ids=frozenset({123}))


def message_update(text, user_id=123, chat_id=555):
    return {"message": {"text": text, "from": {"id": user_id}, "chat": {"id": chat_id}}}


def callback_update(data, chat_id=555, user_id=123):
    return {
        "callback_query": {
            "id": "cb1",
            "data": data,
            "from": {"id": user_id},
            "message": {"chat": {"id": chat_id}},
        }
    }


def test_parse_search_args_title_only():
    h = BotHandler(make_config(), FakeManager())
    assert h.parse_search_args("The Great Gatsby") == ("The Great Gatsby", "")


def test_parse_search_args_with_author():
    h = BotHandler(make_config(), FakeManager())
    assert h.parse_search_args("The Great Gatsby --author Fitzgerald") == (
        "The Great Gatsby",
        "Fitzgerald",
    )


def test_parse_search_args_no_author_flag():
    h = BotHandler(make_config(), FakeManager())
    title, _ = h.parse_search_args("Some Book --unknown")
    assert title == "Some Book --unknown"


def test_parse_search_args_results_found():
    h = BotHandler(make_config(), FakeManager())
    assert h.parse_search_args("TestBook --author TestAuthor") == ("TestBook", "TestAuthor")


def test_parse_search_args_empty_query():
    h = BotHandler(make_config(), FakeManager())
    assert h.parse_search_args("")[0] == ""


def test_extract_command_args():
    h = BotHandler(make_config(), FakeManager())
    assert h.extract_command_args("/search Clean Code --author Martin") == "Clean Code --author Martin"
    assert h.extract_command_args("/search") == ""


def test_store_results_cleanup():
    h = BotHandler(make_config(), FakeManager())
    h.store_results(
        123,
        [
            BookResult(
                title="Test",
                download_url="https://example.com",
                source="test",
                detail_url="https://example.com/detail",
            )
        ],
    )
    fetched = h.get_results(123)
    assert len(fetched) == 1
    assert fetched[0].title == "Test"
    assert fetched[0].detail_url == "https://example.com/detail"


def test_store_results_overwrite():
    h = BotHandler(make_config(), FakeManager())
    h.store_results(123, [BookResult(title="First")])
    h.store_results(123, [BookResult(title="Second")])
    fetched = h.get_results(123)
    assert len(fetched) == 1
    assert fetched[0].title == "Second"


def test_store_results_different_chats():
    h = BotHandler(make_config(), FakeManager())
    h.store_results(1, [BookResult(title="Chat1")])
    h.store_results(2, [BookResult(title="Chat2")])
    assert h.get_results(1)[0].title == "Chat1"
    assert h.get_results(2)[0].title == "Chat2"


def test_get_results_not_found():
    h = BotHandler(make_config(), FakeManager())
    assert h.get_results(999) is None


def test_results_expire_after_ttl():
    now = [0.0]
    h = BotHandler(make_config(), FakeManager(), clock=lambda: now[0])
    h.store_results(1, [BookResult(title="Old")])
    now[0] = 599.0
    assert h.get_results(1)[0].title == "Old"
    now[0] = 600.0
    assert h.get_results(1) is None


def test_handle_start_authorized():
    bot = FakeBot()
    BotHandler(make_config(), FakeManager()).handle_start(bot, message_update("/start"))
    assert bot.sent[0]["chat_id"] == 555
    assert bot.sent[0]["text"].startswith("Welcome to Book Finder Bot!")


def test_handle_start_unauthorized():
    bot = FakeBot()
    BotHandler(make_config(), FakeManager()).handle_start(bot, message_update("/start", user_id=999))
    assert [m["text"] for m in bot.sent] == ["You're not authorized"]


def test_handle_search_without_query():
    bot = FakeBot()
    manager = FakeManager()
    BotHandler(make_config(), manager).handle_search(bot, message_update("/search"))
    assert [m["text"] for m in bot.sent] == ["Please provide a book name. Usage: /search <book name>"]
    assert manager.calls == []


def test_handle_search_not_found():
    bot = FakeBot()
    manager = FakeManager(error=AllSourcesFailed("all sources failed"))
    BotHandler(make_config(), manager).handle_search(bot, message_update("/search Nothing"))
    assert bot.sent[0]["text"] == "Searching..."
    assert bot.edited == [(555, 1, "Book not found")]


def test_handle_search_results_found():
    bot = FakeBot()
    manager = FakeManager(
        results=[BookResult(title="Test Book", download_url="https://example.com/1", source="test")]
    )
    h = BotHandler(make_config(), manager)
    h.handle_search(bot, message_update("/search TestBook --author TestAuthor"))

    assert manager.calls == [("TestBook", "TestAuthor")]
    reply = bot.sent[-1]
    assert reply["text"] == "Found 1 result(s):\n\n1. **Test Book**\n   Source: test\n\n"
    assert reply["parse_mode"] == "Markdown"
    assert reply["reply_markup"] == {
        "inline_keyboard": [[{"text": "Download test", "callback_data": "link_0"}]]
    }
    assert h.get_results(555)[0].title == "Test Book"


def test_handle_search_stops_when_searching_message_fails():
    bot = FakeBot(fail_send=True)
    manager = FakeManager(results=[BookResult(title="X", source="s")])
    h = BotHandler(make_config(), manager)
    h.handle_search(bot, message_update("/search X"))
    assert manager.calls == []
    assert h.get_results(555) is None


def test_handle_callback_sends_link():
    bot = FakeBot()
    h = BotHandler(make_config(), FakeManager())
    h.store_results(555, [BookResult(title="Test", download_url="https://example.com", source="test")])
    h.handle_callback(bot, callback_update("link_0"))
    assert bot.answered == ["cb1"]
    assert bot.sent[0]["text"] == "Download link for **Test**:\nhttps://example.com"
    assert bot.sent[0]["parse_mode"] == "Markdown"


@pytest.mark.parametrize("data", ["link_2", "link_-1"])
def test_handle_callback_index_out_of_range(data):
    bot = FakeBot()
    h = BotHandler(make_config(), FakeManager())
    h.store_results(555, [BookResult(title="Test")])
    h.handle_callback(bot, callback_update(data))
    assert [m["text"] for m in bot.sent] == ["Download link not found"]


def test_handle_callback_without_stored_results():
    bot = FakeBot()
    BotHandler(make_config(), FakeManager()).handle_callback(bot, callback_update("link_0"))
    assert [m["text"] for m in bot.sent] == ["Download link not found"]


@pytest.mark.parametrize("data", ["other", "link_x", "link_"])
def test_handle_callback_ignores_bad_data(data):
    bot = FakeBot()
    h = BotHandler(make_config(), FakeManager())
    h.store_results(555, [BookResult(title="Test")])
    h.handle_callback(bot, callback_update(data))
    assert bot.answered == ["cb1"]
    assert bot.sent == []