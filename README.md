# bookfinder

A Telegram bot that searches several online book catalogues for a title and
replies with links to the results. It queries Open Library, Z-Library,
Ocean of PDF and LibGen, in that order, and puts the results of every source
that answers into one reply. A source that fails is skipped. Only the Telegram
users you list may use the bot.

## Installation

```
pip install .
```

## Configuration

The bot reads its settings from environment variables:

| Variable             | Required | Meaning                                                      |
|----------------------|----------|--------------------------------------------------------------|
| `TELEGRAM_BOT_TOKEN` | yes      | The bot token that BotFather issued                          |
| `ALLOWED_USER_IDS`   | yes      | Comma-separated Telegram user ids that may use the bot       |
| `WEBHOOK_URL`        | no       | Public base URL. If it is set, the bot runs in webhook mode  |
| `PORT`               | no       | Port for the webhook server (default `10000`)                |

If a required variable is missing, or a user id is not a whole number, the
command exits with an error message.

## Running

```
export TELEGRAM_BOT_TOKEN=token
export ALLOWED_USER_IDS=12345,67890
bookfinder
```

The `bookfinder` command takes no options apart from `--help`.

If `WEBHOOK_URL` is not set, the bot removes any existing webhook and uses long
polling. If it is set, the bot registers `<WEBHOOK_URL>/<bot username>` as its
webhook and starts an HTTP server on `PORT`. The server accepts updates as
POST requests on `/<bot username>` and answers `GET /health` with `ok`.

## Using the bot

- `/start`: shows the usage help.
- `/search <book name>`: searches by title.
- `/search <book name> --author <author>`: searches by title and author.

Any other command gets a short "unknown command" reply. Users who are not
listed in `ALLOWED_USER_IDS` are told that they are not authorized.

The reply lists the results in Markdown. Each result has its own button, and
pressing it sends that result's link. The bot keeps a chat's results in memory
for ten minutes. A new search replaces the old results.

## Using it as a library

```python
from bookfinder.app import build_handler
from bookfinder.config import load
from bookfinder.httpclient import new_session
from bookfinder.results import format_books

config = load()
handler = build_handler(config, new_session(30))
```

- `bookfinder.config.load()` builds a `Config` from the environment (or from a
  mapping you pass in) and raises `ConfigError` on bad settings.
  `Config.is_allowed(user_id)` checks a user against the allow list.
- `bookfinder.scrapers` has `OpenLibraryScraper`, `ZLibraryScraper`,
  `OceanPDFScraper` and `LibGenScraper`. Each has
  `search(title, author="")`, which returns a list of `BookResult` and raises
  `ScraperError` when the site cannot be searched.
- `bookfinder.sources.SourceManager` runs a search across a list of scrapers
  and raises `AllSourcesFailed` if none of them returns anything.
- `bookfinder.results.format_books()` renders results as a numbered list.
- `bookfinder.telegram.TelegramBot` is a small Bot API client used by the bot.
- `bookfinder.downloader` fetches the book behind a result's detail page.
  `LibGenDownloader`, `OceanPDFDownloader` and `ZLibraryDownloader` look for an
  EPUB link first and a PDF link second. `DownloadManager` chooses the
  downloader by source name. `fetch_file()` retries up to three times when the
  site rate limits. Files larger than 50 MB raise `FileTooLarge`, and Cloudflare
  challenge pages raise `CloudflareBlocked`.

## What it does not do

The bot itself only sends links. It does not download books or send files to
the chat. `bookfinder.downloader` is available to use from your own code, but
the bot does not call it. Search results are held in memory only and are lost
when the bot stops.

## Tests

```
pip install ".[test]"
pytest
```