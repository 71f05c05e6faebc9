# routerbot

A Telegram bot that forwards chat messages to an OpenAI-compatible chat
completion API (OpenRouter, OpenAI or any service speaking the same protocol)
and streams the answer back into the chat, editing its reply at most every
0.8 seconds as new text arrives.

It keeps a short conversation history per user, records how much each user
has spent, and enforces budgets for guests and allowed users. Administrators
are never limited.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Running

```
routerbot [--config ./config.yaml] [--lang-dir ./lang/] [--logs-dir logs]
```

- `--config` (default `./config.yaml`) – a file that must exist and parse as
  YAML. Its contents are not used as settings; the bot watches it and, when it
  changes, loads the settings again from the environment and keeps the old
  ones if that fails.
- `--lang-dir` (default `./lang/`) – directory holding `EN.json` and
  `RU.json`, the translation tables for the bot's replies.
- `--logs-dir` (default `logs`) – directory where each user's spending is
  stored as `<user id>.json`. It must already exist.

The bot removes any webhook, registers its commands with Telegram and then
long-polls for updates until interrupted.

## Configuration

Settings are read from the environment. Required:

| Variable             | Meaning                         |
|----------------------|---------------------------------|
| `TELEGRAM_BOT_TOKEN` | token of the Telegram bot       |
| `API_KEY`            | key for the chat completion API |

Optional settings and their defaults:

| Variable             | Default                     | Meaning |
|----------------------|-----------------------------|---------|
| `TYPE`               | (empty)                     | `openrouter` fetches and records the cost of every answer |
| `MODEL`              | (empty)                     | model name sent to the API |
| `BASE_URL`           | `https://api.openai.com/v1` | base URL of the API |
| `MAX_TOKENS`         | `2000`                      | token limit of one answer |
| `TEMPERATURE`        | `1.0`                       | sampling temperature |
| `TOP_P`              | `0.7`                       | nucleus sampling |
| `FREQUENCY_PENALTY`  | `0`                         | frequency penalty |
| `PRESENCE_PENALTY`   | `0`                         | presence penalty |
| `ASSISTANT_PROMPT`   | (empty)                     | default system prompt |
| `BUDGET_PERIOD`      | `monthly`                   | `daily`, `monthly` or `total` |
| `GUEST_BUDGET`       | `0`                         | budget of users not listed anywhere |
| `USER_BUDGET`        | `0`                         | budget of allowed users |
| `ADMIN_IDS`          | (none)                      | comma-separated Telegram user ids of admins |
| `ALLOWED_USER_IDS`   | (none)                      | comma-separated Telegram user ids of allowed users |
| `MAX_HISTORY_SIZE`   | `10`                        | messages kept in a conversation |
| `MAX_HISTORY_TIME`   | `60`                        | minutes of silence after which history is dropped |
| `VISION`             | (empty)                     | `true` sends the largest attached photo to the model |
| `VISION_PROMPT`      | (empty)                     | text used with a photo that has no caption |
| `VISION_DETAIL`      | (empty)                     | image detail level sent with photos |
| `STATS_MIN_ROLE`     | `user`                      | `USER` lets allowed users see full statistics |
| `LANG`               | `en`                        | code of the translation table for replies |

`MIN_P`, `REPETITION_PENALTY`, `TOP_A` and `TOP_K` are read into the
configuration but not sent with requests. Parameters whose value is zero or
empty are left out of the request.

`LANG` is matched exactly against the table codes, which are `EN` and `RU`
after the file names. A code with no table makes every lookup return its key,
so set `LANG=EN` or `LANG=RU`.

Numbers in `ADMIN_IDS` and `ALLOWED_USER_IDS` that do not parse are skipped
with a warning; other numeric settings that do not parse fall back to their
defaults.

Example:

```
TELEGRAM_BOT_TOKEN=token
API_KEY=placeholder
TYPE=openrouter
MODEL=some-provider/some-model
BASE_URL=https://openrouter.ai/api/v1
ADMIN_IDS=1001,1002
GUEST_BUDGET=0.01
LANG=EN
```

## Translation files

Each file is a JSON object; keys are looked up by dotted path. The bot uses
`description.start`, `description.help`, `description.reset`,
`description.stats`, `description.stop`, `commands.start`, `commands.help`,
`commands.start_end`, `commands.reset`, `commands.reset_system`,
`commands.reset_prompt`, `commands.stats`, `commands.stats_min`,
`commands.stop`, `commands.stop_err` and `budget_out`.

`commands.stats` is filled with five `%s` values: the spending for the
configured budget period, today, this month and in total (six decimals), and
the number of remembered messages. `commands.stats_min` gets only the message
count.

## Chat commands

- `/start` – greeting and help
- `/help` – list of commands
- `/reset` – clear the conversation history
- `/reset system` – restore the default system prompt
- `/reset <text>` – use `<text>` as the system prompt
- `/stats` – spending and number of remembered messages (full figures for
  admins, and for allowed users when `STATS_MIN_ROLE=USER`)
- `/stop` – stop the answer currently being streamed

Any other message is answered by the model, in its own thread, when the user
has access; otherwise the `budget_out` text is sent.

## Using it as a library

- `routerbot.config.load(environ)` builds a `Config` from an environment
  mapping and raises `ConfigError` when a required setting is missing;
  `parse_id_list` parses id lists. `ConfigManager` holds the current `Config`,
  reloads it with `reload()`, hands out queues with `subscribe()`, and watches
  the config file between `start_watching()` and `stop_watching()` (or as a
  context manager).
- `routerbot.lang.Translator` (and the shared `load_translations` /
  `translate`) looks up dotted keys.
- `routerbot.usage.UsageTracker` keeps a user's history and spending, decides
  `user_role`, `have_access` and `can_view_stats`, and records costs with
  `add_cost` or `fetch_generation_cost`; `cost_for_day`, `cost_for_month` and
  `total_cost` sum a cost table.
- `routerbot.users.UserManager.get_user` hands out one tracker per user id.
- `routerbot.telegram.TelegramBot` is a small Bot API client and
  `IncomingMessage` parses a message and its command.
- `routerbot.openrouter.ChatClient` talks to `/chat/completions`;
  `handle_stream_response` streams an answer into a chat and
  `handle_response` sends a whole one.
- `routerbot.params.fetch_parameters` fetches OpenRouter's parameter
  statistics for the configured model as a `ModelResponse`.
- `routerbot.app` holds `bot_commands`, `format_stats`, `handle_command` and
  `main`.

## What it does not do

- Settings come only from the process environment; the YAML file's contents
  and `.env` files are not read.
- Only long polling is supported; there is no webhook server.
- Conversation history lives in memory and is lost on restart; only spending
  is stored on disk.