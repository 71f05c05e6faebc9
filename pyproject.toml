[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "routerbot"
version = "0.1.0"
description = "Telegram chat bot that streams answers from OpenAI-compatible chat APIs such as OpenRouter, with per-user budgets and history"
requires-python = ">=3.10"
keywords = ["telegram", "bot", "openrouter", "openai", "chat", "llm"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "httpx",
    "pyyaml",
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
routerbot = "routerbot.app:main"

[tool.hatch.build.targets.wheel]
packages = ["routerbot"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
