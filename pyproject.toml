[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tokctl"
version = "0.1.0"
description = "Local-only library for parsing Claude, Codex and Cursor usage logs and reporting token usage and cost from a SQLite cache."
requires-python = ">=3.10"
dependencies = []
keywords = ["tokens", "usage", "cost", "llm", "claude", "codex", "cursor", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tokctl"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
