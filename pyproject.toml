[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "asyncwebkit"
version = "0.1.0"
description = "Callback-driven building blocks for small HTTP servers: handlers, Basic and Digest authentication, Server-Sent Events and WebSockets"
requires-python = ">=3.10"
dependencies = []
keywords = ["http", "websocket", "server-sent-events", "digest-auth", "handlers"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["asyncwebkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
