[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "otelextra"
version = "0.1.9"
description = "Tracing and metrics instrumentation for DB-API databases and structured logging, with a small built-in tracing and metrics core"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "tracing",
    "metrics",
    "instrumentation",
    "observability",
    "spans",
    "sql",
    "db-api",
    "logging",
]
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
    "Topic :: System :: Monitoring",
    "Topic :: System :: Logging",
    "Topic :: Database",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["otelextra"]

[tool.hatch.build.targets.sdist]
include = ["otelextra", "tests"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
check_untyped_defs = true
