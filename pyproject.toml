[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cqlxkit"
version = "0.1.0"
description = "Row-to-object scanning, CQL schema migrations and naming helpers for Cassandra-compatible databases"
requires-python = ">=3.10"
dependencies = []
keywords = ["cql", "cassandra", "scylla", "migrations", "database", "mapping", "dataclasses"]
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
    "Topic :: Database :: Front-Ends",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cqlxkit"]

[tool.hatch.build.targets.sdist]
include = ["cqlxkit", "tests"]

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
