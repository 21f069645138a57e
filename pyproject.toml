[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "normindex"
version = "0.1.0"
description = "Citation, ranking and quality-metric helpers for a SQLite index of structured standards documents"
requires-python = ">=3.10"
dependencies = []
keywords = ["indexing", "retrieval", "citation", "sqlite", "rrf", "standards", "quality-metrics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Text Processing :: Indexing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["normindex"]

[tool.pytest.ini_options]
addopts = "-ra"
