[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "crate-docs-cache"
version = "0.1.0"
description = "Offline cache of Rust crate sources and rustdoc JSON documentation, with querying of items, docs and source"
requires-python = ">=3.11"
keywords = ["rust", "crates", "rustdoc", "documentation", "cache", "cargo"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Documentation",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["crate_docs_cache"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"
