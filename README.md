# crate-docs-cache

Keep Rust crate sources and their rustdoc JSON documentation in a local cache,
then query them offline: list and search items, read documentation, look at
source code and load dependency metadata.

Crates can come from crates.io, from a GitHub repository (branch or tag), or
from a local directory holding a `Cargo.toml`. Virtual workspaces are
detected, and individual workspace members can be cached and documented on
their own.

## Requirements

- Python 3.11 or later
- `cargo` and `rustup` on `PATH`, with the `nightly-2025-06-23` toolchain
  installed (it is used to produce rustdoc JSON output)
- `git` on `PATH` for GitHub sources

## Installation

```
pip install crate-docs-cache
```

## Usage

### Fetching and querying documentation

```python
from crate_docs_cache.crate_cache import CrateCache
from crate_docs_cache.query import DocQuery

cache = CrateCache()  # defaults to ~/.rust-docs-mcp/cache

docs = cache.ensure_crate_docs("serde", "1.0.219", None)
query = DocQuery(docs)

matches = query.search_items("Deserialize")
for item in matches[:5]:
    print(item.id, item.kind, "::".join(item.path))

if matches:
    details = query.get_item_details(int(matches[0].id))
    print(details.to_dict())
```

`DocQuery` offers:

- `list_items(kind_filter)` – every named item, sorted by path and name,
  optionally limited to one kind such as `"function"` or `"struct"`
- `search_items(pattern)` – case-insensitive substring search on item names,
  exact matches first, then prefix matches, then shorter names
- `get_item_details(item_id)` – a `DetailedItem` with signature, generics,
  fields, variants or methods and the source location
- `get_item_docs(item_id)` – the documentation string, or `None`
- `get_item_source(item_id, base_path, context_lines)` – a `SourceInfo`
  with the item's code and the given number of surrounding lines, read from
  the crate source under `base_path` (see `CrateCache.get_source_path`)

Looking up an id that is not in the documentation raises `LookupError`.

### Workspaces

For a workspace crate, name the member by its path inside the workspace:

```python
docs = cache.ensure_crate_or_member_docs("rmcp", "0.1.5", "crates/rmcp")
```

Asking for a virtual workspace without a member raises `CacheError` listing
the available members. `CrateCache.ensure_crate_or_member_source` returns the
source directory of a crate or member in the same way, without generating
documentation.

### Caching requests with JSON responses

`crate_docs_cache.caching.cache_crate_with_source` takes one of the
parameter classes from `crate_docs_cache.downloader` (`CratesIoParams`,
`GitHubParams`, `LocalParams`) and returns a JSON string describing the
outcome: success, partial success for workspace members, a detected
workspace with its members, or an error.

```python
from crate_docs_cache.caching import cache_crate_with_source
from crate_docs_cache.downloader import CratesIoParams, GitHubParams, LocalParams

print(cache_crate_with_source(cache, CratesIoParams(crate_name="anyhow", version="1.0.98")))
print(cache_crate_with_source(
    cache,
    GitHubParams(crate_name="mycrate", github_url="https://github.com/example/mycrate", tag="v1.0.0"),
))
print(cache_crate_with_source(cache, LocalParams(crate_name="mycrate", path="~/src/mycrate")))
```

For a local path without a version, the version is read from its
`Cargo.toml`; a version that is given must match it. A GitHub request needs a
branch or a tag, and the branch or tag name is used as the cached version.
Pass `members=[...]` to document specific workspace members, and
`update=True` to re-fetch a crate that is already cached.

### Cache management

`CrateCache` also provides `get_cached_versions(name)`,
`list_all_cached_crates()` (returning `CrateMetadata` records),
`remove_crate(name, version)` and `load_dependencies(name, version)`.
Failures are raised as `crate_docs_cache.utils.CacheError`, and
`crate_docs_cache.utils.format_bytes` turns sizes into readable strings.

### Cache layout

```
<cache dir>/crates/<name>/<version>/
    source/              unpacked crate sources
    docs.json            rustdoc JSON
    dependencies.json    cargo metadata output
    metadata.json        when and from where the crate was cached
    members/<member>/    per-member docs.json and dependencies.json
```

Updating a crate that is already cached runs inside a `CacheTransaction`
(`crate_docs_cache.transaction`). The old copy is backed up to a temporary
directory first and restored if the update fails.

## What this package does not do

It is a library only: it installs no command-line program and runs no
server. It does not render a module tree or analyse a crate's structure,
and it does not format dependency metadata beyond loading the stored
`cargo metadata` output.

## Running the tests

From a checkout of the package:

```
pip install -e ".[test]"
pytest
```