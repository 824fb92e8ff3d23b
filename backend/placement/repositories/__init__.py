"""
Repositories.

`EntityStore` is the in-memory system of record (an id-keyed arena with
atomic multi-entity writes); `snapshot_repo` moves it to and from the
pipe-delimited snapshot files.
"""
