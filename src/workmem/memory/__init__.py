"""Working memory: document store, merge lock, freshness throttle, snapshots, background merge.

Layout (per project, under the docs directory, ``.docs/`` by default):
    <project>/.docs/
    ├── WORKING-MEMORY.md               # The document (replaced wholesale)
    ├── patterns.md                     # Accumulated pattern notes
    ├── working-memory-backup.md        # Pre-compaction snapshot
    ├── .working-memory.lock            # Merge lock (+ .guard)
    └── .working-memory-update.log      # Background merge outcomes
"""
