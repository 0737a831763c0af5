"""
listprojects - jump to any git project in a tmux session.

Scans the configured root directories for git repositories in parallel,
streams them into fzf as they are found (seeded instantly from a cache of
previous runs) and switches to, or attaches, a tmux session named after
the chosen project.

Configuration: ~/.config/listprojects/config.toml (XDG standard)
Cache: ~/.cache/listprojects/cache.json
"""

__version__ = "0.4.0"
