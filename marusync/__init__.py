"""
MaruSync - multi-account Google Drive file distribution.

Files uploaded once are stored on a default Google Drive account,
replicated to every other linked account, kept in a fixed category
folder layout and served through a download path that falls back across
accounts.
"""

__version__ = "1.0.0"
