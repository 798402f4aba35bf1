"""
FeedHub

Feed aggregation core: fetches RSS, Atom and JSON feeds, merges their
entries into local storage and tracks read state, with a FastAPI surface.
"""

__version__ = "1.0.0"
