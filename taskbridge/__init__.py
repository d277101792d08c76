"""Chat task bridge: routes Telegram conversations to an asynchronous task provider."""

__version__ = "1.0.0"
