from .http import RequestsPageFetcher
from .mail import SMTPNotifier

__all__ = ["RequestsPageFetcher", "SMTPNotifier"]
