from .imap import ImapFetcher
from .smtp import SmtpSender

__all__ = ["ImapFetcher", "SmtpSender"]
