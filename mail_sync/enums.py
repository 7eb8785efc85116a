from django.db import models


class Folder(models.TextChoices):
    INBOX = "inbox", "Inbox"
    SENT = "sent", "Sent"
    ARCHIVE = "archive", "Archive"
    TRASH = "trash", "Trash"


class SendStatus(models.TextChoices):
    SENDING = "sending", "Sending"
    SENT = "sent", "Sent"
    ERROR = "error", "Error"


class Protocol(models.TextChoices):
    IMAP = "imap", "IMAP"
    SMTP = "smtp", "SMTP"


class ImapStage(models.TextChoices):
    CONNECT = "connect", "Connect"
    AUTH = "auth", "Authenticate"
    SELECT = "select", "Select mailbox"
    SEARCH = "search", "Search"
    FETCH = "fetch", "Fetch"


class SmtpStage(models.TextChoices):
    CONNECT = "connect", "Connect"
    TLS = "tls", "Start TLS"
    HANDSHAKE = "handshake", "Handshake"
    AUTH = "auth", "Authenticate"
    SEND = "send", "Send"


class Collection(models.TextChoices):
    ACCOUNTS = "emailAccounts", "Email accounts"
    EMAILS = "emails", "Emails"
