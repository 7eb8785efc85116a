"""Mail server channels: IMAP for inbound synchronization, SMTP for sending."""
