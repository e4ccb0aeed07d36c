class MailError(Exception):
    """Raised when an email cannot be delivered to the mail provider."""
