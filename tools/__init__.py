from .email_tools import send_email

__all__ = ["send_email"]
