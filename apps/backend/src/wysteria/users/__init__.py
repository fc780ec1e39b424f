from .service import UserService, normalize_email

__all__ = ["UserService", "normalize_email"]
