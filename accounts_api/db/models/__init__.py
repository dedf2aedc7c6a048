from accounts_api.db.models.user import User

__all__ = ["User"]
