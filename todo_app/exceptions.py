class TodoNotFoundError(LookupError):
    """No todo with this id is owned by the requesting user."""

    def __init__(self, todo_id: int):
        super().__init__(f"Todo not found: {todo_id}")
        self.todo_id = todo_id


class UserNotFoundError(LookupError):
    def __init__(self, user_id: int):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class DuplicateEmailError(ValueError):
    """Registration attempted with an email that is already taken."""

    def __init__(self, email: str):
        super().__init__(f"An account with email {email} already exists")
        self.email = email


class AuthenticationRequired(Exception):
    """Raised by the principal dependency; turned into a redirect to the login page."""

    def __init__(self, expired: bool = False):
        super().__init__("Session expired" if expired else "Not authenticated")
        self.expired = expired
