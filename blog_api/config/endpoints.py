"""Пути API в одном месте (относительно API_BASE_URL)."""


class Auth:
    LOGIN = "/auth/login"
    REGISTER = "/auth/register"
    LOGOUT = "/auth/logout"
    REFRESH = "/auth/refresh-token"
    FORGOT_PASSWORD = "/auth/forgot-password"
    RESET_PASSWORD = "/auth/reset-password"


class Users:
    PROFILE = "/users/profile"
    UPDATE = "/users/update"
    CHANGE_PASSWORD = "/users/change-password"


class Blog:
    LIST = "/posts"
    CREATE = "/posts"
    TAGS = "/posts/tags"

    @staticmethod
    def detail(post_id: str) -> str:
        return f"/posts/{post_id}"

    # update/delete бьют в тот же ресурс
    update = detail
    delete = detail

    @staticmethod
    def comments(post_id: str) -> str:
        return f"/posts/{post_id}/comments"


class Projects:
    LIST = "/projects"
    CREATE = "/projects"

    @staticmethod
    def detail(project_id: str) -> str:
        return f"/projects/{project_id}"

    update = detail
    delete = detail


class Contact:
    SEND = "/contact"
