"""
Client side of the admin user-management screen.

``AdminConsole`` keeps the state the screen renders (the user list, the
pending-delete selection, the last error and notices) and talks to the API
over any ``requests.Session``-like object. The caller's session is passed in
explicitly; the console never goes looking for one.
"""

from typing import Any, Optional

import requests
import structlog

from schemas import AuthSession

logger = structlog.get_logger(__name__)

APPROVAL_CHOICES = ("approved", "rejected")


class AccessDenied(Exception):
    pass


class AdminConsole:
    def __init__(self, session: Optional[AuthSession], http=None, base_url: str = ""):
        self.session = session
        self.http = http if http is not None else requests.Session()
        self.base_url = base_url.rstrip("/")

        self.is_admin = False
        self.users: list[dict[str, Any]] = []
        self.pending_delete: Optional[str] = None
        self.redirect_to: Optional[str] = None
        self.error: Optional[str] = None
        self.notices: list[str] = []

    # --------------------
    # Views
    # --------------------
    def _with_status(self, status: str) -> list[dict[str, Any]]:
        return [u for u in self.users if u.get("approval_status") == status]

    @property
    def pending_users(self) -> list[dict[str, Any]]:
        return self._with_status("pending")

    @property
    def approved_users(self) -> list[dict[str, Any]]:
        return self._with_status("approved")

    @property
    def rejected_users(self) -> list[dict[str, Any]]:
        return self._with_status("rejected")

    # --------------------
    # HTTP
    # --------------------
    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.session.access_token}"}

    @staticmethod
    def _json(resp) -> dict:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"data": data}

    # --------------------
    # Workflow
    # --------------------
    def check_admin(self) -> None:
        """Raise AccessDenied unless the caller's role is admin."""
        resp = self.http.get(self._url("/me/role"), headers=self._headers())
        # no role row and a non-admin role look the same from here
        if resp.status_code != 200 or self._json(resp).get("role") != "admin":
            raise AccessDenied("You do not have admin privileges")

    def load(self) -> bool:
        if self.session is None:
            self.redirect_to = "/auth"
            return False

        try:
            self.check_admin()
        except requests.RequestException as e:
            logger.error("admin_console_role_check_failed", error=str(e))
            self.error = "You do not have admin privileges"
            self.redirect_to = "/"
            return False
        except AccessDenied as e:
            self.error = str(e)
            self.redirect_to = "/"
            return False

        self.is_admin = True
        self.list_users()
        return True

    def list_users(self) -> bool:
        try:
            resp = self.http.get(self._url("/admin/users"), headers=self._headers())
        except requests.RequestException as e:
            logger.error("admin_console_list_failed", error=str(e))
            self.error = "Failed to load users"
            return False
        if resp.status_code != 200:
            logger.error("admin_console_list_failed", status=resp.status_code)
            self.error = "Failed to load users"
            return False
        self.users = resp.json()
        return True

    def set_approval(self, user_id: str, status: str) -> bool:
        if status not in APPROVAL_CHOICES:
            raise ValueError(f"status must be one of {APPROVAL_CHOICES}, got {status!r}")

        try:
            resp = self.http.patch(
                self._url(f"/admin/users/{user_id}/approval"),
                json={"status": status},
                headers=self._headers(),
            )
        except requests.RequestException as e:
            logger.error("admin_console_approval_failed", user_id=user_id, error=str(e))
            self.error = "Failed to update user status"
            return False
        if resp.status_code != 200:
            logger.error("admin_console_approval_failed", user_id=user_id, status=resp.status_code)
            self.error = "Failed to update user status"
            return False

        self.notices.append(f"User {status} successfully")
        self.list_users()
        return True

    def request_delete(self, user_id: str) -> None:
        self.pending_delete = user_id

    def cancel_delete(self) -> None:
        self.pending_delete = None

    def confirm_delete(self) -> bool:
        user_id = self.pending_delete
        if not user_id:
            return False

        try:
            if self.session is None or not self.session.access_token:
                self.error = "No active session"
                return False

            try:
                resp = self.http.post(
                    self._url("/functions/delete-user"),
                    json={"userId": user_id},
                    headers=self._headers(),
                )
            except requests.RequestException as e:
                logger.error("admin_console_delete_failed", user_id=user_id, error=str(e))
                self.error = str(e) or "Failed to delete user"
                return False
            if not 200 <= resp.status_code < 300:
                self.error = self._json(resp).get("error") or "Failed to delete user"
                logger.error("admin_console_delete_failed", user_id=user_id, status=resp.status_code)
                return False

            self.notices.append("User deleted successfully")
            self.list_users()
            return True
        finally:
            self.pending_delete = None
