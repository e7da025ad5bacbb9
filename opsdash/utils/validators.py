from datetime import datetime, timezone
from typing import Dict, Any, Optional
import re
import uuid


class Validators:
    """Input validation utilities"""

    TASK_STATUSES = ['pending', 'in_progress', 'completed', 'blocked']
    TASK_PRIORITIES = ['low', 'medium', 'high']
    ROLES = ['admin', 'supervisor', 'user']

    @staticmethod
    def validate_email(email: str) -> bool:
        """Validate email format"""
        if not isinstance(email, str):
            return False
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        return bool(re.match(pattern, email))

    @staticmethod
    def validate_task_status(status: str) -> bool:
        return status in Validators.TASK_STATUSES

    @staticmethod
    def validate_priority(priority: str) -> bool:
        return priority in Validators.TASK_PRIORITIES

    @staticmethod
    def validate_role(role: str) -> bool:
        return role in Validators.ROLES

    @staticmethod
    def validate_order(order: Any) -> bool:
        """Order keys are plain integers (bool excluded)"""
        return isinstance(order, int) and not isinstance(order, bool)

    @staticmethod
    def validate_amount(amount: Any) -> bool:
        if isinstance(amount, bool):
            return False
        return isinstance(amount, (int, float)) and amount >= 0


class Helpers:
    """Utility helper functions"""

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def get_current_timestamp() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def now_iso() -> str:
        return Helpers.get_current_timestamp().isoformat()

    @staticmethod
    def format_timestamp(timestamp: Any) -> Optional[str]:
        """Format a Firestore timestamp (or ISO string) for an API response"""
        if timestamp is None:
            return None
        if isinstance(timestamp, str):
            return timestamp
        if isinstance(timestamp, datetime):
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
            return timestamp.isoformat()
        return str(timestamp)

    @staticmethod
    def sanitize_string(text: Optional[str]) -> str:
        if not text:
            return ""
        return text.strip()

    @staticmethod
    def build_error_response(message: str, code: str = "BAD_REQUEST", details: Any = None) -> Dict[str, Any]:
        """Build standardized error response"""
        response = {
            'error': message,
            'code': code,
            'timestamp': Helpers.now_iso(),
        }
        if details is not None:
            response['details'] = details
        return response
