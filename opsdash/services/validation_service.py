"""
Centralized Input Validation Service
Password policy, account payloads and delete confirmations
"""
from typing import Dict, Any, Optional
import re

from opsdash.exceptions import ValidationError
from opsdash.utils.validators import Validators


class ValidationService:
    """Centralized validation service for settings and account inputs"""

    MIN_PASSWORD_LENGTH = 8
    MAX_PASSWORD_LENGTH = 128
    MAX_DISPLAY_NAME_LENGTH = 100
    PASSWORD_SYMBOLS = '!@#$%^&*(),.?":{}|<>'

    PASSWORD_REQUIREMENTS = [
        'At least 8 characters long',
        'At least one uppercase letter',
        'At least one lowercase letter',
        'At least one number',
        'At least one special character (!@#$%^&*(),.?":{}|<>)',
    ]

    @staticmethod
    def validate_password(password: str) -> Dict[str, Any]:
        """Check a new password against the account policy.

        Returns ``{'valid': True, 'value': ...}`` or ``{'valid': False,
        'error': ...}`` naming the first rule that fails.
        """
        if not password or not isinstance(password, str):
            return {'valid': False, 'error': 'Password is required'}

        if len(password) < ValidationService.MIN_PASSWORD_LENGTH:
            return {'valid': False, 'error': f'Password must be at least {ValidationService.MIN_PASSWORD_LENGTH} characters long'}

        if len(password) > ValidationService.MAX_PASSWORD_LENGTH:
            return {'valid': False, 'error': f'Password must be less than {ValidationService.MAX_PASSWORD_LENGTH} characters'}

        if not re.search(r'[A-Z]', password):
            return {'valid': False, 'error': 'Password must contain at least one uppercase letter'}

        if not re.search(r'[a-z]', password):
            return {'valid': False, 'error': 'Password must contain at least one lowercase letter'}

        if not re.search(r'[0-9]', password):
            return {'valid': False, 'error': 'Password must contain at least one number'}

        if not any(ch in ValidationService.PASSWORD_SYMBOLS for ch in password):
            return {'valid': False, 'error': 'Password must contain at least one special character'}

        return {'valid': True, 'value': password}

    @staticmethod
    def validate_password_change(current_password: str, new_password: str) -> Dict[str, Any]:
        """Validate both halves of a password change request"""
        if not current_password or not new_password:
            return {'valid': False, 'error': 'Both current and new passwords are required.'}

        result = ValidationService.validate_password(new_password)
        if not result['valid']:
            return result

        if current_password == new_password:
            return {'valid': False, 'error': 'New password must be different from current password.'}

        return {'valid': True, 'value': new_password}

    @staticmethod
    def validate_email(email: str) -> Dict[str, Any]:
        if not email or not isinstance(email, str):
            return {'valid': False, 'error': 'Email is required'}

        email = email.strip().lower()
        if not Validators.validate_email(email):
            return {'valid': False, 'error': 'Invalid email format'}

        if len(email) > 254:
            return {'valid': False, 'error': 'Email is too long'}

        return {'valid': True, 'value': email}

    @staticmethod
    def validate_role(role: str) -> Dict[str, Any]:
        if not role or not isinstance(role, str):
            return {'valid': False, 'error': 'Role is required'}

        role = role.strip().lower()
        if not Validators.validate_role(role):
            return {'valid': False, 'error': f'Role must be one of: {", ".join(Validators.ROLES)}'}

        return {'valid': True, 'value': role}

    @staticmethod
    def validate_display_name(display_name: Optional[str]) -> Dict[str, Any]:
        if display_name is None:
            return {'valid': False, 'error': 'Display name is required'}

        display_name = display_name.strip()
        if not display_name:
            return {'valid': False, 'error': 'Display name is required'}

        if len(display_name) > ValidationService.MAX_DISPLAY_NAME_LENGTH:
            return {'valid': False, 'error': f'Display name must be less than {ValidationService.MAX_DISPLAY_NAME_LENGTH} characters'}

        return {'valid': True, 'value': display_name}

    @staticmethod
    def validate_new_user(user_data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate the admin "add user" payload, collecting every error"""
        errors = []
        validated_data = {}

        for field, validator in (
            ('email', ValidationService.validate_email),
            ('password', ValidationService.validate_password),
            ('role', ValidationService.validate_role),
            ('displayName', ValidationService.validate_display_name),
        ):
            result = validator(user_data.get(field))
            if not result['valid']:
                errors.append(result['error'])
            else:
                validated_data[field] = result['value']

        if errors:
            return {'valid': False, 'errors': errors}

        return {'valid': True, 'data': validated_data}

    @staticmethod
    def require(result: Dict[str, Any]) -> Any:
        """Unwrap a validation result or raise ValidationError"""
        if result.get('valid'):
            return result.get('value', result.get('data'))
        if 'errors' in result:
            raise ValidationError("; ".join(result['errors']), details={'errors': result['errors']})
        raise ValidationError(result.get('error', 'Validation failed'))

    @staticmethod
    def check_delete_confirmation(expected_email: str, confirm_text: Optional[str]):
        """Deleting an account requires typing its email address exactly"""
        if not expected_email or confirm_text != expected_email:
            raise ValidationError('Please type the email address correctly to confirm deletion')
