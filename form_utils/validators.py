"""表单字段校验，校验失败抛出 ValidationError，由接口层以内联提示返回"""

import re
from typing import Optional, Tuple

from errors import ValidationError

USERNAME_PATTERN = re.compile(r'^[a-z0-9_]+$')
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 32
PASSWORD_MIN_LENGTH = 6


def normalize_username(value: Optional[str]) -> str:
    """输入框会把用户名强制转成小写"""
    return (value or '').strip().lower()


def validate_username(value: Optional[str], min_length: int = USERNAME_MIN_LENGTH,
                      max_length: int = USERNAME_MAX_LENGTH) -> str:
    if not value:
        raise ValidationError('Username is required.')
    if value != value.lower():
        raise ValidationError('Username must be lowercase.')
    if ' ' in value:
        raise ValidationError('Username cannot contain spaces.')
    if not USERNAME_PATTERN.fullmatch(value):
        raise ValidationError('Username can only contain lowercase letters, numbers, and underscores.')
    if len(value) < min_length:
        raise ValidationError(f'Username must be at least {min_length} characters long.')
    if len(value) > max_length:
        raise ValidationError(f'Username must be at most {max_length} characters long.')
    return value


def is_username_valid(value: Optional[str]) -> bool:
    """已有账号的用户名检查，不合法时前端跳转到设置用户名页面"""
    return bool(value) and value == value.lower() and ' ' not in value and bool(USERNAME_PATTERN.fullmatch(value))


def validate_email(value: Optional[str]) -> str:
    value = (value or '').strip()
    if not value:
        raise ValidationError('Email is required.')
    if not EMAIL_PATTERN.fullmatch(value):
        raise ValidationError('Please enter a valid email address.')
    return value


def validate_password(value: Optional[str]) -> str:
    if not value:
        raise ValidationError('Password is required.')
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f'Password must be at least {PASSWORD_MIN_LENGTH} characters long.')
    return value


def validate_publication_fields(title: Optional[str], description: Optional[str]) -> Tuple[str, str]:
    title = (title or '').strip()
    description = (description or '').strip()
    if not title:
        raise ValidationError('Title is required.')
    if not description:
        raise ValidationError('Description is required.')
    return title, description
