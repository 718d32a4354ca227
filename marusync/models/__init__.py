"""
Data models for MaruSync.
"""

from .base import BaseModel, generate_id, utc_now, parse_datetime
from .account import Account
from .file_record import FileRecord, Category, CATEGORY_FOLDER_NAMES
from .remote import RemoteObject, FOLDER_MIME_TYPE

__all__ = [
    'BaseModel',
    'generate_id',
    'utc_now',
    'parse_datetime',
    'Account',
    'FileRecord',
    'Category',
    'CATEGORY_FOLDER_NAMES',
    'RemoteObject',
    'FOLDER_MIME_TYPE',
]
