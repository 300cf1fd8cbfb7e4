# filevault/deps.py
from fastapi import Request

from .config import Settings
from .files import FileService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_file_service(request: Request) -> FileService:
    return request.app.state.files
