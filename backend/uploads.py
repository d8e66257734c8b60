"""
Carpool Platform - Upload Store

Vehicle photos are saved under UPLOAD_FOLDER with a random filename.
"""

import os
import uuid

from werkzeug.datastructures import FileStorage

from config import config
from exceptions import ValidationError


def allowed_file(filename: str, allowed_extensions: set) -> bool:
    """Check if a file has an allowed extension."""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed_extensions


def save_uploaded_file(file: FileStorage, folder: str = '') -> str:
    """
    Save an uploaded image with a unique filename.

    Args:
        file: The uploaded file object.
        folder: Optional subfolder within uploads.

    Returns:
        The path to the saved file relative to the static folder, or ''
        when no file was sent.

    Raises:
        ValidationError: The extension is not an allowed image type.
    """
    if not file or not file.filename:
        return ''
    if not allowed_file(file.filename, config.ALLOWED_IMAGE_EXTENSIONS):
        allowed = ', '.join(sorted(config.ALLOWED_IMAGE_EXTENSIONS))
        raise ValidationError(f'Photo must be one of: {allowed}.')

    ext = file.filename.rsplit('.', 1)[1].lower()
    unique_filename = f"{uuid.uuid4().hex}.{ext}"
    upload_path = os.path.join(config.UPLOAD_FOLDER, folder)
    os.makedirs(upload_path, exist_ok=True)
    file.save(os.path.join(upload_path, unique_filename))
    return os.path.join('uploads', folder, unique_filename).replace('\\', '/')
