"""
File operation utilities
"""

from pathlib import Path
from typing import List

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp'}


def get_image_files(directory: str, recursive: bool = True) -> List[str]:
    """Image files under directory, as POSIX paths relative to it"""
    path = Path(directory)
    if not path.is_dir():
        return []

    pattern = '**/*' if recursive else '*'
    return sorted(
        f.relative_to(path).as_posix()
        for f in path.glob(pattern)
        if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS
    )


def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} PB"
