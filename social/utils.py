import re
from urllib.parse import urlparse

HASHTAG_RE = re.compile(r"#(\w+)")

IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp', 'bmp', 'svg'}
VIDEO_EXTENSIONS = {'mp4', 'webm', 'ogg', 'mov', 'avi', 'wmv', 'flv', 'mkv'}


def extract_hashtags(text):
    """Lower-cased hashtags in order of appearance, without the leading '#'."""
    if not text:
        return []
    return [tag.lower() for tag in HASHTAG_RE.findall(text)]


def file_extension(url):
    if not url:
        return ''
    path = urlparse(url).path or url
    if '.' not in path:
        return ''
    return path.rsplit('.', 1)[-1].lower()


def is_image_file(url):
    return file_extension(url) in IMAGE_EXTENSIONS


def is_video_file(url):
    return file_extension(url) in VIDEO_EXTENSIONS


def clean_text(value):
    """Strip a string input; anything that is not a string counts as empty."""
    if not isinstance(value, str):
        return ''
    return value.strip()


def truncate(text, length=30):
    if len(text) <= length:
        return text
    return f"{text[:length]}..."
