"""
Field validators for marketplace models.
"""

import re

from django.core.exceptions import ValidationError

MAX_IMAGE_SIZE = 5 * 1024 * 1024
MAX_VOICE_SIZE = 10 * 1024 * 1024

IMAGE_EXTENSIONS = ['jpg', 'jpeg', 'png', 'webp']
IMAGE_CONTENT_TYPES = ['image/jpeg', 'image/png', 'image/webp']

VOICE_EXTENSIONS = ['wav', 'webm', 'ogg', 'mp3', 'm4a']
VOICE_CONTENT_TYPES = [
    'audio/wav',
    'audio/x-wav',
    'audio/webm',
    'audio/ogg',
    'audio/mpeg',
    'audio/mp4',
    'audio/x-m4a',
]

PHONE_CHARACTERS = re.compile(r'^\+?[\d\s\-()]+$')
NON_DIGITS = re.compile(r'\D')
MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15


def validate_phone_number(value):
    """
    Farmers and buyers reach each other by phone for deliveries, so a stored
    number must be dialable: 10 to 15 digits (E.164 allows at most 15), written
    with the usual separators. Blank is allowed.
    """
    if not value:
        return

    if not PHONE_CHARACTERS.match(value):
        raise ValidationError(
            'Use only digits, spaces, dashes, parentheses and a leading plus sign.',
            code='invalid_phone_chars'
        )

    digits = NON_DIGITS.sub('', value)

    if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        raise ValidationError(
            f'Phone number must have between {MIN_PHONE_DIGITS} and {MAX_PHONE_DIGITS} digits.',
            code='invalid_phone_length'
        )

    if digits == digits[0] * len(digits):
        raise ValidationError('Phone number cannot repeat a single digit.', code='invalid_phone_pattern')


def _validate_upload(upload, max_size, extensions, content_types, kind):
    if not upload:
        return

    if upload.size > max_size:
        raise ValidationError(
            f'{kind} file size cannot exceed {max_size // (1024 * 1024)}MB. '
            f'Current size: {upload.size / (1024 * 1024):.2f}MB',
            code=f'{kind.lower()}_too_large'
        )

    file_name = upload.name.lower()
    if not any(file_name.endswith(f'.{ext}') for ext in extensions):
        raise ValidationError(
            f'Invalid {kind.lower()} format. Allowed formats: {", ".join(extensions)}',
            code=f'invalid_{kind.lower()}_format'
        )

    content_type = getattr(upload, 'content_type', None)
    if content_type and content_type not in content_types:
        raise ValidationError(
            f'Invalid {kind.lower()} content type: {content_type}',
            code='invalid_content_type'
        )


def validate_image_file(image):
    """
    Validate an uploaded product photo, avatar or image message.

    Checks size (max 5MB), extension and MIME type.
    """
    _validate_upload(image, MAX_IMAGE_SIZE, IMAGE_EXTENSIONS, IMAGE_CONTENT_TYPES, 'Image')


def validate_voice_file(audio):
    """
    Validate a recorded voice message (max 10MB, common browser audio formats).
    """
    _validate_upload(audio, MAX_VOICE_SIZE, VOICE_EXTENSIONS, VOICE_CONTENT_TYPES, 'Voice')
