from utils.errors import ValidationError


def text_field(value, name: str, strip: bool = True) -> str:
    """Body value as a string; missing -> "", any other JSON type -> ValidationError."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", error="Invalid field type")
    return value.strip() if strip else value


def id_field(value, name: str) -> str:
    # ids are strings, older clients send the numeric user id
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return text_field(value, name)
